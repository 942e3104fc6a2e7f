# tests/services/test_incoming_engine.py
from __future__ import annotations

import asyncio
from typing import List

import pytest

from tests.factories import (
    TODAY,
    make_location,
    make_product,
    make_schedule,
    make_warehouse,
    make_work_item,
)
from tests.helpers.fake_gateway import FakeIncomingGateway
from wms_handy.domain.models import ScheduleStatus, WorkStatus
from wms_handy.gateway.errors import NetworkError, ServerError, UnauthorizedError, ValidationError
from wms_handy.services.incoming_engine import IncomingEngine
from wms_handy.services.incoming_state import EditInput, IncomingState, NewInput
from wms_handy.services import messages

pytestmark = [pytest.mark.asyncio, pytest.mark.grp_incoming]


async def _enter_schedule(engine: IncomingEngine, fake: FakeIncomingGateway, remaining: int = 50):
    """W1 → 商品 → 预定 S1（剩余 remaining，PENDING）。"""
    s1 = make_schedule(1, expected=remaining, remaining=remaining)
    product = make_product(100, schedules=[s1])
    fake.products = {None: [product]}
    engine.select_warehouse(make_warehouse(1))
    await engine.load_products()
    engine.select_product(product)
    engine.select_schedule(s1)
    return product, s1


# ---------- 仓库 ----------


async def test_load_warehouses_failure_then_retry(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    fake_gateway.failures["list_warehouses"] = NetworkError("timeout")
    await engine.load_warehouses()
    assert engine.state.error_message == messages.MSG_NETWORK
    assert engine.state.is_loading_warehouses is False
    assert engine.state.warehouses == ()

    # 重试由用户触发：再次调用同一意图
    del fake_gateway.failures["list_warehouses"]
    await engine.load_warehouses()
    assert engine.state.error_message is None
    assert [w.id for w in engine.state.warehouses] == [1]


async def test_select_warehouse_resets_downstream_state(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    engine.set_quantity_input("12")
    assert engine.state.products

    engine.select_warehouse(make_warehouse(2, code="W02"))

    st = engine.state
    assert st.selected_warehouse.id == 2
    assert st.products == ()
    assert st.selected_product is None
    assert st.input_mode is None
    assert st.input_quantity == ""
    assert st.working_schedule_ids == frozenset()


async def test_reselecting_same_warehouse_keeps_context(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    product, _ = await _enter_schedule(engine, fake_gateway)
    engine.select_warehouse(make_warehouse(1))
    assert engine.state.selected_product == product
    assert engine.state.input_quantity == "50"


# ---------- 商品列表 ----------


async def test_load_products_without_warehouse_is_noop(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await engine.load_products()
    assert fake_gateway.calls == []


async def test_load_products_collects_working_schedule_ids(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    fake_gateway.work_items = {
        "WORKING": [make_work_item(1, schedule_id=7), make_work_item(2, schedule_id=9)],
    }
    engine.select_warehouse(make_warehouse(1))
    await engine.load_products()

    assert engine.state.working_schedule_ids == frozenset({7, 9})
    assert fake_gateway.calls_of("list_work_items") == [(1, 7, "WORKING", None)]


async def test_working_ids_failure_is_silent(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    product = make_product(100, schedules=[make_schedule(1)])
    fake_gateway.products = {None: [product]}
    fake_gateway.failures["list_work_items"] = ServerError("boom", 500)
    engine.select_warehouse(make_warehouse(1))

    await engine.load_products()

    assert engine.state.products == (product,)
    assert engine.state.error_message is None
    assert engine.state.is_searching is False


async def test_load_products_failure_sets_error_and_clears_flag(
    engine: IncomingEngine, fake_gateway: FakeIncomingGateway
):
    fake_gateway.failures["list_schedules"] = UnauthorizedError("expired", 401)
    engine.select_warehouse(make_warehouse(1))
    await engine.load_products()
    assert engine.state.error_message == messages.MSG_UNAUTHORIZED
    assert engine.state.is_searching is False


# ---------- 预定 / 输入 ----------


async def test_select_schedule_seeds_quantity_and_clears_location(
    engine: IncomingEngine, fake_gateway: FakeIncomingGateway
):
    await _enter_schedule(engine, fake_gateway)
    loc = make_location(9)
    engine.select_location(loc)
    engine.set_expiration_date("2027-01-31")

    s2 = make_schedule(2, expected=40, received=15)
    engine.select_schedule(s2)

    st = engine.state
    assert st.input_mode == NewInput(s2)
    assert st.input_quantity == "25"
    assert st.input_expiration_date == ""
    assert st.input_location_id is None
    assert st.input_location is None
    assert st.input_location_search == ""
    assert st.is_from_history is False


async def test_select_schedule_ignores_non_selectable(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    engine.select_warehouse(make_warehouse(1))
    engine.select_schedule(make_schedule(3, status=ScheduleStatus.CONFIRMED))
    assert engine.state.input_mode is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("", ""),
        ("0", "0"),
        ("30", "30"),
        ("007", "007"),
        ("3a", "50"),
        ("-1", "50"),
        ("1.5", "50"),
        (" 3", "50"),
        ("３", "50"),  # 全角数字
    ],
)
async def test_quantity_input_mask(engine: IncomingEngine, fake_gateway: FakeIncomingGateway, raw, expected):
    await _enter_schedule(engine, fake_gateway)
    engine.set_quantity_input(raw)
    assert engine.state.input_quantity == expected


async def test_select_location_overwrites_query(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    loc = make_location(9, "B-02-03")
    engine.set_location_query("B-02")
    engine.select_location(loc)
    await engine.wait_idle()

    st = engine.state
    assert st.input_location_id == 9
    assert st.input_location == loc
    assert st.input_location_search == "B-02-03"
    assert st.location_suggestions == ()
    # 选中后挂起的检索被作废
    assert fake_gateway.calls_of("search_locations") == []


# ---------- 提交：新作业 ----------


async def test_new_flow_runs_start_update_complete_and_refreshes(
    engine: IncomingEngine, fake_gateway: FakeIncomingGateway
):
    product, s1 = await _enter_schedule(engine, fake_gateway)
    assert engine.state.input_quantity == "50"
    engine.set_quantity_input("30")
    assert engine.state.input_quantity == "30"

    refreshed = make_product(100, schedules=[make_schedule(1, expected=50, received=30)])
    fake_gateway.products = {None: [refreshed]}
    fake_gateway.calls.clear()

    seen: List[IncomingState] = []
    engine.subscribe(seen.append)
    await engine.submit()

    assert fake_gateway.names() == [
        "start_work",
        "update_work",
        "complete_work",
        "list_schedules",
        "list_work_items",
    ]
    assert fake_gateway.calls_of("start_work") == [(1, 7, 1)]
    assert fake_gateway.calls_of("update_work") == [(900, 30, TODAY, None, None)]
    assert fake_gateway.calls_of("complete_work") == [(900,)]

    assert any(s.success_message == messages.MSG_SUBMIT_COMPLETED for s in seen)
    st = engine.state
    assert st.success_message is None
    assert st.is_submitting is False
    assert st.products == (refreshed,)
    # 选中商品按 item_id 关联到刷新后的数据
    assert st.selected_product is refreshed


async def test_new_flow_passes_expiration_and_location(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    engine.set_quantity_input("5")
    engine.set_expiration_date("2027-03-01")
    engine.select_location(make_location(42, "C-01-01"))

    await engine.submit()

    assert fake_gateway.calls_of("update_work") == [(900, 5, TODAY, "2027-03-01", 42)]


async def test_new_flow_update_failure_skips_complete(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    fake_gateway.failures["update_work"] = ValidationError("数量が不正です", 422)
    fake_gateway.calls.clear()

    await engine.submit()

    assert fake_gateway.names() == ["start_work", "update_work"]
    assert engine.state.error_message == "数量が不正です"
    assert engine.state.is_submitting is False
    assert engine.state.success_message is None


async def test_new_flow_start_failure_stops_immediately(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    fake_gateway.failures["start_work"] = NetworkError("connect")
    fake_gateway.calls.clear()

    await engine.submit()

    assert fake_gateway.names() == ["start_work"]
    assert engine.state.error_message == messages.MSG_NETWORK


async def test_new_flow_complete_failure_leaves_work_item(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    fake_gateway.failures["complete_work"] = ServerError("boom", 500)
    fake_gateway.calls.clear()

    await engine.submit()

    # 不做补偿：已开始的作业保留在服务端（WORKING），不会调用 cancel_work
    assert fake_gateway.names() == ["start_work", "update_work", "complete_work"]
    assert "cancel_work" not in fake_gateway.names()
    assert engine.state.error_message == messages.MSG_SERVER


async def test_submit_is_noop_while_submitting(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    gate = asyncio.Event()
    fake_gateway.gates[("start_work", None)] = gate

    first = asyncio.create_task(engine.submit())
    await asyncio.sleep(0)
    assert engine.state.is_submitting is True

    await engine.submit()
    assert len(fake_gateway.calls_of("start_work")) == 1

    gate.set()
    await first
    assert len(fake_gateway.calls_of("start_work")) == 1
    assert engine.state.is_submitting is False


async def test_submit_silently_aborts_without_quantity(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    engine.set_quantity_input("")
    fake_gateway.calls.clear()

    await engine.submit()

    assert fake_gateway.calls == []
    assert engine.state.error_message is None


async def test_submit_without_input_mode_is_noop(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    engine.select_warehouse(make_warehouse(1))
    await engine.submit()
    assert fake_gateway.calls == []


async def test_submit_rejects_quantity_over_remaining(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway, remaining=20)
    engine.set_quantity_input("21")
    fake_gateway.calls.clear()

    await engine.submit()

    assert fake_gateway.calls == []
    assert engine.state.error_message == messages.MSG_QTY_EXCEEDS_REMAINING.format(remaining=20)


async def test_submit_rejects_malformed_expiration(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    engine.set_expiration_date("2027/13/01")
    fake_gateway.calls.clear()

    await engine.submit()

    assert fake_gateway.calls == []
    assert engine.state.error_message == messages.MSG_BAD_EXPIRATION_DATE


async def test_second_submit_is_checked_against_refreshed_remaining(
    engine: IncomingEngine, fake_gateway: FakeIncomingGateway
):
    await _enter_schedule(engine, fake_gateway)
    engine.set_quantity_input("30")
    fake_gateway.products = {None: [make_product(100, schedules=[make_schedule(1, expected=50, received=30)])]}

    await engine.submit()

    # 输入中的预定跟着刷新，剩余数取最新值
    assert engine.state.selected_schedule.remaining_quantity == 20
    assert engine.state.input_quantity == "30"

    await engine.submit()

    assert len(fake_gateway.calls_of("start_work")) == 1
    assert engine.state.error_message == messages.MSG_QTY_EXCEEDS_REMAINING.format(remaining=20)


async def test_refresh_leaves_input_when_schedule_closed(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    engine.set_location_query("A")
    closed = make_schedule(1, expected=50, received=50, status=ScheduleStatus.CONFIRMED)
    fake_gateway.products = {None: [make_product(100, schedules=[closed])]}

    await engine.submit()
    await engine.wait_idle()

    st = engine.state
    assert st.input_mode is None
    assert st.input_quantity == ""
    assert st.input_location_search == ""
    assert st.is_loading_locations is False
    assert st.selected_product.schedules == (closed,)


async def test_refresh_leaves_input_when_schedule_gone(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await _enter_schedule(engine, fake_gateway)
    fake_gateway.products = {None: []}

    await engine.submit()

    assert engine.state.input_mode is None
    assert engine.state.selected_product is None
    assert engine.state.is_searching is False


# ---------- 履历 / 修改 ----------


async def test_load_history_queries_today_all_statuses(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    items = [make_work_item(1), make_work_item(2, status=WorkStatus.COMPLETED)]
    fake_gateway.work_items = {"all": items}
    engine.select_warehouse(make_warehouse(1))

    await engine.load_history()

    assert fake_gateway.calls_of("list_work_items") == [(1, 7, "all", TODAY)]
    assert engine.state.history_items == tuple(items)
    assert engine.state.is_loading_history is False


async def test_load_history_requires_warehouse(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    await engine.load_history()
    assert fake_gateway.calls == []


async def test_select_history_item_round_trip(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    loc = make_location(5, "D-01-02")
    item = make_work_item(77, quantity=12, expiration="2027-05-05", location=loc)
    engine.select_warehouse(make_warehouse(1))

    engine.select_history_item(item)

    st = engine.state
    assert st.input_mode == EditInput(item)
    assert st.is_from_history is True
    assert st.input_quantity == str(item.work_quantity)
    assert st.input_expiration_date == (item.work_expiration_date or "")
    assert st.input_location_id == item.location_id
    assert st.input_location_search == item.location.display_name


async def test_select_history_item_without_location(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    item = make_work_item(78, quantity=3)
    engine.select_history_item(item)
    assert engine.state.input_expiration_date == ""
    assert engine.state.input_location_search == ""
    assert engine.state.input_location_id is None


async def test_cancelled_history_item_is_not_selectable(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    engine.select_history_item(make_work_item(79, status=WorkStatus.CANCELLED))
    assert engine.state.input_mode is None


async def test_edit_flow_only_updates(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    engine.select_warehouse(make_warehouse(1))
    item = make_work_item(80, quantity=4, snapshot_remaining=10)
    engine.select_history_item(item)
    engine.set_quantity_input("6")

    await engine.submit()

    assert "start_work" not in fake_gateway.names()
    assert "complete_work" not in fake_gateway.names()
    assert fake_gateway.calls_of("update_work") == [(80, 6, TODAY, None, None)]
    assert engine.state.error_message is None


async def test_completed_item_stays_editable(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    # 已完成的作业仍可修改（不是 bug，保留原有行为）；上限 = 剩余 + 本作业已报数量
    engine.select_warehouse(make_warehouse(1))
    item = make_work_item(81, quantity=10, status=WorkStatus.COMPLETED, snapshot_remaining=0)
    fake_gateway.work_items = {"all": [item]}
    engine.select_history_item(item)
    engine.set_quantity_input("8")

    await engine.submit()

    assert fake_gateway.calls_of("update_work") == [(81, 8, TODAY, None, None)]
    assert engine.state.error_message is None

    engine.set_quantity_input("11")
    fake_gateway.calls.clear()
    await engine.submit()
    assert fake_gateway.calls == []
    assert engine.state.error_message == messages.MSG_QTY_EXCEEDS_REMAINING.format(remaining=10)


async def test_select_schedule_after_history_leaves_edit_mode(
    engine: IncomingEngine, fake_gateway: FakeIncomingGateway
):
    engine.select_warehouse(make_warehouse(1))
    engine.select_history_item(make_work_item(82))
    s1 = make_schedule(1)
    engine.select_schedule(s1)
    assert engine.state.is_from_history is False
    assert engine.state.current_work_item is None
    assert engine.state.selected_schedule == s1


async def test_cancel_work_from_history(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    item = make_work_item(83)
    fake_gateway.work_items = {"all": [item]}
    engine.select_warehouse(make_warehouse(1))
    await engine.load_history()
    engine.select_history_item(item)

    await engine.cancel_work()

    assert fake_gateway.calls_of("cancel_work") == [(83,)]
    st = engine.state
    assert st.input_mode is None
    assert st.success_message == messages.MSG_WORK_CANCELLED
    assert [w.status for w in st.history_items] == [WorkStatus.CANCELLED]


async def test_cancel_work_requires_working_item(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    engine.select_warehouse(make_warehouse(1))
    engine.select_history_item(make_work_item(84, status=WorkStatus.COMPLETED))
    await engine.cancel_work()
    assert fake_gateway.calls_of("cancel_work") == []


# ---------- 通用 ----------


async def test_clear_messages(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    fake_gateway.failures["list_warehouses"] = NetworkError("x")
    await engine.load_warehouses()
    assert engine.state.error_message
    engine.clear_error()
    assert engine.state.error_message is None

    engine.select_warehouse(make_warehouse(1))
    engine.select_history_item(make_work_item(85))
    await engine.cancel_work()
    assert engine.state.success_message
    engine.clear_success_message()
    assert engine.state.success_message is None


async def test_subscribe_and_unsubscribe(engine: IncomingEngine, fake_gateway: FakeIncomingGateway):
    seen: List[IncomingState] = []
    unsubscribe = engine.subscribe(seen.append)
    assert seen == [engine.state]

    engine.select_warehouse(make_warehouse(1))
    assert seen[-1].selected_warehouse.id == 1

    unsubscribe()
    engine.select_warehouse(make_warehouse(2))
    assert seen[-1].selected_warehouse.id == 1

