# wms_handy/cli.py
"""
入库流程的命令行外壳（代替手持终端画面，便于联调）。

Usage:
  python -m wms_handy warehouses
  python -m wms_handy products --warehouse-id 1 --search 4901234
  python -m wms_handy schedule --schedule-id 77
  python -m wms_handy history --warehouse-id 1
  python -m wms_handy receive --warehouse-id 1 --schedule-id 77 --qty 30 --location A-01
  python -m wms_handy edit --warehouse-id 1 --work-item-id 501 --qty 12

环境变量见 wms_handy/core/config.py（HANDY_HOST_URL / HANDY_API_KEY / HANDY_AUTH_TOKEN / HANDY_PICKER_ID ...）
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence, Tuple

from wms_handy.core.config import HandySettings, get_settings
from wms_handy.core.logging import setup_logging
from wms_handy.core.session import SessionProvider, session_from_settings
from wms_handy.domain.models import Location, Product, Schedule, ScheduleDetail, Warehouse, WorkItem
from wms_handy.domain.ports import IncomingGateway
from wms_handy.gateway.http_gateway import build_gateway
from wms_handy.services.incoming_engine import IncomingEngine
from wms_handy.services.incoming_state import IncomingState
from wms_handy.services.messages import message_for

log = logging.getLogger("wmshandy.cli")


# ---------- 渲染 ----------


def render_warehouses(warehouses: Sequence[Warehouse]) -> List[str]:
    return [f"{w.id}\t{w.code}\t{w.name}" for w in warehouses]


def render_products(state: IncomingState) -> List[str]:
    lines: List[str] = []
    for p in state.products:
        lines.append(
            f"[{p.item_id}] {p.item_code} {p.item_name} "
            f"expected={p.total_expected_quantity} received={p.total_received_quantity} "
            f"remaining={p.total_remaining_quantity}"
        )
        for s in p.schedules:
            flags = []
            if s.id in state.working_schedule_ids:
                flags.append("作业中")
            if not s.is_selectable:
                flags.append("不可选")
            suffix = f" ({', '.join(flags)})" if flags else ""
            lines.append(
                f"    #{s.id} {s.expected_arrival_date} {s.status.value} "
                f"remaining={s.remaining_quantity}/{s.expected_quantity} {s.quantity_type.value}{suffix}"
            )
    return lines


def render_schedule_detail(d: ScheduleDetail) -> List[str]:
    return [
        f"#{d.id} {d.item_code} {d.item_name}",
        f"warehouse={d.warehouse_code} {d.warehouse_name}",
        f"arrival={d.expected_arrival_date} status={d.status.value}",
        f"expected={d.expected_quantity} received={d.received_quantity} "
        f"remaining={d.remaining_quantity} {d.quantity_type.value}",
    ]


def render_history(items: Sequence[WorkItem]) -> List[str]:
    lines: List[str] = []
    for w in items:
        name = w.schedule.item_name if w.schedule else f"schedule#{w.incoming_schedule_id}"
        loc = w.location.display_name if w.location else "-"
        lines.append(
            f"{w.id}\t{w.status.value}\t{name}\tqty={w.work_quantity}\t"
            f"loc={loc}\texp={w.work_expiration_date or '-'}\t{w.started_at}"
        )
    return lines


def render_status(state: IncomingState) -> List[str]:
    lines: List[str] = []
    if state.success_message:
        lines.append(f"OK: {state.success_message}")
    if state.error_message:
        lines.append(f"ERROR: {state.error_message}")
    return lines


def _emit(lines: Sequence[str]) -> None:
    for line in lines:
        print(line)


# ---------- 查找 ----------


def _find_warehouse(state: IncomingState, warehouse_id: int) -> Optional[Warehouse]:
    for w in state.warehouses:
        if w.id == warehouse_id:
            return w
    return None


def _find_schedule(products: Sequence[Product], schedule_id: int) -> Optional[Tuple[Product, Schedule]]:
    for p in products:
        for s in p.schedules:
            if s.id == schedule_id:
                return p, s
    return None


def _pick_location(suggestions: Sequence[Location], query: str) -> Optional[Location]:
    """完全匹配优先，否则取第一条候选。"""
    q = query.strip().upper()
    for loc in suggestions:
        codes = "-".join(c for c in (loc.code1, loc.code2, loc.code3) if c)
        if q in (loc.display_name.upper(), codes.upper(), loc.name.upper()):
            return loc
    return suggestions[0] if suggestions else None


# ---------- 子命令 ----------


async def _enter_warehouse(engine: IncomingEngine, warehouse_id: int) -> Optional[str]:
    await engine.load_warehouses()
    if engine.state.error_message:
        return engine.state.error_message
    warehouse = _find_warehouse(engine.state, warehouse_id)
    if warehouse is None:
        return f"warehouse {warehouse_id} not found"
    engine.select_warehouse(warehouse)
    return None


async def cmd_warehouses(engine: IncomingEngine, args: argparse.Namespace) -> Optional[str]:
    await engine.load_warehouses()
    _emit(render_warehouses(engine.state.warehouses))
    return None


async def cmd_products(engine: IncomingEngine, args: argparse.Namespace) -> Optional[str]:
    err = await _enter_warehouse(engine, args.warehouse_id)
    if err:
        return err
    if args.search:
        engine.set_search_query(args.search)
    await engine.load_products()
    _emit(render_products(engine.state))
    return None


async def cmd_schedule(engine: IncomingEngine, args: argparse.Namespace) -> Optional[str]:
    # 详情不进状态机，直接走网关
    result = await engine.gateway.get_schedule_detail(args.schedule_id)
    if not result.ok:
        return message_for(result.error)
    _emit(render_schedule_detail(result.value))
    return None


async def cmd_history(engine: IncomingEngine, args: argparse.Namespace) -> Optional[str]:
    err = await _enter_warehouse(engine, args.warehouse_id)
    if err:
        return err
    await engine.load_history()
    _emit(render_history(engine.state.history_items))
    return None


async def _fill_input(engine: IncomingEngine, args: argparse.Namespace) -> None:
    if args.qty is not None:
        engine.set_quantity_input(str(args.qty))
    if args.expiration:
        engine.set_expiration_date(args.expiration)
    if args.location:
        engine.set_location_query(args.location)
        await engine.wait_idle()
        loc = _pick_location(engine.state.location_suggestions, args.location)
        if loc is not None:
            engine.select_location(loc)
        else:
            log.warning("no location matched %r, submitting without location", args.location)


async def cmd_receive(engine: IncomingEngine, args: argparse.Namespace) -> Optional[str]:
    err = await _enter_warehouse(engine, args.warehouse_id)
    if err:
        return err
    await engine.load_products()
    found = _find_schedule(engine.state.products, args.schedule_id)
    if found is None:
        return engine.state.error_message or f"schedule {args.schedule_id} not found"
    product, schedule = found
    engine.select_product(product)
    engine.select_schedule(schedule)
    if engine.state.selected_schedule is None:
        return f"schedule {schedule.id} is {schedule.status.value}"
    await _fill_input(engine, args)
    await engine.submit()
    return None


async def cmd_edit(engine: IncomingEngine, args: argparse.Namespace) -> Optional[str]:
    err = await _enter_warehouse(engine, args.warehouse_id)
    if err:
        return err
    await engine.load_history()
    item = next((w for w in engine.state.history_items if w.id == args.work_item_id), None)
    if item is None:
        return engine.state.error_message or f"work item {args.work_item_id} not in today's history"
    engine.select_history_item(item)
    if engine.state.current_work_item is None:
        return f"work item {item.id} is {item.status.value}"
    await _fill_input(engine, args)
    await engine.submit()
    return None


# ---------- 入口 ----------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="wms_handy", description="入库作业命令行")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("warehouses", help="仓库列表")

    sp = sub.add_parser("products", help="入库预定（按商品）")
    sp.add_argument("--warehouse-id", type=int, required=True)
    sp.add_argument("--search", default="")

    sp = sub.add_parser("schedule", help="单条入库预定详情")
    sp.add_argument("--schedule-id", type=int, required=True)

    sp = sub.add_parser("history", help="今日作业履历")
    sp.add_argument("--warehouse-id", type=int, required=True)

    for name, help_text in (("receive", "新建入库并确认"), ("edit", "修改履历中的作业")):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--warehouse-id", type=int, required=True)
        if name == "receive":
            sp.add_argument("--schedule-id", type=int, required=True)
        else:
            sp.add_argument("--work-item-id", type=int, required=True)
        sp.add_argument("--qty", type=int, default=None)
        sp.add_argument("--expiration", default="")
        sp.add_argument("--location", default="")

    return p


async def run(
    args: argparse.Namespace,
    *,
    settings: HandySettings,
    session: SessionProvider,
    gateway: Optional[IncomingGateway] = None,
) -> int:
    owned = gateway is None
    gw = gateway or build_gateway(session, settings)
    engine = IncomingEngine(gw, session, settings=settings)
    handler = {
        "schedule": cmd_schedule,
        "warehouses": cmd_warehouses,
        "products": cmd_products,
        "history": cmd_history,
        "receive": cmd_receive,
        "edit": cmd_edit,
    }[args.command]

    # 成功提示会在刷新前被清掉，订阅里先记下来
    successes: List[str] = []
    unsubscribe = engine.subscribe(
        lambda st: successes.append(st.success_message) if st.success_message else None
    )
    try:
        err = await handler(engine, args)
        if err and err != engine.state.error_message:
            print(f"ERROR: {err}")
        if successes and not engine.state.success_message:
            print(f"OK: {successes[-1]}")
        _emit(render_status(engine.state))
        return 1 if (err or engine.state.error_message) else 0
    finally:
        unsubscribe()
        await engine.aclose()
        if owned:
            await gw.aclose()  # type: ignore[attr-defined]


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
    session = session_from_settings(settings)
    return asyncio.run(run(args, settings=settings, session=session))


if __name__ == "__main__":
    sys.exit(main())
