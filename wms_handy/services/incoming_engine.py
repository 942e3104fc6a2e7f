# wms_handy/services/incoming_engine.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from wms_handy.core.config import HandySettings, get_settings
from wms_handy.core.debounce import Debouncer
from wms_handy.core.session import SessionProvider
from wms_handy.domain.models import (
    WORK_STATUS_ALL,
    Location,
    Product,
    Schedule,
    Warehouse,
    WorkItem,
    WorkStatus,
)
from wms_handy.domain.ports import IncomingGateway
from wms_handy.gateway.errors import GatewayError
from wms_handy.services.incoming_state import EditInput, IncomingState, InputMode, NewInput
from wms_handy.services.messages import (
    MSG_BAD_EXPIRATION_DATE,
    MSG_QTY_EXCEEDS_REMAINING,
    MSG_SUBMIT_COMPLETED,
    MSG_SUBMIT_UPDATED,
    MSG_WORK_CANCELLED,
    message_for,
)
from wms_handy.utils.time import parse_iso_date, today_iso

log = logging.getLogger("wmshandy.incoming")

Listener = Callable[[IncomingState], None]

# 去抖 / 代次的字段 key
KEY_PRODUCTS = "products"
KEY_LOCATIONS = "locations"
KEY_HISTORY = "history"

# 选预定 / 选履历 / 取消作业时输入区整体清空
_CLEARED_INPUT: Dict[str, Any] = {
    "input_quantity": "",
    "input_expiration_date": "",
    "input_location_search": "",
    "input_location_id": None,
    "input_location": None,
    "location_suggestions": (),
    "is_loading_locations": False,
}


def _parse_quantity(raw: str) -> Optional[int]:
    s = raw.strip()
    if not s or not (s.isascii() and s.isdigit()):
        return None
    return int(s)


def _max_quantity(mode: InputMode) -> Optional[int]:
    """
    本次最多能报的数量（保证剩余数不被报成负数）。
    - 新作业：预定剩余数
    - 履历修改：快照剩余数；已完成的作业其数量已计入实收，要加回来
    - 没有快照时不做限制，交给服务端
    """
    if isinstance(mode, NewInput):
        return mode.schedule.remaining_quantity
    snap = mode.work_item.schedule
    if snap is None:
        return None
    if mode.work_item.status == WorkStatus.COMPLETED:
        return snap.remaining_quantity + mode.work_item.work_quantity
    return snap.remaining_quantity


def _find_product(products: Sequence[Product], current: Optional[Product]) -> Optional[Product]:
    if current is None:
        return None
    for p in products:
        if p.item_id == current.item_id:
            return p
    return None


def _find_schedule(products: Sequence[Product], schedule_id: int) -> Optional[Schedule]:
    for p in products:
        for s in p.schedules:
            if s.id == schedule_id:
                return s
    return None


class IncomingEngine:
    """
    入库流程状态机：仓库选择 → 商品/预定浏览 → 数量/库位输入 → 提交 → 履历。

    - 状态只有本引擎写，每次写都是一次 replace 整体替换，然后通知订阅者
    - 搜索类意图（商品、库位）按字段去抖，过期结果按代次丢弃
    - 网关失败在每个意图内就地转成 error_message，不往展示层抛
    - 同步意图（set_* / select_*）需在事件循环内调用
    """

    def __init__(
        self,
        gateway: IncomingGateway,
        session: SessionProvider,
        *,
        settings: Optional[HandySettings] = None,
        debounce_seconds: Optional[float] = None,
        success_display_seconds: Optional[float] = None,
        today: Optional[Callable[[], str]] = None,
    ) -> None:
        settings = settings or get_settings()
        self.gateway = gateway
        self._debouncer = Debouncer(
            settings.search_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self._success_display_seconds = (
            settings.success_display_seconds
            if success_display_seconds is None
            else success_display_seconds
        )
        self._location_limit = settings.HANDY_LOCATION_SEARCH_LIMIT
        self._today = today or today_iso
        self._listeners: List[Listener] = []
        self._state = IncomingState(
            picker_id=session.picker_id,
            picker_name=session.picker_name,
        )

    # ---------- 状态容器 ----------

    @property
    def state(self) -> IncomingState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """订阅状态快照；订阅时先推一次当前状态。返回取消订阅函数。"""
        self._listeners.append(listener)
        listener(self._state)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    async def wait_idle(self) -> None:
        """等挂起的去抖搜索落地（无界面驱动时用）。"""
        await self._debouncer.drain()

    async def aclose(self) -> None:
        """取消所有挂起的去抖任务。"""
        self._debouncer.cancel_all()

    # ---------- 仓库 ----------

    async def load_warehouses(self) -> None:
        self._set(is_loading_warehouses=True, error_message=None)
        result = await self.gateway.list_warehouses()
        if result.ok:
            self._set(warehouses=tuple(result.value or ()), is_loading_warehouses=False)
        else:
            self._set(is_loading_warehouses=False, error_message=message_for(result.error))

    def select_warehouse(self, warehouse: Warehouse) -> None:
        current = self._state.selected_warehouse
        if current is not None and current.id == warehouse.id:
            self._set(selected_warehouse=warehouse)
            return

        # 换仓：下游状态全部作废，在途结果也一并作废
        for key in (KEY_PRODUCTS, KEY_LOCATIONS, KEY_HISTORY):
            self._debouncer.cancel(key)
        self._set(
            selected_warehouse=warehouse,
            products=(),
            search_query="",
            is_searching=False,
            working_schedule_ids=frozenset(),
            selected_product=None,
            input_mode=None,
            history_items=(),
            is_loading_history=False,
            **_CLEARED_INPUT,
        )

    # ---------- 商品列表 ----------

    async def load_products(self) -> None:
        if self._state.selected_warehouse is None:
            return
        # 立即刷新：挂起的去抖搜索作废，用当前检索词直接查
        self._debouncer.cancel(KEY_PRODUCTS)
        token = self._debouncer.next_token(KEY_PRODUCTS)
        self._set(error_message=None)
        await self._fetch_products(token, self._state.search_query)
        await self._refresh_working_schedule_ids()

    def set_search_query(self, query: str) -> None:
        # 输入框立即回显，查询延后
        self._set(search_query=query)
        self._debouncer.schedule(KEY_PRODUCTS, lambda token: self._fetch_products(token, query))

    async def _fetch_products(self, token: int, query: str) -> None:
        warehouse = self._state.selected_warehouse
        if warehouse is None:
            return
        self._set(is_searching=True)
        result = await self.gateway.list_schedules(warehouse.id, query.strip() or None)
        if not self._debouncer.is_current(KEY_PRODUCTS, token):
            log.debug("drop stale product result token=%s query=%r", token, query)
            return
        if result.ok:
            self._set(products=tuple(result.value or ()), is_searching=False)
        else:
            self._set(is_searching=False, error_message=message_for(result.error))

    async def _refresh_working_schedule_ids(self) -> None:
        """本人 WORKING 中的预定 id，用于列表打“作业中”标记；失败不影响主流程。"""
        warehouse = self._state.selected_warehouse
        picker_id = self._state.picker_id
        if warehouse is None or picker_id is None:
            return
        result = await self.gateway.list_work_items(
            warehouse.id,
            picker_id=picker_id,
            status=WorkStatus.WORKING.value,
        )
        if not result.ok:
            log.debug("working schedule ids not refreshed: %r", result.error)
            return
        current = self._state.selected_warehouse
        if current is None or current.id != warehouse.id:
            return
        self._set(
            working_schedule_ids=frozenset(w.incoming_schedule_id for w in (result.value or ()))
        )

    def select_product(self, product: Product) -> None:
        self._set(selected_product=product)

    # ---------- 预定 ----------

    def select_schedule(self, schedule: Schedule) -> None:
        if not schedule.is_selectable:
            log.info("schedule %s not selectable (status=%s)", schedule.id, schedule.status.value)
            return
        self._debouncer.cancel(KEY_LOCATIONS)
        changes = dict(_CLEARED_INPUT)
        changes["input_quantity"] = str(schedule.remaining_quantity)
        self._set(input_mode=NewInput(schedule), **changes)

    # ---------- 输入 ----------

    def set_quantity_input(self, raw: str) -> None:
        # 输入掩码：非数字直接忽略，不算错误
        if raw == "" or (raw.isascii() and raw.isdigit()):
            self._set(input_quantity=raw)

    def set_expiration_date(self, raw: str) -> None:
        self._set(input_expiration_date=raw)

    def set_location_query(self, query: str) -> None:
        self._set(input_location_search=query, input_location_id=None, input_location=None)
        self._debouncer.schedule(KEY_LOCATIONS, lambda token: self._search_locations(token, query))

    async def _search_locations(self, token: int, query: str) -> None:
        warehouse = self._state.selected_warehouse
        if warehouse is None or not query.strip():
            self._set(location_suggestions=(), is_loading_locations=False)
            return
        self._set(is_loading_locations=True)
        result = await self.gateway.search_locations(
            warehouse.id,
            query.strip(),
            limit=self._location_limit,
        )
        if not self._debouncer.is_current(KEY_LOCATIONS, token):
            log.debug("drop stale location result token=%s query=%r", token, query)
            return
        if result.ok:
            self._set(location_suggestions=tuple(result.value or ()), is_loading_locations=False)
        else:
            self._set(is_loading_locations=False, error_message=message_for(result.error))

    def select_location(self, location: Location) -> None:
        self._debouncer.cancel(KEY_LOCATIONS)
        self._set(
            input_location_id=location.id,
            input_location=location,
            input_location_search=location.display_name,
            location_suggestions=(),
            is_loading_locations=False,
        )

    # ---------- 提交 ----------

    async def submit(self) -> None:
        """
        提交当前输入：
          - 新作业：start_work → update_work → complete_work，任一步失败即停止
            （已开始的作业保持 WORKING，不自动取消，从履历里继续处理）
          - 履历修改：只 update_work，状态不变
        必填项缺失 / 数量非数字时静默返回。
        """
        s = self._state
        if s.is_submitting:
            return
        mode = s.input_mode
        warehouse = s.selected_warehouse
        picker_id = s.picker_id
        quantity = _parse_quantity(s.input_quantity)
        if mode is None or warehouse is None or picker_id is None or quantity is None:
            return

        expiration = s.input_expiration_date.strip() or None
        if expiration is not None:
            try:
                parse_iso_date(expiration)
            except ValueError:
                self._set(error_message=MSG_BAD_EXPIRATION_DATE)
                return

        limit = _max_quantity(mode)
        if limit is not None and quantity > limit:
            self._set(error_message=MSG_QTY_EXCEEDS_REMAINING.format(remaining=max(limit, 0)))
            return

        arrival_date = self._today()
        location_id = s.input_location_id

        self._set(is_submitting=True, error_message=None)
        outcome: Optional[Tuple[Optional[GatewayError], str]] = None
        try:
            if isinstance(mode, EditInput):
                error, updated = await self._run_edit(
                    mode.work_item, quantity, arrival_date, expiration, location_id
                )
                if updated is not None and self._state.input_mode == mode:
                    # 上限按服务端返回的最新快照算
                    self._set(input_mode=EditInput(updated))
                outcome = (error, MSG_SUBMIT_UPDATED)
            else:
                error = await self._run_new(
                    mode.schedule, picker_id, warehouse.id, quantity, arrival_date, expiration, location_id
                )
                outcome = (error, MSG_SUBMIT_COMPLETED)
        finally:
            if outcome is None:
                self._set(is_submitting=False)

        error, success_message = outcome
        if error is not None:
            self._set(is_submitting=False, error_message=message_for(error))
            return

        self._set(is_submitting=False, success_message=success_message)
        await self._refresh_after_submit()

    async def _run_new(
        self,
        schedule: Schedule,
        picker_id: int,
        warehouse_id: int,
        quantity: int,
        arrival_date: str,
        expiration_date: Optional[str],
        location_id: Optional[int],
    ) -> Optional[GatewayError]:
        started = await self.gateway.start_work(schedule.id, picker_id, warehouse_id)
        if not started.ok:
            return started.error
        work_item: WorkItem = started.value  # type: ignore[assignment]
        log.info("work started id=%s schedule_id=%s picker_id=%s", work_item.id, schedule.id, picker_id)

        updated = await self.gateway.update_work(
            work_item.id,
            quantity,
            arrival_date,
            expiration_date=expiration_date,
            location_id=location_id,
        )
        if not updated.ok:
            log.warning("update failed, work item %s left WORKING", work_item.id)
            return updated.error

        completed = await self.gateway.complete_work(work_item.id)
        if not completed.ok:
            log.warning("complete failed, work item %s left WORKING", work_item.id)
            return completed.error

        log.info("work completed id=%s qty=%s", work_item.id, quantity)
        return None

    async def _run_edit(
        self,
        work_item: WorkItem,
        quantity: int,
        arrival_date: str,
        expiration_date: Optional[str],
        location_id: Optional[int],
    ) -> Tuple[Optional[GatewayError], Optional[WorkItem]]:
        updated = await self.gateway.update_work(
            work_item.id,
            quantity,
            arrival_date,
            expiration_date=expiration_date,
            location_id=location_id,
        )
        if not updated.ok:
            return updated.error, None
        log.info("work updated id=%s status=%s qty=%s", work_item.id, work_item.status.value, quantity)
        return None, updated.value

    async def _refresh_after_submit(self) -> None:
        # 先让成功提示停留一会儿
        await asyncio.sleep(self._success_display_seconds)
        self._set(success_message=None)

        warehouse = self._state.selected_warehouse
        if warehouse is None:
            return
        # 在途的去抖搜索被取消后不会自己复位 is_searching，这里接管
        self._debouncer.cancel(KEY_PRODUCTS)
        token = self._debouncer.next_token(KEY_PRODUCTS)
        self._set(is_searching=True)
        result = await self.gateway.list_schedules(
            warehouse.id, self._state.search_query.strip() or None
        )
        if not self._debouncer.is_current(KEY_PRODUCTS, token):
            return
        if result.ok:
            self._apply_refreshed_products(tuple(result.value or ()))
        else:
            self._set(is_searching=False, error_message=message_for(result.error))
        await self._refresh_working_schedule_ids()

    def _apply_refreshed_products(self, products: Tuple[Product, ...]) -> None:
        """
        刷新后的商品列表写回，并把选中商品、输入中的预定重新关联到新数据
        （剩余数上限必须按最新值算）。预定已消失或不可再选时退出输入。
        """
        st = self._state
        changes: Dict[str, Any] = {
            "products": products,
            "is_searching": False,
            "selected_product": _find_product(products, st.selected_product),
        }
        if isinstance(st.input_mode, NewInput):
            fresh = _find_schedule(products, st.input_mode.schedule.id)
            if fresh is not None and fresh.is_selectable:
                changes["input_mode"] = NewInput(fresh)
            else:
                self._debouncer.cancel(KEY_LOCATIONS)
                changes["input_mode"] = None
                changes.update(_CLEARED_INPUT)
        self._set(**changes)

    async def cancel_work(self) -> None:
        """履历里 WORKING 的作业可以取消（不可恢复）。"""
        s = self._state
        item = s.current_work_item
        if s.is_submitting or item is None or not item.is_cancellable:
            return

        self._set(is_submitting=True, error_message=None)
        result = None
        try:
            result = await self.gateway.cancel_work(item.id)
        finally:
            if result is None:
                self._set(is_submitting=False)

        if not result.ok:
            self._set(is_submitting=False, error_message=message_for(result.error))
            return

        log.info("work cancelled id=%s", item.id)
        self._debouncer.cancel(KEY_LOCATIONS)
        self._set(
            is_submitting=False,
            input_mode=None,
            success_message=MSG_WORK_CANCELLED,
            **_CLEARED_INPUT,
        )
        await self.load_history()

    # ---------- 履历 ----------

    async def load_history(self) -> None:
        warehouse = self._state.selected_warehouse
        if warehouse is None:
            return
        token = self._debouncer.next_token(KEY_HISTORY)
        self._set(is_loading_history=True, error_message=None)
        result = await self.gateway.list_work_items(
            warehouse.id,
            picker_id=self._state.picker_id,
            status=WORK_STATUS_ALL,
            from_date=self._today(),
        )
        if not self._debouncer.is_current(KEY_HISTORY, token):
            return
        if result.ok:
            self._set(history_items=tuple(result.value or ()), is_loading_history=False)
        else:
            self._set(is_loading_history=False, error_message=message_for(result.error))

    def select_history_item(self, item: WorkItem) -> None:
        if not item.is_editable:
            log.info("work item %s is %s, not editable", item.id, item.status.value)
            return
        self._debouncer.cancel(KEY_LOCATIONS)
        self._set(
            input_mode=EditInput(item),
            input_quantity=str(item.work_quantity),
            input_expiration_date=item.work_expiration_date or "",
            input_location_search=item.location.display_name if item.location else "",
            input_location_id=item.location_id,
            input_location=item.location,
            location_suggestions=(),
            is_loading_locations=False,
        )

    # ---------- 通用 ----------

    def clear_error(self) -> None:
        self._set(error_message=None)

    def clear_success_message(self) -> None:
        self._set(success_message=None)
