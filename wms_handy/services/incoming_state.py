# wms_handy/services/incoming_state.py
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple, Union

from wms_handy.domain.models import Location, Product, Schedule, Warehouse, WorkItem


@dataclass(frozen=True)
class NewInput:
    """从预定列表进入：提交走 开始 → 更新 → 完成。"""

    schedule: Schedule


@dataclass(frozen=True)
class EditInput:
    """从履历进入：提交只走 更新，保持原状态。"""

    work_item: WorkItem


InputMode = Union[NewInput, EditInput]


@dataclass(frozen=True)
class IncomingState:
    """
    入库流程整块状态（仓库 → 商品 → 预定 → 输入 → 履历）。

    只通过 dataclasses.replace 整体替换，读方永远拿到完整快照。
    """

    # 会话
    picker_id: Optional[int] = None
    picker_name: Optional[str] = None

    # 仓库选择
    warehouses: Tuple[Warehouse, ...] = ()
    selected_warehouse: Optional[Warehouse] = None
    is_loading_warehouses: bool = False

    # 商品列表
    products: Tuple[Product, ...] = ()
    search_query: str = ""
    is_searching: bool = False
    working_schedule_ids: FrozenSet[int] = frozenset()

    # 预定列表
    selected_product: Optional[Product] = None

    # 输入
    input_mode: Optional[InputMode] = None
    input_quantity: str = ""
    input_expiration_date: str = ""
    input_location_search: str = ""
    input_location_id: Optional[int] = None
    input_location: Optional[Location] = None
    location_suggestions: Tuple[Location, ...] = ()
    is_loading_locations: bool = False
    is_submitting: bool = False

    # 履历
    history_items: Tuple[WorkItem, ...] = ()
    is_loading_history: bool = False

    # 通用
    error_message: Optional[str] = None
    success_message: Optional[str] = None

    @property
    def selected_schedule(self) -> Optional[Schedule]:
        if isinstance(self.input_mode, NewInput):
            return self.input_mode.schedule
        return None

    @property
    def current_work_item(self) -> Optional[WorkItem]:
        if isinstance(self.input_mode, EditInput):
            return self.input_mode.work_item
        return None

    @property
    def is_from_history(self) -> bool:
        return isinstance(self.input_mode, EditInput)

    @property
    def is_any_loading(self) -> bool:
        return (
            self.is_loading_warehouses
            or self.is_searching
            or self.is_loading_locations
            or self.is_submitting
            or self.is_loading_history
        )
