# wms_handy/domain/models.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class ScheduleStatus(str, Enum):
    """入库预定状态。"""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    CONFIRMED = "CONFIRMED"
    TRANSMITTED = "TRANSMITTED"
    CANCELLED = "CANCELLED"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "ScheduleStatus":
        # 后端新增的状态一律按 PENDING 处理
        v = (value or "").strip().upper()
        for s in cls:
            if s.value == v:
                return s
        return cls.PENDING

    @property
    def is_selectable(self) -> bool:
        """只有未完成的预定可以开新作业。"""
        return self in (ScheduleStatus.PENDING, ScheduleStatus.PARTIAL)


class QuantityType(str, Enum):
    CASE = "CASE"
    PIECE = "PIECE"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "QuantityType":
        v = (value or "").strip().upper()
        return cls.CASE if v == cls.CASE.value else cls.PIECE


class WorkStatus(str, Enum):
    """入库作业状态。"""

    WORKING = "WORKING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "WorkStatus":
        v = (value or "").strip().upper()
        for s in cls:
            if s.value == v:
                return s
        return cls.WORKING


# list_work_items 的 status 过滤：WorkStatus 之外再加一个“全部”
WORK_STATUS_ALL = "all"


@dataclass(frozen=True)
class Warehouse:
    id: int
    code: str
    name: str
    kana_name: str = ""
    out_of_stock_option: str = "IGNORE_STOCK"


@dataclass(frozen=True)
class WarehouseSummary:
    warehouse_id: int
    warehouse_code: str
    warehouse_name: str
    expected_quantity: int
    received_quantity: int
    remaining_quantity: int


@dataclass(frozen=True)
class Schedule:
    """
    一个到货批次（某商品在某仓库的一条入库预定）。

    received + remaining == expected 由服务端保证，客户端不校验。
    """

    id: int
    warehouse_id: int
    warehouse_name: str
    expected_quantity: int
    received_quantity: int
    remaining_quantity: int
    quantity_type: QuantityType
    expected_arrival_date: str
    status: ScheduleStatus

    @property
    def is_selectable(self) -> bool:
        return self.status.is_selectable


@dataclass(frozen=True)
class Product:
    item_id: int
    item_code: str
    item_name: str
    search_code: str = ""
    jan_codes: Tuple[str, ...] = ()
    volume: Optional[str] = None
    temperature_type: Optional[str] = None
    images: Tuple[str, ...] = ()
    total_expected_quantity: int = 0
    total_received_quantity: int = 0
    total_remaining_quantity: int = 0
    warehouses: Tuple[WarehouseSummary, ...] = ()
    schedules: Tuple[Schedule, ...] = ()

    def selectable_schedules(self) -> Tuple[Schedule, ...]:
        return tuple(s for s in self.schedules if s.is_selectable)


@dataclass(frozen=True)
class ScheduleDetail:
    """GET /api/incoming/schedules/{id}：单条预定 + 商品/仓库信息。"""

    id: int
    warehouse_id: int
    warehouse_code: str
    warehouse_name: str
    item_id: int
    item_code: str
    item_name: str
    search_code: str
    jan_codes: Tuple[str, ...]
    expected_quantity: int
    received_quantity: int
    remaining_quantity: int
    quantity_type: QuantityType
    expected_arrival_date: str
    status: ScheduleStatus


@dataclass(frozen=True)
class Location:
    id: int
    code1: str
    code2: str
    code3: str
    name: str
    display_name: str


@dataclass(frozen=True)
class WorkItemSchedule:
    """作业自带的预定快照：从履历进入时原预定可能已不在列表里。"""

    id: int
    item_id: int
    item_code: str
    item_name: str
    warehouse_id: int
    warehouse_name: str
    expected_quantity: int
    received_quantity: int
    remaining_quantity: int
    quantity_type: QuantityType


@dataclass(frozen=True)
class WorkItem:
    id: int
    incoming_schedule_id: int
    picker_id: int
    warehouse_id: int
    location_id: Optional[int]
    location: Optional[Location]
    work_quantity: int
    work_arrival_date: str
    work_expiration_date: Optional[str]
    status: WorkStatus
    started_at: str
    schedule: Optional[WorkItemSchedule] = None

    @property
    def is_editable(self) -> bool:
        # 已完成的作业仍允许修改（事后更正），只有取消的不行
        return self.status != WorkStatus.CANCELLED

    @property
    def is_cancellable(self) -> bool:
        return self.status == WorkStatus.WORKING
