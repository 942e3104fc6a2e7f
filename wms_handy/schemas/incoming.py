# wms_handy/schemas/incoming.py
from __future__ import annotations

from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from wms_handy.domain.models import (
    Location,
    Product,
    QuantityType,
    Schedule,
    ScheduleDetail,
    ScheduleStatus,
    Warehouse,
    WarehouseSummary,
    WorkItem,
    WorkItemSchedule,
    WorkStatus,
)

T = TypeVar("T")


# ===== 响应信封 =====


class ResultBlock(BaseModel, Generic[T]):
    model_config = ConfigDict(extra="ignore")

    data: Optional[T] = None
    error_message: Optional[str] = None
    errors: Optional[Dict[str, List[str]]] = None


class ApiEnvelope(BaseModel, Generic[T]):
    """
    后端统一信封：
      {"is_success": bool, "code": "...", "result": {"data": ..., "error_message": "...", "errors": {...}}}
    老接口用 success 而不是 is_success，两者都认。
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    is_success: bool = Field(default=False, validation_alias=AliasChoices("is_success", "success"))
    code: Optional[str] = None
    result: Optional[ResultBlock[T]] = None


def extract_error_message(result: Optional[ResultBlock], fallback: str) -> str:
    """
    error_message 与 errors 明细同时存在时换行拼接；都没有则用兜底文案。
    """
    primary = (result.error_message if result else None) or ""
    detailed = ""
    if result and result.errors:
        detailed = "\n".join(msg for msgs in result.errors.values() for msg in msgs)

    if primary.strip() and detailed.strip():
        return f"{primary}\n{detailed}"
    if primary.strip():
        return primary
    if detailed.strip():
        return detailed
    return fallback


# ===== 主数据 =====


class WarehouseOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    code: str
    name: str
    kana_name: str = ""
    out_of_stock_option: str = "IGNORE_STOCK"

    def to_domain(self) -> Warehouse:
        return Warehouse(
            id=self.id,
            code=self.code,
            name=self.name,
            kana_name=self.kana_name,
            out_of_stock_option=self.out_of_stock_option,
        )


class LocationOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    code1: str = ""
    code2: str = ""
    code3: str = ""
    name: str = ""
    display_name: str = ""

    def to_domain(self) -> Location:
        return Location(
            id=self.id,
            code1=self.code1,
            code2=self.code2,
            code3=self.code3,
            name=self.name,
            display_name=self.display_name,
        )


# ===== 入库预定 =====


class WarehouseSummaryOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    warehouse_id: int
    warehouse_code: str = ""
    warehouse_name: str = ""
    expected_quantity: int = 0
    received_quantity: int = 0
    remaining_quantity: int = 0

    def to_domain(self) -> WarehouseSummary:
        return WarehouseSummary(
            warehouse_id=self.warehouse_id,
            warehouse_code=self.warehouse_code,
            warehouse_name=self.warehouse_name,
            expected_quantity=self.expected_quantity,
            received_quantity=self.received_quantity,
            remaining_quantity=self.remaining_quantity,
        )


class ScheduleOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    warehouse_id: int
    warehouse_name: str = ""
    expected_quantity: int = 0
    received_quantity: int = 0
    remaining_quantity: int = 0
    quantity_type: str = "PIECE"
    expected_arrival_date: str = ""
    status: str = "PENDING"

    def to_domain(self) -> Schedule:
        return Schedule(
            id=self.id,
            warehouse_id=self.warehouse_id,
            warehouse_name=self.warehouse_name,
            expected_quantity=self.expected_quantity,
            received_quantity=self.received_quantity,
            remaining_quantity=self.remaining_quantity,
            quantity_type=QuantityType.from_value(self.quantity_type),
            expected_arrival_date=self.expected_arrival_date,
            status=ScheduleStatus.from_value(self.status),
        )


class ScheduleProductOut(BaseModel):
    """列表接口按商品聚合，每个商品带若干预定。"""

    model_config = ConfigDict(extra="ignore")

    item_id: int
    item_code: str = ""
    item_name: str
    search_code: str = ""
    jan_codes: List[str] = Field(default_factory=list)
    volume: Optional[str] = None
    temperature_type: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    total_expected_quantity: int = 0
    total_received_quantity: int = 0
    total_remaining_quantity: int = 0
    warehouses: List[WarehouseSummaryOut] = Field(default_factory=list)
    schedules: List[ScheduleOut] = Field(default_factory=list)

    def to_domain(self) -> Product:
        return Product(
            item_id=self.item_id,
            item_code=self.item_code,
            item_name=self.item_name,
            search_code=self.search_code,
            jan_codes=tuple(self.jan_codes),
            volume=self.volume,
            temperature_type=self.temperature_type,
            images=tuple(self.images),
            total_expected_quantity=self.total_expected_quantity,
            total_received_quantity=self.total_received_quantity,
            total_remaining_quantity=self.total_remaining_quantity,
            warehouses=tuple(w.to_domain() for w in self.warehouses),
            schedules=tuple(s.to_domain() for s in self.schedules),
        )


class ScheduleDetailOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    warehouse_id: int
    warehouse_code: str = ""
    warehouse_name: str = ""
    item_id: int = 0
    item_code: str = ""
    item_name: str = ""
    search_code: str = ""
    jan_codes: List[str] = Field(default_factory=list)
    expected_quantity: int = 0
    received_quantity: int = 0
    remaining_quantity: int = 0
    quantity_type: str = "PIECE"
    expected_arrival_date: str = ""
    status: str = "PENDING"

    def to_domain(self) -> ScheduleDetail:
        return ScheduleDetail(
            id=self.id,
            warehouse_id=self.warehouse_id,
            warehouse_code=self.warehouse_code,
            warehouse_name=self.warehouse_name,
            item_id=self.item_id,
            item_code=self.item_code,
            item_name=self.item_name,
            search_code=self.search_code,
            jan_codes=tuple(self.jan_codes),
            expected_quantity=self.expected_quantity,
            received_quantity=self.received_quantity,
            remaining_quantity=self.remaining_quantity,
            quantity_type=QuantityType.from_value(self.quantity_type),
            expected_arrival_date=self.expected_arrival_date,
            status=ScheduleStatus.from_value(self.status),
        )


# ===== 入库作业 =====


class WorkItemScheduleOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    item_id: int = 0
    item_code: str = ""
    item_name: str = ""
    warehouse_id: int = 0
    warehouse_name: str = ""
    expected_quantity: int = 0
    received_quantity: int = 0
    remaining_quantity: int = 0
    quantity_type: str = "PIECE"

    def to_domain(self) -> WorkItemSchedule:
        return WorkItemSchedule(
            id=self.id,
            item_id=self.item_id,
            item_code=self.item_code,
            item_name=self.item_name,
            warehouse_id=self.warehouse_id,
            warehouse_name=self.warehouse_name,
            expected_quantity=self.expected_quantity,
            received_quantity=self.received_quantity,
            remaining_quantity=self.remaining_quantity,
            quantity_type=QuantityType.from_value(self.quantity_type),
        )


class WorkItemOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    incoming_schedule_id: int
    picker_id: int
    warehouse_id: int
    location_id: Optional[int] = None
    location: Optional[LocationOut] = None
    work_quantity: int = 0
    work_arrival_date: str = ""
    work_expiration_date: Optional[str] = None
    status: str = "WORKING"
    started_at: str = ""
    schedule: Optional[WorkItemScheduleOut] = None

    def to_domain(self) -> WorkItem:
        return WorkItem(
            id=self.id,
            incoming_schedule_id=self.incoming_schedule_id,
            picker_id=self.picker_id,
            warehouse_id=self.warehouse_id,
            location_id=self.location_id,
            location=self.location.to_domain() if self.location else None,
            work_quantity=self.work_quantity,
            work_arrival_date=self.work_arrival_date,
            work_expiration_date=self.work_expiration_date,
            status=WorkStatus.from_value(self.status),
            started_at=self.started_at,
            schedule=self.schedule.to_domain() if self.schedule else None,
        )


# ===== 请求体 =====


class StartWorkIn(BaseModel):
    incoming_schedule_id: int
    picker_id: int
    warehouse_id: int


class UpdateWorkIn(BaseModel):
    work_quantity: int
    work_arrival_date: str
    work_expiration_date: Optional[str] = None
    location_id: Optional[int] = None
