# tests/factories.py
from __future__ import annotations

from typing import Optional, Sequence

from wms_handy.domain.models import (
    Location,
    Product,
    QuantityType,
    Schedule,
    ScheduleStatus,
    Warehouse,
    WorkItem,
    WorkItemSchedule,
    WorkStatus,
)

# 履历/到货日统一用固定“今天”，避免跨零点抖动
TODAY = "2026-10-18"


def make_warehouse(wh_id: int = 1, code: str = "W01", name: str = "本仓") -> Warehouse:
    return Warehouse(id=wh_id, code=code, name=name, kana_name="", out_of_stock_option="IGNORE_STOCK")


def make_schedule(
    schedule_id: int = 1,
    *,
    warehouse_id: int = 1,
    expected: int = 50,
    received: int = 0,
    remaining: Optional[int] = None,
    status: ScheduleStatus = ScheduleStatus.PENDING,
    arrival: str = "2026-10-18",
) -> Schedule:
    return Schedule(
        id=schedule_id,
        warehouse_id=warehouse_id,
        warehouse_name=f"WH-{warehouse_id}",
        expected_quantity=expected,
        received_quantity=received,
        remaining_quantity=expected - received if remaining is None else remaining,
        quantity_type=QuantityType.PIECE,
        expected_arrival_date=arrival,
        status=status,
    )


def make_product(
    item_id: int = 100,
    *,
    code: str = "I-100",
    name: str = "清酒 720ml",
    schedules: Sequence[Schedule] = (),
) -> Product:
    return Product(
        item_id=item_id,
        item_code=code,
        item_name=name,
        search_code=code,
        jan_codes=("4901234567890",),
        total_expected_quantity=sum(s.expected_quantity for s in schedules),
        total_received_quantity=sum(s.received_quantity for s in schedules),
        total_remaining_quantity=sum(s.remaining_quantity for s in schedules),
        schedules=tuple(schedules),
    )


def make_location(loc_id: int = 9, code: str = "A-01-01") -> Location:
    c1, c2, c3 = (code.split("-") + ["", "", ""])[:3]
    return Location(id=loc_id, code1=c1, code2=c2, code3=c3, name=code, display_name=code)


def make_work_item(
    work_id: int = 500,
    *,
    schedule_id: int = 1,
    picker_id: int = 7,
    warehouse_id: int = 1,
    quantity: int = 10,
    status: WorkStatus = WorkStatus.WORKING,
    expiration: Optional[str] = None,
    location: Optional[Location] = None,
    snapshot_remaining: Optional[int] = None,
) -> WorkItem:
    snapshot = None
    if snapshot_remaining is not None:
        snapshot = WorkItemSchedule(
            id=schedule_id,
            item_id=100,
            item_code="I-100",
            item_name="清酒 720ml",
            warehouse_id=warehouse_id,
            warehouse_name=f"WH-{warehouse_id}",
            expected_quantity=50,
            received_quantity=50 - snapshot_remaining,
            remaining_quantity=snapshot_remaining,
            quantity_type=QuantityType.PIECE,
        )
    return WorkItem(
        id=work_id,
        incoming_schedule_id=schedule_id,
        picker_id=picker_id,
        warehouse_id=warehouse_id,
        location_id=location.id if location else None,
        location=location,
        work_quantity=quantity,
        work_arrival_date="2026-10-18",
        work_expiration_date=expiration,
        status=status,
        started_at="2026-10-18T09:00:00+09:00",
        schedule=snapshot,
    )
