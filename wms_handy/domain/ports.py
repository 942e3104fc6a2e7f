# -*- coding: utf-8 -*-
from __future__ import annotations
from typing import List, Optional, Protocol

from wms_handy.domain.models import Location, Product, ScheduleDetail, Warehouse, WorkItem
from wms_handy.gateway.errors import GatewayResult


class IncomingGateway(Protocol):
    """入库后端契约：唯一的网络边界，所有方法都返回 GatewayResult。"""

    async def list_warehouses(self) -> GatewayResult[List[Warehouse]]:
        ...

    async def list_schedules(
        self,
        warehouse_id: int,
        search: Optional[str] = None,
    ) -> GatewayResult[List[Product]]:
        ...

    async def get_schedule_detail(self, schedule_id: int) -> GatewayResult[ScheduleDetail]:
        ...

    async def list_work_items(
        self,
        warehouse_id: int,
        picker_id: Optional[int] = None,
        status: Optional[str] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> GatewayResult[List[WorkItem]]:
        ...

    async def start_work(
        self,
        schedule_id: int,
        picker_id: int,
        warehouse_id: int,
    ) -> GatewayResult[WorkItem]:
        ...

    async def update_work(
        self,
        work_item_id: int,
        quantity: int,
        arrival_date: str,
        expiration_date: Optional[str] = None,
        location_id: Optional[int] = None,
    ) -> GatewayResult[WorkItem]:
        ...

    async def complete_work(self, work_item_id: int) -> GatewayResult[None]:
        ...

    async def cancel_work(self, work_item_id: int) -> GatewayResult[None]:
        ...

    async def search_locations(
        self,
        warehouse_id: int,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> GatewayResult[List[Location]]:
        ...
