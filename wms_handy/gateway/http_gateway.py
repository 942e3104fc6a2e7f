# wms_handy/gateway/http_gateway.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from wms_handy.core.config import HandySettings, get_settings
from wms_handy.core.session import SessionProvider
from wms_handy.domain.models import Location, Product, ScheduleDetail, Warehouse, WorkItem
from wms_handy.gateway.errors import (
    GatewayError,
    GatewayResult,
    NetworkError,
    UnknownGatewayError,
    error_for_status,
)
from wms_handy.schemas.incoming import (
    ApiEnvelope,
    LocationOut,
    ScheduleDetailOut,
    ScheduleProductOut,
    StartWorkIn,
    UpdateWorkIn,
    WarehouseOut,
    WorkItemOut,
    extract_error_message,
)

log = logging.getLogger("wmshandy.gateway")

M = TypeVar("M", bound=BaseModel)

# 各接口失败时的兜底文案（后端没给 error_message / errors 时使用）
FALLBACK_WAREHOUSES = "获取仓库列表失败"
FALLBACK_SCHEDULES = "获取入库预定失败"
FALLBACK_SCHEDULE_DETAIL = "获取入库预定详情失败"
FALLBACK_WORK_ITEMS = "获取作业数据失败"
FALLBACK_START_WORK = "开始作业失败"
FALLBACK_UPDATE_WORK = "更新作业数据失败"
FALLBACK_COMPLETE_WORK = "入库确认失败"
FALLBACK_CANCEL_WORK = "取消作业失败"
FALLBACK_LOCATIONS = "获取库位失败"


def _clean_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """None 的 query 参数不发。"""
    return {k: v for k, v in params.items() if v is not None}


class HttpIncomingGateway:
    """
    入库 REST 网关（httpx.AsyncClient）。

    - 每个请求都带 X-API-Key 与 Bearer token（token 每次从会话读取）
    - 预期内失败（HTTP 非 2xx / 信封 is_success=false / 网络异常）一律返回 GatewayResult.failure
    - 传入 client 时不负责关闭它（测试里用 MockTransport）
    """

    def __init__(
        self,
        session: SessionProvider,
        *,
        settings: Optional[HandySettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.HANDY_HOST_URL.rstrip("/"),
            timeout=self.settings.HANDY_HTTP_TIMEOUT,
        )

    async def __aenter__(self) -> "HttpIncomingGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---------- 主数据 ----------

    async def list_warehouses(self) -> GatewayResult[List[Warehouse]]:
        return await self._call(
            "GET",
            "/api/master/warehouses",
            model=WarehouseOut,
            many=True,
            fallback=FALLBACK_WAREHOUSES,
        )

    # ---------- 入库预定 ----------

    async def list_schedules(
        self,
        warehouse_id: int,
        search: Optional[str] = None,
    ) -> GatewayResult[List[Product]]:
        return await self._call(
            "GET",
            "/api/incoming/schedules",
            params={"warehouse_id": warehouse_id, "search": search or None},
            model=ScheduleProductOut,
            many=True,
            fallback=FALLBACK_SCHEDULES,
        )

    async def get_schedule_detail(self, schedule_id: int) -> GatewayResult[ScheduleDetail]:
        return await self._call(
            "GET",
            f"/api/incoming/schedules/{int(schedule_id)}",
            model=ScheduleDetailOut,
            fallback=FALLBACK_SCHEDULE_DETAIL,
        )

    # ---------- 入库作业 ----------

    async def list_work_items(
        self,
        warehouse_id: int,
        picker_id: Optional[int] = None,
        status: Optional[str] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> GatewayResult[List[WorkItem]]:
        return await self._call(
            "GET",
            "/api/incoming/work-items",
            params={
                "warehouse_id": warehouse_id,
                "picker_id": picker_id,
                "status": status,
                "from_date": from_date,
                "to_date": to_date,
                "limit": limit,
            },
            model=WorkItemOut,
            many=True,
            fallback=FALLBACK_WORK_ITEMS,
        )

    async def start_work(
        self,
        schedule_id: int,
        picker_id: int,
        warehouse_id: int,
    ) -> GatewayResult[WorkItem]:
        body = StartWorkIn(
            incoming_schedule_id=schedule_id,
            picker_id=picker_id,
            warehouse_id=warehouse_id,
        )
        return await self._call(
            "POST",
            "/api/incoming/work-items",
            json=body.model_dump(),
            model=WorkItemOut,
            fallback=FALLBACK_START_WORK,
        )

    async def update_work(
        self,
        work_item_id: int,
        quantity: int,
        arrival_date: str,
        expiration_date: Optional[str] = None,
        location_id: Optional[int] = None,
    ) -> GatewayResult[WorkItem]:
        body = UpdateWorkIn(
            work_quantity=quantity,
            work_arrival_date=arrival_date,
            work_expiration_date=expiration_date,
            location_id=location_id,
        )
        return await self._call(
            "PUT",
            f"/api/incoming/work-items/{int(work_item_id)}",
            json=body.model_dump(exclude_none=True),
            model=WorkItemOut,
            fallback=FALLBACK_UPDATE_WORK,
        )

    async def complete_work(self, work_item_id: int) -> GatewayResult[None]:
        return await self._call(
            "POST",
            f"/api/incoming/work-items/{int(work_item_id)}/complete",
            fallback=FALLBACK_COMPLETE_WORK,
        )

    async def cancel_work(self, work_item_id: int) -> GatewayResult[None]:
        return await self._call(
            "DELETE",
            f"/api/incoming/work-items/{int(work_item_id)}",
            fallback=FALLBACK_CANCEL_WORK,
        )

    # ---------- 库位 ----------

    async def search_locations(
        self,
        warehouse_id: int,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> GatewayResult[List[Location]]:
        return await self._call(
            "GET",
            "/api/incoming/locations",
            params={"warehouse_id": warehouse_id, "search": search or None, "limit": limit},
            model=LocationOut,
            many=True,
            fallback=FALLBACK_LOCATIONS,
        )

    # ---------- 内部辅助 ----------

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.HANDY_API_KEY:
            headers["X-API-Key"] = self.settings.HANDY_API_KEY
        token = self.session.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _call(
        self,
        method: str,
        path: str,
        *,
        fallback: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        model: Optional[Type[M]] = None,
        many: bool = False,
    ) -> GatewayResult[Any]:
        """
        发请求 + 拆信封 + 转领域对象。

        model=None 表示只关心 is_success（complete / cancel）。
        """
        try:
            resp = await self._client.request(
                method,
                path,
                params=_clean_params(params or {}),
                json=json,
                headers=self._headers(),
            )
        except httpx.TransportError as exc:
            # TimeoutException 也是 TransportError 的子类
            return self._fail(method, path, NetworkError(str(exc) or type(exc).__name__))

        envelope: Optional[ApiEnvelope[Any]] = None
        try:
            envelope = ApiEnvelope[Any].model_validate(resp.json())
        except (ValueError, PydanticValidationError):
            envelope = None

        result_block = envelope.result if envelope is not None else None

        if resp.is_error:
            message = extract_error_message(result_block, fallback)
            return self._fail(method, path, error_for_status(resp.status_code, message))

        if envelope is None:
            return self._fail(
                method, path, UnknownGatewayError(fallback, resp.status_code)
            )

        if not envelope.is_success:
            message = extract_error_message(result_block, fallback)
            return self._fail(method, path, UnknownGatewayError(message, resp.status_code))

        if model is None:
            return GatewayResult.success(None)

        data = result_block.data if result_block is not None else None
        if data is None:
            message = extract_error_message(result_block, fallback)
            return self._fail(method, path, UnknownGatewayError(message, resp.status_code))

        try:
            if many:
                value: Any = [model.model_validate(row).to_domain() for row in data]
            else:
                value = model.model_validate(data).to_domain()
        except (TypeError, PydanticValidationError) as exc:
            log.warning("undecodable payload %s %s: %s", method, path, exc)
            return self._fail(method, path, UnknownGatewayError(fallback, resp.status_code))

        return GatewayResult.success(value)

    def _fail(self, method: str, path: str, error: GatewayError) -> GatewayResult[Any]:
        log.warning(
            "gateway failure %s %s kind=%s status=%s message=%s",
            method,
            path,
            error.kind.value,
            error.http_status,
            error.message,
        )
        return GatewayResult.failure(error)


def build_gateway(
    session: SessionProvider,
    settings: Optional[HandySettings] = None,
) -> HttpIncomingGateway:
    return HttpIncomingGateway(session, settings=settings)
