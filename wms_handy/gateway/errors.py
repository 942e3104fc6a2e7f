# wms_handy/gateway/errors.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    NETWORK = "network"
    SERVER = "server"
    UNKNOWN = "unknown"


class GatewayError(Exception):
    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", http_status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.http_status = http_status

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, http_status={self.http_status!r}, message={self.message!r})"


class UnauthorizedError(GatewayError):
    """会话失效，需要重新登录"""

    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(GatewayError):
    """权限不足"""

    kind = ErrorKind.FORBIDDEN


class NotFoundError(GatewayError):
    """实体在服务端已不存在"""

    kind = ErrorKind.NOT_FOUND


class ValidationError(GatewayError):
    """服务端字段校验失败"""

    kind = ErrorKind.VALIDATION


class NetworkError(GatewayError):
    """连接/超时等传输层失败"""

    kind = ErrorKind.NETWORK


class ServerError(GatewayError):
    """5xx"""

    kind = ErrorKind.SERVER


class UnknownGatewayError(GatewayError):
    kind = ErrorKind.UNKNOWN


def error_for_status(status_code: int, message: str) -> GatewayError:
    """HTTP 状态码 → 错误分类。"""
    if status_code == 401:
        return UnauthorizedError(message, status_code)
    if status_code == 403:
        return ForbiddenError(message, status_code)
    if status_code == 404:
        return NotFoundError(message, status_code)
    if status_code in (400, 409, 422):
        return ValidationError(message, status_code)
    if status_code >= 500:
        return ServerError(message, status_code)
    return UnknownGatewayError(message, status_code)


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    """
    网关返回值：成功带 value，失败带 error。
    预期内的 HTTP/业务失败都走这里，不往外抛。
    """

    value: Optional[T] = None
    error: Optional[GatewayError] = None

    @classmethod
    def success(cls, value: T) -> "GatewayResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: GatewayError) -> "GatewayResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
