# wms_handy/core/session.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from wms_handy.core.config import HandySettings


class SessionProvider(Protocol):
    """
    登录会话只读视图。token 的获取/持久化由登录模块负责，这里不关心。
    """

    @property
    def token(self) -> Optional[str]: ...

    @property
    def picker_id(self) -> Optional[int]: ...

    @property
    def picker_name(self) -> Optional[str]: ...


@dataclass(frozen=True)
class StaticSession:
    token: Optional[str] = None
    picker_id: Optional[int] = None
    picker_name: Optional[str] = None


def session_from_settings(settings: HandySettings) -> StaticSession:
    """CLI / 调试场景：直接从环境变量取会话。"""
    return StaticSession(
        token=settings.HANDY_AUTH_TOKEN or None,
        picker_id=settings.HANDY_PICKER_ID,
        picker_name=settings.HANDY_PICKER_NAME,
    )
