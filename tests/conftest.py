# tests/conftest.py
from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from tests.factories import TODAY
from tests.helpers.fake_gateway import FakeIncomingGateway
from wms_handy.core.config import HandySettings
from wms_handy.core.session import StaticSession
from wms_handy.services.incoming_engine import IncomingEngine

# 测试里去抖窗口压短，成功提示不停留
DEBOUNCE_MS = 20


@pytest.fixture
def settings() -> HandySettings:
    return HandySettings(
        _env_file=None,
        HANDY_HOST_URL="http://wms.test",
        HANDY_API_KEY="test-api-key",
        HANDY_SEARCH_DEBOUNCE_MS=DEBOUNCE_MS,
        HANDY_SUCCESS_DISPLAY_MS=0,
    )


@pytest.fixture
def session() -> StaticSession:
    return StaticSession(token="tok-123", picker_id=7, picker_name="田中")


@pytest.fixture
def fake_gateway() -> FakeIncomingGateway:
    return FakeIncomingGateway()


@pytest_asyncio.fixture
async def engine(
    fake_gateway: FakeIncomingGateway,
    session: StaticSession,
    settings: HandySettings,
) -> AsyncGenerator[IncomingEngine, None]:
    eng = IncomingEngine(fake_gateway, session, settings=settings, today=lambda: TODAY)
    try:
        yield eng
    finally:
        await eng.aclose()
