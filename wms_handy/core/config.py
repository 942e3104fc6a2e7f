# wms_handy/core/config.py
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HandySettings(BaseSettings):
    """
    手持终端配置（环境变量 / .env）
    """

    # 后端地址
    HANDY_HOST_URL: str = Field(default="http://10.0.2.2:8000")
    HANDY_PRESET_URLS: List[str] = Field(
        default_factory=lambda: [
            "https://wms.lw-hana.net",
            "https://wms.sakemaru.click",
            "http://10.0.2.2:8000",
        ]
    )
    HANDY_HTTP_TIMEOUT: float = Field(default=10.0)

    # 鉴权：API Key 固定下发；token 由登录流程写入（这里只读取）
    HANDY_API_KEY: str = Field(default="")
    HANDY_AUTH_TOKEN: Optional[str] = Field(default=None)
    HANDY_PICKER_ID: Optional[int] = Field(default=None)
    HANDY_PICKER_NAME: Optional[str] = Field(default=None)

    # 入库流程节奏（毫秒）
    HANDY_SEARCH_DEBOUNCE_MS: int = Field(default=300)
    HANDY_SUCCESS_DISPLAY_MS: int = Field(default=1500)
    HANDY_LOCATION_SEARCH_LIMIT: Optional[int] = Field(default=None)

    # 日志
    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOG: bool = Field(default=False)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def search_debounce_seconds(self) -> float:
        return max(self.HANDY_SEARCH_DEBOUNCE_MS, 0) / 1000.0

    @property
    def success_display_seconds(self) -> float:
        return max(self.HANDY_SUCCESS_DISPLAY_MS, 0) / 1000.0


@lru_cache
def get_settings() -> HandySettings:
    """全局单例设置入口。"""
    return HandySettings()
