# wms_handy/utils/time.py
from __future__ import annotations

from datetime import date
from typing import Optional


def today_iso() -> str:
    """终端本地日历日（YYYY-MM-DD）。"""
    return date.today().isoformat()


def parse_iso_date(v: Optional[str]) -> Optional[date]:
    """
    'YYYY-MM-DD' → date；空串/None 返回 None。
    非法格式抛 ValueError，由调用方决定怎么提示。
    """
    if v is None:
        return None
    s = v.strip()
    if not s:
        return None
    return date.fromisoformat(s)
