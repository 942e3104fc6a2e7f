# wms_handy/core/logging.py
import json as _json
import logging
import sys


class _JsonFormatter(logging.Formatter):
    """一行一个 JSON 对象，方便终端日志被采集端解析。"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return _json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO", json: bool = False) -> None:
    """
    终端统一日志：
    - 根 logger 设级别，单一 stdout handler
    - json=True 时输出 JSON 行
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    if json:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)

    # httpx/httpcore 每个请求都会打 INFO，只有 DEBUG 时放开
    noisy = logging.INFO if level.upper() == "DEBUG" else logging.WARNING
    logging.getLogger("httpx").setLevel(noisy)
    logging.getLogger("httpcore").setLevel(noisy)
