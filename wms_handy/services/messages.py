# wms_handy/services/messages.py
from __future__ import annotations

from typing import Dict

from wms_handy.gateway.errors import ErrorKind, GatewayError

MSG_UNAUTHORIZED = "认证失败，请重新登录。"
MSG_FORBIDDEN = "没有访问权限。"
MSG_NOT_FOUND = "数据不存在。"
MSG_VALIDATION = "输入有误。"
MSG_NETWORK = "网络错误，请检查连接。"
MSG_SERVER = "服务器错误，请稍后再试。"
MSG_GENERIC = "发生错误。"

MSG_SUBMIT_COMPLETED = "入库已确认"
MSG_SUBMIT_UPDATED = "已更新"
MSG_WORK_CANCELLED = "作业已取消"

MSG_QTY_EXCEEDS_REMAINING = "入库数量超过剩余数量（剩余 {remaining}）"
MSG_BAD_EXPIRATION_DATE = "有效期格式应为 YYYY-MM-DD"

_KIND_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.UNAUTHORIZED: MSG_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: MSG_FORBIDDEN,
    ErrorKind.NOT_FOUND: MSG_NOT_FOUND,
    ErrorKind.NETWORK: MSG_NETWORK,
    ErrorKind.SERVER: MSG_SERVER,
}


def message_for(error: BaseException) -> str:
    """
    网关错误 → 提示文案。
    VALIDATION / UNKNOWN 优先透传后端给的原文。
    """
    if isinstance(error, GatewayError):
        if error.kind == ErrorKind.VALIDATION:
            return error.message or MSG_VALIDATION
        fixed = _KIND_MESSAGES.get(error.kind)
        if fixed is not None:
            return fixed
        return error.message or MSG_GENERIC
    return str(error) or MSG_GENERIC
