"""
工具函数模块
"""

from datetime import datetime, timezone


def utc_now_iso() -> str:
    """
    当前 UTC 时间

    Returns:
        ISO-8601 字符串，以 Z 结尾
    """
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
