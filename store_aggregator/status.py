"""
店铺状态机

探测结果 -> 店铺状态 的显式转换表。
"""

from enum import Enum
from typing import Dict


class StoreStatus(str, Enum):
    """店铺状态"""
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"


class ProbeOutcome(str, Enum):
    """单次健康探测的结果分类"""
    OK = "ok"
    UNEXPECTED_STATUS = "unexpected_status"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    HTTP_ERROR = "http_error"
    UNEXPECTED_ERROR = "unexpected_error"


_OUTCOME_STATUS: Dict[ProbeOutcome, StoreStatus] = {
    ProbeOutcome.OK: StoreStatus.ONLINE,
    ProbeOutcome.UNEXPECTED_STATUS: StoreStatus.ERROR,
    ProbeOutcome.TIMEOUT: StoreStatus.OFFLINE,
    ProbeOutcome.NETWORK_ERROR: StoreStatus.OFFLINE,
    ProbeOutcome.HTTP_ERROR: StoreStatus.ERROR,
    ProbeOutcome.UNEXPECTED_ERROR: StoreStatus.ERROR,
}

# 每个状态都可以根据探测结果迁移到 online/offline/error，不会回到 unknown
TRANSITIONS: Dict[StoreStatus, Dict[ProbeOutcome, StoreStatus]] = {
    status: dict(_OUTCOME_STATUS) for status in StoreStatus
}


def next_status(current: StoreStatus, outcome: ProbeOutcome) -> StoreStatus:
    """根据当前状态和探测结果查表得到下一个状态"""
    return TRANSITIONS[StoreStatus(current)][outcome]
