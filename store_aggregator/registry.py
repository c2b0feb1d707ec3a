"""
店铺注册表

所有操作都是对整份店铺列表的同步读写：读出全部 -> 修改 -> 整体写回。
每次成功的变更都会把完整列表推送给观察者。
"""

import logging
import uuid
from typing import Any, Callable, List, Optional

from .config import get_config
from .models import StoreCreate, StoreRecord, StoreUpdate
from .status import StoreStatus
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

StoreObserver = Callable[[List[StoreRecord]], None]


class StoreRegistry:
    """店铺注册表（持久化到 KeyValueStore 的单个 key）"""

    def __init__(self, storage: KeyValueStore, key: Optional[str] = None):
        self.storage = storage
        self.key = key or get_config().storage.key
        self._observers: List[StoreObserver] = []

    # =========================================================================
    # 观察者
    # =========================================================================

    def add_observer(self, observer: StoreObserver):
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: StoreObserver):
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, stores: List[StoreRecord]):
        for observer in list(self._observers):
            try:
                observer(list(stores))
            except Exception:
                logger.exception("Store observer failed")

    # =========================================================================
    # 读写
    # =========================================================================

    def list(self) -> List[StoreRecord]:
        """获取所有店铺"""
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        return [StoreRecord(**item) for item in raw]

    def _save(self, stores: List[StoreRecord]):
        self.storage.set_item(self.key, [s.model_dump(mode="json") for s in stores])
        self._notify(stores)

    def get(self, store_id: str) -> Optional[StoreRecord]:
        for store in self.list():
            if store.id == store_id:
                return store
        return None

    def active_stores(self) -> List[StoreRecord]:
        """启用且在线的店铺"""
        return [s for s in self.list() if s.is_active and s.status == StoreStatus.ONLINE]

    def online_ids(self) -> List[str]:
        """在线店铺 ID（列表页默认选中项）"""
        return [s.id for s in self.list() if s.status == StoreStatus.ONLINE]

    def add(self, data: StoreCreate) -> StoreRecord:
        """
        注册店铺

        新店铺默认启用，状态为 unknown，等待首次健康检查。
        """
        stores = self.list()
        record = StoreRecord(
            id=uuid.uuid4().hex,
            is_active=True,
            status=StoreStatus.UNKNOWN,
            **data.model_dump(),
        )
        stores.append(record)
        self._save(stores)
        logger.info(f"Registered store: {record.name} (id={record.id})")
        return record

    def update(self, store_id: str, changes: Any = None, **fields) -> Optional[StoreRecord]:
        """
        部分更新店铺

        Args:
            store_id: 店铺 ID
            changes: StoreUpdate 或 dict，None 字段会被忽略
            **fields: 额外字段（健康检查用来写 status/error_message 等）

        Returns:
            更新后的记录；店铺不存在时返回 None（不写入、不通知）
        """
        if isinstance(changes, StoreUpdate):
            updates = changes.model_dump(exclude_none=True)
        else:
            updates = {k: v for k, v in dict(changes or {}).items() if v is not None}
        updates.update(fields)
        updates.pop("id", None)

        stores = self.list()
        for index, store in enumerate(stores):
            if store.id == store_id:
                merged = StoreRecord(**{**store.model_dump(), **updates})
                stores[index] = merged
                self._save(stores)
                return merged
        return None

    def remove(self, store_id: str) -> bool:
        """删除店铺，不存在时返回 False"""
        stores = self.list()
        remaining = [s for s in stores if s.id != store_id]
        if len(remaining) == len(stores):
            return False
        self._save(remaining)
        logger.info(f"Removed store {store_id}")
        return True

    def toggle_active(self, store_id: str) -> Optional[StoreRecord]:
        """切换启用状态"""
        store = self.get(store_id)
        if store is None:
            return None
        return self.update(store_id, is_active=not store.is_active)


# 全局注册表实例（延迟加载）
_registry: Optional[StoreRegistry] = None


def get_registry() -> StoreRegistry:
    """获取全局注册表实例"""
    global _registry
    if _registry is None:
        _registry = StoreRegistry(KeyValueStore())
    return _registry


def reset_registry():
    """重置注册表实例（主要用于测试）"""
    global _registry
    _registry = None
