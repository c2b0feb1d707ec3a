"""
键值存储

单个 JSON 文件承载 {key: value}，每次写入都会整体重写文件。
读写失败直接抛给调用方：IO 错误为 OSError，内容损坏为 StorageError。
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_config
from .exceptions import StorageError


class KeyValueStore:
    """基于 JSON 文件的键值存储"""

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: 存储文件路径，不指定则从配置加载
        """
        if path is None:
            path = get_config().storage.path

        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            text = f.read()
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(self.path, f"Invalid JSON ({e.msg})") from e
        if not isinstance(data, dict):
            raise StorageError(self.path, "Corrupted key-value file")
        return data

    def _write_all(self, data: Dict[str, Any]):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def get_item(self, key: str) -> Optional[Any]:
        """读取 key 对应的值，不存在返回 None"""
        return self._read_all().get(key)

    def set_item(self, key: str, value: Any):
        """写入 key（整体重写文件）"""
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str):
        """删除 key"""
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)
