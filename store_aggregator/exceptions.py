"""
异常定义
"""


class StoreAggregatorError(Exception):
    """所有业务异常的基类"""


class StoreNotFoundError(StoreAggregatorError):
    """店铺不存在"""

    def __init__(self, store_id: str):
        self.store_id = store_id
        super().__init__(f"Store {store_id} not found")


class UpstreamError(StoreAggregatorError):
    """WooCommerce 接口调用失败"""

    def __init__(self, store_name: str, message: str, status_code: int = None):
        self.store_name = store_name
        self.status_code = status_code
        super().__init__(f"{store_name}: {message}")


class StorageError(StoreAggregatorError):
    """存储文件内容损坏（无法解析）"""

    def __init__(self, path, message: str):
        self.path = str(path)
        super().__init__(f"{message}: {self.path}")
