"""
WooCommerce REST API 客户端

每个店铺使用 consumer key/secret 做 HTTP Basic 认证。
"""

from typing import Any, Dict, List, Optional

import httpx

from .config import get_config
from .models import StoreRecord


class StoreClient:
    """
    单店铺客户端

    使用方式：
        async with StoreClient(store) as client:
            orders = await client.list_resource("orders", page=1, per_page=20)
    """

    def __init__(
        self,
        store: StoreRecord,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            store: 店铺记录
            timeout: 超时时间（秒），None 表示不限制
            transport: 自定义传输层（测试时注入 httpx.MockTransport）
        """
        self.store = store
        prefix = get_config().fetch.api_prefix
        self._client = httpx.AsyncClient(
            base_url=f"{store.base_url}{prefix}",
            auth=(store.consumer_key, store.consumer_secret),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "StoreClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def system_status(self) -> httpx.Response:
        """
        GET /system_status

        返回原始响应（由健康检查判断状态码），非 2xx 抛出 HTTPStatusError。
        """
        response = await self._client.get("/system_status")
        response.raise_for_status()
        return response

    async def list_resource(
        self,
        resource: str,
        page: int = 1,
        per_page: int = 20,
        search: str = "",
    ) -> List[Dict[str, Any]]:
        """GET /<resource>?per_page=&page=&search="""
        params = {"per_page": per_page, "page": page, "search": search}
        return await self._get(f"/{resource}", params=params)

    async def order_notes(self, order_id: int) -> List[Dict[str, Any]]:
        """GET /orders/{id}/notes"""
        return await self._get(f"/orders/{order_id}/notes")

    async def create_coupon(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /coupons"""
        response = await self._client.post("/coupons", json=payload)
        response.raise_for_status()
        return response.json()
