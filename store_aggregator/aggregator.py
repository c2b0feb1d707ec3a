"""
多店铺拉取聚合

对选中的每个店铺并发拉取一页数据，合并后按 (store.id, entity.id) 去重：
- 单个店铺失败只记录日志并贡献空列表，不影响整体
- 订单额外拉取每个订单的备注
- has_more 按 "拉取总数 == 店铺数 * 每页数量" 推断（近似值）
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, Set, Tuple, Type

import httpx

from .client import StoreClient
from .config import get_config
from .exceptions import StoreNotFoundError, UpstreamError
from .models import (
    AggregationProgress, AggregationResult, Coupon, CouponCreate,
    EntityT, Order, OrderNote, Product, RemoteEntity, StoreRecord,
)
from .registry import StoreRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[AggregationProgress], None]


# =============================================================================
# 合并 / 分页 / 排序
# =============================================================================

def merge_unique(existing: Iterable[RemoteEntity], incoming: Iterable[EntityT]) -> List[EntityT]:
    """
    返回 incoming 中 (store.id, id) 未出现在 existing 里的实体

    incoming 内部的重复项同样只保留第一条。
    """
    seen: Set[Tuple[Optional[str], int]] = {item.dedup_key for item in existing}
    result = []
    for item in incoming:
        key = item.dedup_key
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def has_more_pages(fetched_count: int, store_count: int, page_size: int) -> bool:
    """
    推断是否还有下一页

    近似判断：某个店铺不满一页时即使其他店铺还有数据也会返回 False。
    """
    return fetched_count == store_count * page_size


def _parse_date(value: Optional[str]) -> datetime:
    if not value:
        return datetime.min
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_price(value: Optional[str]) -> float:
    try:
        return float(value or "0")
    except ValueError:
        return 0.0


def sort_orders(orders: Sequence[Order], field: str = "date_created", descending: bool = True) -> List[Order]:
    """按 id 或 date_created 排序（稳定排序）"""
    if field == "id":
        return sorted(orders, key=lambda o: o.id, reverse=descending)
    if field == "date_created":
        return sorted(orders, key=lambda o: _parse_date(o.date_created), reverse=descending)
    raise ValueError(f"Unsupported order sort field: {field}")


def sort_products(products: Sequence[Product], field: str = "name", descending: bool = False) -> List[Product]:
    """按 name（忽略大小写）或 price 排序（稳定排序）"""
    if field == "name":
        return sorted(products, key=lambda p: p.name.casefold(), reverse=descending)
    if field == "price":
        return sorted(products, key=lambda p: _parse_price(p.price), reverse=descending)
    raise ValueError(f"Unsupported product sort field: {field}")


def product_url(product: Product) -> Optional[str]:
    """商品在店铺前台的链接"""
    if product.permalink and product.store and product.store.url:
        if product.permalink.startswith("http"):
            return product.permalink
        return f"{product.store.url.rstrip('/')}/{product.permalink.lstrip('/')}"
    return None


def is_on_sale(product: Product) -> bool:
    return bool(product.sale_price) and product.sale_price != product.regular_price


def discount_label(coupon: Coupon) -> str:
    if coupon.discount_type == "percent":
        return f"{coupon.amount}% off"
    if coupon.discount_type == "fixed_cart":
        return f"${coupon.amount} off cart"
    if coupon.discount_type == "fixed_product":
        return f"${coupon.amount} off product"
    return f"{coupon.amount} off"


# =============================================================================
# 聚合器
# =============================================================================

class FetchAggregator(Generic[EntityT]):
    """按实体类型聚合多个店铺的一页数据"""

    resource: str = ""
    model: Type[RemoteEntity] = RemoteEntity
    label: str = "entity"

    def __init__(
        self,
        registry: StoreRegistry,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_config().fetch
        self.registry = registry
        self.page_size = page_size or self._default_page_size()
        self.timeout = config.timeout if timeout is None else timeout
        self.transport = transport

    def _default_page_size(self) -> int:
        return get_config().fetch.products_page_size

    def _client(self, store: StoreRecord) -> StoreClient:
        return StoreClient(store, timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _report(
        progress: AggregationProgress,
        on_progress: Optional[ProgressCallback],
        **changes
    ):
        for field, value in changes.items():
            setattr(progress, field, value)
        if on_progress is not None:
            on_progress(progress.model_copy())

    async def _enrich(
        self,
        client: StoreClient,
        entities: List[EntityT],
        progress: AggregationProgress,
        on_progress: Optional[ProgressCallback],
    ) -> List[EntityT]:
        return entities

    async def _fetch_store(
        self,
        index: int,
        store: Optional[StoreRecord],
        page: int,
        search: str,
        progress: AggregationProgress,
        on_progress: Optional[ProgressCallback],
        failed: List[str],
    ) -> List[EntityT]:
        """拉取单个店铺，失败时返回空列表"""
        if store is None:
            return []

        try:
            self._report(
                progress, on_progress,
                current_index=index,
                current_store_name=store.name,
                status_message=f"Fetching {self.resource} from {store.name}...",
            )
            async with self._client(store) as client:
                raw_items = await client.list_resource(
                    self.resource, page=page, per_page=self.page_size, search=search
                )
                ref = store.ref()
                entities = [self.model.model_validate({**item, "store": ref}) for item in raw_items]
                return await self._enrich(client, entities, progress, on_progress)
        except Exception as e:
            logger.warning(f"Error fetching {self.resource} from {store.name}: {e}")
            failed.append(store.id)
            return []

    async def fetch_page(
        self,
        store_ids: Sequence[str],
        page: int = 1,
        search: str = "",
        on_progress: Optional[ProgressCallback] = None,
    ) -> AggregationResult[EntityT]:
        """
        并发拉取选中店铺的第 page 页并合并

        Args:
            store_ids: 选中的店铺 ID（未知 ID 贡献空列表）
            page: 页码（从 1 开始）
            search: 搜索关键字
            on_progress: 进度回调

        Returns:
            去重后的聚合结果
        """
        if not store_ids:
            return AggregationResult[self.model](page=page, has_more=False)

        progress = AggregationProgress(total_stores=len(store_ids))
        self._report(progress, on_progress, status_message="Connecting to stores...")

        stores_by_id: Dict[str, StoreRecord] = {s.id: s for s in self.registry.list()}
        failed: List[str] = []

        per_store = await asyncio.gather(*(
            self._fetch_store(
                index, stores_by_id.get(store_id), page, search,
                progress, on_progress, failed
            )
            for index, store_id in enumerate(store_ids)
        ))

        self._report(progress, on_progress, status_message=f"Processing {self.label} data...")
        fetched = [entity for entities in per_store for entity in entities]

        return AggregationResult[self.model](
            items=merge_unique([], fetched),
            page=page,
            has_more=has_more_pages(len(fetched), len(store_ids), self.page_size),
            failed_stores=failed,
        )


class OrderAggregator(FetchAggregator[Order]):
    """订单聚合（附带订单备注）"""

    resource = "orders"
    model = Order
    label = "order"

    def _default_page_size(self) -> int:
        return get_config().fetch.orders_page_size

    async def _enrich(self, client, entities, progress, on_progress):
        async def _with_notes(order: Order) -> Order:
            self._report(
                progress, on_progress,
                status_message=f"Fetching notes for order #{order.number}...",
            )
            notes = await client.order_notes(order.id)
            order.notes = [OrderNote.model_validate(note) for note in notes]
            return order

        results = await asyncio.gather(
            *(_with_notes(order) for order in entities),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)


class ProductAggregator(FetchAggregator[Product]):
    """商品聚合"""

    resource = "products"
    model = Product
    label = "product"


class CouponAggregator(FetchAggregator[Coupon]):
    """优惠券聚合 + 创建"""

    resource = "coupons"
    model = Coupon
    label = "coupon"

    def _default_page_size(self) -> int:
        return get_config().fetch.coupons_page_size

    async def create(self, store_id: str, data: CouponCreate) -> Coupon:
        """
        在指定店铺创建优惠券

        Raises:
            StoreNotFoundError: 店铺不存在
            UpstreamError: WooCommerce 返回错误或连接失败
        """
        store = self.registry.get(store_id)
        if store is None:
            raise StoreNotFoundError(store_id)

        payload = data.model_dump(exclude_none=True)
        try:
            async with self._client(store) as client:
                created = await client.create_coupon(payload)
        except httpx.HTTPStatusError as e:
            raise UpstreamError(store.name, e.response.text or str(e), e.response.status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamError(store.name, str(e)) from e

        logger.info(f"Created coupon {data.code} on {store.name}")
        return Coupon.model_validate({**created, "store": store.ref()})


# =============================================================================
# 列表会话
# =============================================================================

class EntityFeed(Generic[EntityT]):
    """
    单个列表视图的会话状态

    reset() 清空并加载第一页，load_more() 加载下一页并只追加新实体。
    没有取消机制：并发调用会交错写入 items。
    """

    def __init__(self, aggregator: FetchAggregator[EntityT]):
        self.aggregator = aggregator
        self.items: List[EntityT] = []
        self.page = 1
        self.has_more = True
        self.search = ""
        self.store_ids: List[str] = []
        self.progress = AggregationProgress()
        self.error: Optional[str] = None
        self.loading = False

    def _on_progress(self, progress: AggregationProgress):
        self.progress = progress

    async def reset(self, store_ids: Optional[Sequence[str]] = None, search: str = "") -> List[EntityT]:
        """重新选择店铺/搜索词，从第一页开始加载"""
        if store_ids is None:
            store_ids = self.aggregator.registry.online_ids()
        self.store_ids = list(store_ids)
        self.search = search
        self.items = []
        self.page = 1
        return await self._load(1)

    async def load_more(self) -> List[EntityT]:
        """加载下一页；失败时页码不前进"""
        return await self._load(self.page + 1)

    async def _load(self, page: int) -> List[EntityT]:
        self.loading = True
        self.error = None
        try:
            result = await self.aggregator.fetch_page(
                self.store_ids, page=page, search=self.search,
                on_progress=self._on_progress,
            )
        except Exception as e:
            self.error = str(e) or "An unexpected error occurred"
            raise
        finally:
            self.loading = False

        self.page = page
        new_items = merge_unique(self.items, result.items)
        self.items.extend(new_items)
        self.has_more = result.has_more
        return new_items
