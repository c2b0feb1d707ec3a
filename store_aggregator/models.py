"""
数据模型定义

包括：
- 店铺注册表记录（持久化）
- WooCommerce 远端实体（订单/商品/优惠券，原样保留上游字段）
- 聚合进度与结果
- API 请求模型
"""

from typing import Any, Dict, Generic, List, Literal, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .status import StoreStatus


# =============================================================================
# 店铺注册表
# =============================================================================

class StoreRecord(BaseModel):
    """店铺连接记录（整体序列化到键值存储）"""
    id: str
    name: str
    base_url: str
    consumer_key: str
    consumer_secret: str
    is_active: bool = True
    status: StoreStatus = StoreStatus.UNKNOWN
    last_checked: Optional[str] = None  # ISO-8601 UTC
    error_message: Optional[str] = None
    response_time_ms: Optional[int] = None

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def ref(self) -> "StoreRef":
        """生成挂在远端实体上的店铺引用"""
        return StoreRef(id=self.id, name=self.name, url=self.base_url)


class StoreCreate(BaseModel):
    """注册店铺请求模型"""
    name: str
    base_url: str
    consumer_key: str
    consumer_secret: str


class StoreUpdate(BaseModel):
    """更新店铺请求模型（部分字段）"""
    name: Optional[str] = None
    base_url: Optional[str] = None
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    is_active: Optional[bool] = None


class ProbeResult(BaseModel):
    """一次健康检查（含重试）的最终结果"""
    status: StoreStatus
    error_message: Optional[str] = None
    response_time_ms: Optional[int] = None


# =============================================================================
# 远端实体（WooCommerce REST API 返回的记录）
# =============================================================================

class StoreRef(BaseModel):
    """实体所属店铺（用于展示和去重）"""
    id: str
    name: str
    url: Optional[str] = None


class RemoteEntity(BaseModel):
    """远端实体基类：未声明的上游字段原样保留"""
    model_config = ConfigDict(extra="allow")

    id: int
    store: Optional[StoreRef] = None

    @property
    def dedup_key(self) -> Tuple[Optional[str], int]:
        return (self.store.id if self.store else None, self.id)


class OrderNote(RemoteEntity):
    author: Optional[str] = None
    date_created: Optional[str] = None
    note: str = ""
    customer_note: bool = False


class Order(RemoteEntity):
    number: str = ""
    status: str = ""
    date_created: Optional[str] = None
    total: str = "0"
    customer_id: int = 0
    customer_note: Optional[str] = None
    notes: List[OrderNote] = Field(default_factory=list)


class Product(RemoteEntity):
    name: str = ""
    price: Optional[str] = None
    regular_price: Optional[str] = None
    sale_price: Optional[str] = None
    status: str = ""
    stock_status: Optional[str] = None
    description: str = ""
    short_description: str = ""
    sku: Optional[str] = None
    permalink: Optional[str] = None
    categories: List[Dict[str, Any]] = Field(default_factory=list)
    images: List[Dict[str, Any]] = Field(default_factory=list)
    attributes: Optional[List[Dict[str, Any]]] = None


class Coupon(RemoteEntity):
    code: str = ""
    amount: str = "0"
    discount_type: str = ""
    description: str = ""
    date_expires: Optional[str] = None
    usage_count: int = 0
    usage_limit: Optional[int] = None
    individual_use: bool = False


class CouponCreate(BaseModel):
    """创建优惠券请求体（原样 POST 给 WooCommerce）"""
    code: str
    discount_type: Literal["percent", "fixed_cart", "fixed_product"] = "percent"
    amount: str
    description: Optional[str] = None
    individual_use: bool = False
    usage_limit: Optional[int] = None
    date_expires: Optional[str] = None


class CouponCreateRequest(BaseModel):
    """POST /api/coupons 请求"""
    store_id: str
    coupon: CouponCreate


# =============================================================================
# 聚合进度与结果
# =============================================================================

class AggregationProgress(BaseModel):
    """单次聚合的进度（每次拉取重新创建）"""
    total_stores: int = 0
    current_index: int = 0
    current_store_name: str = ""
    status_message: str = "Initializing..."

    @property
    def percentage(self) -> int:
        if self.total_stores == 0:
            return 0
        return round(self.current_index / self.total_stores * 100)


EntityT = TypeVar("EntityT", bound=RemoteEntity)


class AggregationResult(BaseModel, Generic[EntityT]):
    """一页聚合结果"""
    items: List[EntityT] = Field(default_factory=list)
    page: int = 1
    has_more: bool = False
    failed_stores: List[str] = Field(default_factory=list)
