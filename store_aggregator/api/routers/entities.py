"""
订单 / 商品 / 优惠券 API

每个请求聚合选中店铺的一页数据；不传 store_id 时使用所有在线店铺。
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...aggregator import CouponAggregator, OrderAggregator, ProductAggregator
from ...models import AggregationResult, Coupon, CouponCreateRequest, Order, Product
from ..dependencies import (
    get_coupon_aggregator, get_order_aggregator, get_product_aggregator, verify_admin_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["entities"])


def _selected(aggregator, store_id: Optional[List[str]]) -> List[str]:
    if store_id:
        return store_id
    return aggregator.registry.online_ids()


@router.get("/orders", response_model=AggregationResult[Order])
async def list_orders(
    store_id: Optional[List[str]] = Query(None, description="店铺 ID，可重复"),
    page: int = Query(1, ge=1),
    search: str = Query(""),
    aggregator: OrderAggregator = Depends(get_order_aggregator),
):
    """聚合订单（含订单备注）"""
    return await aggregator.fetch_page(_selected(aggregator, store_id), page=page, search=search)


@router.get("/products", response_model=AggregationResult[Product])
async def list_products(
    store_id: Optional[List[str]] = Query(None, description="店铺 ID，可重复"),
    page: int = Query(1, ge=1),
    search: str = Query(""),
    aggregator: ProductAggregator = Depends(get_product_aggregator),
):
    """聚合商品"""
    return await aggregator.fetch_page(_selected(aggregator, store_id), page=page, search=search)


@router.get("/coupons", response_model=AggregationResult[Coupon])
async def list_coupons(
    store_id: Optional[List[str]] = Query(None, description="店铺 ID，可重复"),
    page: int = Query(1, ge=1),
    search: str = Query(""),
    aggregator: CouponAggregator = Depends(get_coupon_aggregator),
):
    """聚合优惠券"""
    return await aggregator.fetch_page(_selected(aggregator, store_id), page=page, search=search)


@router.post(
    "/coupons",
    response_model=Coupon,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_admin_token)],
)
async def create_coupon(
    data: CouponCreateRequest,
    aggregator: CouponAggregator = Depends(get_coupon_aggregator),
):
    """在指定店铺创建优惠券"""
    return await aggregator.create(data.store_id, data.coupon)
