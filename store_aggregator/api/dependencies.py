"""
依赖注入模块

提供 FastAPI 依赖项。
"""

from typing import Optional
from fastapi import Header, HTTPException, status

from ..aggregator import CouponAggregator, OrderAggregator, ProductAggregator
from ..config import get_config
from ..health import HealthMonitor
from ..registry import StoreRegistry, get_registry


async def get_store_registry() -> StoreRegistry:
    """获取注册表实例"""
    return get_registry()


async def get_health_monitor() -> HealthMonitor:
    """获取健康检查器（用于手动触发单店铺检查）"""
    return HealthMonitor(get_registry())


async def get_order_aggregator() -> OrderAggregator:
    return OrderAggregator(get_registry())


async def get_product_aggregator() -> ProductAggregator:
    return ProductAggregator(get_registry())


async def get_coupon_aggregator() -> CouponAggregator:
    return CouponAggregator(get_registry())


async def verify_admin_token(x_admin_token: Optional[str] = Header(None)):
    """
    验证管理员 Token

    用于保护 POST/PUT/DELETE 操作。
    """
    config = get_config()
    expected_token = config.api.admin_token

    # 如果配置为默认值，跳过验证（开发环境）
    if expected_token == "CHANGE_ME_IN_PRODUCTION":
        return

    if x_admin_token != expected_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
