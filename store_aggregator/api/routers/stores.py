"""
店铺管理 API

提供店铺的 CRUD、启用切换和手动健康检查。
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...health import HealthMonitor
from ...models import StoreCreate, StoreRecord, StoreUpdate
from ...registry import StoreRegistry
from ...utils import utc_now_iso
from ..dependencies import get_health_monitor, get_store_registry, verify_admin_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stores", tags=["stores"])


def _not_found(store_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Store {store_id} not found"
    )


@router.get("", response_model=List[StoreRecord])
async def list_stores(registry: StoreRegistry = Depends(get_store_registry)):
    """获取所有店铺及最新状态"""
    return registry.list()


@router.get("/{store_id}", response_model=StoreRecord)
async def get_store(store_id: str, registry: StoreRegistry = Depends(get_store_registry)):
    """获取单个店铺"""
    store = registry.get(store_id)
    if store is None:
        raise _not_found(store_id)
    return store


@router.post(
    "",
    response_model=StoreRecord,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_admin_token)],
)
async def create_store(data: StoreCreate, registry: StoreRegistry = Depends(get_store_registry)):
    """
    注册店铺

    新店铺状态为 unknown，下一轮健康检查后更新。
    """
    return registry.add(data)


@router.put("/{store_id}", response_model=StoreRecord, dependencies=[Depends(verify_admin_token)])
async def update_store(
    store_id: str,
    data: StoreUpdate,
    registry: StoreRegistry = Depends(get_store_registry)
):
    """更新店铺配置"""
    store = registry.update(store_id, data)
    if store is None:
        raise _not_found(store_id)
    logger.info(f"Updated store {store_id}")
    return store


@router.delete("/{store_id}", dependencies=[Depends(verify_admin_token)])
async def delete_store(store_id: str, registry: StoreRegistry = Depends(get_store_registry)):
    """删除店铺"""
    if not registry.remove(store_id):
        raise _not_found(store_id)
    return {"success": True}


@router.post(
    "/{store_id}/toggle",
    response_model=StoreRecord,
    dependencies=[Depends(verify_admin_token)],
)
async def toggle_store(store_id: str, registry: StoreRegistry = Depends(get_store_registry)):
    """切换启用状态"""
    store = registry.toggle_active(store_id)
    if store is None:
        raise _not_found(store_id)
    return store


@router.post("/{store_id}/check", response_model=StoreRecord)
async def check_store(
    store_id: str,
    registry: StoreRegistry = Depends(get_store_registry),
    monitor: HealthMonitor = Depends(get_health_monitor),
):
    """立即检查单个店铺并保存结果"""
    store = registry.get(store_id)
    if store is None:
        raise _not_found(store_id)

    result = await monitor.check_store(store)
    updated = registry.update(
        store_id,
        status=result.status,
        error_message=result.error_message,
        response_time_ms=result.response_time_ms,
        last_checked=utc_now_iso(),
    )
    if updated is None:
        raise _not_found(store_id)
    return updated
