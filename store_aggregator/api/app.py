"""
FastAPI 应用配置

配置 CORS、异常映射、路由注册。
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import get_config
from ..exceptions import StorageError, StoreNotFoundError, UpstreamError
from .routers import entities, stores

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例

    配置：
    - CORS 中间件
    - 业务异常 -> HTTP 状态码
    - API 路由
    """
    config = get_config()

    app = FastAPI(
        title="Store Aggregator",
        description="多店铺 WooCommerce 聚合 API",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreNotFoundError)
    async def store_not_found_handler(request: Request, exc: StoreNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        logger.warning(f"Upstream error: {exc}")
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})

    # 存储读写失败：前端展示为错误横幅
    @app.exception_handler(OSError)
    async def storage_error_handler(request: Request, exc: OSError):
        logger.error(f"Storage error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Storage error: {exc}"}
        )

    @app.exception_handler(StorageError)
    async def corrupted_storage_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Storage error: {exc}"}
        )

    app.include_router(stores.router)
    app.include_router(entities.router)

    @app.get("/api/health", tags=["meta"])
    async def health():
        return {"status": "ok"}

    return app


# 默认应用实例
app = create_app()
