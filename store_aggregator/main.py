"""
主程序入口

启动两个并发任务：
1. 5s 健康检查循环（有订阅者时运行）
2. REST API 服务
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List

import uvicorn

from .config import get_config
from .health import HealthMonitor
from .models import StoreRecord
from .registry import get_registry


def setup_logging():
    """配置日志"""
    config = get_config()

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def acquire_single_instance_lock(lock_path: Path):
    """
    防止多个实例同时运行（多实例会并发整体重写同一个存储文件）。

    通过文件锁实现：同一路径下只能有一个进程持锁。
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(lock_path, "a+b")

    try:
        if os.name == "nt":
            import msvcrt  # type: ignore

            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        else:
            import fcntl  # type: ignore

            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        handle.close()
        raise RuntimeError(f"Another Store Aggregator instance is already running (lock: {lock_path})") from e

    return handle


def log_store_changes(stores: List[StoreRecord]):
    """健康检查订阅者：记录当前各店铺状态"""
    logger = logging.getLogger(__name__)
    summary = ", ".join(f"{s.name}={s.status.value}" for s in stores)
    logger.info(f"Stores updated: {summary or '(none)'}")


async def run_api_server():
    """运行 API 服务器"""
    from .api.app import create_app

    config = get_config()
    app = create_app()

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def main():
    """主函数：启动健康检查和 API 服务"""
    logger = logging.getLogger(__name__)

    setup_logging()
    logger.info("=" * 60)
    logger.info("Store Aggregator v1.0.0")
    logger.info("=" * 60)

    config = get_config()
    logger.info(f"Config loaded: API={config.api.host}:{config.api.port}")
    logger.info(f"Storage: {config.storage.path} (key={config.storage.key})")

    try:
        storage_path = Path(config.storage.path)
        lock_handle = acquire_single_instance_lock(storage_path.parent / "store-aggregator.lock")
    except RuntimeError as e:
        logger.error(str(e))
        return

    registry = get_registry()
    logger.info(f"Registry loaded: {len(registry.list())} stores")

    monitor = HealthMonitor(registry)
    monitor.subscribe(log_store_changes)

    try:
        await run_api_server()
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    finally:
        monitor.unsubscribe(log_store_changes)
        lock_handle.close()


def cli():
    """命令行入口"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
