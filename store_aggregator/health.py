"""
店铺健康检查

每隔 interval 秒并发探测所有店铺的 /system_status：
- 超时重试（最多 max_retries 次）
- 按状态机把探测结果映射为 online/offline/error
- 只有状态、错误信息或响应时间变化时才写注册表并通知订阅者
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

import httpx

from .client import StoreClient
from .config import get_config
from .models import ProbeResult, StoreRecord
from .registry import StoreRegistry
from .status import ProbeOutcome, next_status
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

MonitorSubscriber = Callable[[List[StoreRecord]], None]


def classify_error(error: Exception) -> ProbeOutcome:
    """把一次请求异常归类为探测结果"""
    if isinstance(error, httpx.TimeoutException):
        return ProbeOutcome.TIMEOUT
    if isinstance(error, httpx.TransportError):
        return ProbeOutcome.NETWORK_ERROR
    if isinstance(error, httpx.HTTPStatusError):
        return ProbeOutcome.HTTP_ERROR
    return ProbeOutcome.UNEXPECTED_ERROR


class HealthMonitor:
    """
    健康检查器

    订阅者由实例自己维护：第一个订阅者到来时启动循环，最后一个退订时停止。
    运行期间注册表的任何变更（CRUD 或健康状态更新）都会转发给订阅者。
    """

    def __init__(
        self,
        registry: StoreRegistry,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_config().monitor
        self.registry = registry
        self.interval = config.interval if interval is None else interval
        self.timeout = config.timeout if timeout is None else timeout
        self.max_retries = config.max_retries if max_retries is None else max_retries
        self.transport = transport

        self._subscribers: List[MonitorSubscriber] = []
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None

    # =========================================================================
    # 单店铺探测
    # =========================================================================

    async def _probe_once(self, store: StoreRecord) -> Tuple[ProbeOutcome, Optional[str], int]:
        started = time.perf_counter()
        try:
            async with StoreClient(store, timeout=self.timeout, transport=self.transport) as client:
                response = await client.system_status()
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            return classify_error(e), str(e) or e.__class__.__name__, elapsed_ms

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if response.status_code == 200:
            return ProbeOutcome.OK, None, elapsed_ms
        return ProbeOutcome.UNEXPECTED_STATUS, "Server returned unexpected status", elapsed_ms

    async def check_store(self, store: StoreRecord) -> ProbeResult:
        """
        探测单个店铺（含超时重试），不会抛出异常

        仅超时会重试；重试后仍以请求异常结束时，错误信息追加 "(after N attempts)"。
        """
        attempts = 0
        while True:
            attempts += 1
            outcome, message, elapsed_ms = await self._probe_once(store)
            if outcome == ProbeOutcome.TIMEOUT and attempts <= self.max_retries:
                logger.debug(f"Health check timed out for {store.name}, retrying ({attempts})")
                continue
            break

        # 只有请求异常才带上尝试次数
        if attempts > 1 and outcome not in (ProbeOutcome.OK, ProbeOutcome.UNEXPECTED_STATUS):
            message = f"{message} (after {attempts} attempts)"

        return ProbeResult(
            status=next_status(store.status, outcome),
            error_message=message,
            response_time_ms=elapsed_ms,
        )

    # =========================================================================
    # 全量检查
    # =========================================================================

    async def check_all(self) -> int:
        """
        并发探测所有店铺，只持久化有变化的结果

        Returns:
            发生变化的店铺数量
        """
        stores = self.registry.list()
        if not stores:
            return 0

        results = await asyncio.gather(
            *(self.check_store(store) for store in stores),
            return_exceptions=True
        )

        changed = 0
        for store, result in zip(stores, results):
            if isinstance(result, BaseException):
                logger.error(f"Health check crashed for {store.name}: {result}")
                continue

            if (
                store.status == result.status
                and store.error_message == result.error_message
                and store.response_time_ms == result.response_time_ms
            ):
                continue

            if store.status != result.status:
                logger.info(f"Store {store.name} is now {result.status.value}")

            self.registry.update(
                store.id,
                status=result.status,
                error_message=result.error_message,
                response_time_ms=result.response_time_ms,
                last_checked=utc_now_iso(),
            )
            changed += 1

        logger.debug(f"Checked {len(stores)} stores, {changed} changed")
        return changed

    # =========================================================================
    # 订阅与循环
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def subscribe(self, subscriber: MonitorSubscriber):
        """添加订阅者；第一个订阅者会启动循环（需在事件循环内调用）"""
        if self._loop_task is None:
            self._start()
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: MonitorSubscriber):
        """移除订阅者；没有订阅者时停止循环"""
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
        if not self._subscribers and self._loop_task is not None:
            self._stop()

    def _broadcast(self, stores: List[StoreRecord]):
        for subscriber in list(self._subscribers):
            try:
                subscriber(stores)
            except Exception:
                logger.exception("Monitor subscriber failed")

    def _start(self):
        loop = asyncio.get_running_loop()
        self.registry.add_observer(self._broadcast)
        self._loop_task = loop.create_task(self._run())

    def _stop(self):
        self.registry.remove_observer(self._broadcast)
        for task in (self._loop_task, self._tick_task):
            if task is not None and not task.done():
                task.cancel()
        self._loop_task = None
        self._tick_task = None
        logger.info("Health monitor stopped")

    async def _tick(self):
        try:
            await self.check_all()
        except Exception as e:
            logger.error(f"Health monitor tick error: {e}", exc_info=True)

    async def _run(self):
        """
        固定间隔调度，不等待上一轮完成

        上一轮仍未结束时跳过本轮，保证各轮之间不重叠。
        """
        logger.info(
            f"Starting health monitor (interval={self.interval}s, "
            f"timeout={self.timeout}s, retries={self.max_retries})"
        )
        while True:
            if self._tick_task is not None and not self._tick_task.done():
                logger.debug("Previous health check still running, skipping tick")
            else:
                self._tick_task = asyncio.create_task(self._tick())
            await asyncio.sleep(self.interval)
