"""
单元测试：健康检查

测试覆盖：
- 超时重试（两次超时后成功 / 三次全部超时）
- 网络错误、HTTP 错误、非 200 状态码的分类
- 结果无变化时不写入、不通知
- 订阅者驱动的循环启停
"""

import asyncio

import httpx
import pytest

from store_aggregator.health import HealthMonitor, classify_error
from store_aggregator.models import ProbeResult
from store_aggregator.status import ProbeOutcome, StoreStatus

from conftest import make_store


def make_transport(handler):
    return httpx.MockTransport(handler)


def timeouts_then_ok(failures: int):
    """前 failures 次请求超时，之后返回 200"""
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] <= failures:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={"environment": {}})

    return handler, calls


class TestClassifyError:

    def test_timeout(self):
        assert classify_error(httpx.ConnectTimeout("t")) == ProbeOutcome.TIMEOUT

    def test_network(self):
        assert classify_error(httpx.ConnectError("refused")) == ProbeOutcome.NETWORK_ERROR

    def test_unexpected(self):
        assert classify_error(ValueError("bad json")) == ProbeOutcome.UNEXPECTED_ERROR


class TestCheckStore:
    """单店铺探测"""

    def test_online_on_first_attempt(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        result = asyncio.run(monitor.check_store(store))

        assert result.status == StoreStatus.ONLINE
        assert result.error_message is None
        assert result.response_time_ms is not None
        assert seen[0].url.path == "/wp-json/wc/v3/system_status"
        assert seen[0].headers["authorization"].startswith("Basic ")

    def test_two_timeouts_then_success_is_online(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        handler, calls = timeouts_then_ok(2)

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        result = asyncio.run(monitor.check_store(store))

        assert calls["count"] == 3
        assert result.status == StoreStatus.ONLINE
        assert result.error_message is None

    def test_three_timeouts_is_offline_with_attempt_count(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        handler, calls = timeouts_then_ok(10)

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        result = asyncio.run(monitor.check_store(store))

        assert calls["count"] == 3
        assert result.status == StoreStatus.OFFLINE
        assert result.error_message == "timed out (after 3 attempts)"

    def test_connection_error_is_offline_without_retry(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        result = asyncio.run(monitor.check_store(store))

        assert len(calls) == 1
        assert result.status == StoreStatus.OFFLINE
        assert result.error_message == "connection refused"

    def test_timeout_then_connection_error_notes_attempts(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        calls = {"count": 0}

        def handler(request):
            calls["count"] += 1
            if calls["count"] == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            raise httpx.ConnectError("connection refused", request=request)

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        result = asyncio.run(monitor.check_store(store))

        assert result.status == StoreStatus.OFFLINE
        assert result.error_message == "connection refused (after 2 attempts)"

    def test_bad_credentials_is_error(self, registry):
        store = make_store(registry, "alpha", "alpha.example")

        def handler(request):
            return httpx.Response(401, json={"code": "woocommerce_rest_cannot_view"})

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        result = asyncio.run(monitor.check_store(store))

        assert result.status == StoreStatus.ERROR
        assert "401" in result.error_message
        assert "attempts" not in result.error_message

    def test_non_200_success_is_error(self, registry):
        store = make_store(registry, "alpha", "alpha.example")

        monitor = HealthMonitor(
            registry, transport=make_transport(lambda request: httpx.Response(204))
        )
        result = asyncio.run(monitor.check_store(store))

        assert result.status == StoreStatus.ERROR
        assert result.error_message == "Server returned unexpected status"

    def test_timeout_then_non_200_success_has_no_attempt_count(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            if calls["count"] == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(204)

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        result = asyncio.run(monitor.check_store(store))

        assert calls["count"] == 2
        assert result.status == StoreStatus.ERROR
        assert result.error_message == "Server returned unexpected status"


class TestCheckAll:
    """全量检查"""

    def test_updates_registry_for_each_store(self, registry):
        alpha = make_store(registry, "alpha", "alpha.example")
        beta = make_store(registry, "beta", "beta.example")

        def handler(request):
            if request.url.host == "alpha.example":
                return httpx.Response(200, json={})
            raise httpx.ConnectError("unreachable", request=request)

        monitor = HealthMonitor(registry, transport=make_transport(handler))
        changed = asyncio.run(monitor.check_all())

        assert changed == 2
        assert registry.get(alpha.id).status == StoreStatus.ONLINE
        assert registry.get(alpha.id).last_checked.endswith("Z")
        assert registry.get(beta.id).status == StoreStatus.OFFLINE
        assert registry.get(beta.id).error_message == "unreachable"

    def test_probes_run_concurrently(self, registry):
        for i in range(3):
            make_store(registry, f"s{i}", f"s{i}.example")

        state = {"active": 0, "peak": 0}

        async def fake_check(store):
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0.01)
            state["active"] -= 1
            return ProbeResult(status=StoreStatus.ONLINE, response_time_ms=1)

        monitor = HealthMonitor(registry)
        monitor.check_store = fake_check
        asyncio.run(monitor.check_all())

        assert state["peak"] == 3

    def test_identical_results_do_not_write_or_notify(self, registry, storage, monkeypatch):
        make_store(registry, "alpha", "alpha.example")

        async def fake_check(store):
            return ProbeResult(status=StoreStatus.ONLINE, error_message=None, response_time_ms=42)

        monitor = HealthMonitor(registry)
        monitor.check_store = fake_check

        writes = []
        original_set_item = storage.set_item

        def counting_set_item(key, value):
            writes.append(key)
            original_set_item(key, value)

        monkeypatch.setattr(storage, "set_item", counting_set_item)
        notifications = []
        registry.add_observer(notifications.append)

        assert asyncio.run(monitor.check_all()) == 1
        assert len(writes) == 1
        assert len(notifications) == 1

        assert asyncio.run(monitor.check_all()) == 0
        assert len(writes) == 1
        assert len(notifications) == 1

    def test_changed_response_time_is_persisted(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        times = iter([10, 20])

        async def fake_check(_store):
            return ProbeResult(status=StoreStatus.ONLINE, response_time_ms=next(times))

        monitor = HealthMonitor(registry)
        monitor.check_store = fake_check

        asyncio.run(monitor.check_all())
        asyncio.run(monitor.check_all())

        assert registry.get(store.id).response_time_ms == 20

    def test_no_stores(self, registry):
        monitor = HealthMonitor(registry)
        assert asyncio.run(monitor.check_all()) == 0


class TestMonitorLoop:
    """订阅驱动的检查循环"""

    def test_subscribe_starts_loop_and_broadcasts(self, registry):
        store = make_store(registry, "alpha", "alpha.example")
        monitor = HealthMonitor(
            registry,
            interval=0.01,
            transport=make_transport(lambda request: httpx.Response(200, json={})),
        )
        received = []

        async def scenario():
            monitor.subscribe(received.append)
            assert monitor.is_running
            await asyncio.sleep(0.1)
            monitor.unsubscribe(received.append)
            assert not monitor.is_running

        asyncio.run(scenario())

        assert registry.get(store.id).status == StoreStatus.ONLINE
        assert received
        assert received[-1][0].status == StoreStatus.ONLINE

    def test_loop_keeps_running_until_last_subscriber_leaves(self, registry):
        monitor = HealthMonitor(registry, interval=0.01)
        first, second = [], []

        async def scenario():
            monitor.subscribe(first.append)
            monitor.subscribe(second.append)
            monitor.unsubscribe(first.append)
            assert monitor.is_running
            monitor.unsubscribe(second.append)
            assert not monitor.is_running

        asyncio.run(scenario())

    def test_registry_changes_forwarded_while_running(self, registry):
        monitor = HealthMonitor(registry, interval=60)
        received = []

        async def fake_check_all():
            return 0

        monitor.check_all = fake_check_all

        async def scenario():
            monitor.subscribe(received.append)
            make_store(registry, "alpha", "alpha.example")
            monitor.unsubscribe(received.append)
            make_store(registry, "beta", "beta.example")

        asyncio.run(scenario())

        assert [[s.name for s in stores] for stores in received] == [["alpha"]]

    def test_failing_subscriber_is_isolated(self, registry):
        monitor = HealthMonitor(registry, interval=60)
        good = []

        def bad(_stores):
            raise RuntimeError("subscriber bug")

        async def fake_check_all():
            return 0

        monitor.check_all = fake_check_all

        async def scenario():
            monitor.subscribe(bad)
            monitor.subscribe(good.append)
            make_store(registry, "alpha", "alpha.example")
            monitor.unsubscribe(bad)
            monitor.unsubscribe(good.append)

        asyncio.run(scenario())
        assert len(good) == 1

    def test_slow_tick_is_not_overlapped(self, registry):
        monitor = HealthMonitor(registry, interval=0.01)
        state = {"active": 0, "peak": 0, "runs": 0}

        async def slow_check_all():
            state["active"] += 1
            state["runs"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0.05)
            state["active"] -= 1
            return 0

        monitor.check_all = slow_check_all

        async def scenario():
            monitor.subscribe(print)
            await asyncio.sleep(0.12)
            monitor.unsubscribe(print)

        asyncio.run(scenario())

        assert state["peak"] == 1
        assert state["runs"] >= 2

    def test_subscribe_requires_running_loop(self, registry):
        monitor = HealthMonitor(registry)
        with pytest.raises(RuntimeError):
            monitor.subscribe(print)

        assert monitor._subscribers == []
        assert monitor.is_running is False
        assert registry._observers == []
