"""
测试公共夹具
"""

import sys
from pathlib import Path

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from store_aggregator.config import reset_config
from store_aggregator.models import StoreCreate
from store_aggregator.registry import StoreRegistry, reset_registry
from store_aggregator.storage import KeyValueStore


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """每个测试使用默认配置，避免读到工作目录下的 config.yaml"""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STORE_AGGREGATOR_CONFIG_PATH", raising=False)
    monkeypatch.delenv("STORE_AGGREGATOR_LOG_LEVEL", raising=False)
    reset_config()
    reset_registry()
    yield
    reset_config()
    reset_registry()


@pytest.fixture
def storage(tmp_path) -> KeyValueStore:
    return KeyValueStore(str(tmp_path / "data" / "kv.json"))


@pytest.fixture
def registry(storage) -> StoreRegistry:
    return StoreRegistry(storage, key="woocommerce_servers")


def make_store(registry: StoreRegistry, name: str, host: str):
    """注册一个测试店铺，base_url 为 http://<host>"""
    return registry.add(StoreCreate(
        name=name,
        base_url=f"http://{host}",
        consumer_key=f"ck_{name}",
        consumer_secret=f"cs_{name}",
    ))
