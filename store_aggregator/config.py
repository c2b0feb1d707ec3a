"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """键值存储配置"""
    path: str = "data/store_aggregator.json"
    key: str = "woocommerce_servers"


class MonitorConfig(BaseModel):
    """健康检查配置"""
    interval: float = 5
    timeout: float = 10
    max_retries: int = 2


class FetchConfig(BaseModel):
    """数据拉取配置"""
    api_prefix: str = "/wp-json/wc/v3"
    orders_page_size: int = 20
    products_page_size: int = 20
    coupons_page_size: int = 100
    # None 表示数据拉取不设超时
    timeout: Optional[float] = None


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    admin_token: str = "CHANGE_ME_IN_PRODUCTION"


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseModel):
    """应用配置（完整配置）"""
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class EnvSettings(BaseSettings):
    """环境变量覆盖（前缀 STORE_AGGREGATOR_）"""
    model_config = SettingsConfigDict(env_prefix="STORE_AGGREGATOR_")

    config_path: str = "config.yaml"
    log_level: Optional[str] = None


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 STORE_AGGREGATOR_CONFIG_PATH
    3. 默认路径 config.yaml
    """
    env = EnvSettings()
    if config_path is None:
        config_path = env.config_path

    config = AppConfig()
    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
        if raw_config:
            # Paths inside config.yaml are relative to the config file itself.
            base_dir = config_file.resolve().parent

            def _resolve_path(value: Optional[str]) -> Optional[str]:
                if not value:
                    return value
                path = Path(value)
                if path.is_absolute():
                    return str(path)
                return str((base_dir / path).resolve())

            raw_config.setdefault("storage", {})
            if "path" in raw_config["storage"]:
                raw_config["storage"]["path"] = _resolve_path(raw_config["storage"]["path"])

            raw_config.setdefault("logging", {})
            raw_config["logging"]["file"] = _resolve_path(raw_config["logging"].get("file"))

            config = AppConfig(**raw_config)

    if env.log_level:
        config.logging.level = env.log_level

    return config


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
