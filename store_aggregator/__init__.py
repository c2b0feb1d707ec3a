"""
Store Aggregator - 多店铺 WooCommerce 聚合服务

负责：
- 维护店铺注册表（JSON 键值存储持久化）
- 每 5s 探测店铺健康状态（超时重试）
- 并发拉取多个店铺的订单/商品/优惠券并去重合并
- 提供 REST API 给前端
"""

__version__ = "1.0.0"
