"""
API 路由
"""

from . import entities, stores

__all__ = ["entities", "stores"]
