"""
工具函数模块
"""
from .time_utils import utcnow

__all__ = [
    "utcnow",
]
