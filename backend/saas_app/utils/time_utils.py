"""
时间工具
所有存储统一使用不带时区的UTC时间
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """当前UTC时间（naive）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
