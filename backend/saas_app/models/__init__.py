"""
数据模型统一导入
"""
from .tenant import Tenant
from .user import User
from .subscription import Subscription
from .migration import Migration
from .mongodb_models import TenantDocument, UserDocument, SubscriptionDocument

__all__ = [
    "Tenant",
    "User",
    "Subscription",
    "Migration",
    "TenantDocument",
    "UserDocument",
    "SubscriptionDocument",
]
