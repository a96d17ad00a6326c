"""
订阅相关Schema
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional
from datetime import datetime
from decimal import Decimal
from ..utils import utcnow


class PlanDefinition(BaseModel):
    """套餐目录项（静态配置）"""
    plan_name: str
    plan_type: str
    price: Decimal
    max_users: int
    max_storage: int
    features: Dict[str, bool]


class SubscriptionCreate(BaseModel):
    """创建订阅请求"""
    tenant_id: int
    plan_name: str
    plan_type: str
    status: str = "active"
    billing_cycle: str = "monthly"
    price: Decimal = Decimal("0.00")
    currency: str = "USD"
    max_users: Optional[int] = None
    max_storage: Optional[int] = None
    features: Dict[str, bool] = Field(default_factory=dict)
    trial_ends_at: Optional[datetime] = None
    current_period_start: datetime = Field(default_factory=utcnow)
    current_period_end: datetime


class SubscriptionUpdate(BaseModel):
    """更新订阅请求"""
    plan_name: Optional[str] = None
    plan_type: Optional[str] = None
    status: Optional[str] = None
    billing_cycle: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    max_users: Optional[int] = None
    max_storage: Optional[int] = None
    features: Optional[Dict[str, bool]] = None
    trial_ends_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class SubscriptionResponse(BaseModel):
    """订阅响应"""
    id: int
    tenant_id: int
    plan_name: str
    plan_type: str
    status: str
    billing_cycle: str
    price: Decimal
    currency: str
    max_users: Optional[int] = None
    max_storage: Optional[int] = None
    features: Optional[Dict[str, bool]] = None
    trial_ends_at: Optional[datetime] = None
    current_period_start: datetime
    current_period_end: datetime
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """状态为active且当前周期未结束"""
        now = now or utcnow()
        return self.status == "active" and now < self.current_period_end

    def is_in_trial(self, now: Optional[datetime] = None) -> bool:
        """设置了试用截止时间且尚未到期"""
        now = now or utcnow()
        return self.trial_ends_at is not None and now < self.trial_ends_at

    def has_feature(self, name: str) -> bool:
        return bool(self.features) and self.features.get(name) is True
