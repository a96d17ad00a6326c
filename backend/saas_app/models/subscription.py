"""
订阅模型
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Numeric, JSON, ForeignKey
from ..core.database import Base
from ..utils import utcnow


class Subscription(Base):
    """订阅表（每个租户预期一条有效订阅，未做唯一约束，查询取最新一条）"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", onupdate="CASCADE", ondelete="CASCADE"), nullable=False, index=True)

    # 套餐信息
    plan_name = Column(String(255), nullable=False)
    plan_type = Column(String(20), nullable=False, index=True)  # free/basic/premium/enterprise
    status = Column(String(20), default="active", index=True)  # active/cancelled/expired/suspended
    billing_cycle = Column(String(20), default="monthly")  # monthly/yearly

    # 价格信息
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), default="USD")

    # 使用限制（-1 表示不限）
    max_users = Column(Integer, nullable=True)
    max_storage = Column(BigInteger, nullable=True)

    # 功能开关
    features = Column(JSON, nullable=True)

    # 计费周期
    trial_ends_at = Column(DateTime, nullable=True)
    current_period_start = Column(DateTime, nullable=False, default=utcnow)
    current_period_end = Column(DateTime, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
