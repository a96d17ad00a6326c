"""
租户模型
用于SaaS多租户架构，关系型库是租户的系统记录源
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from ..core.database import Base
from ..utils import utcnow


class Tenant(Base):
    """租户表"""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)  # 租户名称（公司名称）
    subdomain = Column(String(255), unique=True, nullable=False, index=True)  # 全局唯一子域名
    database_name = Column(String(255), nullable=False)  # tenant_<subdomain>

    # 租户状态：active/inactive/suspended
    status = Column(String(20), default="active", index=True)

    # 开放配置（暂停原因、引导状态等）
    settings = Column(JSON, nullable=True)

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
