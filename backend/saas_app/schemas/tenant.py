"""
租户相关Schema
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from datetime import datetime


class TenantCreate(BaseModel):
    """创建租户请求（必填校验在服务层完成，缺失时返回400）"""
    name: Optional[str] = None
    subdomain: Optional[str] = None
    status: Optional[str] = "active"
    settings: Dict[str, Any] = Field(default_factory=dict)


class TenantProvisionRequest(BaseModel):
    """开通租户请求"""
    name: Optional[str] = None
    subdomain: Optional[str] = None
    plan_type: str = "free"
    billing_cycle: str = "monthly"


class TenantUpdate(BaseModel):
    """更新租户请求"""
    name: Optional[str] = None
    status: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class TenantSettingsUpdate(BaseModel):
    """合并更新租户配置"""
    settings: Optional[Dict[str, Any]] = None


class TenantSuspendRequest(BaseModel):
    """暂停租户请求"""
    reason: Optional[str] = None


class TenantResponse(BaseModel):
    """租户响应"""
    id: int
    name: str
    subdomain: str
    database_name: str
    status: str
    settings: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TenantSummary(BaseModel):
    """租户下拉列表项"""
    id: int
    name: str
    subdomain: str
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
