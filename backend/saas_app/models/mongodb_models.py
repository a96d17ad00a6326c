"""
MongoDB 文档模型定义
这些不是SQLAlchemy模型，而是描述MongoDB文档结构并负责序列化的Pydantic类
"""
from typing import Dict, Any, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from ..utils import utcnow


class MongoDocument(BaseModel):
    """文档基类"""

    model_config = ConfigDict(extra="ignore")

    def to_document(self) -> Dict[str, Any]:
        """转换为待写入的文档"""
        return self.model_dump(exclude_none=False)


class TenantDocument(MongoDocument):
    """租户镜像文档（非权威，以关系型库为准）"""
    id: int = Field(..., description="关系型库中的 tenants.id")
    name: str
    subdomain: str
    database_name: str
    status: str = "active"
    settings: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class UserDocument(MongoDocument):
    """
    用户文档结构（MongoDB）

    主集合与租户集合中的两份副本共享同一个 _id。
    tenant_id 统一存储为整数。
    """
    tenant_id: int
    name: str
    email: str
    password: Optional[str] = None  # bcrypt 哈希
    age: Optional[int] = None
    profession: Optional[str] = None
    summary: Optional[str] = None
    google_id: Optional[str] = None
    avatar: Optional[str] = None
    role: str = "user"
    status: str = "active"
    email_verified: bool = False
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        # 可选字段为空时不写入，避免违反 $jsonSchema 的类型约束
        document = self.model_dump()
        return {key: value for key, value in document.items() if value is not None}


class SubscriptionDocument(MongoDocument):
    """订阅镜像文档结构（MongoDB）"""
    id: Optional[int] = Field(default=None, description="关系型库中的 subscriptions.id")
    tenant_id: int
    plan_name: str
    plan_type: str
    status: str = "active"
    billing_cycle: str = "monthly"
    price: float
    currency: str = "USD"
    max_users: Optional[int] = None
    max_storage: Optional[int] = None
    features: Dict[str, bool] = Field(default_factory=dict)
    trial_ends_at: Optional[datetime] = None
    current_period_start: datetime
    current_period_end: datetime
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump()
        return {key: value for key, value in document.items() if value is not None}


def to_mongo_value(value: Any) -> Any:
    """BSON 不支持 Decimal，写入前转换为 float"""
    if isinstance(value, Decimal):
        return float(value)
    return value
