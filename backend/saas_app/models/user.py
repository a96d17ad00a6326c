from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, UniqueConstraint
from ..core.database import Base
from ..utils import utcnow

class User(Base):
    """用户表（文档库用户的非权威镜像，按调用方要求双写）"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # 多租户支持（tenant_id=1 为默认/遗留租户）
    tenant_id = Column(Integer, ForeignKey("tenants.id", onupdate="CASCADE", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)  # tenant_id+email 唯一
    password = Column(String(255), nullable=True)  # bcrypt 哈希，OAuth 用户为空

    # 可选资料
    age = Column(Integer, nullable=True)
    profession = Column(String(255), nullable=True)
    summary = Column(Text, nullable=True)

    # 外部身份（Google OAuth）
    google_id = Column(String(255), nullable=True, index=True)
    avatar = Column(String(512), nullable=True)

    # 角色：admin/user/moderator/tenant
    role = Column(String(20), default="user")
    # 账户状态：active/inactive/suspended
    status = Column(String(20), default="active")
    email_verified = Column(Boolean, default=False)
    last_login = Column(DateTime, nullable=True)

    # 时间戳
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # 唯一约束：同一租户内email唯一
    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_users_tenant_email'),
    )
