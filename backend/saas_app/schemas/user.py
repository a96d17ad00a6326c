from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from datetime import datetime

# 用户创建模式（必填校验在服务层完成）
class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    tenant_id: Optional[int] = None
    age: Optional[int] = None
    profession: Optional[str] = None
    summary: Optional[str] = None
    google_id: Optional[str] = None
    avatar: Optional[str] = None
    role: str = "user"
    status: str = "active"
    email_verified: bool = False
    last_login: Optional[datetime] = None

# 用户更新模式
class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    age: Optional[int] = None
    profession: Optional[str] = None
    summary: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    email_verified: Optional[bool] = None

# 用户响应模式 (返回给前端，不含密码)
class UserResponse(BaseModel):
    id: str
    tenant_id: int
    name: str
    email: str
    age: Optional[int] = None
    profession: Optional[str] = None
    summary: Optional[str] = None
    google_id: Optional[str] = None
    avatar: Optional[str] = None
    role: str = "user"
    status: str = "active"
    email_verified: bool = False
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(extra="ignore")

# 登录相关模式
class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserRegister(BaseModel):
    name: str
    email: EmailStr
    password: str
    age: Optional[int] = None
    profession: Optional[str] = None
    summary: Optional[str] = None

class Token(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse

# 外部身份提供方返回的资料
class OAuthProfile(BaseModel):
    id: str
    display_name: str = Field(..., alias="displayName")
    emails: List[str] = Field(default_factory=list)
    photos: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def primary_email(self) -> Optional[str]:
        return self.emails[0] if self.emails else None

    @property
    def primary_photo(self) -> Optional[str]:
        return self.photos[0] if self.photos else None
