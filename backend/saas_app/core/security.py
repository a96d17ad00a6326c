from passlib.context import CryptContext
import bcrypt
from jose import JWTError, jwt
from datetime import timedelta
from typing import Any, Dict, Optional
from .config import settings
from ..utils import utcnow

# 密码加密上下文（工作因子来自配置）
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

def _truncate(password: str) -> bytes:
    # bcrypt 只使用前72字节
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > 72:
        password_bytes = password_bytes[:72]
    return password_bytes

def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """验证密码，兼容bcrypt和passlib生成的哈希"""
    if not plain_password or not hashed_password:
        return False
    try:
        # 先尝试使用passlib验证
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError, AttributeError):
        # 如果passlib失败，直接使用bcrypt验证
        try:
            return bcrypt.checkpw(_truncate(plain_password), hashed_password.encode('utf-8'))
        except ValueError:
            return False

def get_password_hash(password: str) -> str:
    """生成密码哈希，优先使用passlib，失败则使用bcrypt"""
    try:
        return pwd_context.hash(password)
    except (ValueError, TypeError, AttributeError):
        # 如果passlib失败，直接使用bcrypt
        salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
        return bcrypt.hashpw(_truncate(password), salt).decode('utf-8')

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt

def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

def get_subject_from_token(token: str) -> Optional[str]:
    """Token 的 sub 为用户ID"""
    payload = decode_access_token(token)
    if payload is None:
        return None
    subject: Optional[str] = payload.get("sub")
    return subject

def get_tenant_id_from_token(token: str) -> Optional[int]:
    """从JWT Token中提取tenant_id"""
    payload = decode_access_token(token)
    if payload is None:
        return None
    tenant_id = payload.get("tenant_id")
    try:
        return int(tenant_id) if tenant_id is not None else None
    except (ValueError, TypeError):
        return None
