"""
多租户依赖注入
从请求上下文中获取注册表、租户与当前用户，并提供给API端点使用
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from typing import Optional
import logging
from .registry import ConnectionRegistry
from .security import get_subject_from_token
from ..schemas.tenant import TenantResponse
from ..schemas.user import UserResponse
from ..services.tenant_service import TenantService
from ..services.user_service import UserService

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_registry(request: Request) -> ConnectionRegistry:
    """应用启动时创建的连接注册表"""
    return request.app.state.registry


def get_tenant_id(request: Request) -> Optional[int]:
    """可选的租户ID（未提供时为None）"""
    return getattr(request.state, "tenant_id", None)


async def require_tenant(
    request: Request,
    registry: ConnectionRegistry = Depends(get_registry)
) -> TenantResponse:
    """
    要求请求携带租户上下文

    租户不存在返回404，租户未激活返回403。
    """
    service = TenantService(registry)
    tenant_id = getattr(request.state, "tenant_id", None)
    subdomain = getattr(request.state, "tenant_subdomain", None)

    if tenant_id is not None:
        tenant = await service.find_by_id(tenant_id)
    elif subdomain:
        tenant = await service.find_by_subdomain(subdomain)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="缺少租户信息，请提供 X-Tenant-ID 或 X-Tenant-Subdomain"
        )

    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="租户不存在")
    if tenant.status != "active":
        logger.warning(f"拒绝访问未激活租户: id={tenant.id}, status={tenant.status}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="租户未激活")

    request.state.tenant_id = tenant.id
    return tenant


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    registry: ConnectionRegistry = Depends(get_registry)
) -> UserResponse:
    user_id = get_subject_from_token(token)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的令牌",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await UserService(registry).find_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="用户不存在")
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="账户已被禁用")
    return user
