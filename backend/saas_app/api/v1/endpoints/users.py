"""
用户API（多租户）
租户ID取自请求体、请求上下文（JWT / X-Tenant-ID），都没有时使用默认租户
"""
from fastapi import APIRouter, Depends, Query, Request, status
from typing import Optional
import logging

from ....core.constants import DEFAULT_USER_LIST_LIMIT, MAX_PAGE_SIZE
from ....core.exceptions import NotFoundError
from ....core.rate_limit import limiter, get_rate_limit
from ....core.registry import ConnectionRegistry
from ....core.responses import APIResponse, SuccessResponse
from ....core.tenant_dependency import get_registry, get_tenant_id
from ....schemas.tenant import TenantProvisionRequest
from ....schemas.user import UserCreate, UserUpdate
from ....services.provisioning_service import TenantProvisioningService
from ....services.tenant_service import TenantService
from ....services.user_service import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/tenants")
async def list_tenants_for_dropdown(registry: ConnectionRegistry = Depends(get_registry)):
    """激活租户列表（前端下拉框）"""
    tenants = await TenantService(registry).list_active()
    return APIResponse.success(tenants)


@router.post("/tenants", status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("provision"))
async def create_tenant_from_frontend(
    request: Request,
    body: TenantProvisionRequest,
    registry: ConnectionRegistry = Depends(get_registry)
):
    """前端创建租户（免费套餐、月付）"""
    result = await TenantProvisioningService(registry).provision(
        name=body.name,
        subdomain=body.subdomain,
        created_by="frontend",
    )
    return SuccessResponse(
        data={"tenant": result.tenant, "subscription": result.subscription},
        message="租户创建成功",
        status_code=status.HTTP_201_CREATED,
        warnings=result.warnings,
    )


@router.get("")
async def list_users(
    tenant_id: Optional[int] = Query(None, description="指定租户，默认取请求上下文中的租户"),
    all_tenants: bool = Query(False, description="查询所有租户的用户"),
    skip: int = Query(0, ge=0),
    limit: int = Query(DEFAULT_USER_LIST_LIMIT, ge=1, le=MAX_PAGE_SIZE),
    context_tenant_id: Optional[int] = Depends(get_tenant_id),
    registry: ConnectionRegistry = Depends(get_registry)
):
    users = await UserService(registry).find_all(
        tenant_id=tenant_id or context_tenant_id,
        all_tenants=all_tenants,
        skip=skip,
        limit=limit,
    )
    return APIResponse.success(users)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    context_tenant_id: Optional[int] = Depends(get_tenant_id),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """
    创建用户

    写入主集合；tenant_id > 1 时同时写入租户库（相同 _id）。
    租户库写入失败不影响创建结果，会在 warnings 中返回。
    """
    if body.tenant_id is None:
        body.tenant_id = context_tenant_id
    result = await UserService(registry).create(body)
    return SuccessResponse(
        data=result.record,
        message="用户创建成功",
        status_code=status.HTTP_201_CREATED,
        warnings=result.warnings,
    )


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    context_tenant_id: Optional[int] = Depends(get_tenant_id),
    registry: ConnectionRegistry = Depends(get_registry)
):
    user = await UserService(registry).find_by_id(user_id, context_tenant_id)
    if user is None:
        raise NotFoundError(f"用户不存在: {user_id}")
    return APIResponse.success(user)


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdate,
    context_tenant_id: Optional[int] = Depends(get_tenant_id),
    registry: ConnectionRegistry = Depends(get_registry)
):
    result = await UserService(registry).update(user_id, body, tenant_id=context_tenant_id)
    return APIResponse.written(result, message="用户已更新")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    context_tenant_id: Optional[int] = Depends(get_tenant_id),
    registry: ConnectionRegistry = Depends(get_registry)
):
    result = await UserService(registry).delete(user_id, tenant_id=context_tenant_id)
    return APIResponse.success(message="用户已删除", warnings=result.warnings)
