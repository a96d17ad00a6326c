"""
租户API
开通、查询、配置与状态管理
"""
from fastapi import APIRouter, Body, Depends, Query, Request, status
from typing import Optional
import logging

from ....core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ....core.exceptions import ValidationError
from ....core.rate_limit import limiter, get_rate_limit
from ....core.registry import ConnectionRegistry
from ....core.responses import APIResponse, SuccessResponse
from ....core.tenant_dependency import get_registry, require_tenant
from ....schemas.tenant import TenantProvisionRequest, TenantResponse, TenantSettingsUpdate, TenantSuspendRequest
from ....services.provisioning_service import TenantProvisioningService
from ....services.subscription_service import SubscriptionService
from ....services.tenant_service import TenantService
from ....services.user_service import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("provision"))
async def create_tenant(
    request: Request,
    body: TenantProvisionRequest,
    registry: ConnectionRegistry = Depends(get_registry)
):
    """
    开通租户

    创建租户记录、租户库、执行租户迁移并创建默认订阅。

    **错误响应**:
    - `400`: 名称或子域名缺失、套餐无效
    - `409`: 子域名已存在
    - `500`: 开通流程在租户记录创建之后失败（响应中包含失败步骤）
    """
    result = await TenantProvisioningService(registry).provision(
        name=body.name,
        subdomain=body.subdomain,
        plan_type=body.plan_type,
        billing_cycle=body.billing_cycle,
        created_by="api",
    )
    return SuccessResponse(
        data={"tenant": result.tenant, "subscription": result.subscription},
        message="租户创建成功",
        status_code=status.HTTP_201_CREATED,
        warnings=result.warnings,
    )


@router.get("")
async def list_tenants(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status_filter: Optional[str] = Query("active", alias="status"),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """分页查询租户（平台管理）"""
    result = await TenantService(registry).find_all(page=page, per_page=limit, status=status_filter or None)
    return APIResponse.paginated(result)


@router.get("/details")
async def get_tenant_details(
    tenant: TenantResponse = Depends(require_tenant),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """当前租户及其订阅"""
    subscription = await SubscriptionService(registry).find_by_tenant_id(tenant.id)
    return APIResponse.success({"tenant": tenant, "subscription": subscription})


@router.put("/settings")
async def update_tenant_settings(
    body: TenantSettingsUpdate,
    tenant: TenantResponse = Depends(require_tenant),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """合并更新当前租户的配置"""
    if body.settings is None:
        raise ValidationError("settings 必须是对象")
    result = await TenantService(registry).update_settings(tenant.id, body.settings)
    return APIResponse.success(
        {"settings": result.record.settings},
        message="租户配置已更新",
        warnings=result.warnings,
    )


@router.get("/stats")
async def get_tenant_stats(
    tenant: TenantResponse = Depends(require_tenant),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """当前租户的用户数、订阅与状态统计"""
    user_count = await UserService(registry).count(tenant.id)
    subscription = await SubscriptionService(registry).find_by_tenant_id(tenant.id)

    max_users = subscription.max_users if subscription and subscription.max_users else 0
    stats = {
        "users": {
            "total": user_count,
            "limit": max_users,
            "remaining": max(0, max_users - user_count) if max_users > 0 else -1,
        },
        "subscription": {
            "plan": subscription.plan_type if subscription else "unknown",
            "status": subscription.status if subscription else "inactive",
            "expires": subscription.current_period_end if subscription else None,
            "is_active": subscription.is_active() if subscription else False,
            "is_trial": subscription.is_in_trial() if subscription else False,
        },
        "tenant": {
            "status": tenant.status,
            "created": tenant.created_at,
            "subdomain": tenant.subdomain,
        },
    }
    return APIResponse.success(stats)


@router.post("/{tenant_id}/suspend")
async def suspend_tenant(
    tenant_id: int,
    body: Optional[TenantSuspendRequest] = Body(default=None),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """暂停租户"""
    reason = body.reason if body else None
    result = await TenantService(registry).suspend(tenant_id, reason)
    return APIResponse.written(result, message="租户已暂停")


@router.post("/{tenant_id}/activate")
async def activate_tenant(
    tenant_id: int,
    registry: ConnectionRegistry = Depends(get_registry)
):
    """重新激活租户"""
    result = await TenantService(registry).activate(tenant_id)
    return APIResponse.written(result, message="租户已重新激活")
