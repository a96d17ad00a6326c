"""
订阅API
"""
from fastapi import APIRouter, Depends
import logging

from ....core.exceptions import NotFoundError
from ....core.registry import ConnectionRegistry
from ....core.responses import APIResponse
from ....core.tenant_dependency import get_registry, require_tenant
from ....schemas.tenant import TenantResponse
from ....services.subscription_service import SubscriptionService, get_default_plans

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/plans")
async def list_plans():
    """套餐目录"""
    return APIResponse.success(get_default_plans())


@router.get("/current")
async def get_current_subscription(
    tenant: TenantResponse = Depends(require_tenant),
    registry: ConnectionRegistry = Depends(get_registry)
):
    subscription = await SubscriptionService(registry).find_by_tenant_id(tenant.id)
    if subscription is None:
        raise NotFoundError("当前租户没有订阅")
    return APIResponse.success({
        "subscription": subscription,
        "is_active": subscription.is_active(),
        "is_trial": subscription.is_in_trial(),
    })


@router.post("/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: int,
    tenant: TenantResponse = Depends(require_tenant),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """取消当前租户的订阅"""
    service = SubscriptionService(registry)
    subscription = await service.find_by_id(subscription_id)
    if subscription is None or subscription.tenant_id != tenant.id:
        raise NotFoundError(f"订阅不存在: {subscription_id}")

    result = await service.cancel(subscription_id)
    logger.info(f"订阅已取消: id={subscription_id}, tenant_id={tenant.id}")
    return APIResponse.written(result, message="订阅已取消")
