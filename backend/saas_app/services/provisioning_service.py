"""
租户开通流程

校验 → 检查子域名 → 创建租户记录 → 创建租户库 → 执行租户迁移 → 创建默认订阅

各步骤按顺序执行，任一步骤失败即中止。租户记录创建之后的失败不做补偿：
已创建的租户记录、租户库和已执行的迁移都会保留，错误以 ProvisioningError 抛出，
其中带有失败的步骤名和租户ID，便于人工清理或重试。
"""
import logging
from typing import List, Optional
from pydantic import BaseModel, Field
from ..core.constants import BILLING_CYCLES, PLAN_TYPES
from ..core.exceptions import ProvisioningError, ValidationError
from ..core.registry import ConnectionRegistry
from ..core.store import StoreTarget
from ..migrations.runner import MigrationReport, MigrationRunner
from ..schemas.subscription import SubscriptionResponse
from ..schemas.tenant import TenantCreate, TenantResponse
from .subscription_service import SubscriptionService, build_default
from .tenant_service import TenantService

logger = logging.getLogger(__name__)

STEP_CREATE_DATABASES = "create_databases"
STEP_RUN_MIGRATIONS = "run_migrations"
STEP_CREATE_SUBSCRIPTION = "create_subscription"


class ProvisioningResult(BaseModel):
    """开通结果"""
    tenant: TenantResponse
    subscription: SubscriptionResponse
    migrations: MigrationReport
    warnings: List[str] = Field(default_factory=list)


class TenantProvisioningService:
    """新租户开通"""

    def __init__(self, registry: ConnectionRegistry, migration_runner: Optional[MigrationRunner] = None):
        self.registry = registry
        self.tenants = TenantService(registry)
        self.subscriptions = SubscriptionService(registry)
        self.migration_runner = migration_runner or MigrationRunner(registry)

    async def provision(
        self,
        name: Optional[str],
        subdomain: Optional[str],
        plan_type: str = "free",
        billing_cycle: str = "monthly",
        created_by: str = "api"
    ) -> ProvisioningResult:
        """
        开通租户

        Raises:
            ValidationError: 名称/子域名缺失，或套餐/计费周期无效（未写入任何数据）
            ConflictError: 子域名已存在（未写入任何数据）
            ProvisioningError: 租户记录创建之后的步骤失败
        """
        if not (name or "").strip() or not (subdomain or "").strip():
            raise ValidationError("租户名称和子域名为必填项")
        if plan_type not in PLAN_TYPES:
            raise ValidationError(f"未知的套餐类型: {plan_type}")
        if billing_cycle not in BILLING_CYCLES:
            raise ValidationError(f"未知的计费周期: {billing_cycle}")

        tenant_result = await self.tenants.create(TenantCreate(
            name=name,
            subdomain=subdomain,
            status="active",
            settings={"created_by": created_by, "onboarding_completed": False},
        ))
        tenant: TenantResponse = tenant_result.record
        warnings = list(tenant_result.warnings)
        logger.info(f"开始开通租户: id={tenant.id}, subdomain={tenant.subdomain}, plan={plan_type}")

        step = STEP_CREATE_DATABASES
        try:
            await self.registry.create_tenant_databases(tenant.id, StoreTarget.BOTH)

            step = STEP_RUN_MIGRATIONS
            report = await self.migration_runner.run(tenant.id, StoreTarget.BOTH)

            step = STEP_CREATE_SUBSCRIPTION
            subscription_result = await self.subscriptions.create(
                build_default(tenant.id, plan_type, billing_cycle)
            )
            warnings.extend(subscription_result.warnings)
        except Exception as e:
            # 不回滚已创建的租户记录与租户库
            logger.error(
                f"租户开通失败: tenant_id={tenant.id}, step={step}, error={e}。"
                f"租户记录已保留，需要人工清理或重试",
                exc_info=True
            )
            raise ProvisioningError(f"租户开通失败（{step}）: {e}", step=step, tenant_id=tenant.id) from e

        logger.info(f"租户开通完成: id={tenant.id}, subdomain={tenant.subdomain}")
        return ProvisioningResult(
            tenant=tenant,
            subscription=subscription_result.record,
            migrations=report,
            warnings=warnings,
        )
