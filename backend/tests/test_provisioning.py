"""
租户开通流程测试
"""
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from sqlalchemy import inspect
from saas_app.core.exceptions import ConflictError, ProvisioningError, StoreOperationError, ValidationError
from saas_app.services.provisioning_service import (
    STEP_CREATE_SUBSCRIPTION,
    STEP_RUN_MIGRATIONS,
    TenantProvisioningService,
)
from saas_app.services.subscription_service import SubscriptionService
from saas_app.services.tenant_service import TenantService


@pytest.fixture
def service(migrated_registry):
    return TenantProvisioningService(migrated_registry)


class TestProvisioning:
    """开通流程测试"""

    @pytest.mark.asyncio
    async def test_provision_end_to_end(self, service, migrated_registry):
        """测试开通：租户记录、租户库迁移、默认订阅"""
        result = await service.provision("Acme Corp", "acme")

        tenant = result.tenant
        assert tenant.status == "active"
        assert tenant.subdomain == "acme"
        assert tenant.settings == {"created_by": "api", "onboarding_completed": False}

        subscription = result.subscription
        assert subscription.tenant_id == tenant.id
        assert subscription.plan_type == "free"
        assert subscription.price == Decimal("0.00")
        assert subscription.max_users == 5
        assert subscription.billing_cycle == "monthly"

        assert result.migrations.tenant_id == tenant.id
        assert "0001_create_tenants_table" in result.migrations.relational
        tables = inspect(migrated_registry.relational(tenant.id)).get_table_names()
        assert {"tenants", "users", "subscriptions", "migrations"} <= set(tables)
        collections = await migrated_registry.document(tenant.id).list_collection_names()
        assert "users" in collections
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_provision_paid_plan(self, service):
        """测试开通付费套餐"""
        result = await service.provision("Big Co", "bigco", plan_type="enterprise", billing_cycle="yearly")

        assert result.subscription.plan_type == "enterprise"
        assert result.subscription.max_users == -1
        assert (result.subscription.current_period_end - result.subscription.current_period_start).days == 365

    @pytest.mark.asyncio
    async def test_duplicate_subdomain(self, service, migrated_registry):
        """测试子域名已存在时不写入任何数据"""
        await service.provision("Acme Corp", "acme")

        with pytest.raises(ConflictError):
            await service.provision("Acme Again", "acme")

        page = await TenantService(migrated_registry).find_all(status=None)
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_invalid_plan_writes_nothing(self, service, migrated_registry):
        """测试套餐无效时在写入前拒绝"""
        with pytest.raises(ValidationError):
            await service.provision("Acme Corp", "acme", plan_type="platinum")
        with pytest.raises(ValidationError):
            await service.provision("Acme Corp", "acme", billing_cycle="weekly")

        assert await TenantService(migrated_registry).find_by_subdomain("acme") is None

    @pytest.mark.asyncio
    async def test_missing_fields(self, service):
        """测试名称和子域名必填"""
        with pytest.raises(ValidationError):
            await service.provision("", "acme")
        with pytest.raises(ValidationError):
            await service.provision("Acme", None)

    @pytest.mark.asyncio
    async def test_migration_failure_keeps_tenant(self, migrated_registry):
        """测试迁移失败时报告步骤，租户记录保留"""
        runner = AsyncMock()
        runner.run.side_effect = StoreOperationError("tenant database unreachable")
        service = TenantProvisioningService(migrated_registry, migration_runner=runner)

        with pytest.raises(ProvisioningError) as exc_info:
            await service.provision("Acme Corp", "acme")

        error = exc_info.value
        assert error.step == STEP_RUN_MIGRATIONS
        assert isinstance(error.__cause__, StoreOperationError)
        tenant = await TenantService(migrated_registry).find_by_subdomain("acme")
        assert tenant is not None
        assert error.tenant_id == tenant.id
        assert await SubscriptionService(migrated_registry).find_by_tenant_id(tenant.id) is None

    @pytest.mark.asyncio
    async def test_subscription_failure(self, service):
        """测试订阅创建失败时报告步骤"""
        with patch.object(
            SubscriptionService, "create", new=AsyncMock(side_effect=StoreOperationError("db down"))
        ):
            with pytest.raises(ProvisioningError) as exc_info:
                await service.provision("Acme Corp", "acme")

        assert exc_info.value.step == STEP_CREATE_SUBSCRIPTION
