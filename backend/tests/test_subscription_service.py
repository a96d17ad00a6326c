"""
订阅服务测试
"""
import pytest
from unittest.mock import patch
from datetime import datetime, timedelta
from decimal import Decimal
from saas_app.core.exceptions import NotFoundError, ValidationError
from saas_app.core.store import StoreTarget
from saas_app.schemas.subscription import SubscriptionResponse
from saas_app.services.subscription_service import (
    DEFAULT_PLANS,
    SubscriptionService,
    build_default,
    get_default_plans,
)


@pytest.fixture
def service(migrated_registry):
    return SubscriptionService(migrated_registry)


def _response(**overrides):
    now = datetime(2024, 1, 1)
    values = {
        "id": 1,
        "tenant_id": 1,
        "plan_name": "Free Plan",
        "plan_type": "free",
        "status": "active",
        "billing_cycle": "monthly",
        "price": Decimal("0.00"),
        "currency": "USD",
        "features": {"basic_dashboard": True, "api_access": False},
        "current_period_start": now,
        "current_period_end": now + timedelta(days=30),
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return SubscriptionResponse(**values)


class TestPlanCatalog:
    """套餐目录测试"""

    def test_plan_types(self):
        """测试套餐类型"""
        assert set(get_default_plans()) == {"free", "basic", "premium", "enterprise"}

    def test_free_plan(self):
        """测试免费套餐"""
        plan = get_default_plans()["free"]

        assert plan.price == Decimal("0.00")
        assert plan.max_users == 5
        assert plan.max_storage == 1024 ** 3

    def test_enterprise_is_unlimited(self):
        """测试企业套餐不限量"""
        plan = get_default_plans()["enterprise"]

        assert plan.max_users == -1
        assert plan.max_storage == -1
        assert plan.features["white_label"] is True

    def test_catalog_is_copied(self):
        """测试返回副本，修改不影响目录"""
        plans = get_default_plans()
        plans["free"].features["api_access"] = True

        assert DEFAULT_PLANS["free"].features["api_access"] is False

    def test_build_default_periods(self):
        """测试月付30天、年付365天"""
        now = datetime(2024, 3, 1)

        monthly = build_default(7, "basic", "monthly", now)
        yearly = build_default(7, "basic", "yearly", now)

        assert monthly.tenant_id == 7
        assert monthly.price == Decimal("29.99")
        assert monthly.current_period_end == now + timedelta(days=30)
        assert yearly.current_period_end == now + timedelta(days=365)

    def test_build_default_invalid(self):
        """测试未知套餐或计费周期"""
        with pytest.raises(ValidationError):
            build_default(1, "platinum")
        with pytest.raises(ValidationError):
            build_default(1, "free", "weekly")


class TestSubscriptionPredicates:
    """订阅状态判断测试"""

    def test_is_active(self):
        """测试有效期内为有效"""
        subscription = _response()

        assert subscription.is_active(datetime(2024, 1, 15)) is True
        assert subscription.is_active(datetime(2024, 2, 15)) is False

    def test_cancelled_is_not_active(self):
        """测试已取消的订阅无效"""
        assert _response(status="cancelled").is_active(datetime(2024, 1, 15)) is False

    def test_trial(self):
        """测试试用期判断"""
        subscription = _response(trial_ends_at=datetime(2024, 1, 10))

        assert subscription.is_in_trial(datetime(2024, 1, 5)) is True
        assert subscription.is_in_trial(datetime(2024, 1, 11)) is False
        assert _response().is_in_trial(datetime(2024, 1, 5)) is False

    def test_has_feature(self):
        """测试功能开关"""
        subscription = _response()

        assert subscription.has_feature("basic_dashboard") is True
        assert subscription.has_feature("api_access") is False
        assert subscription.has_feature("unknown") is False
        assert _response(features=None).has_feature("basic_dashboard") is False


class TestSubscriptionService:
    """订阅服务测试"""

    @pytest.mark.asyncio
    async def test_create_and_find(self, service):
        """测试创建并按租户查询"""
        created = (await service.create(build_default(5))).record

        found = await service.find_by_tenant_id(5)

        assert found.id == created.id
        assert found.plan_type == "free"
        assert found.price == Decimal("0.00")
        assert found.max_users == 5
        assert found.is_active() is True

    @pytest.mark.asyncio
    async def test_find_by_tenant_missing(self, service):
        """测试租户没有订阅"""
        assert await service.find_by_tenant_id(404) is None

    @pytest.mark.asyncio
    async def test_newest_subscription_wins(self, service):
        """测试存在多条订阅时返回最新的一条"""
        await service.create(build_default(5, "free"))
        newer = (await service.create(build_default(5, "premium"))).record

        found = await service.find_by_tenant_id(5)

        assert found.id == newer.id
        assert found.plan_type == "premium"

    @pytest.mark.asyncio
    async def test_invalid_values(self, service):
        """测试非法字段"""
        data = build_default(5)
        data.status = "paused"
        with pytest.raises(ValidationError):
            await service.create(data)

        data = build_default(5)
        data.price = Decimal("-1")
        with pytest.raises(ValidationError):
            await service.create(data)

    @pytest.mark.asyncio
    async def test_document_only_rejected(self, service):
        """测试订阅必须写入关系型库"""
        with pytest.raises(ValidationError):
            await service.create(build_default(5), StoreTarget.DOCUMENT)

    @pytest.mark.asyncio
    async def test_mirror_stores_price_as_number(self, service, migrated_registry):
        """测试文档库镜像中价格为数值"""
        created = (await service.create(build_default(5, "basic"), StoreTarget.BOTH)).record

        document = await migrated_registry.document()["subscriptions"].find_one({"id": created.id})
        assert document["price"] == pytest.approx(29.99)

        mirror = await service.find_by_tenant_id(5, StoreTarget.DOCUMENT)
        assert mirror.plan_type == "basic"

    @pytest.mark.asyncio
    async def test_cancel(self, service):
        """测试取消订阅"""
        created = (await service.create(build_default(5))).record

        cancelled = (await service.cancel(created.id)).record

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert cancelled.is_active() is False

    @pytest.mark.asyncio
    async def test_update_missing(self, service):
        """测试更新不存在的订阅"""
        with pytest.raises(NotFoundError):
            await service.cancel(999)

    @pytest.mark.asyncio
    async def test_find_all_and_count(self, service):
        """测试列表与统计"""
        first = (await service.create(build_default(5))).record
        await service.create(build_default(6, "basic"))
        await service.cancel(first.id)

        assert len(await service.find_all()) == 2
        assert [item.tenant_id for item in await service.find_all(status="active")] == [6]
        assert len(await service.find_all(tenant_id=5)) == 1
        assert await service.count_active() == 1

    @pytest.mark.asyncio
    async def test_update_rejects_null_required_fields(self, service):
        """测试必填字段不能置空"""
        created = (await service.create(build_default(5))).record

        with pytest.raises(ValidationError):
            await service.update(created.id, {"plan_name": None})
        with pytest.raises(ValidationError):
            await service.update(created.id, {"current_period_end": None})

        assert (await service.find_by_id(created.id)).plan_name == "Free Plan"

    @pytest.mark.asyncio
    async def test_not_null_violation_is_not_conflict(self, service):
        """测试数据库非空约束失败归类为参数错误而不是重复记录"""
        created = (await service.create(build_default(5))).record

        with patch.object(SubscriptionService, "_validate"):
            with pytest.raises(ValidationError) as exc_info:
                await service.update(created.id, {"plan_name": None})

        assert exc_info.value.status_code == 400
