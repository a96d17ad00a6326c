"""
订阅服务
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from pymongo import DESCENDING
from pymongo.errors import PyMongoError
from sqlalchemy import func
from ..core.constants import (
    BILLING_CYCLES,
    BILLING_CYCLE_DAYS,
    GIB,
    PLAN_TYPES,
    SUBSCRIPTION_STATUSES,
    UNLIMITED,
)
from ..core.exceptions import NotFoundError, ValidationError
from ..core.monitoring import record_degraded_write
from ..core.registry import ConnectionRegistry
from ..core.store import StoreTarget, WriteResult, store_errors
from ..models.mongodb_models import SubscriptionDocument, to_mongo_value
from ..models.subscription import Subscription
from ..schemas.subscription import PlanDefinition, SubscriptionCreate, SubscriptionResponse, SubscriptionUpdate
from ..utils import utcnow

logger = logging.getLogger(__name__)

RELATIONAL = StoreTarget.RELATIONAL.value
DOCUMENT = StoreTarget.DOCUMENT.value

# 关系型库中不可为空的列，更新时不允许显式置空
REQUIRED_FIELDS = (
    "plan_name", "plan_type", "status", "billing_cycle", "price", "currency",
    "current_period_start", "current_period_end",
)

# 套餐目录（静态配置）
DEFAULT_PLANS: Dict[str, PlanDefinition] = {
    "free": PlanDefinition(
        plan_name="Free Plan",
        plan_type="free",
        price=Decimal("0.00"),
        max_users=5,
        max_storage=1 * GIB,
        features={
            "basic_dashboard": True,
            "email_support": False,
            "api_access": False,
            "advanced_analytics": False,
            "priority_support": False,
        },
    ),
    "basic": PlanDefinition(
        plan_name="Basic Plan",
        plan_type="basic",
        price=Decimal("29.99"),
        max_users=25,
        max_storage=10 * GIB,
        features={
            "basic_dashboard": True,
            "email_support": True,
            "api_access": True,
            "advanced_analytics": False,
            "priority_support": False,
        },
    ),
    "premium": PlanDefinition(
        plan_name="Premium Plan",
        plan_type="premium",
        price=Decimal("79.99"),
        max_users=100,
        max_storage=50 * GIB,
        features={
            "basic_dashboard": True,
            "email_support": True,
            "api_access": True,
            "advanced_analytics": True,
            "priority_support": True,
        },
    ),
    "enterprise": PlanDefinition(
        plan_name="Enterprise Plan",
        plan_type="enterprise",
        price=Decimal("199.99"),
        max_users=UNLIMITED,
        max_storage=UNLIMITED,
        features={
            "basic_dashboard": True,
            "email_support": True,
            "api_access": True,
            "advanced_analytics": True,
            "priority_support": True,
            "white_label": True,
            "custom_integrations": True,
        },
    ),
}


def get_default_plans() -> Dict[str, PlanDefinition]:
    """返回套餐目录的副本"""
    return {plan_type: plan.model_copy(deep=True) for plan_type, plan in DEFAULT_PLANS.items()}


def build_default(
    tenant_id: int,
    plan_type: str = "free",
    billing_cycle: str = "monthly",
    now: Optional[datetime] = None
) -> SubscriptionCreate:
    """按套餐目录构造订阅：周期从 now 开始，月付30天、年付365天"""
    plan = DEFAULT_PLANS.get(plan_type)
    if plan is None:
        raise ValidationError(f"未知的套餐类型: {plan_type}")
    if billing_cycle not in BILLING_CYCLE_DAYS:
        raise ValidationError(f"未知的计费周期: {billing_cycle}")

    start = now or utcnow()
    return SubscriptionCreate(
        tenant_id=tenant_id,
        billing_cycle=billing_cycle,
        current_period_start=start,
        current_period_end=start + timedelta(days=BILLING_CYCLE_DAYS[billing_cycle]),
        **plan.model_dump(),
    )


class SubscriptionService:
    """订阅增删改查（关系型库为系统记录源，文档库镜像可选）"""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    @property
    def _collection(self):
        return self.registry.document()["subscriptions"]

    @staticmethod
    def _to_response(subscription: Union[Subscription, Dict[str, Any]]) -> SubscriptionResponse:
        response = SubscriptionResponse.model_validate(subscription)
        if response.features is None:
            response.features = {}
        return response

    @staticmethod
    def _validate(values: Dict[str, Any]) -> None:
        empty = [field for field in REQUIRED_FIELDS if field in values and values[field] is None]
        if empty:
            raise ValidationError(f"字段不能为空: {', '.join(empty)}")
        if "plan_type" in values and values["plan_type"] not in PLAN_TYPES:
            raise ValidationError(f"无效的套餐类型: {values['plan_type']}")
        if "status" in values and values["status"] not in SUBSCRIPTION_STATUSES:
            raise ValidationError(f"无效的订阅状态: {values['status']}")
        if "billing_cycle" in values and values["billing_cycle"] not in BILLING_CYCLES:
            raise ValidationError(f"无效的计费周期: {values['billing_cycle']}")
        if values.get("price") is not None and values["price"] < 0:
            raise ValidationError("价格不能为负数")

    async def create(self, data: SubscriptionCreate, target: StoreTarget = StoreTarget.RELATIONAL) -> WriteResult:
        """创建订阅，target 为 BOTH 时额外写入文档库镜像"""
        values = data.model_dump()
        self._validate(values)
        if not target.includes_relational:
            raise ValidationError("订阅必须写入关系型库")

        result = WriteResult()
        with store_errors("创建订阅"):
            with self.registry.session() as db:
                subscription = Subscription(**values)
                db.add(subscription)
                db.flush()
                response = self._to_response(subscription)
        result.record = response
        result.record_success(RELATIONAL, primary=True)
        logger.info(
            f"订阅已创建: id={response.id}, tenant_id={response.tenant_id}, plan={response.plan_type}"
        )

        if target.includes_document:
            try:
                values = {key: to_mongo_value(value) for key, value in response.model_dump().items()}
                document = SubscriptionDocument(**values).to_document()
                await self._collection.insert_one(document)
                result.record_success(DOCUMENT)
            except PyMongoError as e:
                self._degraded(result, e, f"create subscription {response.id}")
        return result

    async def find_by_tenant_id(
        self,
        tenant_id: int,
        target: StoreTarget = StoreTarget.RELATIONAL
    ) -> Optional[SubscriptionResponse]:
        """
        查询租户的订阅

        每个租户预期只有一条有效订阅，但没有唯一约束；存在多条时返回最新创建的一条。
        """
        if target == StoreTarget.DOCUMENT:
            with store_errors("查询订阅"):
                document = await self._collection.find_one(
                    {"tenant_id": tenant_id}, sort=[("created_at", DESCENDING), ("id", DESCENDING)]
                )
            return self._to_response(document) if document else None

        with store_errors("查询订阅"):
            with self.registry.session() as db:
                subscription = (
                    db.query(Subscription)
                    .filter(Subscription.tenant_id == tenant_id)
                    .order_by(Subscription.created_at.desc(), Subscription.id.desc())
                    .first()
                )
                return self._to_response(subscription) if subscription else None

    async def find_by_id(self, subscription_id: int) -> Optional[SubscriptionResponse]:
        with store_errors("查询订阅"):
            with self.registry.session() as db:
                subscription = db.get(Subscription, subscription_id)
                return self._to_response(subscription) if subscription else None

    async def find_all(
        self,
        tenant_id: Optional[int] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[SubscriptionResponse]:
        with store_errors("查询订阅列表"):
            with self.registry.session() as db:
                query = db.query(Subscription)
                if tenant_id is not None:
                    query = query.filter(Subscription.tenant_id == tenant_id)
                if status:
                    query = query.filter(Subscription.status == status)
                subscriptions = (
                    query.order_by(Subscription.created_at.desc(), Subscription.id.desc())
                    .offset(skip)
                    .limit(limit)
                    .all()
                )
                return [self._to_response(item) for item in subscriptions]

    async def update(
        self,
        subscription_id: int,
        data: Union[SubscriptionUpdate, Dict[str, Any]],
        target: StoreTarget = StoreTarget.RELATIONAL
    ) -> WriteResult:
        changes = data.model_dump(exclude_unset=True) if isinstance(data, SubscriptionUpdate) else dict(data)
        allowed = set(SubscriptionUpdate.model_fields)
        changes = {key: value for key, value in changes.items() if key in allowed}
        self._validate(changes)
        changes["updated_at"] = utcnow()

        result = WriteResult()
        with store_errors("更新订阅"):
            with self.registry.session() as db:
                subscription = db.get(Subscription, subscription_id)
                if subscription is None:
                    raise NotFoundError(f"订阅不存在: {subscription_id}")
                for key, value in changes.items():
                    setattr(subscription, key, value)
                db.flush()
                result.record = self._to_response(subscription)
        result.record_success(RELATIONAL, primary=True)

        if target.includes_document:
            try:
                mirrored = {key: to_mongo_value(value) for key, value in changes.items()}
                await self._collection.update_one({"id": subscription_id}, {"$set": mirrored})
                result.record_success(DOCUMENT)
            except PyMongoError as e:
                self._degraded(result, e, f"update subscription {subscription_id}")

        logger.info(f"订阅已更新: id={subscription_id}, fields={sorted(changes)}")
        return result

    async def cancel(self, subscription_id: int, target: StoreTarget = StoreTarget.RELATIONAL) -> WriteResult:
        """取消订阅：状态置为 cancelled 并记录取消时间"""
        return await self.update(
            subscription_id, {"status": "cancelled", "cancelled_at": utcnow()}, target=target
        )

    async def count_active(self) -> int:
        with store_errors("统计订阅"):
            with self.registry.session() as db:
                return db.query(func.count(Subscription.id)).filter(Subscription.status == "active").scalar()

    @staticmethod
    def _degraded(result: WriteResult, error: Exception, operation: str) -> None:
        logger.error(f"订阅镜像写入失败: operation={operation}, error={error}", exc_info=True)
        result.record_failure(DOCUMENT, error)
        record_degraded_write(operation, result.warnings)
