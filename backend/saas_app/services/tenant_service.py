"""
租户服务
关系型库是租户的系统记录源（ID、子域名唯一性），文档库只保存非权威镜像
"""
import logging
from typing import Any, Dict, List, Optional, Union
from pymongo.errors import PyMongoError
from sqlalchemy import func
from ..core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, TENANT_DATABASE_PREFIX, TENANT_STATUSES
from ..core.exceptions import ConflictError, NotFoundError, StoreOperationError, ValidationError
from ..core.monitoring import record_degraded_write
from ..core.registry import ConnectionRegistry
from ..core.store import StoreTarget, WriteResult, store_errors
from ..models.mongodb_models import TenantDocument
from ..models.tenant import Tenant
from ..schemas.common import Page
from ..schemas.tenant import TenantCreate, TenantResponse, TenantSummary, TenantUpdate
from ..utils import utcnow

logger = logging.getLogger(__name__)

RELATIONAL = StoreTarget.RELATIONAL.value
DOCUMENT = StoreTarget.DOCUMENT.value


class TenantService:
    """租户增删改查"""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    @property
    def _collection(self):
        return self.registry.document()["tenants"]

    @staticmethod
    def _to_response(tenant: Union[Tenant, Dict[str, Any]]) -> TenantResponse:
        response = TenantResponse.model_validate(tenant)
        if response.settings is None:
            response.settings = {}
        return response

    async def create(self, data: TenantCreate, target: StoreTarget = StoreTarget.RELATIONAL) -> WriteResult:
        """
        创建租户

        名称和子域名必填；子域名已存在时抛出 ConflictError 且不写入任何数据。
        target 为 BOTH 时额外写入文档库镜像，镜像失败只记录在 WriteResult 中。
        """
        name = (data.name or "").strip()
        subdomain = (data.subdomain or "").strip().lower()
        if not name or not subdomain:
            raise ValidationError("租户名称和子域名为必填项")
        if not target.includes_relational:
            raise ValidationError("租户必须写入关系型库")
        status = data.status or "active"
        if status not in TENANT_STATUSES:
            raise ValidationError(f"无效的租户状态: {status}")

        if await self.find_by_subdomain(subdomain) is not None:
            raise ConflictError(f"子域名已存在: {subdomain}")

        result = WriteResult()
        with store_errors("创建租户"):
            with self.registry.session() as db:
                tenant = Tenant(
                    name=name,
                    subdomain=subdomain,
                    database_name=f"{TENANT_DATABASE_PREFIX}{subdomain}",
                    status=status,
                    settings=dict(data.settings or {}),
                )
                db.add(tenant)
                db.flush()
                response = self._to_response(tenant)
        result.record_success(RELATIONAL, primary=True)
        result.record = response
        logger.info(f"租户已创建: id={response.id}, subdomain={response.subdomain}")

        if target.includes_document:
            try:
                await self._collection.insert_one(TenantDocument(**response.model_dump()).to_document())
                result.record_success(DOCUMENT)
            except PyMongoError as e:
                self._degraded(result, DOCUMENT, e, f"create tenant {response.id}")
        return result

    async def find_by_subdomain(self, subdomain: str, target: StoreTarget = StoreTarget.RELATIONAL) -> Optional[TenantResponse]:
        subdomain = (subdomain or "").strip().lower()
        if not subdomain:
            return None
        if target == StoreTarget.DOCUMENT:
            with store_errors("查询租户"):
                document = await self._collection.find_one({"subdomain": subdomain})
            return self._to_response(document) if document else None

        with store_errors("查询租户"):
            with self.registry.session() as db:
                tenant = db.query(Tenant).filter(Tenant.subdomain == subdomain).first()
                return self._to_response(tenant) if tenant else None

    async def find_by_id(self, tenant_id: int, target: StoreTarget = StoreTarget.RELATIONAL) -> Optional[TenantResponse]:
        if target == StoreTarget.DOCUMENT:
            with store_errors("查询租户"):
                document = await self._collection.find_one({"id": tenant_id})
            return self._to_response(document) if document else None

        with store_errors("查询租户"):
            with self.registry.session() as db:
                tenant = db.get(Tenant, tenant_id)
                return self._to_response(tenant) if tenant else None

    async def get_by_id(self, tenant_id: int) -> TenantResponse:
        tenant = await self.find_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError(f"租户不存在: {tenant_id}")
        return tenant

    async def find_all(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PAGE_SIZE,
        status: Optional[str] = "active"
    ) -> Page[TenantResponse]:
        """分页查询租户（最新创建的在前），total 与过滤条件一致"""
        page = max(page, 1)
        per_page = min(max(per_page, 1), MAX_PAGE_SIZE)
        with store_errors("查询租户列表"):
            with self.registry.session() as db:
                query = db.query(Tenant)
                if status:
                    query = query.filter(Tenant.status == status)
                total = query.count()
                tenants = (
                    query.order_by(Tenant.created_at.desc(), Tenant.id.desc())
                    .offset((page - 1) * per_page)
                    .limit(per_page)
                    .all()
                )
                items = [self._to_response(tenant) for tenant in tenants]
        return Page[TenantResponse](items=items, total=total, page=page, per_page=per_page)

    async def list_active(self) -> List[TenantSummary]:
        """激活租户列表（按创建时间正序，用于前端下拉框）"""
        with store_errors("查询租户列表"):
            with self.registry.session() as db:
                tenants = (
                    db.query(Tenant)
                    .filter(Tenant.status == "active")
                    .order_by(Tenant.created_at.asc(), Tenant.id.asc())
                    .all()
                )
                return [TenantSummary.model_validate(tenant) for tenant in tenants]

    async def update(
        self,
        tenant_id: int,
        data: Union[TenantUpdate, Dict[str, Any]],
        target: StoreTarget = StoreTarget.RELATIONAL
    ) -> WriteResult:
        """部分更新租户（只更新提供的字段），同时刷新 updated_at"""
        changes = data.model_dump(exclude_unset=True) if isinstance(data, TenantUpdate) else dict(data)
        changes = {key: value for key, value in changes.items() if key in ("name", "status", "settings")}
        if "status" in changes and changes["status"] not in TENANT_STATUSES:
            raise ValidationError(f"无效的租户状态: {changes['status']}")
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("租户名称不能为空")
        changes["updated_at"] = utcnow()

        result = WriteResult()
        if target.includes_relational:
            with store_errors("更新租户"):
                with self.registry.session() as db:
                    tenant = db.get(Tenant, tenant_id)
                    if tenant is None:
                        raise NotFoundError(f"租户不存在: {tenant_id}")
                    for key, value in changes.items():
                        setattr(tenant, key, value)
                    db.flush()
                    result.record = self._to_response(tenant)
            result.record_success(RELATIONAL, primary=True)

        if target.includes_document:
            try:
                outcome = await self._collection.update_one({"id": tenant_id}, {"$set": changes})
                if not target.includes_relational and outcome.matched_count == 0:
                    raise NotFoundError(f"租户镜像不存在: {tenant_id}")
                result.record_success(DOCUMENT, primary=not target.includes_relational)
            except PyMongoError as e:
                if not target.includes_relational:
                    raise StoreOperationError("更新租户镜像失败") from e
                self._degraded(result, DOCUMENT, e, f"update tenant {tenant_id}")
            if result.record is None:
                result.record = await self.find_by_id(tenant_id, StoreTarget.DOCUMENT)

        logger.info(f"租户已更新: id={tenant_id}, fields={sorted(changes)}")
        return result

    async def update_settings(self, tenant_id: int, settings: Any) -> WriteResult:
        """把 settings 合并到租户现有配置中"""
        if not isinstance(settings, dict):
            raise ValidationError("settings 必须是对象")
        tenant = await self.get_by_id(tenant_id)
        merged = {**(tenant.settings or {}), **settings}
        return await self.update(tenant_id, {"settings": merged})

    async def suspend(self, tenant_id: int, reason: Optional[str] = None) -> WriteResult:
        tenant = await self.get_by_id(tenant_id)
        settings = dict(tenant.settings or {})
        settings["suspension_reason"] = reason
        settings["suspended_at"] = utcnow().isoformat()
        logger.warning(f"暂停租户: id={tenant_id}, reason={reason}")
        return await self.update(tenant_id, {"status": "suspended", "settings": settings})

    async def activate(self, tenant_id: int) -> WriteResult:
        tenant = await self.get_by_id(tenant_id)
        settings = dict(tenant.settings or {})
        settings.pop("suspension_reason", None)
        settings.pop("suspended_at", None)
        logger.info(f"重新激活租户: id={tenant_id}")
        return await self.update(tenant_id, {"status": "active", "settings": settings})

    async def delete(self, tenant_id: int, target: StoreTarget = StoreTarget.RELATIONAL) -> WriteResult:
        """硬删除租户记录（不删除租户库）"""
        result = WriteResult(record=False)
        if target.includes_relational:
            with store_errors("删除租户"):
                with self.registry.session() as db:
                    deleted = db.query(Tenant).filter(Tenant.id == tenant_id).delete()
            result.record = deleted > 0
            result.record_success(RELATIONAL, primary=True)

        if target.includes_document:
            try:
                outcome = await self._collection.delete_one({"id": tenant_id})
                if not target.includes_relational:
                    result.record = outcome.deleted_count > 0
                result.record_success(DOCUMENT, primary=not target.includes_relational)
            except PyMongoError as e:
                if not target.includes_relational:
                    raise StoreOperationError("删除租户镜像失败") from e
                self._degraded(result, DOCUMENT, e, f"delete tenant {tenant_id}")

        logger.info(f"租户已删除: id={tenant_id}, deleted={result.record}")
        return result

    async def count_active(self, target: StoreTarget = StoreTarget.RELATIONAL) -> int:
        if target == StoreTarget.DOCUMENT:
            with store_errors("统计租户"):
                return await self._collection.count_documents({"status": "active"})
        with store_errors("统计租户"):
            with self.registry.session() as db:
                return db.query(func.count(Tenant.id)).filter(Tenant.status == "active").scalar()

    @staticmethod
    def _degraded(result: WriteResult, store: str, error: Exception, operation: str) -> None:
        logger.error(f"次级存储写入失败: store={store}, operation={operation}, error={error}", exc_info=True)
        result.record_failure(store, error)
        record_degraded_write(operation, result.warnings)
