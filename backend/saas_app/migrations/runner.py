"""
迁移执行器

迁移单元是 versions/ 目录下的 Python 模块，按文件名字典序执行。每个单元可以定义：

    upgrade_relational(op)                       # alembic Operations
    downgrade_relational(op)
    async upgrade_document(db, schema_validation) # Motor 数据库
    async downgrade_document(db)

关系型库与文档库各自维护一份 migrations 记录（name 唯一、batch、executed_at），
已记录的单元不会重复执行，也不会再次校验实际的表结构。
"""
import importlib.util
import logging
from datetime import datetime
from pathlib import Path
from types import ModuleType
from typing import Dict, List, Optional, Tuple
from alembic.migration import MigrationContext
from alembic.operations import Operations
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from ..core.constants import MIGRATIONS_TABLE
from ..core.exceptions import MigrationError, StoreOperationError
from ..core.registry import ConnectionRegistry
from ..core.store import StoreTarget
from ..models.migration import Migration
from ..utils import utcnow

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

RELATIONAL = "relational"
DOCUMENT = "document"

_PROCEDURES = {
    (RELATIONAL, "up"): "upgrade_relational",
    (RELATIONAL, "down"): "downgrade_relational",
    (DOCUMENT, "up"): "upgrade_document",
    (DOCUMENT, "down"): "downgrade_document",
}


class MigrationUnit:
    """一个已加载的迁移模块"""

    def __init__(self, name: str, module: ModuleType):
        self.name = name
        self.module = module

    def procedure(self, store: str, direction: str):
        return getattr(self.module, _PROCEDURES[(store, direction)], None)

    def __repr__(self) -> str:
        return f"<MigrationUnit {self.name}>"


class MigrationReport(BaseModel):
    """一次执行或回滚涉及的迁移名称"""
    tenant_id: Optional[int] = None
    relational: List[str] = Field(default_factory=list)
    document: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.relational) + len(self.document)


class MigrationStatus(BaseModel):
    name: str
    store: str
    applied: bool
    batch: Optional[int] = None
    executed_at: Optional[datetime] = None


class MigrationRunner:
    """按租户（或全局）执行迁移"""

    def __init__(self, registry: ConnectionRegistry, versions_dir: Optional[Path] = None):
        self.registry = registry
        self.versions_dir = Path(versions_dir) if versions_dir else VERSIONS_DIR
        self._units: Optional[List[MigrationUnit]] = None

    def discover(self) -> List[MigrationUnit]:
        """加载迁移模块（按文件名排序）"""
        if self._units is not None:
            return self._units

        units = []
        for path in sorted(self.versions_dir.glob("*.py")):
            if path.name.startswith("_"):
                continue
            spec = importlib.util.spec_from_file_location(f"saas_app_migration_{path.stem}", path)
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            units.append(MigrationUnit(path.stem, module))
        self._units = units
        return units

    def _unit(self, name: str) -> Optional[MigrationUnit]:
        for unit in self.discover():
            if unit.name == name:
                return unit
        return None

    @staticmethod
    def _scope(tenant_id: Optional[int]) -> str:
        return f"tenant_{tenant_id}" if tenant_id is not None else "global"

    async def run(self, tenant_id: Optional[int] = None, target: StoreTarget = StoreTarget.BOTH) -> MigrationReport:
        """执行所有未执行的迁移，遇到第一个失败即中止"""
        logger.info(f"开始执行迁移: scope={self._scope(tenant_id)}, target={target.value}")
        report = MigrationReport(tenant_id=tenant_id)
        if target.includes_relational:
            report.relational = self._run_relational(tenant_id)
        if target.includes_document:
            report.document = await self._run_document(tenant_id)
        logger.info(
            f"迁移完成: scope={self._scope(tenant_id)}, "
            f"relational={len(report.relational)}, document={len(report.document)}"
        )
        return report

    async def rollback(
        self,
        steps: int = 1,
        tenant_id: Optional[int] = None,
        target: StoreTarget = StoreTarget.BOTH
    ) -> MigrationReport:
        """回滚最近的 steps 个迁移（按 batch、name 倒序）"""
        if steps < 1:
            raise MigrationError("回滚步数必须大于0")
        logger.info(f"开始回滚迁移: scope={self._scope(tenant_id)}, target={target.value}, steps={steps}")
        report = MigrationReport(tenant_id=tenant_id)
        if target.includes_relational:
            report.relational = self._rollback_relational(tenant_id, steps)
        if target.includes_document:
            report.document = await self._rollback_document(tenant_id, steps)
        return report

    async def status(
        self,
        tenant_id: Optional[int] = None,
        target: StoreTarget = StoreTarget.BOTH
    ) -> List[MigrationStatus]:
        """列出每个迁移单元在各存储中的执行状态"""
        result: List[MigrationStatus] = []
        if target.includes_relational:
            records = {name: (batch, executed_at) for name, batch, executed_at in self._relational_records(tenant_id)}
            result.extend(self._status_rows(RELATIONAL, records))
        if target.includes_document:
            records = {doc["name"]: (doc["batch"], doc.get("executed_at"))
                       for doc in await self._document_records(tenant_id)}
            result.extend(self._status_rows(DOCUMENT, records))
        return result

    def _status_rows(self, store: str, records: Dict[str, Tuple[int, Optional[datetime]]]) -> List[MigrationStatus]:
        rows = []
        known = set()
        for unit in self.discover():
            if unit.procedure(store, "up") is None:
                continue
            known.add(unit.name)
            batch, executed_at = records.get(unit.name, (None, None))
            rows.append(MigrationStatus(
                name=unit.name, store=store, applied=unit.name in records,
                batch=batch, executed_at=executed_at
            ))
        # 有记录但迁移文件已不存在
        for name in sorted(set(records) - known):
            batch, executed_at = records[name]
            rows.append(MigrationStatus(name=name, store=store, applied=True, batch=batch, executed_at=executed_at))
        return rows

    # ---- 关系型库 ----

    def _ensure_relational_table(self, tenant_id: Optional[int]):
        engine = self.registry.relational(tenant_id)
        try:
            Migration.__table__.create(engine, checkfirst=True)
        except SQLAlchemyError as e:
            logger.error(f"创建迁移记录表失败: scope={self._scope(tenant_id)}", exc_info=True)
            raise StoreOperationError(f"创建迁移记录表失败: {e}") from e
        return engine

    def _relational_records(self, tenant_id: Optional[int]) -> List[Tuple[str, int, datetime]]:
        engine = self._ensure_relational_table(tenant_id)
        table = Migration.__table__
        with engine.connect() as connection:
            rows = connection.execute(
                select(table.c.name, table.c.batch, table.c.executed_at).order_by(table.c.batch, table.c.name)
            ).all()
        return [tuple(row) for row in rows]

    def _run_relational(self, tenant_id: Optional[int]) -> List[str]:
        engine = self._ensure_relational_table(tenant_id)
        table = Migration.__table__
        with engine.connect() as connection:
            executed = set(connection.execute(select(table.c.name)).scalars().all())
            max_batch = connection.execute(select(func.max(table.c.batch))).scalar()
        batch = (max_batch or 0) + 1

        applied = []
        for unit in self.discover():
            upgrade = unit.procedure(RELATIONAL, "up")
            if unit.name in executed or upgrade is None:
                continue
            logger.info(f"执行关系型迁移: {unit.name} ({self._scope(tenant_id)})")
            try:
                with engine.begin() as connection:
                    upgrade(Operations(MigrationContext.configure(connection)))
                    connection.execute(insert(table).values(name=unit.name, batch=batch, executed_at=utcnow()))
            except Exception as e:
                logger.error(f"关系型迁移失败: {unit.name} ({self._scope(tenant_id)})", exc_info=True)
                raise MigrationError(f"关系型迁移失败: {unit.name}: {e}", migration=unit.name) from e
            applied.append(unit.name)
        return applied

    def _rollback_relational(self, tenant_id: Optional[int], steps: int) -> List[str]:
        engine = self._ensure_relational_table(tenant_id)
        table = Migration.__table__
        with engine.connect() as connection:
            names = connection.execute(
                select(table.c.name).order_by(table.c.batch.desc(), table.c.name.desc()).limit(steps)
            ).scalars().all()

        rolled_back = []
        for name in names:
            downgrade = self._require_down(name, RELATIONAL)
            logger.info(f"回滚关系型迁移: {name} ({self._scope(tenant_id)})")
            try:
                with engine.begin() as connection:
                    downgrade(Operations(MigrationContext.configure(connection)))
                    connection.execute(delete(table).where(table.c.name == name))
            except Exception as e:
                logger.error(f"关系型回滚失败: {name} ({self._scope(tenant_id)})", exc_info=True)
                raise MigrationError(f"关系型回滚失败: {name}: {e}", migration=name) from e
            rolled_back.append(name)
        return rolled_back

    # ---- 文档库 ----

    async def _document_collection(self, tenant_id: Optional[int]):
        collection = self.registry.document(tenant_id)[MIGRATIONS_TABLE]
        try:
            await collection.create_index("name", unique=True)
        except PyMongoError as e:
            logger.error(f"创建迁移记录集合失败: scope={self._scope(tenant_id)}", exc_info=True)
            raise StoreOperationError(f"创建迁移记录集合失败: {e}") from e
        return collection

    async def _document_records(self, tenant_id: Optional[int]) -> List[dict]:
        collection = await self._document_collection(tenant_id)
        return await collection.find({}, sort=[("batch", ASCENDING), ("name", ASCENDING)]).to_list(length=None)

    async def _run_document(self, tenant_id: Optional[int]) -> List[str]:
        db = self.registry.document(tenant_id)
        collection = await self._document_collection(tenant_id)
        records = await collection.find({}).to_list(length=None)
        executed = {record["name"] for record in records}
        batch = max((record["batch"] for record in records), default=0) + 1
        schema_validation = self.registry.settings.mongodb_schema_validation

        applied = []
        for unit in self.discover():
            upgrade = unit.procedure(DOCUMENT, "up")
            if unit.name in executed or upgrade is None:
                continue
            logger.info(f"执行文档库迁移: {unit.name} ({self._scope(tenant_id)})")
            try:
                await upgrade(db, schema_validation)
                await collection.insert_one({"name": unit.name, "batch": batch, "executed_at": utcnow()})
            except Exception as e:
                logger.error(f"文档库迁移失败: {unit.name} ({self._scope(tenant_id)})", exc_info=True)
                raise MigrationError(f"文档库迁移失败: {unit.name}: {e}", migration=unit.name) from e
            applied.append(unit.name)
        return applied

    async def _rollback_document(self, tenant_id: Optional[int], steps: int) -> List[str]:
        db = self.registry.document(tenant_id)
        collection = await self._document_collection(tenant_id)
        records = await collection.find(
            {}, sort=[("batch", DESCENDING), ("name", DESCENDING)], limit=steps
        ).to_list(length=None)

        rolled_back = []
        for record in records:
            name = record["name"]
            downgrade = self._require_down(name, DOCUMENT)
            logger.info(f"回滚文档库迁移: {name} ({self._scope(tenant_id)})")
            try:
                await downgrade(db)
                await collection.delete_one({"_id": record["_id"]})
            except Exception as e:
                logger.error(f"文档库回滚失败: {name} ({self._scope(tenant_id)})", exc_info=True)
                raise MigrationError(f"文档库回滚失败: {name}: {e}", migration=name) from e
            rolled_back.append(name)
        return rolled_back

    def _require_down(self, name: str, store: str):
        unit = self._unit(name)
        if unit is None:
            raise MigrationError(f"迁移文件不存在，无法回滚: {name}", migration=name)
        downgrade = unit.procedure(store, "down")
        if downgrade is None:
            raise MigrationError(f"迁移未定义回滚操作: {name} ({store})", migration=name)
        return downgrade
