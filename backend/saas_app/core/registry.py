"""
连接注册表
持有全局关系型库引擎、按租户缓存的引擎以及 MongoDB 客户端。
由应用显式持有（app.state.registry），通过依赖注入传给各服务。
"""
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from .config import Settings, settings as default_settings
from .database import build_engine, tenant_database_name, tenant_database_url
from .exceptions import StoreOperationError, UninitializedStoreError
from .store import StoreTarget

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """关系型库与文档库的连接注册表"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._engine: Optional[Engine] = None
        self._tenant_engines: Dict[int, Engine] = {}
        self._session_factories: Dict[Optional[int], sessionmaker] = {}
        self._mongo_client: Optional[AsyncIOMotorClient] = None
        self._owns_mongo_client = False

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None and self._mongo_client is not None

    @property
    def cached_tenant_ids(self) -> List[int]:
        return list(self._tenant_engines.keys())

    async def initialize(self, mongo_client: Optional[AsyncIOMotorClient] = None) -> None:
        """
        进程启动时的一次性初始化

        Args:
            mongo_client: 外部注入的Motor客户端（测试使用），不注入时按配置创建并ping
        """
        if self.is_initialized:
            return

        try:
            engine = build_engine(self.settings.database_url, self.settings.db_pool_size, echo=self.settings.debug)
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            self._engine = engine
            logger.info(f"关系型数据库已连接: {engine.url.render_as_string(hide_password=True)}")
        except SQLAlchemyError as e:
            logger.error(f"连接关系型数据库失败: {e}", exc_info=True)
            raise StoreOperationError(f"连接关系型数据库失败: {e}") from e

        if mongo_client is not None:
            self._mongo_client = mongo_client
            self._owns_mongo_client = False
        else:
            try:
                client = AsyncIOMotorClient(self.settings.mongodb_url)
                await client.admin.command("ping")
                self._mongo_client = client
                self._owns_mongo_client = True
            except PyMongoError as e:
                logger.error(f"连接MongoDB失败: {e}", exc_info=True)
                # 释放已建立的关系型引擎，重试时重新创建
                self._engine.dispose()
                self._engine = None
                raise StoreOperationError(f"连接MongoDB失败: {e}") from e
        logger.info(f"MongoDB已连接: database={self.settings.mongodb_database}")

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise UninitializedStoreError("关系型数据库未初始化，请先调用 initialize()")
        return self._engine

    def _require_mongo(self) -> AsyncIOMotorClient:
        if self._mongo_client is None:
            raise UninitializedStoreError("MongoDB未初始化，请先调用 initialize()")
        return self._mongo_client

    def relational(self, tenant_id: Optional[int] = None) -> Engine:
        """
        获取关系型库引擎

        tenant_id 为空时返回全局引擎；否则返回 tenant_<id> 库的引擎（首次访问时创建并缓存，
        每个租户至多一个引擎）。
        """
        engine = self._require_engine()
        if tenant_id is None:
            return engine

        tenant_engine = self._tenant_engines.get(tenant_id)
        if tenant_engine is None:
            url = tenant_database_url(engine.url, tenant_id)
            tenant_engine = build_engine(url, self.settings.db_pool_size, echo=self.settings.debug)
            self._tenant_engines[tenant_id] = tenant_engine
            logger.info(f"已创建租户库连接: tenant_id={tenant_id}, database={url.database}")
        return tenant_engine

    @contextmanager
    def session(self, tenant_id: Optional[int] = None) -> Iterator[Session]:
        """获取会话：成功提交，异常回滚，始终关闭"""
        factory = self._session_factories.get(tenant_id)
        if factory is None:
            factory = sessionmaker(
                bind=self.relational(tenant_id),
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
            self._session_factories[tenant_id] = factory

        db = factory()
        try:
            yield db
            db.commit()
        except Exception:
            # 发生异常时回滚事务，避免脏会话
            db.rollback()
            raise
        finally:
            db.close()

    def document(self, tenant_id: Optional[int] = None) -> AsyncIOMotorDatabase:
        """
        获取MongoDB数据库

        驱动在进程内只维护一个客户端，这里每次按名称选择数据库，不做额外缓存。
        """
        client = self._require_mongo()
        if tenant_id is None:
            return client[self.settings.mongodb_database]
        return client[tenant_database_name(tenant_id)]

    async def create_tenant_databases(self, tenant_id: int, target: StoreTarget = StoreTarget.BOTH) -> None:
        """为租户创建独立数据库"""
        name = tenant_database_name(tenant_id)

        if target.includes_document:
            # MongoDB 在第一次写入文档时自动创建数据库
            self._require_mongo()
            logger.info(f"MongoDB租户库将在首次写入时创建: {name}")

        if target.includes_relational:
            engine = self._require_engine()
            backend = engine.url.get_backend_name()
            try:
                if backend == "sqlite":
                    # SQLite 租户库文件在首次连接时创建
                    pass
                elif backend == "postgresql":
                    with engine.connect() as connection:
                        connection = connection.execution_options(isolation_level="AUTOCOMMIT")
                        exists = connection.execute(
                            text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": name}
                        ).scalar()
                        if not exists:
                            connection.execute(text(f'CREATE DATABASE "{name}"'))
                else:
                    with engine.connect() as connection:
                        connection.execute(text(f"CREATE DATABASE IF NOT EXISTS `{name}`"))
                        connection.commit()
                logger.info(f"关系型租户库已创建: {name}")
            except SQLAlchemyError as e:
                logger.error(f"创建租户库失败: tenant_id={tenant_id}, error={e}", exc_info=True)
                raise StoreOperationError(f"创建租户库失败: {name}") from e

    async def close(self) -> None:
        """关闭所有连接"""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

        for tenant_id, tenant_engine in self._tenant_engines.items():
            tenant_engine.dispose()
            logger.debug(f"已关闭租户库连接: tenant_id={tenant_id}")
        self._tenant_engines.clear()
        self._session_factories.clear()

        if self._mongo_client is not None:
            if self._owns_mongo_client:
                self._mongo_client.close()
            self._mongo_client = None

        logger.info("所有数据库连接已关闭")
