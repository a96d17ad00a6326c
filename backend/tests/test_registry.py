"""
连接注册表测试
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from pymongo.errors import ServerSelectionTimeoutError
from sqlalchemy import text
from saas_app.core.config import Settings
from saas_app.core.database import tenant_database_name, tenant_database_url
from saas_app.core.exceptions import StoreOperationError, UninitializedStoreError
from saas_app.core.registry import ConnectionRegistry
from saas_app.core.store import StoreTarget


class TestTenantDatabaseNaming:
    """租户库命名测试"""

    def test_tenant_database_name(self):
        """测试租户库名"""
        assert tenant_database_name(5) == "tenant_5"

    def test_postgres_url(self):
        """测试由全局库URL派生租户库URL"""
        url = tenant_database_url("postgresql://user:pw@db:5432/multi_tenant_saas", 7)

        assert url.database == "tenant_7"
        assert url.host == "db"
        assert url.username == "user"

    def test_sqlite_url(self, tmp_path):
        """测试SQLite租户库为同目录下的文件"""
        url = tenant_database_url(f"sqlite:///{tmp_path / 'global.db'}", 3)

        assert url.database == str(tmp_path / "tenant_3.db")


class TestConnectionRegistry:
    """连接注册表测试"""

    def test_access_before_initialize(self, test_settings):
        """测试初始化之前访问存储"""
        registry = ConnectionRegistry(test_settings)

        assert registry.is_initialized is False
        with pytest.raises(UninitializedStoreError):
            registry.relational()
        with pytest.raises(UninitializedStoreError):
            registry.document()

    @pytest.mark.asyncio
    async def test_initialize_failure(self, mongo_client, tmp_path):
        """测试关系型库连接失败"""
        settings = Settings(
            database_url=f"sqlite:///{tmp_path / 'missing' / 'global.db'}",
            secret_key="test",
        )
        registry = ConnectionRegistry(settings)

        with pytest.raises(StoreOperationError):
            await registry.initialize(mongo_client=mongo_client)
        assert registry.is_initialized is False

    @pytest.mark.asyncio
    async def test_mongo_failure_releases_engine(self, test_settings, mongo_client):
        """测试MongoDB连接失败时释放已建立的关系型引擎，之后可以重试"""
        registry = ConnectionRegistry(test_settings)
        unreachable = MagicMock()
        unreachable.admin.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

        with patch("saas_app.core.registry.AsyncIOMotorClient", return_value=unreachable):
            with pytest.raises(StoreOperationError):
                await registry.initialize()

        assert registry.is_initialized is False
        with pytest.raises(UninitializedStoreError):
            registry.relational()

        await registry.initialize(mongo_client=mongo_client)
        assert registry.is_initialized is True
        await registry.close()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, registry, mongo_client):
        """测试重复初始化不重建连接"""
        engine = registry.relational()
        await registry.initialize(mongo_client=mongo_client)

        assert registry.relational() is engine

    @pytest.mark.asyncio
    async def test_tenant_engine_is_cached(self, registry):
        """测试每个租户最多一个引擎"""
        first = registry.relational(5)
        second = registry.relational(5)

        assert first is second
        assert first is not registry.relational()
        assert registry.cached_tenant_ids == [5]

    @pytest.mark.asyncio
    async def test_document_database_names(self, registry, test_settings):
        """测试文档库按名称选择"""
        assert registry.document().name == test_settings.mongodb_database
        assert registry.document(5).name == "tenant_5"

    @pytest.mark.asyncio
    async def test_session_commits(self, registry):
        """测试会话正常结束时提交"""
        with registry.session() as db:
            db.execute(text("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)"))
            db.execute(text("INSERT INTO notes (body) VALUES ('hello')"))

        with registry.relational().connect() as connection:
            assert connection.execute(text("SELECT COUNT(*) FROM notes")).scalar() == 1

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, registry):
        """测试会话异常时回滚"""
        with registry.session() as db:
            db.execute(text("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)"))

        with pytest.raises(RuntimeError):
            with registry.session() as db:
                db.execute(text("INSERT INTO notes (body) VALUES ('lost')"))
                raise RuntimeError("boom")

        with registry.relational().connect() as connection:
            assert connection.execute(text("SELECT COUNT(*) FROM notes")).scalar() == 0

    @pytest.mark.asyncio
    async def test_create_tenant_databases_sqlite(self, registry, tmp_path):
        """测试SQLite租户库在首次连接时创建"""
        await registry.create_tenant_databases(9, StoreTarget.BOTH)

        with registry.relational(9).connect() as connection:
            connection.execute(text("SELECT 1"))
        assert (tmp_path / "tenant_9.db").exists()

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, test_settings, mongo_client):
        """测试关闭后不可再访问"""
        registry = ConnectionRegistry(test_settings)
        await registry.initialize(mongo_client=mongo_client)
        registry.relational(2)

        await registry.close()

        assert registry.is_initialized is False
        assert registry.cached_tenant_ids == []
        with pytest.raises(UninitializedStoreError):
            registry.relational()
