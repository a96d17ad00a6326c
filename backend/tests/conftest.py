"""
Pytest 配置和共享 fixtures

关系型库使用临时目录下的 SQLite 文件（租户库为同目录下的 tenant_<id>.db），
文档库使用 mongomock-motor 提供的内存客户端。
"""
import pytest
import pytest_asyncio
import asyncio
import os
import sys

# 必须在导入应用之前设置（模块级的 settings / limiter 在导入时读取）
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

# 添加项目根目录到路径
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from saas_app.core.config import Settings
from saas_app.core.registry import ConnectionRegistry
from saas_app.main import create_app
from saas_app.migrations.runner import MigrationRunner


@pytest.fixture
def test_settings(tmp_path):
    """测试配置（SQLite + 关闭集合校验器）"""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'global.db'}",
        mongodb_database="multi_tenant_saas_test",
        mongodb_schema_validation=False,
        secret_key="test-secret-key-for-pytest",
        bcrypt_rounds=4,
        rate_limit_enabled=False,
        run_migrations_on_startup=False,
        debug=False,
    )


@pytest.fixture
def mongo_client():
    """内存MongoDB客户端"""
    return AsyncMongoMockClient()


@pytest_asyncio.fixture
async def registry(test_settings, mongo_client):
    """已初始化、未执行迁移的连接注册表"""
    registry = ConnectionRegistry(test_settings)
    await registry.initialize(mongo_client=mongo_client)
    yield registry
    await registry.close()


@pytest_asyncio.fixture
async def migrated_registry(registry):
    """已执行全局迁移的连接注册表"""
    await MigrationRunner(registry).run()
    return registry


@pytest.fixture
def client(test_settings, mongo_client):
    """创建测试客户端（全局库已迁移）"""
    registry = ConnectionRegistry(test_settings)
    asyncio.run(registry.initialize(mongo_client=mongo_client))
    asyncio.run(MigrationRunner(registry).run())

    app = create_app(test_settings, registry=registry, configure_logging=False)
    with TestClient(app) as test_client:
        test_client.registry = registry
        yield test_client

    asyncio.run(registry.close())


@pytest.fixture
def provisioned_tenant(client):
    """通过API开通的租户"""
    response = client.post("/api/v1/tenants", json={"name": "Acme Corp", "subdomain": "acme"})
    assert response.status_code == 201
    return response.json()["data"]["tenant"]


@pytest.fixture
def test_user_data():
    """测试用户数据"""
    return {
        "name": "Test User",
        "email": "test@example.com",
        "password": "Test123456!",
    }
