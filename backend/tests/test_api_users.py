"""
用户 API 测试
"""
import asyncio
import pytest
from bson import ObjectId


@pytest.fixture
def second_tenant(client, provisioned_tenant):
    """第二个租户（ID 不是默认租户）"""
    response = client.post("/api/v1/tenants", json={"name": "Beta Inc", "subdomain": "beta"})
    assert response.status_code == 201
    tenant = response.json()["data"]["tenant"]
    assert tenant["id"] != 1
    return tenant


def _headers(tenant):
    return {"X-Tenant-ID": str(tenant["id"])}


class TestTenantDropdownAPI:
    """租户下拉框 API 测试"""

    def test_list_active_tenants(self, client, second_tenant):
        """测试激活租户列表"""
        client.post(f"/api/v1/tenants/{second_tenant['id']}/suspend")

        response = client.get("/api/v1/users/tenants")

        assert response.status_code == 200
        assert [tenant["subdomain"] for tenant in response.json()["data"]] == ["acme"]

    def test_create_tenant_from_frontend(self, client):
        """测试前端创建租户"""
        response = client.post("/api/v1/users/tenants", json={"name": "Gamma", "subdomain": "gamma"})

        assert response.status_code == 201
        tenant = response.json()["data"]["tenant"]
        assert tenant["settings"]["created_by"] == "frontend"
        assert response.json()["data"]["subscription"]["plan_type"] == "free"


class TestUserAPI:
    """用户 API 测试"""

    def test_create_user_in_tenant(self, client, second_tenant):
        """测试在租户下创建用户，同时写入租户库"""
        response = client.post(
            "/api/v1/users",
            json={"name": "Jane Doe", "email": "jane@beta.com", "password": "Secret123!"},
            headers=_headers(second_tenant),
        )

        assert response.status_code == 201
        user = response.json()["data"]
        assert user["tenant_id"] == second_tenant["id"]
        assert "password" not in user

        registry = client.registry
        copy = asyncio.run(
            registry.document(second_tenant["id"])["users"].find_one({"_id": ObjectId(user["id"])})
        )
        assert copy is not None

    def test_create_user_body_tenant_wins(self, client, second_tenant):
        """测试请求体中的 tenant_id 优先"""
        response = client.post(
            "/api/v1/users",
            json={"name": "Jane Doe", "email": "jane@acme.com", "tenant_id": 1},
            headers=_headers(second_tenant),
        )

        assert response.status_code == 201
        assert response.json()["data"]["tenant_id"] == 1

    def test_create_user_default_tenant(self, client):
        """测试没有租户上下文时使用默认租户"""
        response = client.post("/api/v1/users", json={"name": "Jane Doe", "email": "jane@example.com"})

        assert response.status_code == 201
        assert response.json()["data"]["tenant_id"] == 1

    def test_create_user_missing_email(self, client):
        """测试缺少邮箱返回400"""
        response = client.post("/api/v1/users", json={"name": "Jane Doe"})

        assert response.status_code == 400

    def test_create_user_duplicate(self, client, second_tenant):
        """测试同租户邮箱重复返回409"""
        payload = {"name": "Jane Doe", "email": "jane@beta.com"}
        client.post("/api/v1/users", json=payload, headers=_headers(second_tenant))

        response = client.post("/api/v1/users", json=payload, headers=_headers(second_tenant))

        assert response.status_code == 409

    def test_list_users_by_tenant(self, client, second_tenant):
        """测试按租户上下文查询用户"""
        client.post("/api/v1/users", json={"name": "A", "email": "a@beta.com"}, headers=_headers(second_tenant))
        client.post("/api/v1/users", json={"name": "B", "email": "b@example.com"})

        tenant_users = client.get("/api/v1/users", headers=_headers(second_tenant)).json()["data"]
        all_users = client.get("/api/v1/users", params={"all_tenants": True}).json()["data"]

        assert [user["email"] for user in tenant_users] == ["a@beta.com"]
        assert len(all_users) == 2

    def test_get_update_delete_user(self, client, second_tenant):
        """测试查询、更新、删除用户"""
        headers = _headers(second_tenant)
        created = client.post(
            "/api/v1/users", json={"name": "Jane Doe", "email": "jane@beta.com"}, headers=headers
        ).json()["data"]
        user_id = created["id"]

        response = client.get(f"/api/v1/users/{user_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["email"] == "jane@beta.com"

        response = client.put(f"/api/v1/users/{user_id}", json={"profession": "engineer"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["profession"] == "engineer"

        response = client.delete(f"/api/v1/users/{user_id}", headers=headers)
        assert response.status_code == 200

        response = client.get(f"/api/v1/users/{user_id}", headers=headers)
        assert response.status_code == 404

    def test_update_user_invalid_email(self, client):
        """测试邮箱格式错误返回422"""
        created = client.post("/api/v1/users", json={"name": "Jane", "email": "jane@example.com"}).json()["data"]

        response = client.put(f"/api/v1/users/{created['id']}", json={"email": "not-an-email"})

        assert response.status_code == 422
        assert response.json()["details"]["errors"]

    def test_other_tenant_cannot_update(self, client, second_tenant):
        """测试其他租户不能修改用户"""
        created = client.post(
            "/api/v1/users", json={"name": "Jane", "email": "jane@beta.com"}, headers=_headers(second_tenant)
        ).json()["data"]

        response = client.put(
            f"/api/v1/users/{created['id']}", json={"name": "Hijack"}, headers={"X-Tenant-ID": "1"}
        )

        assert response.status_code == 404

    def test_get_unknown_user(self, client):
        """测试查询不存在的用户"""
        response = client.get(f"/api/v1/users/{ObjectId()}")

        assert response.status_code == 404
