"""
API 认证测试
"""
import pytest
from saas_app.core.security import create_access_token, get_tenant_id_from_token


def _register(client, data, headers=None):
    return client.post("/api/v1/auth/register", json=data, headers=headers or {})


class TestAuthAPI:
    """认证 API 测试"""

    def test_register_success(self, client, test_user_data):
        """测试注册成功"""
        response = _register(client, test_user_data)

        assert response.status_code == 201
        data = response.json()["data"]
        assert "id" in data
        assert data["email"] == "test@example.com"
        assert data["tenant_id"] == 1
        assert "password" not in data

    def test_register_into_tenant(self, client, provisioned_tenant, test_user_data):
        """测试携带 X-Tenant-ID 注册到指定租户"""
        client.post("/api/v1/tenants", json={"name": "Beta", "subdomain": "beta"})

        response = _register(client, test_user_data, headers={"X-Tenant-ID": "2"})

        assert response.status_code == 201
        assert response.json()["data"]["tenant_id"] == 2

    def test_register_duplicate_email(self, client, test_user_data):
        """测试重复邮箱注册"""
        _register(client, test_user_data)

        response = _register(client, {**test_user_data, "name": "User 2"})

        assert response.status_code == 409

    def test_register_invalid_email(self, client, test_user_data):
        """测试邮箱格式错误"""
        response = _register(client, {**test_user_data, "email": "invalid"})

        assert response.status_code == 422

    def test_login_success(self, client, test_user_data):
        """测试登录成功"""
        _register(client, test_user_data)

        response = client.post(
            "/api/v1/auth/login",
            json={"email": "test@example.com", "password": "Test123456!"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == "test@example.com"
        assert data["user"]["last_login"] is not None
        assert get_tenant_id_from_token(data["access_token"]) == 1

    def test_login_wrong_password(self, client, test_user_data):
        """测试密码错误"""
        _register(client, test_user_data)

        response = client.post(
            "/api/v1/auth/login",
            json={"email": "test@example.com", "password": "WrongPassword!"}
        )

        assert response.status_code == 401

    def test_login_unknown_email(self, client):
        """测试用户不存在"""
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "nobody@example.com", "password": "Test123456!"}
        )

        assert response.status_code == 401

    def test_login_suspended_user(self, client, test_user_data):
        """测试已禁用账号不能登录"""
        user_id = _register(client, test_user_data).json()["data"]["id"]
        client.put(f"/api/v1/users/{user_id}", json={"status": "suspended"})

        response = client.post(
            "/api/v1/auth/login",
            json={"email": "test@example.com", "password": "Test123456!"}
        )

        assert response.status_code == 403

    def test_me(self, client, test_user_data):
        """测试获取当前用户"""
        _register(client, test_user_data)
        token = client.post(
            "/api/v1/auth/login",
            json={"email": "test@example.com", "password": "Test123456!"}
        ).json()["access_token"]

        response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["data"]["email"] == "test@example.com"

    def test_me_invalid_token(self, client):
        """测试无效 token"""
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer invalid.token.here"})

        assert response.status_code == 401

    def test_token_tenant_claim_sets_context(self, client, provisioned_tenant, test_user_data):
        """测试 token 中的 tenant_id 作为请求的租户上下文"""
        client.post("/api/v1/tenants", json={"name": "Beta", "subdomain": "beta"})
        _register(client, test_user_data, headers={"X-Tenant-ID": "2"})
        token = client.post(
            "/api/v1/auth/login",
            json={"email": "test@example.com", "password": "Test123456!"}
        ).json()["access_token"]

        response = client.get("/api/v1/tenants/details", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["data"]["tenant"]["subdomain"] == "beta"

    def test_token_claim_overrides_header(self, client, provisioned_tenant):
        """测试 token 声明优先于 X-Tenant-ID 请求头"""
        client.post("/api/v1/tenants", json={"name": "Beta", "subdomain": "beta"})
        token = create_access_token({"sub": "someone", "tenant_id": 2})

        response = client.get(
            "/api/v1/tenants/details",
            headers={"Authorization": f"Bearer {token}", "X-Tenant-ID": "1"},
        )

        assert response.json()["data"]["tenant"]["id"] == 2
