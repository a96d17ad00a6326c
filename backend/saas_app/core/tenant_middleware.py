"""
多租户中间件
从JWT Token或请求头中提取租户标识，并注入到请求上下文中
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Optional
import logging
from .security import get_tenant_id_from_token

logger = logging.getLogger(__name__)

# 不需要租户上下文的路径前缀
TENANT_EXEMPT_PREFIXES = ("/api/v1/auth/", "/health", "/docs", "/openapi.json")


def get_tenant_id_from_request(request: Request) -> Optional[int]:
    """
    从请求中提取tenant_id

    优先级：
    1. 从JWT Token中提取（用户登录后Token携带tenant_id声明）
    2. 从请求头 X-Tenant-ID 中提取（管理后台、前端下拉框切换租户）
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        tenant_id = get_tenant_id_from_token(auth_header.replace("Bearer ", ""))
        if tenant_id is not None:
            return tenant_id

    tenant_id_header = request.headers.get("X-Tenant-ID")
    if tenant_id_header:
        try:
            return int(tenant_id_header)
        except ValueError:
            logger.warning(f"无效的 X-Tenant-ID: {tenant_id_header}")

    return None


class TenantMiddleware(BaseHTTPMiddleware):
    """
    多租户中间件
    把 tenant_id / tenant_subdomain 写入 request.state，租户的加载与状态校验由 require_tenant 完成
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        request.state.tenant_id = None
        request.state.tenant_subdomain = None

        if not path.startswith(TENANT_EXEMPT_PREFIXES):
            request.state.tenant_id = get_tenant_id_from_request(request)
            subdomain = request.headers.get("X-Tenant-Subdomain")
            if subdomain:
                request.state.tenant_subdomain = subdomain.strip().lower()

        return await call_next(request)
