"""
API 速率限制
开通租户、注册、登录按 租户+来源IP 计数，未携带租户标识时只按来源IP计数
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse
import logging
from .config import settings
from .responses import APIResponse

logger = logging.getLogger(__name__)

RATE_LIMITS = {
    "login": "5/minute",
    "register": "3/hour",
    "provision": "10/hour",  # 开通会建库、执行迁移，代价较高
    "default": "100/minute",
}


def tenant_rate_limit_key(request: Request) -> str:
    """限流键：X-Tenant-ID 请求头 + 来源IP"""
    address = get_remote_address(request)
    tenant_id = request.headers.get("X-Tenant-ID")
    if tenant_id and tenant_id.isdigit():
        return f"tenant:{tenant_id}:{address}"
    return address


limiter = Limiter(key_func=tenant_rate_limit_key, enabled=settings.rate_limit_enabled)


def get_rate_limit(limit_name: str = "default") -> str:
    return RATE_LIMITS.get(limit_name, RATE_LIMITS["default"])


def setup_rate_limit(app):
    """把限流器挂到应用上，并把超限异常转换为统一错误响应"""
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        logger.warning(f"速率限制触发: {request.method} {request.url.path} - {tenant_rate_limit_key(request)}")
        return JSONResponse(
            status_code=429,
            content=APIResponse.error(code=429, message=f"请求过于频繁，请稍后再试。限制: {exc.detail}"),
        )
