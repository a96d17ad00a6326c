from fastapi import APIRouter, Depends, HTTPException, Request, status
import logging

from ....core.rate_limit import limiter, get_rate_limit
from ....core.registry import ConnectionRegistry
from ....core.responses import APIResponse, SuccessResponse
from ....core.security import create_access_token
from ....core.tenant_dependency import get_current_user, get_registry
from ....core.tenant_middleware import get_tenant_id_from_request
from ....schemas.user import Token, UserCreate, UserLogin, UserRegister, UserResponse
from ....services.user_service import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("register"))
async def register(
    request: Request,
    body: UserRegister,
    registry: ConnectionRegistry = Depends(get_registry)
):
    """
    本地账号注册

    请求头携带 X-Tenant-ID 时注册到该租户，否则注册到默认租户。

    **错误响应**:
    - `400`: 姓名或邮箱缺失
    - `409`: 邮箱已被注册
    - `429`: 请求过于频繁（速率限制）
    """
    result = await UserService(registry).create(UserCreate(
        **body.model_dump(),
        tenant_id=get_tenant_id_from_request(request),
    ))
    return SuccessResponse(
        data=result.record,
        message="注册成功",
        status_code=status.HTTP_201_CREATED,
        warnings=result.warnings,
    )


@router.post("/login", response_model=Token)
@limiter.limit(get_rate_limit("login"))
async def login(
    request: Request,
    body: UserLogin,
    registry: ConnectionRegistry = Depends(get_registry)
):
    """
    用户登录

    Token 的 sub 为用户ID，并携带 tenant_id 声明供租户中间件使用。
    """
    user = await UserService(registry).authenticate(body.email, body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="邮箱或密码错误",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="账户已被禁用")

    access_token = create_access_token({"sub": user.id, "tenant_id": user.tenant_id, "role": user.role})
    logger.info(f"用户登录: id={user.id}, tenant_id={user.tenant_id}")
    return Token(access_token=access_token, token_type="bearer", user=user)


@router.get("/me")
async def read_me(current_user: UserResponse = Depends(get_current_user)):
    return APIResponse.success(current_user)
