from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import os
import traceback
from .core.config import Settings, settings as default_settings
from .core.exceptions import AppError
from .core.monitoring import monitoring_middleware
from .core.rate_limit import setup_rate_limit
from .core.registry import ConnectionRegistry
from .core.responses import APIResponse
from .core.structured_logging import setup_logging, get_logger
from .core.tenant_middleware import TenantMiddleware
from .api.v1.api import api_router
from .migrations.runner import MigrationRunner

# 根据环境变量决定日志格式与级别
USE_STRUCTURED_LOGGING = os.getenv("USE_STRUCTURED_LOGGING", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if default_settings.debug else "WARNING")
ENABLE_FILE_LOGGING = os.getenv("ENABLE_FILE_LOGGING", "false").lower() == "true"
LOG_DIR = os.getenv("LOG_DIR", "logs")

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[ConnectionRegistry] = None,
    configure_logging: bool = True
) -> FastAPI:
    """
    创建应用

    Args:
        settings: 应用配置，默认读取环境变量
        registry: 外部注入的连接注册表（测试使用，需已初始化），不注入时在启动时创建并在关闭时释放
        configure_logging: 是否配置根日志记录器
    """
    settings = settings or default_settings
    if configure_logging:
        setup_logging(
            use_structured=USE_STRUCTURED_LOGGING,
            log_level=LOG_LEVEL,
            enable_file_logging=ENABLE_FILE_LOGGING,
            log_dir=LOG_DIR
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if registry is not None:
            app.state.registry = registry
            yield
            return

        owned = ConnectionRegistry(settings)
        await owned.initialize()
        if settings.run_migrations_on_startup:
            await MigrationRunner(owned).run()
        app.state.registry = owned
        try:
            yield
        finally:
            await owned.close()

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan
    )
    if registry is not None:
        app.state.registry = registry

    # CORS中间件 - 生产环境限制方法和头部
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"] if not settings.debug else ["*"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Tenant-ID", "X-Tenant-Subdomain"]
        if not settings.debug else ["*"],
    )

    setup_rate_limit(app)

    # 多租户中间件（必须在监控中间件之前注册，监控中间件才能读到 tenant_id）
    app.add_middleware(TenantMiddleware)
    app.middleware("http")(monitoring_middleware)

    app.include_router(api_router, prefix="/api/v1")
    register_exception_handlers(app, settings)

    @app.get("/")
    async def root():
        return {
            "message": f"{settings.project_name} API",
            "version": settings.version
        }

    @app.get("/health")
    async def health_check(request: Request):
        """
        健康检查端点

        检查关系型数据库与MongoDB连接。

        **响应示例**:
        ```json
        {
          "status": "healthy",
          "database": "connected",
          "mongodb": "connected",
          "version": "1.0.0"
        }
        ```
        """
        health_status = {"status": "healthy", "version": settings.version}
        current = request.app.state.registry

        try:
            with current.relational().connect() as connection:
                connection.execute(text("SELECT 1"))
            health_status["database"] = "connected"
        except (AppError, SQLAlchemyError) as e:
            health_status["database"] = f"error: {str(e)}"
            health_status["status"] = "unhealthy"

        try:
            await current.document().command("ping")
            health_status["mongodb"] = "connected"
        except (AppError, PyMongoError) as e:
            health_status["mongodb"] = f"error: {str(e)}"
            health_status["status"] = "unhealthy"

        status_code = 200 if health_status["status"] == "healthy" else 503
        return JSONResponse(content=health_status, status_code=status_code)

    return app


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        """业务异常统一转换为 {success: false, code, message}"""
        if exc.status_code >= 500:
            logger.error(f"请求失败: {request.method} {request.url.path} - {type(exc).__name__}: {exc.message}")
        else:
            logger.info(f"请求被拒绝: {request.method} {request.url.path} - {exc.status_code} {exc.message}")

        details = None
        step = getattr(exc, "step", None)
        if step is not None:
            details = {"step": step, "tenant_id": getattr(exc, "tenant_id", None)}
        return JSONResponse(
            status_code=exc.status_code,
            content=APIResponse.error(code=exc.status_code, message=exc.message, details=details),
        )

    # 请求验证错误处理
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        error_details = []
        for error in exc.errors():
            error_details.append({
                "field": ".".join(str(loc) for loc in error.get("loc", [])),
                "message": error.get("msg", "验证失败"),
                "type": error.get("type", "validation_error")
            })

        logger.warning(f"请求验证失败: {request.url} - {error_details}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=APIResponse.error(
                code=422,
                message="请求参数验证失败",
                details={"errors": error_details}
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.info(f"HTTP异常: {exc.status_code} - {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=APIResponse.error(code=exc.status_code, message=exc.detail),
            headers=getattr(exc, "headers", None),
        )

    # 全局异常处理（兜底）
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"未处理的异常: {type(exc).__name__}: {str(exc)}\n"
            f"请求路径: {request.url}\n"
            f"堆栈跟踪:\n{traceback.format_exc()}"
        )

        # 在生产环境中，不返回详细的错误信息
        error_message = "服务器内部错误"
        if settings.debug:
            error_message = f"{type(exc).__name__}: {str(exc)}"
        return JSONResponse(
            status_code=500,
            content=APIResponse.error(code=500, message=error_message),
        )


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
