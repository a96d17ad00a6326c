"""
业务异常定义
所有异常在请求边界统一转换为 {success: false, code, message} 响应
"""
from typing import Optional
from fastapi import status


class AppError(Exception):
    """应用异常基类"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "操作失败"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """必填参数缺失或取值非法（客户端错误）"""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "请求参数无效"


class ConflictError(AppError):
    """唯一性冲突，例如子域名或邮箱重复（客户端错误）"""

    status_code = status.HTTP_409_CONFLICT
    default_message = "资源已存在"


class NotFoundError(AppError):
    """按ID/子域名查询不到记录"""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "资源不存在"


class UninitializedStoreError(AppError):
    """在启动初始化之前访问存储（编程错误）"""

    default_message = "数据库尚未初始化"


class StoreOperationError(AppError):
    """网络或驱动失败，不自动重试"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "数据库操作失败"


class MigrationError(StoreOperationError):
    """迁移执行或回滚失败"""

    default_message = "迁移执行失败"

    def __init__(self, message: Optional[str] = None, migration: Optional[str] = None):
        self.migration = migration
        super().__init__(message)


class ProvisioningError(AppError):
    """租户开通流程在租户记录创建之后失败（不做补偿回滚）"""

    default_message = "租户开通失败"

    def __init__(self, message: Optional[str] = None, step: Optional[str] = None, tenant_id: Optional[int] = None):
        self.step = step
        self.tenant_id = tenant_id
        super().__init__(message)
