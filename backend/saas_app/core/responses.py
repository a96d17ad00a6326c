"""
统一API响应格式

成功: {"success": true, "message": ..., "data": ..., "warnings": [...]}
失败: {"success": false, "code": ..., "message": ..., "details": ...}

warnings 只在多存储写入部分失败（主存储成功、次级存储失败）时出现。
"""
from typing import Any, Dict, List, Optional
from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from ..schemas.common import Page
from .store import WriteResult


class APIResponse:

    @staticmethod
    def success(
        data: Any = None,
        message: str = "操作成功",
        warnings: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        response: Dict[str, Any] = {"success": True, "message": message}
        if data is not None:
            response["data"] = jsonable_encoder(data)
        if warnings:
            response["warnings"] = warnings
        return response

    @staticmethod
    def written(result: WriteResult, message: str = "操作成功") -> Dict[str, Any]:
        """写入操作的响应：data 为写入后的记录，降级时附带 warnings"""
        return APIResponse.success(result.record, message=message, warnings=result.warnings)

    @staticmethod
    def error(code: int, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
        """错误响应（code 与HTTP状态码一致）"""
        response: Dict[str, Any] = {"success": False, "code": code, "message": message}
        if details is not None:
            response["details"] = jsonable_encoder(details)
        return response

    @staticmethod
    def paginated(page: Page, message: str = "查询成功") -> Dict[str, Any]:
        return {
            "success": True,
            "message": message,
            "data": jsonable_encoder(page.items),
            "pagination": {
                "total": page.total,
                "page": page.page,
                "page_size": page.per_page,
                "total_pages": page.total_pages,
                "has_next": page.page < page.total_pages,
                "has_prev": page.page > 1,
            },
        }


class SuccessResponse(JSONResponse):
    """需要自定义状态码（如201）时使用"""

    def __init__(
        self,
        data: Any = None,
        message: str = "操作成功",
        status_code: int = status.HTTP_200_OK,
        warnings: Optional[List[str]] = None
    ):
        super().__init__(status_code=status_code, content=APIResponse.success(data, message, warnings))
