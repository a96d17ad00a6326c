"""
监控API
"""
from fastapi import APIRouter

from ....core.monitoring import get_metrics
from ....core.responses import APIResponse

router = APIRouter()


@router.get("/metrics")
async def read_metrics():
    """进程内请求指标（含降级写入次数）"""
    return APIResponse.success(get_metrics())
