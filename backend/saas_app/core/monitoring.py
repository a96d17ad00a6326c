"""
监控和指标收集
"""
import time
import logging
from typing import Dict, Any
from fastapi import Request
from ..utils import utcnow

logger = logging.getLogger(__name__)

MAX_RESPONSE_SAMPLES = 1000
# 租户ID来自客户端请求头，超过上限的新租户计入 OTHER_TENANTS
MAX_TRACKED_TENANTS = 1000
OTHER_TENANTS = "other"
UNMATCHED_ROUTE = "<unmatched>"


def _empty_metrics() -> Dict[str, Any]:
    return {
        "api_requests_total": 0,
        "api_requests_by_endpoint": {},
        "api_requests_by_status": {},
        "api_requests_by_tenant": {},
        "api_response_times": [],
        "errors_total": 0,
        "errors_by_type": {},
        "degraded_writes_total": 0,
    }


# 进程内指标
_metrics = _empty_metrics()


def get_metrics() -> Dict[str, Any]:
    """获取所有指标"""
    return {
        "metrics": _metrics.copy(),
        "average_response_time": get_average_response_time(),
        "error_rate": get_error_rate(),
        "timestamp": utcnow().isoformat()
    }


def reset_metrics():
    """重置指标（用于测试）"""
    global _metrics
    _metrics = _empty_metrics()


def record_api_request(endpoint: str, status_code: int, response_time: float, tenant_id=None):
    """记录API请求指标"""
    _metrics["api_requests_total"] += 1

    by_endpoint = _metrics["api_requests_by_endpoint"]
    by_endpoint[endpoint] = by_endpoint.get(endpoint, 0) + 1

    status_key = f"{status_code // 100}xx"
    by_status = _metrics["api_requests_by_status"]
    by_status[status_key] = by_status.get(status_key, 0) + 1

    if tenant_id is not None:
        by_tenant = _metrics["api_requests_by_tenant"]
        key = str(tenant_id)
        if key not in by_tenant and len(by_tenant) >= MAX_TRACKED_TENANTS:
            key = OTHER_TENANTS
        by_tenant[key] = by_tenant.get(key, 0) + 1

    _metrics["api_response_times"].append(response_time)
    if len(_metrics["api_response_times"]) > MAX_RESPONSE_SAMPLES:
        _metrics["api_response_times"] = _metrics["api_response_times"][-MAX_RESPONSE_SAMPLES:]


def record_error(error_type: str, error_message: str = ""):
    """记录错误指标"""
    _metrics["errors_total"] += 1
    by_type = _metrics["errors_by_type"]
    by_type[error_type] = by_type.get(error_type, 0) + 1

    logger.warning(f"[监控] 错误记录: {error_type} - {error_message}")


def record_degraded_write(operation: str, warnings):
    """记录次级存储写入失败（部分成功）"""
    _metrics["degraded_writes_total"] += 1
    logger.warning(f"[监控] 降级写入: {operation} - {warnings}")


def get_average_response_time() -> float:
    if not _metrics["api_response_times"]:
        return 0.0
    return sum(_metrics["api_response_times"]) / len(_metrics["api_response_times"])


def get_error_rate() -> float:
    if _metrics["api_requests_total"] == 0:
        return 0.0
    return _metrics["errors_total"] / _metrics["api_requests_total"]


def route_template(request: Request) -> str:
    """按路由模板（如 /api/v1/users/{user_id}）归类请求，未匹配的路径统一归类"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


async def monitoring_middleware(request: Request, call_next):
    """监控中间件：记录请求指标"""
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        endpoint = route_template(request)
        record_api_request(endpoint, 500, time.time() - start_time)
        record_error("exception", f"{type(e).__name__}: {str(e)}")
        raise

    endpoint = route_template(request)
    tenant_id = getattr(request.state, "tenant_id", None)
    record_api_request(endpoint, response.status_code, time.time() - start_time, tenant_id)
    if response.status_code >= 400:
        record_error(f"http_{response.status_code}", f"{request.method} {endpoint}")
    return response
