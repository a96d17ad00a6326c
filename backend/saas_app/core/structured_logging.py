"""
结构化日志配置
"""
import logging
import json
import sys
from typing import Any, Dict
from ..utils import utcnow


class StructuredFormatter(logging.Formatter):
    """结构化日志格式化器（JSON格式）"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # logger.info(..., extra={"extra_fields": {"tenant_id": 5}})
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_data.update(extra_fields)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class PlainFormatter(logging.Formatter):
    """普通文本格式化器（开发环境使用）"""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    use_structured: bool = False,
    log_level: str = "INFO",
    enable_file_logging: bool = False,
    log_dir: str = "logs"
):
    """
    设置日志配置

    Args:
        use_structured: 是否使用结构化日志（JSON格式）
        log_level: 日志级别（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        enable_file_logging: 是否启用文件日志（日志轮转）
        log_dir: 日志目录（仅在启用文件日志时有效）
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(StructuredFormatter() if use_structured else PlainFormatter())
    root_logger.addHandler(console_handler)

    if enable_file_logging:
        from .log_rotation import setup_file_logging
        try:
            setup_file_logging(log_dir=log_dir, formatter=StructuredFormatter() if use_structured else None)
            logging.getLogger(__name__).info(f"文件日志已启用，日志目录: {log_dir}")
        except OSError as e:
            logging.getLogger(__name__).warning(f"启用文件日志失败: {e}")

    # 配置第三方库日志级别
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)


def get_logger(name: str) -> logging.Logger:
    """获取日志记录器"""
    return logging.getLogger(name)
