"""
日志文件轮转

- app.log         按大小轮转，INFO及以上
- error.log       按天轮转，只记录ERROR
- operations.log  按大小轮转，只收迁移与租户开通的日志（便于追查未补偿的半开通租户）
"""
import logging
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

OPERATION_LOGGERS = ("saas_app.migrations", "saas_app.services.provisioning_service")


class _PrefixFilter(logging.Filter):
    def __init__(self, prefixes):
        super().__init__()
        self.prefixes = tuple(prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(self.prefixes)


def setup_file_logging(
    log_dir: str = "logs",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    formatter: Optional[logging.Formatter] = None
) -> List[logging.Handler]:
    """在根日志记录器上挂载文件处理器，返回新增的处理器"""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    formatter = formatter or logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    app_handler = RotatingFileHandler(
        log_path / "app.log", maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    app_handler.setLevel(logging.INFO)

    error_handler = TimedRotatingFileHandler(
        log_path / "error.log", when="midnight", backupCount=backup_count, encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)

    operations_handler = RotatingFileHandler(
        log_path / "operations.log", maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    operations_handler.setLevel(logging.INFO)
    operations_handler.addFilter(_PrefixFilter(OPERATION_LOGGERS))

    handlers: List[logging.Handler] = [app_handler, error_handler, operations_handler]
    root_logger = logging.getLogger()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    return handlers
