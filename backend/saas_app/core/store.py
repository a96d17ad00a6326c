"""
存储目标与多存储写入结果
"""
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, List, Optional
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError, PyMongoError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from .exceptions import AppError, ConflictError, StoreOperationError, ValidationError

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE 与 MySQL 错误码
PG_UNIQUE_VIOLATION = "23505"
MYSQL_DUPLICATE_ENTRY = 1062


class StoreTarget(str, Enum):
    """写入/查询的目标存储"""

    RELATIONAL = "relational"
    DOCUMENT = "document"
    BOTH = "both"

    @property
    def includes_relational(self) -> bool:
        return self in (StoreTarget.RELATIONAL, StoreTarget.BOTH)

    @property
    def includes_document(self) -> bool:
        return self in (StoreTarget.DOCUMENT, StoreTarget.BOTH)


class StoreOutcome(BaseModel):
    """单个存储（或集合）的写入结果"""

    store: str
    succeeded: bool
    primary: bool = False
    error: Optional[str] = None


class WriteResult(BaseModel):
    """
    多存储写入结果

    双写不是事务性的：主存储成功即视为调用成功，次级存储失败会记录在这里，
    由调用方决定重试、补偿或向客户端返回降级警告。
    """

    record: Any = None
    outcomes: List[StoreOutcome] = Field(default_factory=list)

    def record_success(self, store: str, primary: bool = False) -> None:
        self.outcomes.append(StoreOutcome(store=store, succeeded=True, primary=primary))

    def record_failure(self, store: str, error: Exception, primary: bool = False) -> None:
        self.outcomes.append(
            StoreOutcome(store=store, succeeded=False, primary=primary, error=f"{type(error).__name__}: {error}")
        )

    def outcome(self, store: str) -> Optional[StoreOutcome]:
        for item in self.outcomes:
            if item.store == store:
                return item
        return None

    @property
    def degraded(self) -> bool:
        """是否存在次级写入失败"""
        return any(not item.succeeded for item in self.outcomes)

    @property
    def warnings(self) -> List[str]:
        return [f"{item.store}: {item.error}" for item in self.outcomes if not item.succeeded]


def is_unique_violation(error: IntegrityError) -> bool:
    """区分唯一约束冲突与其他完整性错误（非空、外键等）"""
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == PG_UNIQUE_VIOLATION:
        return True
    args = getattr(orig, "args", None) or ()
    if args and args[0] == MYSQL_DUPLICATE_ENTRY:
        return True
    message = str(orig if orig is not None else error).lower()
    return "unique constraint" in message or "duplicate key" in message or "duplicate entry" in message


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """
    把驱动异常转换为业务异常

    唯一冲突→ConflictError，其余完整性错误→ValidationError，其余驱动失败→StoreOperationError
    """
    try:
        yield
    except AppError:
        raise
    except DuplicateKeyError as e:
        logger.warning(f"{action}失败，唯一约束冲突: {e}")
        raise ConflictError(f"{action}失败：记录已存在") from e
    except IntegrityError as e:
        if is_unique_violation(e):
            logger.warning(f"{action}失败，唯一约束冲突: {e.orig}")
            raise ConflictError(f"{action}失败：记录已存在") from e
        logger.warning(f"{action}失败，数据不满足约束: {e.orig}")
        raise ValidationError(f"{action}失败：数据不满足约束") from e
    except (SQLAlchemyError, PyMongoError) as e:
        logger.error(f"{action}失败: {e}", exc_info=True)
        raise StoreOperationError(f"{action}失败") from e
