"""
写入结果、异常转换与日志测试
"""
import json
import logging
import pytest
from pymongo.errors import AutoReconnect, DuplicateKeyError
from sqlalchemy.exc import IntegrityError, OperationalError
from saas_app.core.exceptions import ConflictError, NotFoundError, StoreOperationError, ValidationError
from saas_app.core.log_rotation import setup_file_logging
from saas_app.core.store import StoreTarget, WriteResult, is_unique_violation, store_errors
from saas_app.core.structured_logging import StructuredFormatter, setup_logging


class TestStoreTarget:
    """存储目标测试"""

    def test_includes(self):
        """测试目标包含关系"""
        assert StoreTarget.BOTH.includes_relational and StoreTarget.BOTH.includes_document
        assert StoreTarget.RELATIONAL.includes_relational and not StoreTarget.RELATIONAL.includes_document
        assert StoreTarget("document") is StoreTarget.DOCUMENT


class TestWriteResult:
    """写入结果测试"""

    def test_all_succeeded(self):
        """测试全部成功"""
        result = WriteResult(record="ok")
        result.record_success("relational", primary=True)
        result.record_success("document")

        assert result.degraded is False
        assert result.warnings == []

    def test_secondary_failure(self):
        """测试次级写入失败"""
        result = WriteResult()
        result.record_success("relational", primary=True)
        result.record_failure("document", AutoReconnect("connection lost"))

        assert result.degraded is True
        assert result.warnings == ["document: AutoReconnect: connection lost"]
        assert result.outcome("relational").primary is True
        assert result.outcome("missing") is None


class TestStoreErrors:
    """驱动异常转换测试"""

    def test_duplicate_key(self):
        """测试唯一冲突转换为 ConflictError"""
        with pytest.raises(ConflictError):
            with store_errors("创建用户"):
                raise DuplicateKeyError("E11000 duplicate key")

    def test_integrity_error(self):
        """测试关系型唯一冲突"""
        with pytest.raises(ConflictError):
            with store_errors("创建租户"):
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    def test_not_null_violation(self):
        """测试非空约束失败转换为 ValidationError"""
        with pytest.raises(ValidationError):
            with store_errors("更新订阅"):
                raise IntegrityError("UPDATE", {}, Exception("NOT NULL constraint failed: subscriptions.plan_name"))

    def test_unique_violation_detection(self):
        """测试按驱动错误码识别唯一冲突"""
        pg_unique = Exception("duplicate key value")
        pg_unique.pgcode = "23505"
        pg_foreign_key = Exception("insert or update on table \"users\" violates foreign key constraint")
        pg_foreign_key.pgcode = "23503"
        mysql_unique = Exception(1062, "Duplicate entry 'a@example.com' for key 'uq_users_tenant_email'")
        mysql_foreign_key = Exception(1452, "Cannot add or update a child row: a foreign key constraint fails")

        assert is_unique_violation(IntegrityError("INSERT", {}, pg_unique)) is True
        assert is_unique_violation(IntegrityError("INSERT", {}, mysql_unique)) is True
        assert is_unique_violation(IntegrityError("INSERT", {}, pg_foreign_key)) is False
        assert is_unique_violation(IntegrityError("INSERT", {}, mysql_foreign_key)) is False

    def test_driver_failure(self):
        """测试驱动失败转换为 StoreOperationError 并保留原因"""
        with pytest.raises(StoreOperationError) as exc_info:
            with store_errors("查询租户"):
                raise OperationalError("SELECT", {}, Exception("database is locked"))

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert exc_info.value.status_code == 503

    def test_app_error_passes_through(self):
        """测试业务异常原样抛出"""
        with pytest.raises(NotFoundError):
            with store_errors("更新租户"):
                raise NotFoundError("租户不存在: 1")


class TestLogging:
    """日志配置测试"""

    def test_structured_formatter(self):
        """测试JSON格式与附加字段"""
        record = logging.LogRecord("saas_app.test", logging.INFO, __file__, 10, "租户已创建", None, None)
        record.extra_fields = {"tenant_id": 5}

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["message"] == "租户已创建"
        assert data["tenant_id"] == 5

    def test_file_logging(self, tmp_path):
        """测试文件日志轮转"""
        root_logger = logging.getLogger()
        handlers = setup_file_logging(log_dir=str(tmp_path / "logs"))
        try:
            logging.getLogger("saas_app.test").error("迁移失败")
            logging.getLogger("saas_app.migrations.runner").error("关系型迁移失败: 0002_create_users_table")
            for handler in handlers:
                handler.flush()

            assert "迁移失败" in (tmp_path / "logs" / "app.log").read_text(encoding="utf-8")
            assert "迁移失败" in (tmp_path / "logs" / "error.log").read_text(encoding="utf-8")
            operations = (tmp_path / "logs" / "operations.log").read_text(encoding="utf-8")
            assert "0002_create_users_table" in operations
            assert "saas_app.test" not in operations
        finally:
            for handler in handlers:
                root_logger.removeHandler(handler)
                handler.close()

    def test_setup_logging_level(self):
        """测试日志级别设置"""
        root_logger = logging.getLogger()
        previous_level, previous_handlers = root_logger.level, list(root_logger.handlers)
        try:
            setup_logging(use_structured=True, log_level="warning")

            assert root_logger.level == logging.WARNING
            assert isinstance(root_logger.handlers[0].formatter, StructuredFormatter)
        finally:
            root_logger.handlers[:] = previous_handlers
            root_logger.setLevel(previous_level)
