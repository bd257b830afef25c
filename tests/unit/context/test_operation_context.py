"""
Tests for the operation decorator and its log lines.
"""

from unittest.mock import Mock, patch

import pytest

from provisioning_core.context.operation_context import OperationContext, OperationHandler, operation
from provisioning_core.context.tenant_context import TenantContext
from provisioning_core.exceptions import (
    NotFoundError,
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


class UserDirectory:
    def __init__(self):
        self.tenant = TenantContext(tenant_id="t-1", partition_name="school_1", institution_name="One")

    @operation()
    def lookup(self, user_id):
        return {"id": user_id}

    @operation(name="directory.missing")
    def missing(self, user_id):
        raise NotFoundError("User not found", user_id=user_id)

    @operation
    def broken(self):
        raise RuntimeError("boom")


@pytest.fixture
def mock_logger():
    logger = Mock()
    with patch("provisioning_core.context.operation_context.get_logger", return_value=logger):
        yield logger


class TestOperationDecorator:
    def test_logs_enter_and_exit(self, mock_logger):
        result = UserDirectory().lookup("u-1")

        assert result == {"id": "u-1"}
        enter, exit_ = [c.args[0] for c in mock_logger.info.call_args_list]
        assert enter == "ENTER: test_operation_context.UserDirectory.lookup"
        assert exit_ == "EXIT: test_operation_context.UserDirectory.lookup"
        extra = mock_logger.info.call_args_list[1].kwargs["extra"]
        assert extra["tenant_id"] == "t-1"
        assert extra["class"] == "UserDirectory"
        assert extra["status"] == "success"
        assert "duration_ms" in extra

    def test_base_error_is_enriched_and_reraised(self, mock_logger):
        with pytest.raises(NotFoundError) as exc_info:
            UserDirectory().missing("u-2")

        assert exc_info.value.context["operation_name"] == "directory.missing"
        assert "operation_id" in exc_info.value.context
        message = mock_logger.warning.call_args.args[0]
        assert message.startswith("ERROR: directory.missing -> 3000")

    def test_unexpected_error_is_logged_with_traceback(self, mock_logger):
        with pytest.raises(RuntimeError):
            UserDirectory().broken()

        mock_logger.exception.assert_called_once()
        assert mock_logger.exception.call_args.kwargs["extra"]["error_type"] == "RuntimeError"


class TestOperationContext:
    def teardown_method(self):
        clear_correlation_id()

    def test_reuses_thread_correlation_id(self):
        set_correlation_id("corr-1")

        assert OperationContext("op").correlation_id == "corr-1"

    def test_creates_correlation_id_when_missing(self):
        clear_correlation_id()

        op_ctx = OperationContext("op")

        assert op_ctx.correlation_id
        assert get_correlation_id() == op_ctx.correlation_id

    def test_handler_context_manager(self):
        logger = Mock()

        with OperationHandler(logger).operation("provision", tenant_id="t-9") as op_ctx:
            op_ctx.add_context(step="create_user")

        assert op_ctx.context["step"] == "create_user"
        assert logger.info.call_count == 2
