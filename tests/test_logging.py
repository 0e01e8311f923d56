"""JSON log lines and request context (pharmacy_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from pharmacy_kernel.domain.dtos import BudgetStatus
from pharmacy_kernel.exceptions import InsufficientStockError
from pharmacy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def log_stream():
    """A fresh kernel logger configuration writing JSON into a buffer."""
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    configure_logging(handler=handler, level=logging.INFO)
    yield _records
    LogContext.clear()
    reset_logging()


class TestLogLines:

    def test_one_json_object_per_record(self, log_stream):
        logger = get_logger("services.inventory_ledger")
        logger.info("stock_decremented")
        logger.warning("stock_conflict", extra={"requested_quantity": 2})
        logger.debug("dropped_below_info")

        records = log_stream()
        assert [r["message"] for r in records] == ["stock_decremented", "stock_conflict"]
        first = records[0]
        assert first["level"] == "INFO"
        assert first["logger"] == "pharmacy_kernel.services.inventory_ledger"
        assert first["ts"].endswith("+00:00")
        assert records[1]["requested_quantity"] == 2

    def test_domain_values_rendered_as_strings(self, log_stream):
        order_id = uuid4()
        get_logger("test").info(
            "budget_posted",
            extra={
                "order_ref": order_id,
                "amount": Decimal("12.50"),
                "status": BudgetStatus.WARNING,
                "categories": ("insurance",),
            },
        )

        record = log_stream()[0]
        assert record["order_ref"] == str(order_id)
        assert record["amount"] == "12.50"
        assert record["status"] == BudgetStatus.WARNING.value
        assert record["categories"] == ["insurance"]

    def test_context_fields_on_every_line(self, log_stream):
        logger = get_logger("test")
        with LogContext.bind(tenant_id="pharm-1", flow="sale", order_id="o-1"):
            logger.info("order_header_persisted")
            logger.info("order_committed")
        logger.info("outside")

        inside, committed, outside = log_stream()
        for record in (inside, committed):
            assert record["tenant_id"] == "pharm-1"
            assert record["flow"] == "sale"
            assert record["order_id"] == "o-1"
        assert "tenant_id" not in outside
        assert "order_id" not in outside

    def test_extra_never_overrides_core_fields(self, log_stream):
        with LogContext.bind(tenant_id="pharm-1"):
            get_logger("test").info("collision", extra={"tenant_id": "other"})
        assert log_stream()[0]["tenant_id"] == "pharm-1"

    def test_plain_exception(self, log_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = log_stream()[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_fields(self, log_stream):
        try:
            raise InsufficientStockError("item-1", "Ibuprofen", 5, 2)
        except InsufficientStockError:
            get_logger("test").error("stock_error", exc_info=True)

        record = log_stream()[0]
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_item_name"] == "Ibuprofen"
        assert record["exc_requested_quantity"] == 5
        assert record["exc_available_quantity"] == 2


class TestLogContext:

    def test_set_ignores_none(self):
        LogContext.set(correlation_id="x", order_id=None)
        assert LogContext.get_all() == {"correlation_id": "x"}

    def test_values_stored_as_strings(self):
        tenant = uuid4()
        LogContext.set(tenant_id=tenant)
        assert LogContext.get_all() == {"tenant_id": str(tenant)}

    def test_clear(self):
        LogContext.set(correlation_id="x", actor_id="a")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_values(self):
        LogContext.set(flow="sale")
        with LogContext.bind(flow="procurement", order_id="o-9"):
            assert LogContext.get_all() == {"flow": "procurement", "order_id": "o-9"}
        assert LogContext.get_all() == {"flow": "sale"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(order_id="o-1"):
                raise RuntimeError("step failed")
        assert "order_id" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(patient_name="Ada")
        with pytest.raises(TypeError):
            with LogContext.bind(patient_name="Ada"):
                pass

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            tenant_id="t1",
            actor_id="a",
            order_id="o",
            flow="sale",
            trace_id="t",
        )
        assert set(LogContext.get_all()) == {
            "correlation_id", "tenant_id", "actor_id", "order_id", "flow", "trace_id",
        }


class TestConfigureLogging:

    def test_second_configure_is_ignored(self, log_stream):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("pharmacy_kernel").handlers) == 1

    def test_handler_gets_structured_formatter(self, log_stream):
        (handler,) = logging.getLogger("pharmacy_kernel").handlers
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_module_loggers_share_the_kernel_root(self, log_stream):
        get_logger("modules.expense").info("expense_approved")
        assert log_stream()[0]["logger"] == "pharmacy_kernel.modules.expense"

    def test_reset_allows_reconfiguration(self):
        reset_logging()
        first, second = StringIO(), StringIO()
        configure_logging(handler=logging.StreamHandler(first))
        reset_logging()
        configure_logging(handler=logging.StreamHandler(second))
        get_logger("test").info("after_reset")
        reset_logging()

        assert first.getvalue() == ""
        assert "after_reset" in second.getvalue()
