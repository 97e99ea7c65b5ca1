"""
Tests for structured JSON logging.

Verifies:
- One JSON object per record with extras
- LogContext fields included and restored by bind()
- Typed exception fields (code + structured attributes) serialized
"""

import json
import logging
import sys
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from erp_kernel.exceptions import InsufficientStockError
from erp_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def _record(message: str, extra: dict | None = None, exc_info=None) -> logging.LogRecord:
    logger = logging.getLogger("erp_kernel.test")
    return logger.makeRecord(
        logger.name, logging.INFO, __file__, 1, message, (), exc_info, extra=extra or {}
    )


class TestStructuredFormatter:
    def test_extras_are_serialized(self):
        item_id = uuid4()
        payload = json.loads(
            StructuredFormatter().format(
                _record(
                    "inventory_depleted",
                    {"item_id": item_id, "quantity": Decimal("2.5"), "on": date(2024, 3, 1)},
                )
            )
        )
        assert payload["message"] == "inventory_depleted"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "erp_kernel.test"
        assert payload["item_id"] == str(item_id)
        assert payload["quantity"] == "2.5"
        assert payload["on"] == "2024-03-01"

    def test_context_fields_included(self):
        with LogContext.bind(reference="SO-2024-00001", actor_id="actor-1"):
            payload = json.loads(StructuredFormatter().format(_record("sale_recorded")))
        assert payload["reference"] == "SO-2024-00001"
        assert payload["actor_id"] == "actor-1"

    def test_bind_restores_previous_context(self):
        LogContext.set(reference="outer")
        with LogContext.bind(reference="inner"):
            assert LogContext.get_all()["reference"] == "inner"
        assert LogContext.get_all()["reference"] == "outer"

    def test_exception_fields(self):
        try:
            raise InsufficientStockError("item-1", "11", "10")
        except InsufficientStockError:
            record = _record("depletion_failed", exc_info=sys.exc_info())
        payload = json.loads(StructuredFormatter().format(record))
        assert payload["exc_type"] == "InsufficientStockError"
        assert payload["exc_code"] == "INSUFFICIENT_STOCK"
        assert payload["exc_requested"] == "11"
        assert payload["exc_available"] == "10"
        assert "traceback" in payload


def test_get_logger_namespace():
    assert get_logger("services.layer_store").name == "erp_kernel.services.layer_store"


class TestLogContext:
    def test_only_actor_and_reference_fields(self):
        LogContext.set(actor_id="actor-1", reference="AMC-2024-00001")
        assert LogContext.get_all() == {"actor_id": "actor-1", "reference": "AMC-2024-00001"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(trace_id="abc")

    def test_clear(self):
        LogContext.set(reference="SO-2024-00001")
        LogContext.clear()
        assert LogContext.get_all() == {}
