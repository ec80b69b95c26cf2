"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging
import sys

from dt_controller.main import JsonFormatter, setup_logging


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, **extra: object) -> logging.LogRecord:
        record = logging.LogRecord(
            name="dt_controller.reconciler",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Creating Digital Twins instance",
            args=(),
            exc_info=None,
        )
        record.__dict__.update(extra)
        return record

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(self._record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Creating Digital Twins instance"
        assert data["logger"] == "dt_controller.reconciler"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields_included(self) -> None:
        record = self._record(instance_name="dt1", resource_group="rg1")
        data = json.loads(JsonFormatter().format(record))

        assert data["instance_name"] == "dt1"
        assert data["resource_group"] == "rg1"

    def test_exception_included(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = self._record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))
        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_quiets_azure_sdk(self) -> None:
        root_logger = logging.getLogger()
        handlers = list(root_logger.handlers)
        level = root_logger.level
        try:
            setup_logging(json_output=True)

            assert isinstance(root_logger.handlers[-1].formatter, JsonFormatter)
            assert logging.getLogger("azure").level == logging.WARNING
        finally:
            root_logger.handlers[:] = handlers
            root_logger.setLevel(level)
