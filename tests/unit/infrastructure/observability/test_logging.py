"""Tests for structured logging."""

import asyncio
import json
import logging
import sys

import pytest

from songpool.domain.exceptions import UpstreamError
from songpool.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
    configure_logging,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self):
        """Test setting and getting correlation ID."""
        result = set_correlation_id("test-123-abc")
        assert result == "test-123-abc"
        assert get_correlation_id() == "test-123-abc"

    def test_set_correlation_id_generates_uuid_when_none(self):
        """Test that setting None generates a UUID."""
        result = set_correlation_id(None)
        assert len(result) == 36
        assert get_correlation_id() == result

    async def test_correlation_id_isolated_per_task(self):
        """Test concurrent aggregation tasks keep their own ids."""

        async def run(correlation_id: str) -> str:
            set_correlation_id(correlation_id)
            await asyncio.sleep(0)
            return get_correlation_id()

        results = await asyncio.gather(run("player-a"), run("player-b"))
        assert results == ["player-a", "player-b"]

    def test_filter_adds_correlation_id(self):
        """Test the filter stamps records with the current id."""
        set_correlation_id("filter-id")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "filter-id"

    def test_correlation_scope_restores_previous_id(self):
        """Test the scope sets an id for the block and puts the old one back."""
        set_correlation_id("outer")

        with correlation_scope() as scoped:
            assert get_correlation_id() == scoped
            assert scoped != "outer"

        assert get_correlation_id() == "outer"

    def test_correlation_scope_restores_on_error(self):
        """Test the previous id comes back when the block raises."""
        set_correlation_id("outer")

        with pytest.raises(RuntimeError), correlation_scope("inner"):
            assert get_correlation_id() == "inner"
            raise RuntimeError("boom")

        assert get_correlation_id() == "outer"


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self):
        """Test configuring logging with DEBUG level."""
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_replaces_handlers(self):
        """Test repeated configuration doesn't stack handlers."""
        configure_logging(log_level="INFO", json_format=False, app_name="test-app")
        configure_logging(log_level="INFO", json_format=True, app_name="test-app")

        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CustomJsonFormatter)

    def test_httpx_quieted(self):
        """Test per-request httpx logging is suppressed."""
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING


class TestFormatters:
    """Test log output formats."""

    def test_json_formatter_fields(self):
        """Test JSON output carries level, logger and correlation id."""
        formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = logging.LogRecord(
            "songpool.test", logging.WARNING, __file__, 42, "Playlist %s skipped", ("p1",), None
        )
        record.correlation_id = "run-1"

        data = json.loads(formatter.format(record))

        assert data["message"] == "Playlist p1 skipped"
        assert data["level"] == "WARNING"
        assert data["logger"] == "songpool.test"
        assert data["correlation_id"] == "run-1"

    def test_compact_formatter_shows_cause_first(self):
        """Test chained exceptions print root cause first."""
        try:
            try:
                raise ConnectionError("refused")
            except ConnectionError as e:
                raise UpstreamError("Network error") from e
        except UpstreamError:
            exc_info = sys.exc_info()

        text = CompactExceptionFormatter().formatException(exc_info)
        lines = [line for line in text.splitlines() if line.startswith("╰─►")]

        assert lines == [
            "╰─► ConnectionError: refused",
            "╰─► UpstreamError: Network error",
        ]
