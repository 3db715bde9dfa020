"""Unit tests for repo_radar.logging - structured logging and job context."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
import structlog

from repo_radar.logging import (
    _VALID_LEVELS,
    configure_logging,
    generate_run_id,
    job_logging_context,
)

if TYPE_CHECKING:
    from pathlib import Path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:
    """Reset structlog state between tests."""
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# generate_run_id
# ---------------------------------------------------------------------------


class TestGenerateRunId:
    def test_sortable_timestamp_prefix(self) -> None:
        rid = generate_run_id(datetime(2026, 3, 15, 6, 0, tzinfo=UTC))
        stamp, _, suffix = rid.partition("-")
        assert stamp == "20260315T060000"
        assert len(suffix) == 8

    def test_unique_across_calls(self) -> None:
        assert len({generate_run_id() for _ in range(10)}) == 10


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLoggingLevel:
    """configure_logging validates and applies log levels."""

    def test_case_insensitive(self) -> None:
        configure_logging(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_level_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="TRACE")

    def test_all_valid_levels_accepted(self) -> None:
        for lvl in _VALID_LEVELS:
            configure_logging(level=lvl)
            assert logging.getLogger().level == getattr(logging, lvl)

    def test_client_libraries_quieted(self) -> None:
        configure_logging(level="DEBUG")
        for name in ("httpx", "httpcore", "LiteLLM"):
            assert logging.getLogger(name).level == logging.WARNING


class TestConfigureLoggingRunId:
    def test_run_id_bound(self) -> None:
        configure_logging(run_id="run-123")
        assert structlog.contextvars.get_contextvars().get("run_id") == "run-123"

    def test_no_run_id(self) -> None:
        configure_logging()
        assert "run_id" not in structlog.contextvars.get_contextvars()


class TestConfigureLoggingFile:
    """configure_logging creates file handlers."""

    def test_file_receives_json_output(self, tmp_path: Path) -> None:
        log_file = tmp_path / "radar.log"
        configure_logging(level="INFO", fmt="json", log_file=log_file)

        structlog.get_logger("test_file").info("test_message", key="value")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert "test_message" in content
        assert '"key": "value"' in content

    def test_creates_missing_log_directory(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "cron" / "radar.log"
        configure_logging(log_file=log_file)
        assert log_file.parent.is_dir()

    def test_reconfigure_clears_handlers(self, tmp_path: Path) -> None:
        configure_logging(log_file=tmp_path / "first.log")
        configure_logging(log_file=tmp_path / "second.log")
        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1


# ---------------------------------------------------------------------------
# job_logging_context
# ---------------------------------------------------------------------------


class TestJobLoggingContext:
    """job_logging_context binds and unbinds job metadata."""

    def test_binds_job_name_and_extra(self) -> None:
        configure_logging(level="DEBUG")
        with job_logging_context("collect", batch_size=30) as log:
            ctx = structlog.contextvars.get_contextvars()
            assert ctx.get("job_name") == "collect"
            assert ctx.get("batch_size") == 30
            assert hasattr(log, "info")

    def test_unbinds_on_exit(self) -> None:
        configure_logging(level="DEBUG")
        with job_logging_context("collect", batch_size=30):
            pass
        ctx = structlog.contextvars.get_contextvars()
        assert "job_name" not in ctx
        assert "batch_size" not in ctx

    def test_keeps_run_id(self) -> None:
        configure_logging(level="DEBUG", run_id="run-1")
        with job_logging_context("discover"):
            pass
        assert structlog.contextvars.get_contextvars().get("run_id") == "run-1"

    def test_exception_propagated_and_cleaned(self) -> None:
        configure_logging(level="DEBUG")
        with pytest.raises(RuntimeError, match="boom"), job_logging_context("daily"):
            raise RuntimeError("boom")
        assert "job_name" not in structlog.contextvars.get_contextvars()

    def test_job_end_reports_status_and_duration(self, tmp_path: Path) -> None:
        log_file = tmp_path / "radar.log"
        configure_logging(level="INFO", fmt="json", log_file=log_file)

        with job_logging_context("collect"):
            pass
        with pytest.raises(RuntimeError), job_logging_context("daily"):
            raise RuntimeError("boom")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        ends = {e["job_name"]: e for e in entries if e["event"] == "job_end"}
        assert ends["collect"]["status"] == "ok"
        assert ends["daily"]["status"] == "error"
        assert ends["collect"]["duration_seconds"] >= 0
        assert [e["event"] for e in entries].count("job_error") == 1
