"""Tests for xlnsync.core.logging module."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from xlnsync.core.logging import (
    JSONFormatter,
    StandardFormatter,
    TransportSession,
    configure_logging,
    current_session,
    session_context,
)


def _record(level: int = logging.INFO, msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="xlnsync.test",
        level=level,
        pathname="/tmp/test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


# ============================================================================
# Transport session context
# ============================================================================


class TestSessionContext:
    """Tests for the transport session context."""

    def test_default_none(self):
        assert current_session() is None

    def test_generates_id_and_restores(self):
        with session_context("ws://host:1/ws") as session:
            assert current_session() is session
            assert session.address == "ws://host:1/ws"
            assert len(session.id) == 36
        assert current_session() is None

    def test_explicit_id(self):
        with session_context(session_id="0123456789abcdef") as session:
            assert session.id == "0123456789abcdef"
            assert session.short_id == "01234567"
            assert session.address is None

    def test_nests(self):
        with session_context("ws://outer"):
            with session_context("ws://inner"):
                assert current_session().address == "ws://inner"
            assert current_session().address == "ws://outer"

    def test_sessions_are_immutable(self):
        session = TransportSession(id="abc")
        with pytest.raises(AttributeError):
            session.id = "other"


# ============================================================================
# Formatter Tests
# ============================================================================


class TestJSONFormatter:
    """Tests for the structured formatter."""

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "xlnsync.test"
        assert data["message"] == "hello"
        assert "source" not in data
        assert "session" not in data
        assert "connection" not in data

    def test_includes_session(self):
        with session_context("ws://host:1/ws", session_id="abc"):
            data = json.loads(JSONFormatter().format(_record()))
        assert data["session"] == {"id": "abc", "address": "ws://host:1/ws"}

    def test_includes_connection_status_and_event(self):
        record = _record(status="fallback_simulated", event="request:metrics")
        data = json.loads(JSONFormatter().format(record))
        assert data["connection"] == {"status": "fallback_simulated", "event": "request:metrics"}

    def test_status_only(self):
        data = json.loads(JSONFormatter().format(_record(status="connected")))
        assert data["connection"] == {"status": "connected"}

    def test_warning_includes_source(self):
        data = json.loads(JSONFormatter().format(_record(logging.WARNING)))
        assert data["source"] == "/tmp/test.py:10"

    def test_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(logging.ERROR)
            record.exc_info = sys.exc_info()
        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in data["exception"]


class TestStandardFormatter:
    """Tests for the development formatter."""

    def test_plain_output(self):
        output = StandardFormatter(use_colors=False).format(_record())
        assert output.endswith("INFO xlnsync.test: hello")

    def test_session_prefix(self):
        with session_context(session_id="0123456789abcdef"):
            output = StandardFormatter(use_colors=False).format(_record())
        assert output.endswith("xlnsync.test: [01234567] hello")

    def test_connection_suffix(self):
        output = StandardFormatter(use_colors=False).format(_record(status="connecting"))
        assert output.endswith("hello (status=connecting)")

    def test_message_args_applied(self):
        record = _record(msg="%d nodes")
        record.args = (3,)
        output = StandardFormatter(use_colors=False).format(record)
        assert output.endswith("3 nodes")

    def test_record_not_mutated(self):
        record = _record(status="connected")
        with session_context(session_id="0123456789abcdef"):
            StandardFormatter(use_colors=False).format(record)
        assert record.msg == "hello"


# ============================================================================
# configure_logging
# ============================================================================


class TestConfigureLogging:
    """Tests for root logger configuration."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_format(self, clean_env):
        configure_logging(level="DEBUG", json_format=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_text_format_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_LOG_FORMAT", "text")
        configure_logging()
        assert isinstance(logging.getLogger().handlers[0].formatter, StandardFormatter)

    def test_level_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_LOG_LEVEL", "WARNING")
        configure_logging(json_format=True)
        assert logging.getLogger().level == logging.WARNING

    def test_explicit_level_wins(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_LOG_LEVEL", "WARNING")
        configure_logging(level="DEBUG", json_format=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, clean_env):
        configure_logging(level="chatty", json_format=True)
        assert logging.getLogger().level == logging.INFO

    def test_log_file(self, clean_env, tmp_path):
        log_file = tmp_path / "sync.log"
        configure_logging(json_format=False, log_file=str(log_file))
        root = logging.getLogger()
        assert len(root.handlers) == 2
        assert isinstance(root.handlers[1].formatter, JSONFormatter)
        root.handlers[1].close()

    def test_quiets_aiohttp(self, clean_env):
        configure_logging(json_format=True)
        assert logging.getLogger("aiohttp").level == logging.WARNING
