# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Logging for xlnsync.

Every line logged while a transport session is open carries that session
(a short id plus the server address), so interleaved reconnects can be told
apart. Records logged with ``extra={"status": ...}`` or
``extra={"event": ...}`` also carry the connection status or wire event
they concern.

Two formatters:
- ``JSONFormatter``: one JSON object per line, for log shippers
- ``StandardFormatter``: human-readable, coloured on a terminal
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import SyncSettings

# Record attributes (set via ``extra=``) copied into structured output
CONNECTION_FIELDS = ("status", "event")


@dataclass(frozen=True)
class TransportSession:
    """One open transport connection, as seen by the logs."""

    id: str
    address: str | None = None

    @property
    def short_id(self) -> str:
        return self.id[:8]


_session: ContextVar[TransportSession | None] = ContextVar("transport_session", default=None)


def current_session() -> TransportSession | None:
    """The transport session of the running task, if any."""
    return _session.get()


@contextmanager
def session_context(
    address: str | None = None,
    session_id: str | None = None,
) -> Iterator[TransportSession]:
    """Scope log lines to one transport session.

    The session is stored in a context variable, so it follows the task
    that entered it and nothing else.

    Example:
        with session_context("ws://localhost:4001/ws") as session:
            logger.info("Receiving frames")  # tagged with session.id
    """
    session = TransportSession(id=session_id or str(uuid.uuid4()), address=address)
    token = _session.set(session)
    try:
        yield session
    finally:
        _session.reset(token)


def _connection_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in CONNECTION_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Adds ``session`` (id and address) while a transport session is open,
    and ``connection`` when the record carries a status or event.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session = current_session()
        if session is not None:
            data["session"] = {"id": session.id, "address": session.address}

        connection = _connection_fields(record)
        if connection:
            data["connection"] = connection

        if record.levelno >= logging.WARNING:
            data["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


class StandardFormatter(logging.Formatter):
    """``time LEVEL logger: [session] message (status=...)`` for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def _dim(self, text: str) -> str:
        return f"{self.DIM}{text}{self.RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy; other handlers share the record
        record = logging.makeLogRecord(record.__dict__)
        message = record.getMessage()

        session = current_session()
        if session is not None:
            message = f"{self._dim(f'[{session.short_id}]')} {message}"

        connection = _connection_fields(record)
        if connection:
            pairs = " ".join(f"{key}={value}" for key, value in connection.items())
            message = f"{message} {self._dim(f'({pairs})')}"

        record.msg, record.args = message, None
        if self.use_colors:
            record.levelname = f"{self.COLORS.get(record.levelname, '')}{record.levelname}{self.RESET}"
        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
    settings: SyncSettings | None = None,
) -> None:
    """Install xlnsync's handlers on the root logger.

    Arguments left as None come from settings (``XLNSYNC_LOG_LEVEL``,
    ``XLNSYNC_LOG_FORMAT``, ``XLNSYNC_LOG_FILE``). With format ``auto``,
    JSON is used unless stderr is a terminal. A log file always gets JSON.
    """
    if settings is None:
        from .config import get_config

        settings = get_config()

    level = settings.log_level if level is None else level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if json_format is None:
        match settings.log_format.lower():
            case "json":
                json_format = True
            case "text":
                json_format = False
            case _:
                json_format = not sys.stderr.isatty()

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if json_format else StandardFormatter())
    root.addHandler(console)

    log_file = settings.log_file if log_file is None else log_file
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    # aiohttp logs every heartbeat and frame at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
