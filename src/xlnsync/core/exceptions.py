# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for xlnsync.

Every condition the sync engine detects maps to one of these types. They are
raised where the problem is found and caught at component boundaries
(connection manager, dispatcher, reconciler), where they are logged. None of
them is fatal to the process.
"""

from __future__ import annotations

from typing import Any


class SyncException(Exception):  # noqa: N818
    """Base exception for all xlnsync errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigException(SyncException):
    """Exception for configuration errors.

    Raised when:
    - A setting is out of range (negative retry count, zero tick)
    - Fallback weights do not allow any event to be produced
    """

    def __init__(self, message: str, setting: str | None = None):
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details)
        self.setting = setting


class TransportError(SyncException):
    """Exception for transport failures.

    Raised when:
    - The connection is refused or times out
    - The socket closes with an error
    - An outbound frame cannot be written

    Recoverable: the connection manager retries, then falls back.
    """

    def __init__(self, message: str, address: str | None = None):
        details = {}
        if address:
            details["address"] = address
        super().__init__(message, details)
        self.address = address


class MalformedMessageError(SyncException):
    """Exception for inbound messages that cannot be decoded.

    Raised when:
    - The event name is not part of the message taxonomy
    - A network update carries an unknown type tag
    - A payload is missing required fields or has the wrong shape
    """

    def __init__(self, message: str, event: str | None = None, payload: Any = None):
        details = {}
        if event:
            details["event"] = event
        if payload is not None:
            details["payload"] = str(payload)[:200]
        super().__init__(message, details)
        self.event = event
        self.payload = payload


class IntegrityError(SyncException):
    """Exception for referential-integrity violations.

    Raised when a channel endpoint, or the target of an update, does not
    resolve to an entry in the current graph. Only the offending item is
    skipped.
    """

    def __init__(self, message: str, item_id: str | None = None):
        details = {}
        if item_id:
            details["item_id"] = item_id
        super().__init__(message, details)
        self.item_id = item_id


class StaleStateError(SyncException):
    """Exception for full states older than the one already applied."""

    def __init__(self, incoming_version: int, current_version: int):
        message = (
            f"Stale full state: version {incoming_version} "
            f"is older than current version {current_version}"
        )
        details = {
            "incoming_version": incoming_version,
            "current_version": current_version,
        }
        super().__init__(message, details)
        self.incoming_version = incoming_version
        self.current_version = current_version
