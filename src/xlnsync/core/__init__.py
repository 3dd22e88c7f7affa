"""xlnsync core - configuration, logging and the exception hierarchy."""

from .config import SyncSettings, clear_config_cache, get_config
from .exceptions import (
    ConfigException,
    IntegrityError,
    MalformedMessageError,
    StaleStateError,
    SyncException,
    TransportError,
)
from .logging import (
    JSONFormatter,
    StandardFormatter,
    TransportSession,
    configure_logging,
    current_session,
    session_context,
)

__all__ = [
    "SyncSettings",
    "get_config",
    "clear_config_cache",
    "SyncException",
    "ConfigException",
    "TransportError",
    "MalformedMessageError",
    "IntegrityError",
    "StaleStateError",
    "JSONFormatter",
    "StandardFormatter",
    "TransportSession",
    "configure_logging",
    "current_session",
    "session_context",
]
