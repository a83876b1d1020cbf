"""Provides async ServerQuery session functionality."""

from .codec import build_command, decode_response, escape, render_command, unescape
from .connection import DEFAULT_PORT, DEFAULT_TIMEOUT, Session, SessionConfig
from .query_exceptions import (
    ConfigurationError,
    DecodeError,
    DisconnectedError,
    HandshakeError,
    LineTooLongError,
    NotConnectedError,
    QueryConnectionError,
    QueryError,
    ServerQueryError,
    UnexpectedEndOfStreamError,
)
from .types import Notification, QueryCommand

__all__ = [
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT",
    "ConfigurationError",
    "DecodeError",
    "DisconnectedError",
    "HandshakeError",
    "LineTooLongError",
    "NotConnectedError",
    "Notification",
    "QueryCommand",
    "QueryConnectionError",
    "QueryError",
    "ServerQueryError",
    "Session",
    "SessionConfig",
    "UnexpectedEndOfStreamError",
    "build_command",
    "decode_response",
    "escape",
    "render_command",
    "unescape",
]
