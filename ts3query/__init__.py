"""Async client for the TeamSpeak 3 ServerQuery interface."""

from .config import AppConfig, configure_logging, load_config_from_env
from .queryclient import Notification, QueryCommand, QueryError, Session, SessionConfig
from .server_methods import ServerMethods

__all__ = [
    "AppConfig",
    "Notification",
    "QueryCommand",
    "QueryError",
    "ServerMethods",
    "Session",
    "SessionConfig",
    "configure_logging",
    "load_config_from_env",
]
