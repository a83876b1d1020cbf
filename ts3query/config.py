"""Configuration for the ServerQuery command line client.

Settings come from ``TS3_*`` environment variables, optionally loaded from a
dotenv file first. Unset and blank variables fall back to their defaults;
values that cannot be parsed or fail their check raise :class:`ValueError`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from dotenv import load_dotenv

from ts3query.queryclient import DEFAULT_TIMEOUT, SessionConfig
from ts3query.queryclient.framing import INITIAL_BUFFER_SIZE, MAX_LINE_SIZE

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

ValueT = TypeVar("ValueT")
DefaultT = TypeVar("DefaultT")


def configure_logging(app_config: AppConfig) -> None:
    """Set up root logging at the configured level, INFO if unknown.

    :param app_config: The application configuration instance
    """
    level_name = (app_config.logging_level or "INFO").upper()
    level = logging.getLevelNamesMapping().get(level_name)
    if level is None:
        LOGGER.warning("Invalid log level: %s, using INFO", app_config.logging_level)
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


@dataclass
class AppConfig:
    """Holds client configuration loaded from environment variables."""

    address: str
    logging_level: str | None

    timeout: int
    max_line_size: int
    initial_buffer_size: int
    keepalive: bool

    username: str | None
    password: str | None
    server_id: int | None

    @property
    def session_config(self) -> SessionConfig:
        """Get a SessionConfig based on this configuration.

        :return: Session configuration
        :raises ConfigurationError: if a session option is out of range
        """
        return SessionConfig(
            timeout=self.timeout,
            initial_buffer_size=self.initial_buffer_size,
            max_line_size=self.max_line_size,
            keepalive=self.keepalive,
        )


def _read_env(var_name: str) -> str | None:
    value = os.getenv(var_name, "").strip()
    return value or None


def _check(
    var_name: str,
    value: ValueT,
    value_checker: Callable[[ValueT], bool] | None,
) -> ValueT:
    if value_checker is not None and not value_checker(value):
        msg = f"Environment variable {var_name} has invalid value: {value!r}"
        raise ValueError(msg)
    return value


def get_env_str(
    var_name: str,
    default: DefaultT,
    value_checker: Callable[[str], bool] | None = None,
) -> str | DefaultT:
    """Get a string environment variable.

    :param var_name: Name of the environment variable
    :param default: Returned when the variable is unset or blank
    :param value_checker: Optional predicate the value must satisfy
    :raises ValueError: if the value fails ``value_checker``
    """
    value = _read_env(var_name)
    if value is None:
        return default
    return _check(var_name, value, value_checker)


def get_env_int(
    var_name: str,
    default: DefaultT,
    value_checker: Callable[[int], bool] | None = None,
) -> int | DefaultT:
    """Get an integer environment variable.

    :param var_name: Name of the environment variable
    :param default: Returned when the variable is unset or blank
    :param value_checker: Optional predicate the value must satisfy
    :raises ValueError: if the value is not an integer or fails
        ``value_checker``
    """
    value = _read_env(var_name)
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError:
        msg = f"Environment variable {var_name} must be an integer, got: {value}"
        raise ValueError(msg) from None
    return _check(var_name, number, value_checker)


def get_env_bool(var_name: str, *, default: bool) -> bool:
    """Get a boolean environment variable such as ``yes`` or ``0``.

    :raises ValueError: if the value is not a recognised boolean
    """
    value = _read_env(var_name)
    if value is None:
        return default
    if value.lower() in _TRUE_VALUES:
        return True
    if value.lower() in _FALSE_VALUES:
        return False

    msg = f"Environment variable {var_name} must be a boolean, got: {value}"
    raise ValueError(msg)


def load_config_from_env(env_file: str | Path | None = None) -> AppConfig:
    """Load client configuration from environment variables.

    Variables already set in the environment win over the dotenv file.

    :param env_file: Optional dotenv file loaded before reading the environment
    :return: An AppConfig instance populated with environment variable values
    """
    if env_file:
        load_dotenv(dotenv_path=env_file)

    return AppConfig(
        address=get_env_str("TS3_ADDRESS", "localhost"),
        logging_level=get_env_str("LOGGING_LEVEL", "INFO"),
        timeout=get_env_int(
            "TS3_TIMEOUT",
            int(DEFAULT_TIMEOUT),
            lambda timeout: timeout > 0,
        ),
        max_line_size=get_env_int(
            "TS3_MAX_LINE_SIZE",
            MAX_LINE_SIZE,
            lambda size: size > 0,
        ),
        initial_buffer_size=get_env_int(
            "TS3_INITIAL_BUFFER_SIZE",
            INITIAL_BUFFER_SIZE,
            lambda size: size > 0,
        ),
        keepalive=get_env_bool("TS3_KEEPALIVE", default=False),
        username=get_env_str("TS3_USERNAME", None),
        password=get_env_str("TS3_PASSWORD", None),
        server_id=get_env_int(
            "TS3_SERVER_ID",
            None,
            lambda server_id: server_id > 0,
        ),
    )
