"""ServerQuery text encoding and decoding.

Values on the wire are escaped so that a record is a space separated list of
``key=value`` tokens and a response body is a ``|`` separated list of
records. This module renders commands, parses response trailers and turns
response bodies and notification lines into Python values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, ValidationError

from .query_exceptions import DecodeError, QueryError
from .types import Notification, QueryCommand

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

ModelT = TypeVar("ModelT", bound=BaseModel)

NOTIFY_PREFIX = "notify"
TRAILER_PREFIX = "error id="
_MESSAGE_MARKER = " msg="
RECORD_SEPARATOR = "|"

_ESCAPES = {
    "\\": "\\\\",
    "/": "\\/",
    " ": "\\s",
    "|": "\\p",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}
_UNESCAPES = {escaped[1]: raw for raw, escaped in _ESCAPES.items()}


def escape(value: str) -> str:
    """Escape a value for use in a command or record."""
    return "".join(_ESCAPES.get(char, char) for char in value)


def unescape(value: str) -> str:
    """Reverse :func:`escape`. Unknown escape sequences keep their character."""
    if "\\" not in value:
        return value

    chars: list[str] = []
    pending_backslash = False
    for char in value:
        if pending_backslash:
            chars.append(_UNESCAPES.get(char, char))
            pending_backslash = False
        elif char == "\\":
            pending_backslash = True
        else:
            chars.append(char)
    if pending_backslash:
        chars.append("\\")
    return "".join(chars)


def _render_value(value: object) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return escape(str(value))


def render_command(
    name: str,
    params: Mapping[str, object] | None = None,
    flags: Iterable[str] = (),
) -> str:
    """Render a command line from its parts.

    List and tuple values are rendered as repeated ``key=value`` records
    joined with ``|``, which is how the server accepts batched arguments.
    Parameters whose value is None are skipped.

    :param name: The command name, e.g. ``clientlist``
    :param params: Ordered command parameters
    :param flags: Option names, with or without the leading ``-``
    :return: The rendered command, without terminator
    """
    parts = [name]
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            parts.append(
                RECORD_SEPARATOR.join(f"{key}={_render_value(item)}" for item in value),
            )
        else:
            parts.append(f"{key}={_render_value(value)}")
    parts.extend(f"-{flag.lstrip('-')}" for flag in flags)
    return " ".join(parts)


def build_command(
    name: str,
    params: Mapping[str, object] | None = None,
    flags: Iterable[str] = (),
    model: type[BaseModel] | None = None,
    *,
    secret: bool = False,
) -> QueryCommand:
    """Render a command and wrap it with an optional decode target."""
    return QueryCommand(render_command(name, params, flags), model=model, secret=secret)


def parse_trailer(line: str) -> QueryError | None:
    """Parse an ``error id=<digits> msg=<token>[ <extra>]`` trailer line.

    :param line: A line received from the server
    :return: The parsed outcome, or None if the line is not a trailer
    """
    if not line.startswith(TRAILER_PREFIX):
        return None

    error_id, marker, rest = line[len(TRAILER_PREFIX) :].partition(_MESSAGE_MARKER)
    if not marker or not error_id.isascii() or not error_id.isdecimal():
        return None

    message, _, extra = rest.partition(" ")
    if not message:
        return None

    return QueryError(int(error_id), unescape(message), extra.strip())


def decode_record(text: str) -> dict[str, str]:
    """Decode one record of space separated ``key=value`` tokens.

    Tokens without ``=`` are flags and map to an empty string.
    """
    fields: dict[str, str] = {}
    for token in text.split(" "):
        if not token:
            continue
        key, separator, value = token.partition("=")
        fields[key] = unescape(value) if separator else ""
    return fields


def decode_records(lines: Iterable[str]) -> list[dict[str, str]]:
    """Decode response body lines into a list of records."""
    records = []
    for line in lines:
        for chunk in line.split(RECORD_SEPARATOR):
            record = decode_record(chunk)
            if record:
                records.append(record)
    return records


def decode_notification(line: str) -> Notification:
    """Decode a notification line.

    Only the first record of a multi-record notification is kept.

    :param line: A line starting with ``notify``
    :return: The decoded notification
    :raises DecodeError: if the line does not name a valid event
    """
    head, _, body = line.partition(" ")
    if not head.startswith(NOTIFY_PREFIX):
        msg = f"Not a notification: {line!r}"
        raise DecodeError(msg)

    event = head[len(NOTIFY_PREFIX) :]
    if not event or not event.isascii() or not event.isalnum():
        msg = f"Invalid notification event {event!r}"
        raise DecodeError(msg)

    first_record = body.split(RECORD_SEPARATOR, 1)[0]
    return Notification(event=event, fields=decode_record(first_record))


def decode_response(lines: Iterable[str], model: type[ModelT]) -> list[ModelT]:
    """Validate every record of a response body with a pydantic model.

    :param lines: The response body lines
    :param model: The model each record is validated with
    :return: One model instance per record
    :raises DecodeError: if a record does not validate
    """
    try:
        return [model.model_validate(record) for record in decode_records(lines)]
    except ValidationError as e:
        msg = f"Could not decode response as {model.__name__}"
        raise DecodeError(msg) from e
