"""Data classes used in the ServerQuery client module."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pydantic import BaseModel

COMMAND_TERMINATOR = "\n"


@dataclass(frozen=True)
class QueryCommand:
    """Represents a rendered command for the ServerQuery interface.

    If model is None, the response lines are returned as-is. Otherwise every
    record of the response is validated with the model and the results are
    collected in :attr:`decoded` once the command has completed.

    :param command: The fully rendered command text, without terminator
    :param model: Optional pydantic model used to decode response records
    :param decoded: Receives the decoded records of a successful response
    :param secret: Keep the parameters out of logs, e.g. for credentials
    """

    command: str
    model: type[BaseModel] | None = None
    decoded: list[BaseModel] = field(default_factory=list, repr=False)
    secret: bool = False

    @property
    def loggable(self) -> str:
        """The command text, or only its name if the command is secret."""
        if self.secret:
            return self.command.split(" ", 1)[0] + " <redacted>"
        return self.command

    def render(self) -> bytes:
        """Encode the command for the wire, terminator included."""
        return (self.command + COMMAND_TERMINATOR).encode("utf-8")

    def set_decoded(self, records: Iterable[BaseModel]) -> None:
        """Replace the decoded records of this command.

        :param records: The records decoded from the response
        """
        self.decoded.clear()
        self.decoded.extend(records)


@dataclass(frozen=True)
class Notification:
    """An event pushed by the server outside the command/response flow.

    :param event: The event name with the ``notify`` prefix removed,
        e.g. ``textmessage`` for ``notifytextmessage``
    :param fields: The event's key/value pairs, in wire order
    """

    event: str
    fields: dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get a field value by key."""
        return self.fields.get(key, default)
