"""Background classification of incoming ServerQuery lines.

Exactly one dispatcher runs per session. It reads every line the server
sends and routes it to one of three places:

1. **Trailers** (``error id=... msg=...``) resolve the outcome of the
   command in flight.
2. **Notifications** (lines starting with ``notify``) are decoded and handed
   to the relay queue, if someone subscribed.
3. **Everything else** is a response body line and is accumulated for the
   command in flight.

The protocol has no request identifiers, so correlation relies on there
being at most one command in flight. When the stream fails or ends, the
dispatcher terminates and fails the outcome of that command so its caller
never waits forever.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .codec import NOTIFY_PREFIX, decode_notification, parse_trailer
from .query_exceptions import (
    DecodeError,
    DisconnectedError,
    LineTooLongError,
    NotConnectedError,
    ServerQueryError,
    UnexpectedEndOfStreamError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from .deadline import Deadline
    from .framing import LineFramer
    from .types import Notification

LOGGER = logging.getLogger(__name__)

SUCCESS_TRAILER = "error id=0 msg=ok"


class LineDispatcher:
    """Classifies lines and correlates trailers with the command in flight.

    :ivar response: Response body lines received for the command in flight,
        detached and handed to its outcome when the trailer arrives
    :ivar relay: Queue notifications are forwarded to, or None to drop them
    """

    def __init__(
        self,
        framer: LineFramer,
        deadline: Deadline,
        on_terminate: Callable[[ServerQueryError], None] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        :param framer: Source of incoming lines
        :param deadline: The session deadline bounding each read
        :param on_terminate: Called once with the terminal error
        """
        self._framer = framer
        self._deadline = deadline
        self._on_terminate = on_terminate
        self._pending: asyncio.Future[list[str]] | None = None
        self._terminated = False
        self.response: list[str] = []
        self.relay: asyncio.Queue[Notification] | None = None

    @property
    def terminated(self) -> bool:
        """Whether the dispatcher has stopped reading lines."""
        return self._terminated

    def expect_response(self) -> asyncio.Future[list[str]]:
        """Prepare for a new command and get the future of its outcome.

        Resets the accumulated response lines. The future resolves to the
        response lines on success and raises the server or disconnect error
        otherwise.

        :raises NotConnectedError: if the dispatcher has terminated
        """
        if self._terminated:
            msg = "Not connected"
            raise NotConnectedError(msg)

        self.response = []
        self._pending = asyncio.get_running_loop().create_future()
        return self._pending

    def dispatch(self, line: str) -> None:
        """Route a single line to its consumer."""
        if line == SUCCESS_TRAILER:
            self._deliver(None)
            return

        trailer = parse_trailer(line)
        if trailer is not None:
            self._deliver(None if trailer.error_id == 0 else trailer)
            return

        if line.startswith(NOTIFY_PREFIX):
            self._relay(line)
            return

        self.response.append(line)

    async def run(self) -> None:
        """Read and dispatch lines until the stream ends or fails."""
        LOGGER.debug("Dispatcher: Starting")
        error: ServerQueryError = DisconnectedError("Session closed")
        try:
            while True:
                async with self._deadline.bound():
                    line = await anext(self._framer, None)
                if line is None:
                    error = UnexpectedEndOfStreamError("Unexpected end of stream")
                    break
                LOGGER.debug("<- %s", line)
                self.dispatch(line)
        except LineTooLongError as e:
            error = e
        except TimeoutError as e:
            error = DisconnectedError("Deadline expired while reading")
            error.__cause__ = e
        except OSError as e:
            error = DisconnectedError(f"Connection lost: {e}")
            error.__cause__ = e
        except Exception as e:
            LOGGER.exception("Dispatcher: Unexpected failure")
            error = DisconnectedError(f"Dispatcher failed: {e!r}")
            error.__cause__ = e
            raise
        finally:
            self._terminate(error)

    def _terminate(self, error: ServerQueryError) -> None:
        if self._terminated:
            return
        self._terminated = True
        LOGGER.info("Dispatcher: Terminated (%s)", error)

        if self._on_terminate is not None:
            self._on_terminate(error)

        pending, self._pending = self._pending, None
        if pending is not None and not pending.done():
            pending.set_exception(error)

        # Subscribers drain what was relayed, then see QueueShutDown
        if self.relay is not None:
            self.relay.shutdown()

    def _deliver(self, error: ServerQueryError | None) -> None:
        pending, self._pending = self._pending, None
        if pending is None or pending.done():
            LOGGER.warning(
                "Dropping trailer with no command in flight: %s",
                error or "ok",
            )
            return

        lines, self.response = self.response, []
        if error is None:
            pending.set_result(lines)
        else:
            pending.set_exception(error)

    def _relay(self, line: str) -> None:
        try:
            notification = decode_notification(line)
        except DecodeError:
            LOGGER.debug("Dropping undecodable notification: %r", line)
            return

        if self.relay is None:
            return

        try:
            self.relay.put_nowait(notification)
        except asyncio.QueueFull:
            LOGGER.warning(
                "Notification queue full, dropping %s event",
                notification.event,
            )
        except asyncio.QueueShutDown:
            LOGGER.debug("Notification queue shut down, dropping %s", notification.event)
