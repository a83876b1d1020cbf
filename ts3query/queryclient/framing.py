"""Line framing for the ServerQuery byte stream.

The server terminates lines with ``\\n\\r``, so a carriage return may sit on
either side of a line once it has been split on ``\\n``. Both are stripped.
"""

from __future__ import annotations

import asyncio
import logging

from .query_exceptions import LineTooLongError, UnexpectedEndOfStreamError

LOGGER = logging.getLogger(__name__)

LINE_SEPARATOR = b"\n"
CARRIAGE_RETURN = b"\r"

# Large enough for the bulk responses of commands such as serversnapshotcreate
MAX_LINE_SIZE = 10 << 20
INITIAL_BUFFER_SIZE = 4096


def stream_limit(max_line_size: int) -> int:
    """Get the StreamReader limit needed to frame lines of the given size.

    :param max_line_size: Maximum line length, terminators excluded
    :return: The limit to pass to :func:`asyncio.open_connection`
    """
    return max_line_size + len(LINE_SEPARATOR) + len(CARRIAGE_RETURN)


def strip_terminator(raw: bytes) -> bytes:
    """Remove the line separator and any adjacent carriage return."""
    return (
        raw.removesuffix(LINE_SEPARATOR)
        .removesuffix(CARRIAGE_RETURN)
        .removeprefix(CARRIAGE_RETURN)
    )


class LineFramer:
    """Lazy sequence of protocol lines read from a stream.

    Iteration ends cleanly when the server closes the stream. A failed or
    exhausted framer stays exhausted: it cannot be restarted on the same
    connection.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        max_line_size: int = MAX_LINE_SIZE,
        encoding: str = "utf-8",
    ) -> None:
        """Initialize the framer.

        :param reader: The StreamReader for the socket
        :param max_line_size: Maximum line length, terminators excluded
        :param encoding: Text encoding of the stream
        """
        self._reader = reader
        self._max_line_size = max_line_size
        self._encoding = encoding
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        """Whether the framer has reached the end of its stream."""
        return self._exhausted

    def __aiter__(self) -> LineFramer:
        return self

    async def __anext__(self) -> str:
        if self._exhausted:
            raise StopAsyncIteration

        completed = False
        try:
            raw = await self._reader.readuntil(LINE_SEPARATOR)
            completed = True
        except asyncio.IncompleteReadError as e:
            # unterminated trailing fragment before EOF
            if not e.partial.strip(CARRIAGE_RETURN):
                LOGGER.debug("Stream closed by server")
                raise StopAsyncIteration from None
            raw = e.partial
        except asyncio.LimitOverrunError as e:
            msg = f"Line exceeds the maximum size of {self._max_line_size} bytes"
            raise LineTooLongError(msg) from e
        finally:
            if not completed:
                self._exhausted = True

        line = strip_terminator(raw)
        if len(line) > self._max_line_size:
            self._exhausted = True
            msg = f"Line exceeds the maximum size of {self._max_line_size} bytes"
            raise LineTooLongError(msg)

        return line.decode(self._encoding, errors="replace")

    async def read_line(self) -> str:
        """Read exactly one line.

        :return: The next line
        :raises UnexpectedEndOfStreamError: if the stream ended first
        :raises LineTooLongError: if the line is too long
        """
        try:
            return await anext(self)
        except StopAsyncIteration:
            msg = "Unexpected end of stream"
            raise UnexpectedEndOfStreamError(msg) from None
