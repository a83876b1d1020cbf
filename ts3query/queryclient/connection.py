"""ServerQuery session management.

A :class:`Session` owns one TCP connection to the ServerQuery interface. It
performs the handshake, runs the :class:`~.dispatcher.LineDispatcher` as a
background task for the lifetime of the connection and gives callers
request/response semantics on top of the line protocol. The philosophy is to
surface every I/O failure as a permanent disconnect and leave reconnects and
retries to the caller.

Supports single-coroutine command execution only: the protocol allows one
outstanding command and responses carry no request identifier.

**Example Usage:**

.. code-block:: python

    async with await Session.open("ts.example.com") as session:
        await session.execute("login serveradmin secret")
        await session.execute("use sid=1")
        lines = await session.execute("clientlist")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Self

from .codec import decode_response
from .deadline import Deadline
from .dispatcher import LineDispatcher
from .framing import INITIAL_BUFFER_SIZE, MAX_LINE_SIZE, LineFramer, stream_limit
from .query_exceptions import (
    ConfigurationError,
    DisconnectedError,
    HandshakeError,
    NotConnectedError,
    QueryConnectionError,
    ServerQueryError,
)
from .types import QueryCommand

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from .types import Notification

LOGGER = logging.getLogger(__name__)

DEFAULT_PORT = 10011
DEFAULT_TIMEOUT = 10.0
KEEPALIVE_INTERVAL = 5 * 60.0
CONNECT_HEADER = "TS3"
KEEPALIVE_PROBE = b"\n"
_PORT_UPPER_BOUND = 65536


@dataclass
class SessionConfig:
    """Configuration for a ServerQuery :class:`Session`.

    :param timeout: Seconds allowed for dialing and for each read or write
    :param initial_buffer_size: Initial capacity of the line buffer
    :param max_line_size: Maximum line length; the effective maximum is the
        larger of this and ``initial_buffer_size``
    :param keepalive: Periodically write an empty probe line
    :param keepalive_interval: Seconds between keepalive probes
    :param notification_queue_size: Bound of the notification queue,
        0 for unbounded
    """

    timeout: float = DEFAULT_TIMEOUT
    initial_buffer_size: int = INITIAL_BUFFER_SIZE
    max_line_size: int = MAX_LINE_SIZE
    keepalive: bool = False
    keepalive_interval: float = KEEPALIVE_INTERVAL
    notification_queue_size: int = 0

    def __post_init__(self) -> None:
        """Validate the configuration.

        :raises ConfigurationError: if any option is out of range
        """
        if self.timeout is None or self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout!r}"
            raise ConfigurationError(msg)
        if self.initial_buffer_size is None or self.initial_buffer_size <= 0:
            msg = (
                "initial_buffer_size must be positive, "
                f"got {self.initial_buffer_size!r}"
            )
            raise ConfigurationError(msg)
        if self.max_line_size is None or self.max_line_size <= 0:
            msg = f"max_line_size must be positive, got {self.max_line_size!r}"
            raise ConfigurationError(msg)
        if self.keepalive_interval is None or self.keepalive_interval <= 0:
            msg = (
                "keepalive_interval must be positive, "
                f"got {self.keepalive_interval!r}"
            )
            raise ConfigurationError(msg)
        if self.notification_queue_size is None or self.notification_queue_size < 0:
            msg = (
                "notification_queue_size must not be negative, "
                f"got {self.notification_queue_size!r}"
            )
            raise ConfigurationError(msg)

    @property
    def line_limit(self) -> int:
        """The effective maximum line length."""
        return max(self.max_line_size, self.initial_buffer_size)


def split_address(address: str, default_port: int = DEFAULT_PORT) -> tuple[str, int]:
    """Split an address into host and port.

    Accepts ``host``, ``host:port``, ``[v6-host]:port`` and bare IPv6
    literals. Addresses without a port get ``default_port``.

    :param address: The address to split
    :param default_port: Port used when the address has none
    :return: A tuple of (host, port)
    :raises ConfigurationError: if the address is malformed
    """
    if address.startswith("["):
        host, closed, rest = address[1:].partition("]")
        if not closed or (rest and not rest.startswith(":")):
            msg = f"Invalid address: {address!r}"
            raise ConfigurationError(msg)
        port_text = rest[1:]
    elif address.count(":") == 1:
        host, port_text = address.split(":")
    else:
        host, port_text = address, ""

    if not host:
        msg = f"Missing host in address: {address!r}"
        raise ConfigurationError(msg)

    if not port_text:
        return host, default_port

    if not port_text.isdecimal() or not 0 < int(port_text) < _PORT_UPPER_BOUND:
        msg = f"Invalid port in address: {address!r}"
        raise ConfigurationError(msg)

    return host, int(port_text)


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    """Close a stream writer (best effort)."""
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        LOGGER.debug("Error while closing ServerQuery socket", exc_info=True)


class Session:
    """A connected ServerQuery session.

    Use :meth:`open` to create one. Commands must be executed one at a time;
    concurrent calls to :meth:`execute` on the same session are not
    supported.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        framer: LineFramer,
        deadline: Deadline,
        config: SessionConfig,
    ) -> None:
        """Initialize a session over an established, greeted connection.

        :param reader: The StreamReader for the socket
        :param writer: The StreamWriter for the socket
        :param framer: Line framer positioned after the banner
        :param deadline: The deadline shared by all I/O on the socket
        :param config: The SessionConfig instance
        """
        self._reader = reader
        self._writer = writer
        self._deadline = deadline
        self._config = config
        self._connected = True
        self._closed = False
        self._in_flight = False
        self._dispatcher = LineDispatcher(
            framer,
            deadline,
            on_terminate=self._mark_disconnected,
        )
        self._dispatcher_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None

    @classmethod
    async def open(
        cls,
        address: str = "localhost",
        config: SessionConfig | None = None,
    ) -> Self:
        """Connect to a ServerQuery interface and perform the handshake.

        :param address: ``host`` or ``host:port``; the port defaults to 10011
        :param config: Session configuration, defaults to :class:`SessionConfig`
        :return: A connected session

        :raises ConfigurationError: if the configuration or address is invalid
        :raises QueryConnectionError: if the connection cannot be established
        :raises HandshakeError: if the server does not greet as expected
        """
        if config is None:
            config = SessionConfig()
        elif not isinstance(config, SessionConfig):
            msg = f"Expected a SessionConfig, got {type(config).__name__}"
            raise ConfigurationError(msg)

        host, port = split_address(address)
        LOGGER.info("Connecting to ServerQuery at %s:%d", host, port)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host,
                    port,
                    limit=stream_limit(config.line_limit),
                ),
                config.timeout,
            )
        except (TimeoutError, OSError) as e:
            LOGGER.exception("Connection to %s:%d failed", host, port)
            msg = f"Could not connect to {host}:{port}"
            raise QueryConnectionError(msg) from e

        framer = LineFramer(reader, config.line_limit)
        deadline = Deadline()
        try:
            await cls._handshake(framer, deadline, config.timeout)
        except HandshakeError:
            await _close_writer(writer)
            raise

        session = cls(reader, writer, framer, deadline, config)
        session._start()
        LOGGER.info("Connected to ServerQuery at %s:%d", host, port)
        return session

    @staticmethod
    async def _handshake(
        framer: LineFramer,
        deadline: Deadline,
        timeout: float,
    ) -> None:
        """Check the connection header and slurp the banner.

        :raises HandshakeError: if the header is wrong or cannot be read
        """
        try:
            deadline.set(timeout)
            async with deadline.bound():
                header = await framer.read_line()
            deadline.clear()

            if header != CONNECT_HEADER:
                msg = f"Invalid connection header {header!r}"
                raise HandshakeError(msg)

            deadline.set(timeout)
            async with deadline.bound():
                banner = await framer.read_line()
            deadline.clear()
        except HandshakeError:
            raise
        except (ServerQueryError, TimeoutError, OSError) as e:
            msg = f"Handshake failed: {e}"
            raise HandshakeError(msg) from e

        LOGGER.debug("Banner: %s", banner)

    def _start(self) -> None:
        self._dispatcher_task = asyncio.create_task(
            self._dispatcher.run(),
            name="serverquery-dispatcher",
        )
        if self._config.keepalive:
            self._keepalive_task = asyncio.create_task(
                self._keepalive(),
                name="serverquery-keepalive",
            )

    def _mark_disconnected(self, reason: object) -> None:
        if not self._connected:
            return
        self._connected = False
        # the server ends the stream after quit
        level = logging.INFO if self._closed else logging.WARNING
        LOGGER.log(level, "ServerQuery session disconnected: %s", reason)

    async def _write(self, data: bytes) -> None:
        """Write to the socket under the current deadline."""
        async with self._deadline.bound():
            self._writer.write(data)
            await self._writer.drain()

    async def _keepalive(self) -> None:
        """Write an empty probe line every keepalive interval.

        Probes are skipped while a command is in flight, the command itself
        keeps the connection busy and owns the deadline.
        """
        LOGGER.debug("Keepalive: Starting")
        while self._connected:
            await asyncio.sleep(self._config.keepalive_interval)
            if not self._connected:
                break
            if self._in_flight:
                continue

            self._deadline.set(self._config.timeout)
            try:
                await self._write(KEEPALIVE_PROBE)
            except (TimeoutError, OSError) as e:
                self._mark_disconnected(f"keepalive failed: {e!r}")
                break
            finally:
                self._deadline.clear()

        LOGGER.debug("Keepalive: Stopped")

    def is_connected(self) -> bool:
        """Whether the session is connected and processing incoming lines."""
        return self._connected

    @property
    def config(self) -> SessionConfig:
        """The configuration the session was opened with."""
        return self._config

    async def execute(self, command: str) -> list[str]:
        """Execute a rendered command and return its response lines.

        :param command: The command text, without terminator
        :return: The response body lines, trailer excluded

        :raises NotConnectedError: if the session is not connected
        :raises QueryError: if the server reports an error
        :raises DisconnectedError: if the connection is lost
        """
        return await self.execute_command(QueryCommand(command))

    async def execute_command(self, command: QueryCommand) -> list[str]:
        """Execute a command and return its response lines.

        If the command has a decode model, the response is decoded into
        :attr:`QueryCommand.decoded` before returning.

        :param command: The command to execute
        :return: The response body lines, trailer excluded

        :raises NotConnectedError: if the session is not connected
        :raises QueryError: if the server reports an error
        :raises DisconnectedError: if the connection is lost
        :raises DecodeError: if the response does not match the decode model
        """
        if not self._connected:
            msg = "Not connected"
            raise NotConnectedError(msg)

        outcome = self._dispatcher.expect_response()
        LOGGER.debug("-> %s", command.loggable)

        self._in_flight = True
        try:
            self._deadline.set(self._config.timeout)
            try:
                await self._write(command.render())
            except (TimeoutError, OSError) as e:
                outcome.cancel()
                self._mark_disconnected(f"write failed: {e!r}")
                msg = f"Failed to send command: {e!r}"
                raise DisconnectedError(msg) from e

            self._deadline.set(self._config.timeout)
            lines = await outcome
        finally:
            self._in_flight = False
            self._deadline.clear()

        if command.model is not None:
            command.set_decoded(decode_response(lines, command.model))
        return lines

    def notifications(self, maxsize: int | None = None) -> asyncio.Queue[Notification]:
        """Subscribe to notifications and get the relay queue.

        The first call creates the queue; notifications received before that
        are discarded. The queue is shut down when the session closes or the
        connection is lost.

        :param maxsize: Queue bound, defaults to the configured size
        :return: The notification queue
        :raises NotConnectedError: if the session has been closed
        """
        if self._dispatcher.relay is None:
            if self._closed or self._dispatcher.terminated:
                msg = "Session is closed"
                raise NotConnectedError(msg)
            if maxsize is None:
                maxsize = self._config.notification_queue_size
            self._dispatcher.relay = asyncio.Queue(maxsize)
        return self._dispatcher.relay

    async def iter_notifications(self) -> AsyncIterator[Notification]:
        """Iterate over notifications until the session closes."""
        queue = self.notifications()
        while True:
            try:
                yield await queue.get()
            except asyncio.QueueShutDown:
                return

    async def close(self) -> None:
        """Send ``quit``, close the socket and stop the background tasks.

        :raises ServerQueryError: if ``quit`` failed; takes precedence
        :raises DisconnectedError: if closing the socket failed
        """
        if self._closed:
            return
        self._closed = True

        quit_error: ServerQueryError | None = None
        if self._connected:
            try:
                await self.execute("quit")
            except ServerQueryError as e:
                LOGGER.warning("quit failed: %s", e)
                quit_error = e

        close_error: OSError | None = None
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            close_error = e

        tasks = [
            task
            for task in (self._keepalive_task, self._dispatcher_task)
            if task is not None
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._mark_disconnected("session closed")
        if self._dispatcher.relay is not None:
            self._dispatcher.relay.shutdown()

        LOGGER.info("ServerQuery session closed")

        if quit_error is not None:
            raise quit_error
        if close_error is not None:
            msg = "Failed to close ServerQuery socket"
            raise DisconnectedError(msg) from close_error

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the session.

        :param exc_type: Type of exception if raised within context
        :param exc_val: Exception value if raised within context
        :param exc_tb: Description of traceback if exception raised
        """
        await self.close()
