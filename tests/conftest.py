"""Shared fixtures for the ServerQuery client tests.

Sessions are opened against a scripted server: a real
:class:`asyncio.StreamReader` fed by a mock StreamWriter that answers every
command line it receives with a canned reply.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any
from unittest.mock import patch

import pytest
import pytest_asyncio

from ts3query.queryclient import Session, SessionConfig

GREETING = (
    b"TS3\n\rWelcome to the TeamSpeak 3 ServerQuery interface, type "
    b'"help" for a list of commands and "help <command>" for information '
    b"on a specific command.\n\r"
)
OK = b"error id=0 msg=ok\n\r"
EOF = object()

Reply = bytes | object | list[Any]


class ScriptedStreamWriter:
    """Mock StreamWriter that answers written command lines from a script."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        replies: dict[str, Reply] | None = None,
        default_reply: Reply = OK,
    ) -> None:
        """Initialize the scripted writer.

        :param reader: The reader replies are fed into
        :param replies: Reply per command line; EOF closes the stream
        :param default_reply: Reply to commands missing from ``replies``
        """
        self.reader = reader
        self.replies: dict[str, Reply] = {"quit": [OK, EOF]}
        self.replies.update(replies or {})
        self.default_reply = default_reply
        self.written: list[bytes] = []
        self.closed = False
        self.fail_writes = False
        self.eof_sent = False

    def feed(self, reply: Reply) -> None:
        """Feed a reply into the reader as if the server sent it."""
        if isinstance(reply, list):
            for part in reply:
                self.feed(part)
        elif reply is EOF:
            if not self.eof_sent:
                self.eof_sent = True
                self.reader.feed_eof()
        elif not self.eof_sent:
            self.reader.feed_data(reply)

    def write(self, data: bytes) -> None:
        """Record written data and answer each command line."""
        if self.closed:
            return
        self.written.append(data)
        for line in data.decode().splitlines():
            if line:
                self.feed(self.replies.get(line, self.default_reply))

    async def drain(self) -> None:
        """Mock drain method."""
        if self.fail_writes:
            msg = "Mock connection reset"
            raise ConnectionResetError(msg)

    def close(self) -> None:
        """Mark the writer as closed and end the stream."""
        self.closed = True
        self.feed(EOF)

    def is_closing(self) -> bool:
        return self.closed

    async def wait_closed(self) -> None:
        """Mock wait_closed method."""


OpenSession = Callable[..., Awaitable[tuple[Session, ScriptedStreamWriter]]]


@pytest_asyncio.fixture
async def open_session() -> AsyncGenerator[OpenSession]:
    """Provide a factory opening sessions against a scripted server.

    Sessions still open at teardown are closed.
    """
    sessions: list[Session] = []

    async def _open(
        replies: dict[str, Reply] | None = None,
        config: SessionConfig | None = None,
        greeting: bytes = GREETING,
        default_reply: Reply = OK,
    ) -> tuple[Session, ScriptedStreamWriter]:
        reader = asyncio.StreamReader()
        writer = ScriptedStreamWriter(reader, replies, default_reply)
        reader.feed_data(greeting)

        with patch("asyncio.open_connection") as mock_open_conn:
            mock_open_conn.return_value = (reader, writer)
            session = await Session.open("localhost", config)

        sessions.append(session)
        return session, writer

    yield _open

    for session in sessions:
        try:
            await session.close()
        except Exception:  # noqa: BLE001
            pass  # Ignore errors from sessions a test left broken
