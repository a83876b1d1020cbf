"""Unit tests for ServerQuery line framing."""

import asyncio

import pytest

from ts3query.queryclient import LineTooLongError, UnexpectedEndOfStreamError
from ts3query.queryclient.framing import LineFramer, stream_limit, strip_terminator


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (b"TS3\n", b"TS3"),
        (b"\rWelcome\n", b"Welcome"),
        (b"clid=1\r\n", b"clid=1"),
        (b"\rerror id=0 msg=ok\n", b"error id=0 msg=ok"),
        (b"\n", b""),
    ],
)
def test_strip_terminator(raw: bytes, expected: bytes) -> None:
    assert strip_terminator(raw) == expected


def test_stream_limit_leaves_room_for_terminators() -> None:
    assert stream_limit(100) == 102


@pytest.mark.asyncio
class TestLineFramer:
    """Test suite for the LineFramer async iterator."""

    async def test_splits_server_lines(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"TS3\n\rWelcome\n\rerror id=0 msg=ok\n\r")
        reader.feed_eof()

        lines = [line async for line in LineFramer(reader)]

        assert lines == ["TS3", "Welcome", "error id=0 msg=ok"]

    async def test_trailing_fragment_is_yielded(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"one\ntwo")
        reader.feed_eof()

        lines = [line async for line in LineFramer(reader)]

        assert lines == ["one", "two"]

    async def test_invalid_utf8_is_replaced(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"client_nickname=\xff\n")

        line = await LineFramer(reader).read_line()

        assert line == "client_nickname=�"

    async def test_line_too_long_raises(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"x" * 20 + b"\n")
        framer = LineFramer(reader, max_line_size=10)

        with pytest.raises(LineTooLongError):
            await framer.read_line()
        assert framer.exhausted

    async def test_stream_limit_overrun_raises(self) -> None:
        reader = asyncio.StreamReader(limit=stream_limit(10))
        reader.feed_data(b"x" * 64)
        framer = LineFramer(reader, max_line_size=10)

        with pytest.raises(LineTooLongError):
            await framer.read_line()

    async def test_framer_is_not_restartable(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_eof()
        framer = LineFramer(reader)

        with pytest.raises(UnexpectedEndOfStreamError):
            await framer.read_line()

        with pytest.raises(StopAsyncIteration):
            await anext(framer)
