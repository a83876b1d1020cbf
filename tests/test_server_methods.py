"""Tests for the server administration helpers."""

import logging

import pytest

from tests.conftest import OK, OpenSession
from ts3query.queryclient import DecodeError, QueryError
from ts3query.server_methods import (
    ServerMethods,
    TextMessageTargetMode,
    VersionInfo,
    VirtualServer,
    WhoAmI,
)

SERVER_LIST = (
    b"virtualserver_id=1 virtualserver_port=9987 virtualserver_status=online "
    b"virtualserver_clientsonline=3 virtualserver_maxclients=32 "
    b"virtualserver_name=Main\\sServer|virtualserver_id=2 virtualserver_port=9988 "
    b"virtualserver_status=offline virtualserver_name=Backup\n\r"
)


@pytest.mark.asyncio
class TestServerMethods:
    """Test suite for ServerMethods."""

    async def test_version(self, open_session: OpenSession) -> None:
        session, _ = await open_session(
            {"version": [b"version=3.13.7 build=1655727713 platform=Linux\n\r", OK]},
        )

        version = await ServerMethods(session).version()

        assert version == VersionInfo(
            version="3.13.7",
            build=1655727713,
            platform="Linux",
        )

    async def test_version_empty_response(self, open_session: OpenSession) -> None:
        session, _ = await open_session()

        with pytest.raises(DecodeError, match="Empty response to version"):
            await ServerMethods(session).version()

    async def test_whoami(self, open_session: OpenSession) -> None:
        session, _ = await open_session(
            {
                "whoami": [
                    b"virtualserver_status=online virtualserver_id=1 client_id=4 "
                    b"client_nickname=serveradmin\\sfrom\\s127.0.0.1:51234\n\r",
                    OK,
                ],
            },
        )

        whoami = await ServerMethods(session).whoami()

        assert whoami.virtualserver_id == 1
        assert whoami.client_nickname == "serveradmin from 127.0.0.1:51234"

    async def test_login_is_redacted_in_logs(
        self,
        open_session: OpenSession,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        session, writer = await open_session()

        with caplog.at_level(logging.DEBUG):
            await ServerMethods(session).login("serveradmin", "hunter2")

        assert writer.written[-1] == (
            b"login client_login_name=serveradmin client_login_password=hunter2\n"
        )
        assert "hunter2" not in caplog.text
        assert "login <redacted>" in caplog.text

    async def test_login_failure(self, open_session: OpenSession) -> None:
        session, _ = await open_session(
            {
                "login client_login_name=serveradmin client_login_password=wrong": (
                    b"error id=520 msg=invalid\\sloginname\\sor\\spassword\n\r"
                ),
            },
        )

        with pytest.raises(QueryError) as exc_info:
            await ServerMethods(session).login("serveradmin", "wrong")
        assert exc_info.value.error_id == 520

    async def test_use(self, open_session: OpenSession) -> None:
        session, writer = await open_session()

        await ServerMethods(session).use(1)

        assert writer.written[-1] == b"use sid=1\n"

    async def test_server_list(self, open_session: OpenSession) -> None:
        session, _ = await open_session({"serverlist": [SERVER_LIST, OK]})

        servers = await ServerMethods(session).server_list()

        assert [server.virtualserver_id for server in servers] == [1, 2]
        assert servers[0].virtualserver_name == "Main Server"
        assert servers[1].virtualserver_clientsonline == 0

    async def test_register(self, open_session: OpenSession) -> None:
        session, writer = await open_session()
        server = ServerMethods(session)

        await server.register("server")
        await server.register("channel", 0)
        await server.unregister()

        assert writer.written[-3:] == [
            b"servernotifyregister event=server\n",
            b"servernotifyregister event=channel id=0\n",
            b"servernotifyunregister\n",
        ]

    async def test_send_text_message(self, open_session: OpenSession) -> None:
        session, writer = await open_session()

        await ServerMethods(session).send_text_message(
            TextMessageTargetMode.SERVER,
            1,
            "hello | world",
        )

        assert writer.written[-1] == (
            b"sendtextmessage targetmode=3 target=1 msg=hello\\s\\p\\sworld\n"
        )

    async def test_logout(self, open_session: OpenSession) -> None:
        session, writer = await open_session()

        await ServerMethods(session).logout()

        assert writer.written[-1] == b"logout\n"


@pytest.mark.parametrize(
    "documented",
    [
        VersionInfo,
        WhoAmI,
        VirtualServer,
        ServerMethods,
        ServerMethods.__init__,
        ServerMethods.logout,
        ServerMethods.unregister,
    ],
)
def test_public_api_is_documented(documented: object) -> None:
    assert (documented.__doc__ or "").strip()
