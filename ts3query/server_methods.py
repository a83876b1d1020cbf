"""Server administration helpers built on a ServerQuery session."""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel

from ts3query.queryclient import DecodeError, build_command

if TYPE_CHECKING:
    from ts3query.queryclient import QueryCommand, Session

LOGGER = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class TextMessageTargetMode(IntEnum):
    """Targets of the ``sendtextmessage`` command.

    :cvar CLIENT: A single client, ``target`` is a client id
    :cvar CHANNEL: The channel the query client is in
    :cvar SERVER: The whole virtual server
    """

    CLIENT = 1
    CHANNEL = 2
    SERVER = 3


class VersionInfo(BaseModel):
    """Reply to ``version``."""

    version: str
    build: int
    platform: str


class WhoAmI(BaseModel):
    """Reply to ``whoami``.

    Fields other than the server status are absent until the query client
    has selected a virtual server, so they default to zero values.
    """

    virtualserver_status: str
    virtualserver_id: int = 0
    virtualserver_port: int = 0
    client_id: int = 0
    client_channel_id: int = 0
    client_nickname: str = ""
    client_database_id: int = 0
    client_login_name: str = ""
    client_unique_identifier: str = ""


class VirtualServer(BaseModel):
    """One record of the ``serverlist`` reply."""

    virtualserver_id: int
    virtualserver_port: int
    virtualserver_status: str
    virtualserver_clientsonline: int = 0
    virtualserver_maxclients: int = 0
    virtualserver_uptime: int = 0
    virtualserver_name: str = ""


def _single(command: QueryCommand, model: type[ModelT]) -> ModelT:
    """Get the only decoded record of a command that returns one."""
    if not command.decoded:
        msg = f"Empty response to {command.command.split(' ', 1)[0]}"
        raise DecodeError(msg)
    record = command.decoded[0]
    if not isinstance(record, model):
        msg = f"Expected {model.__name__}, got {type(record).__name__}"
        raise DecodeError(msg)
    return record


class ServerMethods:
    """Administration commands for a virtual server.

    .. code-block:: python

        server = ServerMethods(session)
        await server.login("serveradmin", "secret")
        await server.use(1)
        for virtual_server in await server.server_list():
            print(virtual_server.virtualserver_name)
    """

    def __init__(self, session: Session) -> None:
        """Initialize the helpers.

        :param session: A connected session commands are executed on
        """
        self.session = session

    async def version(self) -> VersionInfo:
        """Get the server version."""
        command = build_command("version", model=VersionInfo)
        await self.session.execute_command(command)
        return _single(command, VersionInfo)

    async def whoami(self) -> WhoAmI:
        """Get details about the query client."""
        command = build_command("whoami", model=WhoAmI)
        await self.session.execute_command(command)
        return _single(command, WhoAmI)

    async def login(self, username: str, password: str) -> None:
        """Authenticate the query client."""
        command = build_command(
            "login",
            {"client_login_name": username, "client_login_password": password},
            secret=True,
        )
        await self.session.execute_command(command)
        LOGGER.info("Logged in as %s", username)

    async def logout(self) -> None:
        """Drop the query client's authentication."""
        await self.session.execute("logout")

    async def use(self, server_id: int) -> None:
        """Select the virtual server to operate on.

        :param server_id: The virtual server id
        """
        await self.session.execute_command(build_command("use", {"sid": server_id}))
        LOGGER.info("Using virtual server %d", server_id)

    async def server_list(self) -> list[VirtualServer]:
        """List the virtual servers of the instance."""
        command = build_command("serverlist", model=VirtualServer)
        await self.session.execute_command(command)
        return [server for server in command.decoded if isinstance(server, VirtualServer)]

    async def register(self, event: str, channel_id: int | None = None) -> None:
        """Register for an event, e.g. ``server``, ``channel`` or ``textserver``.

        :param event: The event group to receive notifications for
        :param channel_id: Channel to watch, for channel events
        """
        await self.session.execute_command(
            build_command("servernotifyregister", {"event": event, "id": channel_id}),
        )

    async def unregister(self) -> None:
        """Unregister from all events."""
        await self.session.execute("servernotifyunregister")

    async def send_text_message(
        self,
        target_mode: TextMessageTargetMode,
        target: int,
        message: str,
    ) -> None:
        """Send a text message to a client, channel or server."""
        await self.session.execute_command(
            build_command(
                "sendtextmessage",
                {"targetmode": int(target_mode), "target": target, "msg": message},
            ),
        )
