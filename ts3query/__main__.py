"""Command line entry point for executing ServerQuery commands."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING

from ts3query.config import AppConfig, configure_logging, load_config_from_env
from ts3query.queryclient import QueryError, ServerQueryError, Session
from ts3query.server_methods import ServerMethods

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

LOGGER = logging.getLogger(__name__)


async def _stdin_commands() -> AsyncIterator[str]:
    """Yield non-empty lines from standard input."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        line = line.strip()
        if line:
            yield line


async def _commands(commands: Sequence[str]) -> AsyncIterator[str]:
    for command in commands:
        yield command


async def run(
    config: AppConfig,
    commands: Sequence[str],
    *,
    notifications: bool = False,
) -> int:
    """Connect, execute the commands and print their responses.

    :param config: The client configuration
    :param commands: Commands to execute, read from stdin when empty
    :param notifications: Keep printing notifications after the commands
    :return: The process exit status
    """
    status = 0
    async with await Session.open(config.address, config.session_config) as session:
        if notifications:
            session.notifications()

        server = ServerMethods(session)
        if config.username and config.password:
            await server.login(config.username, config.password)
        if config.server_id is not None:
            await server.use(config.server_id)

        source = _commands(commands) if commands else _stdin_commands()
        async for command in source:
            try:
                lines = await session.execute(command)
            except QueryError as e:
                print(f"error: {e}", file=sys.stderr)
                status = 1
                continue
            for line in lines:
                print(line)

        if notifications:
            async for notification in session.iter_notifications():
                print(notification.event, notification.fields)

    return status


def main(argv: Sequence[str] | None = None) -> int:
    """Run ServerQuery commands from the command line."""
    parser = argparse.ArgumentParser(
        description="Execute commands on a ServerQuery interface.",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to the environment configuration file.",
    )
    parser.add_argument(
        "--address",
        type=str,
        default=None,
        help="ServerQuery address as host or host:port.",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="Timeout in seconds for connecting and for each command.",
    )
    parser.add_argument(
        "--keepalive",
        action="store_true",
        help="Periodically probe the connection to keep it open.",
    )
    parser.add_argument(
        "--notifications",
        action="store_true",
        help="Print notifications after the commands until interrupted.",
    )
    parser.add_argument(
        "commands",
        nargs="*",
        help="Commands to execute. Read from standard input when omitted.",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config_from_env(args.env_file)
        overrides: dict[str, object] = {}
        if args.address:
            overrides["address"] = args.address
        if args.timeout is not None:
            overrides["timeout"] = args.timeout
        if args.keepalive:
            overrides["keepalive"] = True
        config = dataclasses.replace(config, **overrides)
        # validate before connecting
        config.session_config  # noqa: B018
    except ValueError as e:
        parser.error(str(e))

    configure_logging(config)

    try:
        return asyncio.run(
            run(config, args.commands, notifications=args.notifications),
        )
    except ServerQueryError as e:
        LOGGER.error("ServerQuery failure: %s", e)  # noqa: TRY400
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
