from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

import aiohttp

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subscriptions-app",
        description="Patreon subscription lookup bot (sync loop + /lookup)",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the Discord bot and the Patreon sync loop")

    seed_cmd = subparsers.add_parser(
        "seed", help="Store an initial Patreon token pair (e.g. after the stored one expired)"
    )
    seed_cmd.add_argument("--access-token", required=True, help="Creator access token")
    seed_cmd.add_argument("--refresh-token", required=True, help="Creator refresh token")
    seed_cmd.add_argument(
        "--expires-in",
        type=int,
        required=True,
        help="Access token lifetime in seconds, as reported by Patreon",
    )

    subparsers.add_parser("refresh", help="Refresh the stored token pair once and exit")

    parser.set_defaults(command="run")
    return parser


async def _with_credentials(action) -> int:
    from subscriptions_app import storage
    from subscriptions_app.clients.disc import open_credentials

    conn = storage.connect()
    try:
        storage.migrate(conn)
        async with aiohttp.ClientSession() as session:
            credentials = open_credentials(conn, session)
            await credentials.load()
            return await action(credentials)
    finally:
        conn.close()


async def _seed(args: argparse.Namespace) -> int:
    async def _action(credentials) -> int:
        await credentials.seed(args.access_token, args.refresh_token, args.expires_in)
        return 0

    return await _with_credentials(_action)


async def _refresh(args: argparse.Namespace) -> int:
    from subscriptions_app.patreon import PatreonError

    async def _action(credentials) -> int:
        if credentials.current is None:
            logger.error("No Patreon keys stored; run `seed` first")
            return 1
        try:
            await credentials.refresh()
        except PatreonError as exc:
            logger.error("Failed to refresh token: %s", exc)
            return 1
        return 0

    return await _with_credentials(_action)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Importing the client pulls in config, which validates env and sets up logging.
    from subscriptions_app.clients import disc

    if args.command == "seed":
        return asyncio.run(_seed(args))
    if args.command == "refresh":
        return asyncio.run(_refresh(args))
    return disc.run()


__all__ = ["build_parser", "main"]
