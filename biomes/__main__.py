#!/usr/bin/env python3
"""
Diagnostics for the Biomes client via: python -m biomes

Usage:
    python -m biomes check                 # Print the logged-in user id
    python -m biomes profile 12345         # Resolve the session for a user
    python -m biomes stages                # Print the loading stage table
    python -m biomes --base-url https://biomes.gg --log-format json check
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from biomes.config import get_client_config

logger = logging.getLogger(__name__)


async def _check(base_url: str) -> int:
    from biomes.auth import check_logged_in
    from biomes.http_client import AUTH_TIMEOUT, create_client_session

    async with create_client_session(timeout=AUTH_TIMEOUT, base_url=base_url) as session:
        user_id = await check_logged_in(session)
    if user_id is None:
        print("Not logged in")
        return 1
    print(user_id)
    return 0


async def _profile(base_url: str, user_id: int) -> int:
    from biomes.auth_manager import AuthSessionManager
    from biomes.http_client import create_client_session
    from biomes.storage import ClientStorage, default_storage_path

    storage = ClientStorage(default_storage_path())
    async with create_client_session(base_url=base_url) as session:
        manager = await AuthSessionManager.bootstrap(user_id, session, storage=storage)
    user = manager.current_user
    print(f"user_id: {user.user_id}")
    print(f"create_ms: {user.create_ms}")
    print(f"roles: {', '.join(sorted(role.value for role in user.roles)) or '-'}")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    return asyncio.run(_check(args.base_url))


def cmd_profile(args: argparse.Namespace) -> int:
    return asyncio.run(_profile(args.base_url, args.user_id))


def cmd_stages(args: argparse.Namespace) -> int:
    from biomes.load_progress import Stage

    for stage in sorted(Stage, key=lambda s: s.rank):
        print(f"{stage.rank:>2}  {stage.value:<22} {stage.description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="biomes", description="Biomes client diagnostics")
    parser.add_argument(
        "--base-url",
        default=None,
        help="Backend origin (default: $BIOMES_BASE_URL or http://localhost:3000)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: $BIOMES_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Log output format (default: $BIOMES_LOG_FORMAT or text)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Print the logged-in user id")
    check.set_defaults(func=cmd_check)

    profile = sub.add_parser("profile", help="Resolve the session and roles for a user")
    profile.add_argument("user_id", type=int, help="Biomes user id")
    profile.set_defaults(func=cmd_profile)

    stages = sub.add_parser("stages", help="Print the loading stage table")
    stages.set_defaults(func=cmd_stages)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    from biomes.logging_config import configure_logging

    args = build_parser().parse_args(argv)
    json_output = None if args.log_format is None else args.log_format == "json"
    configure_logging(level=args.log_level, json_output=json_output)
    if args.base_url is None:
        args.base_url = get_client_config().base_url

    try:
        return args.func(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"{args.command} failed: {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
