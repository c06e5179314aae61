"""CLI entrypoints for periodic token cleanup."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence

from app.config import configure_structlog, get_settings
from app.db.session import dispose_engine, get_session_factory
from app.services.auth_service import get_auth_service
from app.services.session_service import get_session_service


async def _run_cleanup_session_tokens(grace_seconds: int | None) -> int:
    """Delete expired participant tokens and tokens revoked before the grace cutoff."""
    configure_structlog(get_settings())
    session_service = get_session_service()
    session_factory = get_session_factory()

    try:
        async with session_factory() as db_session:
            deleted = await session_service.cleanup_session_tokens(
                db_session=db_session,
                grace_seconds=grace_seconds,
            )
    finally:
        await dispose_engine()

    print(json.dumps({"deleted": deleted}))
    return 0


async def _run_cleanup_refresh_tokens(grace_seconds: int | None) -> int:
    """Delete expired staff refresh tokens and those retired before the grace cutoff."""
    settings = get_settings()
    configure_structlog(settings)
    auth_service = get_auth_service()
    session_factory = get_session_factory()
    grace = settings.cleanup.revoked_token_grace_seconds if grace_seconds is None else grace_seconds

    try:
        async with session_factory() as db_session:
            deleted = await auth_service.cleanup_refresh_tokens(
                db_session=db_session,
                grace_seconds=grace,
            )
    finally:
        await dispose_engine()

    print(json.dumps({"deleted": deleted}))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported operational commands."""
    parser = argparse.ArgumentParser(prog="python -m app.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    cleanup_parser = subcommands.add_parser("cleanup-session-tokens")
    cleanup_parser.add_argument(
        "--grace-seconds",
        type=int,
        default=None,
        help="Optional override for CLEANUP__REVOKED_TOKEN_GRACE_SECONDS during this run.",
    )

    refresh_parser = subcommands.add_parser("cleanup-refresh-tokens")
    refresh_parser.add_argument(
        "--grace-seconds",
        type=int,
        default=None,
        help="Optional override for CLEANUP__REVOKED_TOKEN_GRACE_SECONDS during this run.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.grace_seconds is not None and args.grace_seconds < 0:
        parser.error("--grace-seconds must be non-negative")
    if args.command == "cleanup-session-tokens":
        return asyncio.run(_run_cleanup_session_tokens(grace_seconds=args.grace_seconds))
    if args.command == "cleanup-refresh-tokens":
        return asyncio.run(_run_cleanup_refresh_tokens(grace_seconds=args.grace_seconds))
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
