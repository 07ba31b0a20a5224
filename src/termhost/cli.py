"""Command-line interface for termhost.

Starts the session server, or manages sessions on a running server
through its REST API.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="termhost",
        description="Browser-hosted terminal session server",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/termhost.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--url", type=str, default=None,
        help="Server base URL for session commands (default: client.base_url from config)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the session server")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Listening port")

    subparsers.add_parser("list", help="List known sessions")

    create_parser = subparsers.add_parser("create", help="Start a new session")
    create_parser.add_argument("--name", type=str, default=None, help="Session name")

    delete_parser = subparsers.add_parser("delete", help="Destroy a session and forget it")
    delete_parser.add_argument("session_id", type=str, help="Session identifier")

    return parser.parse_args(argv)


def _serve(settings, args) -> None:
    import uvicorn

    from termhost.server.app import create_app

    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port

    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


async def _list_sessions(client) -> None:
    sessions = sorted(await client.list_sessions(), key=lambda s: s.last_activity, reverse=True)
    if not sessions:
        print("No sessions")
        return
    for s in sessions:
        state = "alive" if s.alive else "dead"
        print(
            f"{s.id}  {s.name!r:24}  {state:5}  clients={s.client_count}  "
            f"last activity {s.last_activity:%Y-%m-%d %H:%M:%S}"
        )


async def _run_client_command(settings, args) -> None:
    from termhost.client.http import SessionClient

    base_url = args.url or settings.client.base_url
    async with SessionClient(base_url=base_url, timeout=settings.client.timeout) as client:
        if args.command == "list":
            await _list_sessions(client)
        elif args.command == "create":
            created = await client.create_session(args.name)
            print(f"Created {created.id} ({created.name})")
        elif args.command == "delete":
            await client.delete_session(args.session_id)
            print(f"Deleted {args.session_id}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the termhost CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from termhost.client.http import SessionClientError
    from termhost.config.settings import load_settings
    from termhost.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting session server")
        _serve(settings, args)
        return

    try:
        asyncio.run(_run_client_command(settings, args))
    except SessionClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
