"""
Command line entry point.

Usage:
    # Log in once and print the REST URL and session expiry
    python -m bullhorn_auth

    # Also call /ping on the new session
    python -m bullhorn_auth --ping

    # Keep the session refreshed until SIGINT/SIGTERM, exposing metrics
    python -m bullhorn_auth --watch --metrics-port 8000

Credentials come from BULLHORN_* environment variables or the bullhorn:
section of config.yaml (see bullhorn_auth.config).
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from prometheus_client import start_http_server

from bullhorn_auth.common.events import LOGIN, LOGIN_FAILED
from bullhorn_auth.common.exceptions import BullhornError, ConfigurationError
from bullhorn_auth.common.logging_setup import setup_logging
from bullhorn_auth.config import BullhornConfig
from bullhorn_auth.managed_client import ManagedSessionClient
from bullhorn_auth.schemas import Session

# Rebound to "bullhorn_auth.cli" once main() has configured handlers
logger = logging.getLogger(__name__)

_shutdown_event: Optional[asyncio.Event] = None


def get_shutdown_event() -> asyncio.Event:
    """Event set by SIGINT/SIGTERM; created lazily inside the running loop."""
    global _shutdown_event
    if _shutdown_event is None:
        _shutdown_event = asyncio.Event()
    return _shutdown_event


def parse_args(argv=None) -> argparse.Namespace:
    """Build the CLI namespace (argv defaults to sys.argv[1:])."""
    parser = argparse.ArgumentParser(
        prog="bullhorn_auth",
        description="Log in to Bullhorn and keep a REST session alive",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: ./config.yaml when present)",
    )
    parser.add_argument(
        "--ping",
        action="store_true",
        help="Call /ping after logging in and print the reported expiry",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Run the refresh loop until interrupted",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log at DEBUG level on the console",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for rotating JSON log files (default: console only)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port",
    )
    return parser.parse_args(argv)


def describe(session: Session) -> str:
    """One-line summary of a session; never includes the token."""
    expires = session.expires_at.isoformat() if session.expires_at else "unknown"
    return f"rest_url={session.base_url} expires_at={expires}"


def setup_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    """Set the shutdown event on SIGINT/SIGTERM."""

    def handle_signal(sig):
        logger.info(f"Received signal {sig.name}, shutting down...")
        get_shutdown_event().set()

    # Signal handlers are not supported on Windows
    if sys.platform == "win32":
        return

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))


async def run(config: BullhornConfig, args: argparse.Namespace) -> int:
    """Log in, optionally ping and watch. Returns the process exit code."""
    async with ManagedSessionClient.from_config(config) as client:
        client.on(LOGIN, lambda session: print(f"Logged in: {describe(session)}"))
        client.on(LOGIN_FAILED, lambda error: print(f"Login failed: {error}", file=sys.stderr))

        if args.watch:
            setup_signal_handlers(asyncio.get_running_loop())
            task = await client.start_refresh_loop()
        else:
            task = None
            await client.login()

        if not client.logged_in:
            return 1

        if args.ping:
            try:
                expires_at = await client.ping()
                print(f"Ping: session expires at {expires_at.isoformat()}")
            except BullhornError as e:
                logger.error(f"Ping failed: {e}")
                return 1

        if task is not None:
            logger.info(f"Refreshing session on schedule {task.cron_expression}")
            await get_shutdown_event().wait()
            client.stop_refresh_loop()
            await task.join()

    return 0


def main(argv=None) -> None:
    """Entry point for `bullhorn-auth` and `python -m bullhorn_auth`."""
    global logger
    args = parse_args(argv)

    setup_logging(
        log_dir=args.log_dir,
        console_level=logging.DEBUG if args.verbose else logging.INFO,
    )
    logger = logging.getLogger("bullhorn_auth.cli")

    try:
        config = BullhornConfig.load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.metrics_port:
        logger.info(f"Starting metrics server on port {args.metrics_port}")
        start_http_server(args.metrics_port)

    try:
        exit_code = asyncio.run(run(config, args))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
