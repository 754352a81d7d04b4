#!/usr/bin/env python3
"""
Account service -- user accounts, JWT login, server-side sessions.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 0.0.0.0 --reload
  python main.py --purge-sessions

Environment variables (see core/config.py):
  JWT_SECRET       HS256 signing key (at least 32 characters outside DEBUG).
  SESSION_SECRET   Key for signing the session cookie.
  DATABASE_URL     SQLAlchemy URL. Defaults to a SQLite file beside auth/store.py.
"""

import argparse
import logging

import uvicorn

from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("accounts.api")


def _purge_sessions() -> int:
    """Delete expired server sessions and return how many were removed."""
    settings = get_settings()
    store = UserStore(settings.database_url) if settings.database_url else UserStore()
    try:
        return store.purge_expired_server_sessions()
    finally:
        store.close()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="account-service",
        description="Run the account service HTTP API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --host 0.0.0.0 --port 8080
  JWT_SECRET=... SESSION_SECRET=... python main.py
        """,
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=4000,
        help="Port to listen on (default: 4000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change (development only)",
    )
    parser.add_argument(
        "--log-level",
        choices=["critical", "error", "warning", "info", "debug"],
        default="info",
        help="uvicorn log level (default: info)",
    )
    parser.add_argument(
        "--purge-sessions",
        action="store_true",
        help="Delete expired server sessions and exit without starting the server",
    )
    args = parser.parse_args()

    if args.purge_sessions:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-5s %(name)s %(message)s")
        removed = _purge_sessions()
        logger.info("Purged %d expired server session(s)", removed)
        return

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload, log_level=args.log_level)


if __name__ == "__main__":
    main()
