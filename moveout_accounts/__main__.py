"""Command line entry point for the accounts service.

Usage:
    python -m moveout_accounts serve
    python -m moveout_accounts token <account_id> [--ttl SECONDS]
"""

from __future__ import annotations

import argparse

import uvicorn

from .config import get_settings
from .security.tokens import issue_access_token


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="moveout-accounts", description="MoveOut account lifecycle service")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API and the inactivity sweep scheduler")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")

    token = commands.add_parser("token", help="Print a signed access token for local testing")
    token.add_argument("account_id", help="Account id placed in the token's sub claim")
    token.add_argument("--ttl", type=int, default=None, help="Lifetime in seconds (default JWT_TTL_SECONDS)")

    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "serve":
        uvicorn.run(
            "moveout_accounts.main:app",
            host=settings.http_host,
            port=settings.http_port,
            log_level=settings.log_level.lower(),
            reload=args.reload,
        )
        return

    access_token, _ = issue_access_token(subject=args.account_id, ttl_seconds=args.ttl)
    print(access_token)


if __name__ == "__main__":
    main()
