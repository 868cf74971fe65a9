#!/usr/bin/env python3
"""
TillGate -- cashier/admin authentication service.

Usage:
  python main.py init-db               create tables and seed the CASHIER/ADMIN roles
  python main.py check-config          validate settings (secrets, TTLs) and exit
  python main.py activate TOKEN        activate the account named by an activation token
  python main.py activate -u USERNAME  activate an account directly (operator override)
  python main.py serve [--host H] [--port P] [--reload]

Environment variables (see core/config.py for the full list):
  DATABASE_URL              SQLAlchemy URL; defaults to a SQLite file in the project root
  ACCESS_TOKEN_SECRET       \
  REFRESH_TOKEN_SECRET       | four distinct secrets, >= 32 chars each;
  ACTIVATION_TOKEN_SECRET    | required unless DEBUG=true
  RESET_TOKEN_SECRET        /
  MAIL_BACKEND              smtp (default) or log
"""

import argparse
import logging
import sys

from pydantic import ValidationError

from auth.service import AuthService
from auth.store import CredentialStore
from core.config import get_settings
from core.errors import AuthError

logger = logging.getLogger("tillgate.cli")


def _load_settings():
    try:
        return get_settings()
    except ValidationError as exc:
        for err in exc.errors():
            print(f"  [!] {err['msg']}", file=sys.stderr)
        sys.exit(2)


def cmd_init_db(args: argparse.Namespace) -> int:
    settings = _load_settings()
    store = CredentialStore(settings.database_url, seed_roles=True, busy_timeout=settings.database_busy_timeout_seconds)
    ok = store.ping()
    store.close()
    print("  Database ready." if ok else "  [!] Database is not reachable.")
    return 0 if ok else 1


def cmd_activate(args: argparse.Namespace) -> int:
    settings = _load_settings()
    service = AuthService.from_settings(settings)
    try:
        if args.username:
            with service.store.transaction() as tx:
                credential = service.store.find_by_username(tx, args.username)
                if credential is None:
                    print(f"  [!] User not found: {args.username}", file=sys.stderr)
                    return 1
                service.store.set_activated(tx, credential.id)
            username = credential.username
        else:
            username = service.activate_account(args.token)["username"]
    except AuthError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        service.close()
    logger.info("Account %s activated from the command line", username)
    print(f"  Activated {username}.")
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    settings = _load_settings()
    print("  Configuration OK.")
    print(f"  access token ttl:     {settings.access_token_ttl_seconds}s")
    print(f"  refresh token ttl:    {settings.refresh_token_ttl_seconds}s")
    print(f"  activation token ttl: {settings.activation_token_ttl_seconds}s")
    print(f"  reset token ttl:      {settings.reset_token_ttl_seconds}s")
    print(f"  mail backend:         {settings.mail_backend}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    _load_settings()
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tillgate", description="TillGate authentication service")
    sub = parser.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init-db", help="create tables and seed roles")
    p_init.set_defaults(func=cmd_init_db)

    p_activate = sub.add_parser("activate", help="activate an account by token or username")
    target = p_activate.add_mutually_exclusive_group(required=True)
    target.add_argument("token", nargs="?", help="activation token from the emailed link")
    target.add_argument("-u", "--username", help="activate this username without a token")
    p_activate.set_defaults(func=cmd_activate)

    p_check = sub.add_parser("check-config", help="validate settings and exit")
    p_check.set_defaults(func=cmd_check_config)

    p_serve = sub.add_parser("serve", help="run the HTTP API with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
