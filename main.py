#!/usr/bin/env python3
"""
SSO admin CLI -- schema setup and application registration.

Usage:
  python main.py migrate
  python main.py add-app --name web --secret "$(openssl rand -hex 32)"
  python main.py set-admin --user-id 1
  python main.py set-admin --user-id 1 --revoke
  python main.py --database-url sqlite+aiosqlite:///./other.db migrate

Environment variables:
  DATABASE_URL  SQLAlchemy async URL of the store (required unless --database-url is given).
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.store import SqlStore
from core.config import get_settings

logger = logging.getLogger("sso.cli")


async def _migrate(store: SqlStore, args: argparse.Namespace) -> int:
    await store.create_schema()
    print("schema is up to date")
    return 0


async def _add_app(store: SqlStore, args: argparse.Namespace) -> int:
    await store.create_schema()
    try:
        app_id = await store.save_app(args.name, args.secret)
    except IntegrityError:
        print(f"  [!] An application named '{args.name}' already exists.", file=sys.stderr)
        return 1
    print(app_id)
    return 0


async def _set_admin(store: SqlStore, args: argparse.Namespace) -> int:
    if not await store.set_admin(args.user_id, not args.revoke):
        print(f"  [!] No user with id {args.user_id}.", file=sys.stderr)
        return 1
    print(f"user {args.user_id}: admin={'no' if args.revoke else 'yes'}")
    return 0


_COMMANDS = {
    "migrate": _migrate,
    "add-app": _add_app,
    "set-admin": _set_admin,
}


async def _run(db_url: str, args: argparse.Namespace) -> int:
    store = SqlStore(db_url)
    try:
        return await _COMMANDS[args.command](store, args)
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sso",
        description="Manage the SSO store: create the schema, register applications, grant admin.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy async URL of the store (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Create the users and apps tables if missing")

    add_app = sub.add_parser("add-app", help="Register an application and print its id")
    add_app.add_argument("--name", required=True, help="Unique application name")
    add_app.add_argument("--secret", required=True, help="HS256 signing secret for this application's tokens")

    set_admin = sub.add_parser("set-admin", help="Grant (or with --revoke, remove) the admin flag")
    set_admin.add_argument("--user-id", type=int, required=True)
    set_admin.add_argument("--revoke", action="store_true", help="Remove the admin flag instead of granting it")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = build_parser().parse_args(argv)

    db_url = args.database_url
    if not db_url:
        try:
            db_url = get_settings().database_url
        except ValueError as e:
            print(f"  [!] {e}", file=sys.stderr)
            return 1

    try:
        return asyncio.run(_run(db_url, args))
    except SQLAlchemyError:
        logger.exception("%s failed", args.command)
        print(f"  [!] {args.command} failed; see the log above.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
