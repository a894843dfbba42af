#!/usr/bin/env python3
"""
authcore admin CLI -- account bootstrap and session revocation.

Usage:
  python main.py create-user admin@example.com --name "Site Admin" --role admin
  python main.py revoke-sessions someone@example.com
  python main.py --db-url sqlite:///other.db revoke-sessions someone@example.com

The password for create-user is read interactively (never from argv, where it
would land in shell history and the process list).

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the auth database (default: ./authcore.db)
  SECRET_KEY    Not needed by these commands; DEBUG=true skips the check.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.errors import DuplicateEmail, PasswordTooLong
from auth.models import Role
from auth.passwords import PasswordHasher
from auth.sessions import SessionStore
from auth.store import CredentialStore, create_db_engine
from core.config import get_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="authcore", description="authcore account administration")
    parser.add_argument("--db-url", default=None, help="SQLAlchemy database URL (overrides DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account with a chosen role")
    create.add_argument("email")
    create.add_argument("--name", required=True)
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.USER.value)

    revoke = sub.add_parser("revoke-sessions", help="Log a user out on every device")
    revoke.add_argument("email")
    return parser


def _read_password() -> Optional[str]:
    password = getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.")
        return None
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return None
    return password


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    engine = create_db_engine(args.db_url or settings.database_url)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, max_workers=1)
    credentials = CredentialStore(engine, hasher)
    try:
        if args.command == "create-user":
            password = _read_password()
            if password is None:
                return 1
            try:
                user = credentials.register(args.email, password, args.name, role=Role(args.role))
            except DuplicateEmail:
                print(f"  [!] An account for '{args.email.strip().lower()}' already exists.")
                return 1
            except PasswordTooLong as exc:
                print(f"  [!] {exc.message}")
                return 1
            print(f"  Created {user.role.value} account {user.email} (id={user.id})")
            return 0

        user = credentials.get_by_email(args.email)
        if user is None:
            print(f"  [!] No account for '{args.email.strip().lower()}'.")
            return 1
        closed = SessionStore(engine).close_all_for_user(user.id)
        print(f"  Revoked {closed} session(s) for {user.email}")
        return 0
    finally:
        hasher.shutdown()
        credentials.close()


if __name__ == "__main__":
    sys.exit(main())
