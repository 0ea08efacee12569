#!/usr/bin/env python3
"""
SecureAPI operator CLI -- account bootstrapping outside the HTTP API.

The API only ever creates USER accounts, so the first ADMIN has to come from
here.

Usage:
  python main.py create-admin --name "Site Admin" --email admin@example.com
  echo "$PASSWORD" | python main.py create-admin --name Ops --email ops@example.com --password-stdin
  python main.py set-role alice@example.com ADMIN

Environment variables:
  SECRET_KEY    Required (same validation as the server).
  DATABASE_URL  Optional. Defaults to secureapi.db next to this file.
"""

from __future__ import annotations

import argparse
import getpass
import sys
from dataclasses import replace
from typing import Optional

from auth.errors import DuplicateEmail
from auth.models import Role
from auth.service import register_user
from auth.store import UserStore
from core.config import ConfigError, get_settings

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72


def _read_password(from_stdin: bool) -> Optional[str]:
    """Read a password from stdin or prompt for it twice. Returns None on mismatch."""
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def create_admin(store: UserStore, name: str, email: str, password: str) -> int:
    """Create an ADMIN identity. Returns a process exit code."""
    if not MIN_PASSWORD_LENGTH <= len(password) <= MAX_PASSWORD_LENGTH:
        print(f"  [!] Password must be {MIN_PASSWORD_LENGTH}-{MAX_PASSWORD_LENGTH} characters.")
        return 1
    try:
        user = register_user(store, name, email, password)
    except DuplicateEmail:
        print(f"  [!] '{email}' is already registered. Use set-role to promote it.")
        return 1
    store.save(replace(user, role=Role.ADMIN))
    print(f"  Created admin {email} (id={user.id}).")
    return 0


def set_role(store: UserStore, email: str, role: Role) -> int:
    """Change the role of an existing identity. Returns a process exit code."""
    user = store.get_by_email(email)
    if user is None:
        print(f"  [!] No account with email '{email}'.")
        return 1
    if user.role == role:
        print(f"  {email} is already {role.value}.")
        return 0
    store.save(replace(user, role=role))
    print(f"  {email}: {user.role.value} -> {role.value}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="secureapi",
        description="Account bootstrapping for SecureAPI.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --name "Site Admin" --email admin@example.com
  python main.py set-role alice@example.com ADMIN
  python main.py set-role alice@example.com USER
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = commands.add_parser("create-admin", help="Create a new ADMIN account")
    create.add_argument("--name", required=True, help="Display name (3-50 characters)")
    create.add_argument("--email", required=True, help="Login email (must not be registered yet)")
    create.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting",
    )

    promote = commands.add_parser("set-role", help="Change the role of an existing account")
    promote.add_argument("email", help="Login email of the account")
    promote.add_argument("role", choices=[r.value for r in Role], help="New role")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = get_settings()
    except ConfigError as e:
        print(f"  [!] Configuration error: {e}")
        return 2

    store = UserStore(settings.database_url)
    try:
        if args.command == "create-admin":
            if not 3 <= len(args.name.strip()) <= 50:
                print("  [!] Name must be between 3 and 50 characters.")
                return 1
            password = _read_password(args.password_stdin)
            if password is None:
                return 1
            return create_admin(store, args.name.strip(), args.email, password)
        return set_role(store, args.email, Role(args.role))
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
