#!/usr/bin/env python3
"""
Tokenward -- operator CLI for the authentication engine.

Talks to the same database as the API (DATABASE_URL) and signs with the same
SECRET_KEY, so it can bootstrap the first admin when self-registration is
disabled and run maintenance without the server.

Usage:
  python main.py register admin@example.edu --role admin --name "Dr. Priya Rao"
  python main.py register student@example.edu --password-stdin < pw.txt
  python main.py validate <token>
  python main.py purge-revocations

Environment variables:
  SECRET_KEY     Signing key (>= 32 chars). Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the credential/revocation database.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.errors import AuthError, TokenError
from auth.service import AuthService
from core.config import get_settings


def _read_password(from_stdin: bool) -> str:
    """Read a password without echoing it. --password-stdin reads one line for scripted use."""
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise ValueError("Passwords do not match.")
    return first


def _cmd_register(service: AuthService, args: argparse.Namespace) -> int:
    password = _read_password(args.password_stdin)
    created = service.register(args.identity, password, role=args.role, display_name=args.name)
    print(f"  Registered {created.identity} (role: {created.role})")
    return 0


def _cmd_validate(service: AuthService, args: argparse.Namespace) -> int:
    try:
        claims = service.validate_request(args.token)
    except TokenError as exc:
        print(f"  [!] Token rejected: {exc.code}")
        return 1
    print(f"  Valid token {claims.token_id}")
    print(f"  identity:   {claims.identity}")
    print(f"  role:       {claims.role}")
    print(f"  expires at: {claims.expires_at.isoformat()}")
    return 0


def _cmd_purge(service: AuthService, args: argparse.Namespace) -> int:
    removed = service.purge_revocations()
    print(f"  Removed {removed} expired revocation entr{'y' if removed == 1 else 'ies'}.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tokenward",
        description="Operator tools for the Tokenward authentication engine.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py register admin@example.edu --role admin
  python main.py validate eyJhbGciOiJIUzI1NiIs...
  python main.py purge-revocations
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_register = sub.add_parser("register", help="Create an identity (bypasses the self-registration policy)")
    p_register.add_argument("identity", help="Username or email of the new identity")
    p_register.add_argument("--role", default=None, help="Role tag (default: DEFAULT_ROLE)")
    p_register.add_argument("--name", default=None, help="Optional display name")
    p_register.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting",
    )
    p_register.set_defaults(func=_cmd_register)

    p_validate = sub.add_parser("validate", help="Check a session token and print its claims")
    p_validate.add_argument("token", help="Encoded session token")
    p_validate.set_defaults(func=_cmd_validate)

    p_purge = sub.add_parser("purge-revocations", help="Delete revocation entries whose token has expired")
    p_purge.set_defaults(func=_cmd_purge)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    service = AuthService.from_settings(get_settings())
    try:
        return args.func(service, args)
    except (AuthError, ValueError) as exc:
        print(f"  [!] {exc}")
        return 1
    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
