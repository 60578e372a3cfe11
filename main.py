#!/usr/bin/env python3
"""
duneauth -- read-only AUTHD authentication backend, operator CLI.
Inspect what the backend sees without going through the host or the bridge.

Usage:
  python main.py check Paul
  echo "secret" | python main.py check Paul --password-stdin
  python main.py user Paul
  python main.py users --start 0 --limit 20
  python main.py count
  python main.py capabilities
  python main.py --db /srv/mud/authd.db users

Environment variables:
  DUNEAUTH_DB_PATH                   Path to the AUTHD SQLite file (overridden by --db).
  DUNEAUTH_ENFORCE_PASSWORD_EXPIRY   Set to false to accept expired passwords (legacy parity).

Exit status:
  0  success (for `check`: password valid)
  1  password rejected, or user not found
  2  backend unavailable (invalid configuration, no store configured, or the
     store cannot be opened)
"""

import argparse
import getpass
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional

from pydantic import ValidationError

from auth.backend import DuneAuthBackend
from core.config import get_settings

logger = logging.getLogger("duneauth.cli")

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_UNAVAILABLE = 2


def _read_password(from_stdin: bool) -> str:
    """Read the password without echoing it.

    --password-stdin reads one line (trailing newline stripped, nothing else)
    so scripts can pipe a password in without it showing up in `ps`.
    """
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    return getpass.getpass("Password: ")


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _cmd_check(backend: DuneAuthBackend, args: argparse.Namespace) -> int:
    password = _read_password(args.password_stdin)
    valid = backend.check_password(args.username, password)
    _print_json({"username": args.username, "valid": valid})
    return EXIT_OK if valid else EXIT_REJECTED


def _cmd_user(backend: DuneAuthBackend, args: argparse.Namespace) -> int:
    info = backend.get_user_data(args.username)
    if info is None:
        print(f"  [!] No active user named '{args.username}'.", file=sys.stderr)
        return EXIT_REJECTED
    _print_json(asdict(info))
    return EXIT_OK


def _cmd_users(backend: DuneAuthBackend, args: argparse.Namespace) -> int:
    users = backend.retrieve_users(args.start, args.limit)
    _print_json({name: asdict(info) for name, info in users.items()})
    return EXIT_OK


def _cmd_count(backend: DuneAuthBackend, args: argparse.Namespace) -> int:
    _print_json({"count": backend.get_user_count()})
    return EXIT_OK


def _cmd_capabilities(backend: DuneAuthBackend, args: argparse.Namespace) -> int:
    _print_json(
        {
            "flags": backend.capabilities.as_host_flags(),
            "case_sensitive": backend.is_case_sensitive(),
        }
    )
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="duneauth",
        description="Read-only AUTHD authentication backend -- operator CLI.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py check Paul
  python main.py --db ./authd.db user Paul
  python main.py users --limit 100
        """,
    )
    parser.add_argument(
        "--db",
        metavar="PATH",
        default=None,
        help="Path to the AUTHD SQLite file (default: DUNEAUTH_DB_PATH)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log backend diagnostics to stderr",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_check = sub.add_parser("check", help="Verify a user's password")
    p_check.add_argument("username")
    p_check.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting",
    )
    p_check.set_defaults(handler=_cmd_check)

    p_user = sub.add_parser("user", help="Show one user's mail and groups")
    p_user.add_argument("username")
    p_user.set_defaults(handler=_cmd_user)

    p_users = sub.add_parser("users", help="List active users, one page at a time")
    p_users.add_argument("--start", type=int, default=0, metavar="N", help="Index of the first user (default: 0)")
    p_users.add_argument("--limit", type=int, default=50, metavar="N", help="Page size; 0 lists nothing (default: 50)")
    p_users.set_defaults(handler=_cmd_users)

    p_count = sub.add_parser("count", help="Count active users")
    p_count.set_defaults(handler=_cmd_count)

    p_caps = sub.add_parser("capabilities", help="Show the capability flags advertised to the host")
    p_caps.set_defaults(handler=_cmd_capabilities)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "handler", None):
        parser.print_help()
        return EXIT_OK

    try:
        log_level = get_settings().log_level.upper()
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        print(f"  [!] Invalid DUNEAUTH_* configuration: {fields}", file=sys.stderr)
        log_level = "INFO"

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else log_level,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    with DuneAuthBackend(args.db) as backend:
        if not backend.available and args.command != "capabilities":
            print("  [!] Credential store unavailable. Set DUNEAUTH_DB_PATH or pass --db.", file=sys.stderr)
            return EXIT_UNAVAILABLE
        return args.handler(backend, args)


if __name__ == "__main__":
    sys.exit(main())
