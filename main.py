#!/usr/bin/env python3
"""
DadMail auth -- maintenance CLI for the credential and session store.

Usage:
  python main.py init-db
  python main.py purge-sessions
  python main.py revoke-user someone@example.com
  python main.py create-user someone@example.com --name "Some One" --role caregiver
  python main.py serve --host 0.0.0.0 --port 8080

purge-sessions is meant for cron / a systemd timer when the in-process purge
loop is disabled (SESSION_PURGE_INTERVAL_SECONDS=0).

Configuration comes from the same environment variables as the API
(SECRET_KEY, DATABASE_URL or DB_*, ...). See core/config.py.
"""

import argparse
import getpass
import logging

from auth.errors import AuthError
from auth.factory import AuthComponents, build_components
from auth.models import Role
from core.config import get_settings

logger = logging.getLogger("dadmail.cli")


def _components() -> AuthComponents:
    return build_components(get_settings())


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the users and sessions tables if they do not exist."""
    components = _components()  # make_engine() runs create_all
    try:
        print(f"  Schema ready ({components.engine.url.render_as_string(hide_password=True)}).")
    finally:
        components.close()
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    components = _components()
    try:
        removed = components.service.purge_expired_sessions()
    finally:
        components.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def cmd_revoke_user(args: argparse.Namespace) -> int:
    """Log a user out of every device by deleting all their refresh sessions."""
    components = _components()
    try:
        user = components.users.get_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email '{args.email}'.")
            return 1
        revoked = components.service.logout_all(user.id)
    finally:
        components.close()
    print(f"  Revoked {revoked} session(s) for {args.email}.")
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    """Create an account with an explicit role (e.g. the first caregiver)."""
    password = args.password or getpass.getpass("Password: ")
    components = _components()
    try:
        password_hash = components.hasher.hash(password)
        user = components.users.create_user(args.email, password_hash, args.name, Role(args.role).value)
    finally:
        components.close()
    print(f"  Created {user.role} user {user.email} ({user.id}).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dadmail-auth",
        description="Maintenance commands for the DadMail credential and session store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py purge-sessions
  python main.py revoke-user someone@example.com
  python main.py create-user carer@example.com --name "Carer" --role caregiver
  DATABASE_URL=postgresql+psycopg2://... python main.py serve --port 8080
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("purge-sessions", help="Delete expired refresh sessions")
    p.set_defaults(func=cmd_purge_sessions)

    p = sub.add_parser("revoke-user", help="Revoke every session of a user")
    p.add_argument("email", help="Email of the account to log out everywhere")
    p.set_defaults(func=cmd_revoke_user)

    p = sub.add_parser("create-user", help="Create an account with an explicit role")
    p.add_argument("email")
    p.add_argument("--name", required=True, help="Display name")
    p.add_argument("--role", choices=[r.value for r in Role], default=Role.SENIOR.value)
    p.add_argument("--password", default=None, help="Password (prompted when omitted)")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("serve", help="Run the API with uvicorn")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8080)
    p.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    try:
        return args.func(args)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
