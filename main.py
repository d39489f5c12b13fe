#!/usr/bin/env python3
"""
School Records -- account administration from the command line.

Usage:
  python main.py init-db --admin admin --email admin@school.com
  python main.py create-user jsmith --role TEACHER --email j.smith@school.com
  python main.py create-student stu01 S2024001 --first-name Ada --last-name Lovelace
  python main.py create-student stu02 S2024002 --generate-password
  python main.py login stu01
  python main.py passwd 3
  python main.py check --username stu01
  python main.py list-students

Passwords are prompted for (no echo) unless --password is given.

Environment variables (or .env):
  DATABASE_URL   SQLAlchemy URL of the account database (default: local SQLite file).
  LOG_LEVEL      Logging level for the account core (default: INFO).
"""

from __future__ import annotations

import argparse
import getpass
import logging
from datetime import date
from typing import Optional

from accounts.models import Gender, Identity, Role, StudentProfile
from accounts.results import IndeterminateError, InvalidInputError
from accounts.service import AccountService
from accounts.store import AccountStore
from core.config import get_settings


def _read_password(args: argparse.Namespace, prompt: str = "Password: ", confirm: bool = False) -> str:
    """Return --password if given, otherwise prompt without echo."""
    if args.password:
        return args.password
    password = getpass.getpass(prompt)
    if confirm and getpass.getpass("Confirm password: ") != password:
        raise InvalidInputError("Passwords do not match")
    return password


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not a date. Expected format: YYYY-MM-DD") from None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_init_db(service: AccountService, args: argparse.Namespace) -> int:
    """Tables are created by AccountStore itself; optionally seed the first admin."""
    print("Account database ready.")
    if not args.admin:
        return 0
    if service.username_exists(args.admin):
        print(f"  Admin '{args.admin}' already exists -- skipped.")
        return 0
    identity = Identity(
        username=args.admin,
        role=Role.ADMIN,
        email=args.email,
        first_name="System",
        last_name="Administrator",
    )
    outcome = service.create_identity(identity, _read_password(args, "Admin password: ", confirm=True))
    if not outcome:
        print(f"  [!] Could not create admin: {outcome.message}")
        return 1
    print(f"  Admin '{args.admin}' created (id {outcome.value.id}).")
    return 0


def cmd_create_user(service: AccountService, args: argparse.Namespace) -> int:
    identity = Identity(
        username=args.username,
        role=Role.parse(args.role),
        email=args.email,
        first_name=args.first_name,
        last_name=args.last_name,
    )
    outcome = service.create_identity(identity, _read_password(args, confirm=True))
    if not outcome:
        print(f"  [!] Could not create user '{args.username}': {outcome.message}")
        return 1
    print(f"  Created {outcome.value.role.value} '{outcome.value.username}' (id {outcome.value.id}).")
    return 0


def cmd_create_student(service: AccountService, args: argparse.Namespace) -> int:
    profile = StudentProfile(
        student_number=args.student_number,
        first_name=args.first_name,
        last_name=args.last_name,
        date_of_birth=_parse_date(args.dob),
        gender=Gender.parse(args.gender),
        address=args.address,
        phone_number=args.phone,
        parent_contact=args.parent_contact,
        enrollment_date=_parse_date(args.enrolled),
    )
    if args.generate_password:
        provisioned = service.provision_student(profile, args.username, args.email)
        if not provisioned:
            print(f"  [!] Could not create student '{args.username}': {provisioned.message}")
            return 1
        created, temp_password = provisioned.value
        print(f"  Created student {created.full_name} ({created.student_number}), profile id {created.id}.")
        print(f"  Temporary password: {temp_password}")
        print("  It is shown once. Ask the student to change it at first login.")
        return 0
    outcome = service.create_profile(profile, args.username, _read_password(args, confirm=True), args.email)
    if not outcome:
        print(f"  [!] Could not create student '{args.username}': {outcome.message}")
        return 1
    print(f"  Created student {outcome.value.full_name} ({outcome.value.student_number}), profile id {outcome.value.id}.")
    return 0


def cmd_login(service: AccountService, args: argparse.Namespace) -> int:
    outcome = service.authenticate(args.username, _read_password(args))
    if not outcome:
        print(f"  [!] Login failed: {outcome.message}")
        return 1
    principal = outcome.value
    print(f"  Welcome, {principal.full_name} ({principal.role.value}).")
    return 0


def cmd_passwd(service: AccountService, args: argparse.Namespace) -> int:
    outcome = service.update_password(args.identity_id, _read_password(args, "New password: ", confirm=True))
    if not outcome:
        print(f"  [!] Password not changed: {outcome.message}")
        return 1
    print("  Password updated.")
    return 0


def cmd_check(service: AccountService, args: argparse.Namespace) -> int:
    if not service.store.ping():
        print("  [!] Account database unreachable.")
        return 1
    print("  Account database reachable.")
    try:
        if args.username:
            taken = service.username_exists(args.username)
            print(f"  Username '{args.username}': {'taken' if taken else 'available'}")
        if args.email:
            taken = service.email_exists(args.email)
            print(f"  Email '{args.email}': {'taken' if taken else 'available'}")
    except IndeterminateError as exc:
        print(f"  [!] {exc}")
        return 1
    return 0


def cmd_list_students(service: AccountService, args: argparse.Namespace) -> int:
    students = service.list_students()
    if not students:
        print("  No active students.")
        return 0
    for s in students:
        print(f"  {s.id:>5}  {s.student_number:<12} {s.full_name:<30} {s.username or ''}")
    print(f"\n  {len(students)} active student(s).")
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="school-records",
        description="Create and verify School Records accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db --admin admin
  python main.py create-student stu01 S2024001 --first-name Ada --generate-password
  python main.py login stu01
        """,
    )
    parser.add_argument("--database-url", metavar="URL", help="Override DATABASE_URL for this run")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("init-db", help="Create tables and optionally the first admin account")
    p.add_argument("--admin", metavar="USERNAME", help="Username for an initial ADMIN identity")
    p.add_argument("--email", help="Admin email address")
    p.add_argument("--password", help="Admin password (prompted if omitted)")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("create-user", help="Create a standalone identity")
    p.add_argument("username")
    p.add_argument("--role", choices=[r.value for r in Role], type=str.upper, default=Role.TEACHER.value)
    p.add_argument("--email")
    p.add_argument("--first-name")
    p.add_argument("--last-name")
    p.add_argument("--password", help="Password (prompted if omitted)")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("create-student", help="Create a student identity and profile atomically")
    p.add_argument("username")
    p.add_argument("student_number")
    p.add_argument("--email")
    p.add_argument("--first-name")
    p.add_argument("--last-name")
    p.add_argument("--dob", metavar="YYYY-MM-DD", help="Date of birth")
    p.add_argument("--gender", type=str.upper, choices=["MALE", "FEMALE", "OTHER"])
    p.add_argument("--address")
    p.add_argument("--phone")
    p.add_argument("--parent-contact")
    p.add_argument("--enrolled", metavar="YYYY-MM-DD", help="Enrollment date (default: today)")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--password", help="Password (prompted if omitted)")
    group.add_argument("--generate-password", action="store_true", help="Generate a temporary password")
    p.set_defaults(func=cmd_create_student)

    p = sub.add_parser("login", help="Verify a username and password")
    p.add_argument("username")
    p.add_argument("--password", help="Password (prompted if omitted)")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("passwd", help="Replace an identity's password")
    p.add_argument("identity_id", type=int)
    p.add_argument("--password", help="New password (prompted if omitted)")
    p.set_defaults(func=cmd_passwd)

    p = sub.add_parser("check", help="Check database connectivity and name availability")
    p.add_argument("--username")
    p.add_argument("--email")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("list-students", help="List active students")
    p.set_defaults(func=cmd_list_students)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    store = AccountStore(
        args.database_url or settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
    )
    service = AccountService(
        store,
        enforce_policy=settings.min_password_policy,
        temp_password_length=settings.temp_password_length,
    )
    try:
        return args.func(service, args)
    except (InvalidInputError, IndeterminateError, argparse.ArgumentTypeError) as exc:
        print(f"  [!] {exc}")
        return 2
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
