"""Server CLI for local-auth user provisioning."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from typing import TypeAlias

from sqlalchemy.orm import Session

from app.auth import (
    LocalPasswordPolicyError,
    hash_password,
    normalize_login_username,
)
from app.config import get_settings
from app.db.session import session_scope
from app.repositories.audit_events import AuditEventRepository
from app.repositories.users import LocalCredentialRepository, UserRepository

SessionScopeFactory: TypeAlias = Callable[[], AbstractContextManager[Session]]


class CliValidationError(ValueError):
    """Raised when CLI input fails validation."""


def main(
    argv: Sequence[str] | None = None,
    *,
    session_scope_factory: SessionScopeFactory | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    scope_factory = session_scope_factory or session_scope

    try:
        if args.command == "create":
            return _run_create(args, scope_factory=scope_factory)
        if args.command == "disable":
            return _run_disable(args, scope_factory=scope_factory)
    except CliValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    parser.error(f"unsupported command: {args.command}")
    return 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m app.cli.users")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="create or update a local-auth account")
    create_parser.add_argument("--username", required=True)

    password_group = create_parser.add_mutually_exclusive_group(required=True)
    password_group.add_argument("--password")
    password_group.add_argument("--password-stdin", action="store_true")

    admin_group = create_parser.add_mutually_exclusive_group()
    admin_group.add_argument("--admin", action="store_true")
    admin_group.add_argument("--no-admin", action="store_true")

    create_parser.add_argument("--full-name")
    create_parser.add_argument("--email")

    disable_parser = subparsers.add_parser("disable", help="disable a local-auth login")
    disable_parser.add_argument("--username", required=True)
    return parser


def _run_create(args: argparse.Namespace, *, scope_factory: SessionScopeFactory) -> int:
    normalized_username = _normalize_username(args.username)
    password = _resolve_password(args)
    is_admin = _resolve_admin_flag(args)

    settings = get_settings()
    try:
        password_hash = hash_password(
            password=password,
            min_length=settings.local_auth_password_min_length,
            iterations=settings.local_auth_pbkdf2_iterations,
        )
    except LocalPasswordPolicyError as exc:
        raise CliValidationError(str(exc)) from exc

    summary: str
    with scope_factory() as db_session:
        user_repo = UserRepository(db_session)
        credential_repo = LocalCredentialRepository(db_session)

        user = user_repo.upsert_local_user(
            username=normalized_username,
            full_name=_normalize_optional_value(args.full_name),
            email=_normalize_optional_value(args.email),
            is_admin=is_admin,
        )

        existing_credential = credential_repo.get_by_login_username(normalized_username)
        if existing_credential is not None and existing_credential.user_id != user.id:
            raise CliValidationError("duplicate username")

        credential_repo.upsert_for_user(
            user_id=user.id,
            login_username=normalized_username,
            password_hash=password_hash,
            is_enabled=True,
        )

        AuditEventRepository(db_session).create_event(
            action="auth.local_account.provisioned",
            target_type="app_user",
            target_id=str(user.id),
            metadata={"username": normalized_username, "is_admin": user.is_admin},
        )

        summary = (
            f"provisioned local user username={normalized_username} "
            f"user_id={user.id} is_admin={user.is_admin}"
        )

    print(summary)
    return 0


def _run_disable(args: argparse.Namespace, *, scope_factory: SessionScopeFactory) -> int:
    normalized_username = _normalize_username(args.username)

    with scope_factory() as db_session:
        credential = LocalCredentialRepository(db_session).get_by_login_username(
            normalized_username
        )
        if credential is None:
            raise CliValidationError(f"unknown username: {normalized_username}")
        credential.is_enabled = False
        AuditEventRepository(db_session).create_event(
            action="auth.local_account.disabled",
            target_type="app_user",
            target_id=str(credential.user_id),
            metadata={"username": normalized_username},
        )

    print(f"disabled local user username={normalized_username}")
    return 0


def _normalize_username(raw: str) -> str:
    try:
        return normalize_login_username(raw)
    except ValueError as exc:
        raise CliValidationError(str(exc)) from exc


def _resolve_password(args: argparse.Namespace) -> str:
    if bool(args.password_stdin):
        password = sys.stdin.readline().rstrip("\n")
    else:
        password = args.password or ""
    if not password:
        raise CliValidationError("password is required")
    return password


def _resolve_admin_flag(args: argparse.Namespace) -> bool | None:
    if bool(args.admin):
        return True
    if bool(args.no_admin):
        return False
    return None


def _normalize_optional_value(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


if __name__ == "__main__":
    raise SystemExit(main())
