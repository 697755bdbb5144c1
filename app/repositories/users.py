"""Repositories for app users and their local credentials."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.auth import normalize_login_username
from app.db.models import AppUser, LocalCredential


class UserRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, user_id: uuid.UUID) -> AppUser | None:
        return self._session.get(AppUser, user_id)

    def get_by_username(self, username: str) -> AppUser | None:
        statement = select(AppUser).where(AppUser.username == normalize_login_username(username))
        return self._session.execute(statement).scalar_one_or_none()

    def create_local_user(
        self,
        *,
        username: str,
        password_hash: str,
        email: str | None = None,
        full_name: str | None = None,
        is_admin: bool = False,
    ) -> AppUser:
        normalized = normalize_login_username(username)
        user = AppUser(username=normalized, email=email, full_name=full_name, is_admin=is_admin)
        user.local_credential = LocalCredential(
            login_username=normalized,
            password_hash=password_hash,
        )
        self._session.add(user)
        self._session.flush()
        return user

    def upsert_local_user(
        self,
        *,
        username: str,
        full_name: str | None = None,
        email: str | None = None,
        is_admin: bool | None = None,
    ) -> AppUser:
        user = self.get_by_username(username)
        if user is None:
            user = AppUser(
                username=normalize_login_username(username),
                full_name=full_name,
                email=email,
                is_admin=bool(is_admin),
            )
            self._session.add(user)
        else:
            if full_name is not None:
                user.full_name = full_name
            if email is not None:
                user.email = email
            if is_admin is not None:
                user.is_admin = is_admin
        self._session.flush()
        return user


class LocalCredentialRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_login_username(self, login_username: str) -> LocalCredential | None:
        statement = (
            select(LocalCredential)
            .options(joinedload(LocalCredential.user))
            .where(LocalCredential.login_username == normalize_login_username(login_username))
        )
        return self._session.execute(statement).scalar_one_or_none()

    def touch_last_login(self, row: LocalCredential) -> None:
        row.last_login_at = datetime.now(UTC)
        self._session.flush()

    def upsert_for_user(
        self,
        *,
        user_id: uuid.UUID,
        login_username: str,
        password_hash: str,
        is_enabled: bool = True,
    ) -> LocalCredential:
        statement = select(LocalCredential).where(LocalCredential.user_id == user_id)
        row = self._session.execute(statement).scalar_one_or_none()
        if row is None:
            row = LocalCredential(user_id=user_id, login_username=login_username)
            self._session.add(row)
        row.login_username = normalize_login_username(login_username)
        row.password_hash = password_hash
        row.is_enabled = is_enabled
        self._session.flush()
        return row
