"""Repositories for hosting accounts and their databases."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.enums import (
    CREDENTIAL_REQUIRED_HOSTING_STATUSES,
    IN_FLIGHT_HOSTING_STATUSES,
    HostingStatus,
    SuspendKind,
    can_transition_hosting_status,
)
from app.db.models import Hosting, HostingDatabase
from app.repositories.errors import (
    DuplicateHostingDomainError,
    InvalidStateTransitionError,
    MissingHostingCredentialError,
)


@dataclass(frozen=True, slots=True)
class SuspendReason:
    kind: SuspendKind
    note: str

    @classmethod
    def from_hosting(cls, hosting: Hosting) -> SuspendReason | None:
        if hosting.suspend_kind is None:
            return None
        return cls(kind=hosting.suspend_kind, note=hosting.suspend_note or "")


class HostingRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, hosting_id: uuid.UUID) -> Hosting | None:
        return self._session.get(Hosting, hosting_id)

    def get_by_vp_username(self, vp_username: str) -> Hosting | None:
        statement = select(Hosting).where(Hosting.vp_username == vp_username)
        return self._session.execute(statement).scalar_one_or_none()

    def list_by_user_id(self, user_id: uuid.UUID) -> list[Hosting]:
        statement = (
            select(Hosting)
            .where(Hosting.user_id == user_id, Hosting.status != HostingStatus.DELETED)
            .order_by(Hosting.created_at.desc())
        )
        return list(self._session.execute(statement).scalars())

    def list_in_flight(self, *, started_before: datetime | None = None) -> list[Hosting]:
        statement = select(Hosting).where(Hosting.status.in_(IN_FLIGHT_HOSTING_STATUSES))
        if started_before is not None:
            statement = statement.where(Hosting.updated_at <= started_before)
        return list(self._session.execute(statement.order_by(Hosting.updated_at.asc())).scalars())

    def create_pending(
        self,
        *,
        user_id: uuid.UUID,
        username: str,
        domain: str,
        password: str,
        package: str = "",
    ) -> Hosting:
        hosting = Hosting(
            user_id=user_id,
            username=username,
            domain=domain,
            package=package,
            password=password,
            status=HostingStatus.PENDING,
        )
        try:
            with self._session.begin_nested():
                self._session.add(hosting)
                self._session.flush()
        except IntegrityError as exc:
            if "uq_hosting_live_domain" in str(exc.orig) or "hosting.domain" in str(exc.orig):
                raise DuplicateHostingDomainError(
                    f"hosting already exists for domain={domain}"
                ) from exc
            raise
        return hosting

    def transition_status(
        self,
        hosting: Hosting,
        new_status: HostingStatus,
        *,
        suspend_reason: SuspendReason | None = None,
    ) -> Hosting:
        current_status = hosting.status
        if not can_transition_hosting_status(current_status, new_status):
            raise InvalidStateTransitionError("hosting", current_status, new_status)
        if new_status in CREDENTIAL_REQUIRED_HOSTING_STATUSES and not hosting.password:
            raise MissingHostingCredentialError(
                f"hosting {hosting.id} has no panel password; cannot enter {new_status.value}"
            )
        if new_status is HostingStatus.SUSPENDING and suspend_reason is None:
            raise ValueError("suspend_reason is required when suspending")

        now = datetime.now(UTC)
        hosting.status = new_status
        hosting.last_error = None
        hosting.remote_submitted_at = None

        if new_status is HostingStatus.ACTIVE:
            if current_status is HostingStatus.PENDING:
                hosting.activated_at = now
            hosting.suspend_kind = None
            hosting.suspend_note = None
            hosting.suspended_at = None
        if new_status is HostingStatus.SUSPENDING and suspend_reason is not None:
            hosting.suspend_kind = suspend_reason.kind
            hosting.suspend_note = suspend_reason.note
        if new_status is HostingStatus.SUSPENDED:
            hosting.suspended_at = now
        if new_status is HostingStatus.DELETED:
            hosting.deleted_at = now

        self._session.flush()
        return hosting

    def assign_remote_username(self, hosting: Hosting, vp_username: str) -> Hosting:
        hosting.vp_username = vp_username
        self._session.flush()
        return hosting

    def get_for_update(self, hosting_id: uuid.UUID) -> Hosting | None:
        statement = (
            select(Hosting)
            .where(Hosting.id == hosting_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(statement).scalar_one_or_none()

    def mark_drive_started(self, hosting: Hosting) -> Hosting:
        hosting.drive_started_at = datetime.now(UTC)
        self._session.flush()
        return hosting

    def clear_drive_marker(self, hosting: Hosting) -> Hosting:
        hosting.drive_started_at = None
        self._session.flush()
        return hosting

    def release_stale_drives(self, *, started_before: datetime) -> list[Hosting]:
        statement = select(Hosting).where(
            Hosting.status.in_(IN_FLIGHT_HOSTING_STATUSES),
            Hosting.drive_started_at.is_not(None),
            Hosting.drive_started_at <= started_before,
        )
        released = list(self._session.execute(statement).scalars())
        for hosting in released:
            hosting.drive_started_at = None
        self._session.flush()
        return released

    def mark_remote_submitted(self, hosting: Hosting) -> Hosting:
        hosting.remote_submitted_at = datetime.now(UTC)
        self._session.flush()
        return hosting

    def record_error(self, hosting: Hosting, message: str) -> Hosting:
        hosting.last_error = message
        self._session.flush()
        return hosting

    def mark_panel_approved(self, hosting: Hosting) -> Hosting:
        if not hosting.panel_approved:
            hosting.panel_approved = True
            hosting.panel_approved_at = datetime.now(UTC)
            self._session.flush()
        return hosting


class HostingDatabaseRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_for_hosting(self, hosting_id: uuid.UUID) -> list[HostingDatabase]:
        statement = (
            select(HostingDatabase)
            .where(HostingDatabase.hosting_id == hosting_id)
            .order_by(HostingDatabase.name.asc())
        )
        return list(self._session.execute(statement).scalars())

    def list_names(self, hosting_id: uuid.UUID) -> list[str]:
        return [row.name for row in self.list_for_hosting(hosting_id)]

    def get(self, hosting_id: uuid.UUID, name: str) -> HostingDatabase | None:
        statement = select(HostingDatabase).where(
            HostingDatabase.hosting_id == hosting_id,
            HostingDatabase.name == name,
        )
        return self._session.execute(statement).scalar_one_or_none()

    def add_if_missing(self, hosting_id: uuid.UUID, name: str) -> bool:
        if self.get(hosting_id, name) is not None:
            return False
        try:
            with self._session.begin_nested():
                self._session.add(HostingDatabase(hosting_id=hosting_id, name=name))
                self._session.flush()
        except IntegrityError:
            # A concurrent sync inserted the same row first.
            return False
        return True

    def remove_names(self, hosting_id: uuid.UUID, names: Iterable[str]) -> int:
        name_list = list(names)
        if not name_list:
            return 0
        result = self._session.execute(
            delete(HostingDatabase).where(
                HostingDatabase.hosting_id == hosting_id,
                HostingDatabase.name.in_(name_list),
            )
        )
        self._session.flush()
        self._session.expire_all()
        return int(result.rowcount or 0)
