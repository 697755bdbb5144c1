"""Hosting account lifecycle: request handling, remote drives, and database sync."""

from __future__ import annotations

import logging
import re
import secrets
import string
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from sqlalchemy.orm import Session

from app.auth.passwords import generate_panel_password
from app.config import AppSettings
from app.db.enums import (
    IN_FLIGHT_HOSTING_STATUSES,
    OWNER_LOCKED_SUSPEND_KINDS,
    HostingStatus,
)
from app.db.models import Hosting, HostingDatabase
from app.db.session import SessionLocal
from app.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)
from app.provisioning.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ProvisioningError,
    RemoteOperationError,
    ValidationError,
)
from app.provisioning.panel import (
    PanelSession,
    PanelSessionError,
    PanelSessionFactory,
    open_panel_session,
)
from app.provisioning.reseller import (
    RemoteAccountState,
    ResellerApi,
    ResellerApiError,
    create_reseller_api,
)
from app.repositories.audit_events import AuditEventRepository
from app.repositories.errors import DuplicateHostingDomainError
from app.repositories.hostings import (
    HostingDatabaseRepository,
    HostingRepository,
    SuspendReason,
)

logger = logging.getLogger(__name__)

DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9]{1,16}$")
DOMAIN_PATTERN = re.compile(
    r"^(?=.{3,253}$)([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)
REMOTE_USERNAME_LENGTH = 8

T = TypeVar("T")


class HostingOperationError(ProvisioningError):
    error_code = "HOSTING_ERROR"


class HostingNotFoundError(NotFoundError, HostingOperationError):
    error_code = "HOSTING_NOT_FOUND"


class HostingValidationError(ValidationError, HostingOperationError):
    pass


class HostingConflictError(ConflictError, HostingOperationError):
    pass


class HostingForbiddenError(ForbiddenError, HostingOperationError):
    pass


class HostingRemoteError(RemoteOperationError, HostingOperationError):
    pass


@dataclass(frozen=True, slots=True)
class OperabilityRejection:
    error_code: str
    message: str

    def to_error(self, *, status_code: int = 400) -> HostingOperationError:
        return HostingOperationError(
            self.message,
            error_code=self.error_code,
            status_code=status_code,
        )


_STATUS_REJECTIONS: tuple[tuple[HostingStatus, OperabilityRejection], ...] = (
    (
        HostingStatus.PENDING,
        OperabilityRejection("PENDING", "Hosting account is pending activation"),
    ),
    (
        HostingStatus.SUSPENDING,
        OperabilityRejection("SUSPENDING", "Hosting account is being suspended"),
    ),
    (
        HostingStatus.SUSPENDED,
        OperabilityRejection("SUSPENDED", "Hosting account is suspended"),
    ),
    (
        HostingStatus.REACTIVATING,
        OperabilityRejection("REACTIVATING", "Hosting account is being reactivated"),
    ),
)
NOT_ACTIVE_REJECTION = OperabilityRejection("NOT_ACTIVE", "Hosting account is not active")
PANEL_NOT_APPROVED_REJECTION = OperabilityRejection(
    "CPANEL_NOT_APPROVED",
    "You must login to cPanel first before using this feature",
)


def status_rejection(hosting: Hosting) -> OperabilityRejection | None:
    """First matching status-based rejection, or None when the hosting is ACTIVE."""
    for status, rejection in _STATUS_REJECTIONS:
        if hosting.status is status:
            return rejection
    if hosting.status is not HostingStatus.ACTIVE:
        return NOT_ACTIVE_REJECTION
    return None


def check_operational(hosting: Hosting) -> OperabilityRejection | None:
    rejection = status_rejection(hosting)
    if rejection is not None:
        return rejection
    if not hosting.panel_approved:
        return PANEL_NOT_APPROVED_REJECTION
    return None


def is_operational(hosting: Hosting) -> bool:
    return check_operational(hosting) is None


@dataclass(frozen=True, slots=True)
class DatabaseSyncResult:
    databases: list[str]
    synced: bool
    sync_error: str | None = None


class HostingLifecycleManager:
    def __init__(
        self,
        db_session: Session,
        *,
        panel_sessions: PanelSessionFactory,
        notifier: NotificationDispatcher,
    ) -> None:
        self._db_session = db_session
        self._panel_sessions = panel_sessions
        self._notifier = notifier
        self._hostings = HostingRepository(db_session)
        self._databases = HostingDatabaseRepository(db_session)
        self._audit = AuditEventRepository(db_session)

    def get_for_actor(
        self,
        hosting_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID,
        is_admin: bool = False,
    ) -> Hosting:
        hosting = self._hostings.get_by_id(hosting_id)
        return _owned_or_missing(hosting, actor_user_id=actor_user_id, is_admin=is_admin)

    def get_by_vp_username_for_actor(
        self,
        vp_username: str,
        *,
        actor_user_id: uuid.UUID,
        is_admin: bool = False,
    ) -> Hosting:
        hosting = self._hostings.get_by_vp_username(vp_username)
        return _owned_or_missing(hosting, actor_user_id=actor_user_id, is_admin=is_admin)

    def list_for_user(self, user_id: uuid.UUID) -> list[Hosting]:
        return self._hostings.list_by_user_id(user_id)

    def create_hosting(
        self,
        *,
        user_id: uuid.UUID,
        domain: str,
        password: str | None = None,
        package: str = "",
        username: str | None = None,
    ) -> Hosting:
        normalized_domain = domain.strip().lower().rstrip(".")
        if not DOMAIN_PATTERN.fullmatch(normalized_domain):
            raise HostingValidationError(
                f"invalid domain: {domain!r}",
                error_code="INVALID_DOMAIN",
            )
        try:
            hosting = self._hostings.create_pending(
                user_id=user_id,
                username=username or _generate_remote_username(),
                domain=normalized_domain,
                password=password or generate_panel_password(),
                package=package,
            )
        except DuplicateHostingDomainError as exc:
            self._db_session.rollback()
            raise HostingConflictError(str(exc), error_code="DOMAIN_TAKEN") from exc

        self._audit.create_event(
            action="hosting.created",
            target_type="hosting",
            target_id=str(hosting.id),
            actor_user_id=user_id,
            metadata={"domain": hosting.domain, "package": hosting.package},
        )
        self._db_session.commit()
        logger.info(
            "hosting created",
            extra={"hosting_id": str(hosting.id), "domain": hosting.domain},
        )
        return hosting

    def request_suspend(
        self,
        hosting_id: uuid.UUID,
        *,
        reason: SuspendReason,
        actor_user_id: uuid.UUID | None = None,
    ) -> Hosting:
        hosting = self._require(hosting_id)
        if hosting.status is not HostingStatus.ACTIVE:
            rejection = status_rejection(hosting) or NOT_ACTIVE_REJECTION
            raise rejection.to_error(status_code=409)

        old_status = hosting.status
        self._hostings.transition_status(hosting, HostingStatus.SUSPENDING, suspend_reason=reason)
        self._audit.record_status_change(
            target_type="hosting",
            target_id=hosting.id,
            old_status=old_status,
            new_status=HostingStatus.SUSPENDING,
            actor_user_id=actor_user_id,
            metadata={"suspend_kind": reason.kind.value, "suspend_note": reason.note},
        )
        self._db_session.commit()
        _log_transition(hosting, old_status)
        return hosting

    def request_reactivate(
        self,
        hosting_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
        actor_is_admin: bool = True,
    ) -> Hosting:
        hosting = self._require(hosting_id)
        if hosting.status is not HostingStatus.SUSPENDED:
            if hosting.status in IN_FLIGHT_HOSTING_STATUSES:
                rejection = status_rejection(hosting) or NOT_ACTIVE_REJECTION
                raise rejection.to_error(status_code=409)
            raise HostingConflictError(
                "Hosting account is not suspended",
                error_code="NOT_SUSPENDED",
            )
        if not actor_is_admin and hosting.suspend_kind in OWNER_LOCKED_SUSPEND_KINDS:
            raise HostingForbiddenError(
                "Hosting account was suspended by an administrator",
                error_code="ADMIN_SUSPENDED",
            )

        old_status = hosting.status
        self._hostings.transition_status(hosting, HostingStatus.REACTIVATING)
        self._audit.record_status_change(
            target_type="hosting",
            target_id=hosting.id,
            old_status=old_status,
            new_status=HostingStatus.REACTIVATING,
            actor_user_id=actor_user_id,
        )
        self._db_session.commit()
        _log_transition(hosting, old_status)
        return hosting

    def mark_panel_approved(
        self,
        hosting_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> Hosting:
        hosting = self._require(hosting_id)
        rejection = status_rejection(hosting)
        if rejection is not None:
            raise rejection.to_error()
        if not hosting.panel_approved:
            self._hostings.mark_panel_approved(hosting)
            self._audit.create_event(
                action="hosting.panel_approved",
                target_type="hosting",
                target_id=str(hosting.id),
                actor_user_id=actor_user_id,
            )
            self._db_session.commit()
        return hosting

    def delete_hosting(
        self,
        hosting_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> Hosting:
        hosting = self._require(hosting_id)
        if hosting.status not in {HostingStatus.ACTIVE, HostingStatus.SUSPENDED}:
            rejection = status_rejection(hosting) or NOT_ACTIVE_REJECTION
            raise rejection.to_error(status_code=409)

        old_status = hosting.status
        self._hostings.transition_status(hosting, HostingStatus.DELETED)
        self._audit.record_status_change(
            target_type="hosting",
            target_id=hosting.id,
            old_status=old_status,
            new_status=HostingStatus.DELETED,
            actor_user_id=actor_user_id,
        )
        self._db_session.commit()
        _log_transition(hosting, old_status)
        _notify(self._notifier, hosting, NotificationKind.HOSTING_DELETED)
        return hosting

    def sync_databases(self, hosting_id: uuid.UUID, *, sync: bool = True) -> DatabaseSyncResult:
        hosting = self._require_operational(hosting_id)
        local_names = self._databases.list_names(hosting.id)
        if not sync:
            return DatabaseSyncResult(databases=local_names, synced=False)

        try:
            remote_names = self._with_panel(hosting, "sync_databases", _list_databases)
        except PanelSessionError as exc:
            logger.warning(
                "database sync failed; returning local list",
                extra={
                    "hosting_id": str(hosting.id),
                    "operation": "sync_databases",
                    "error_code": exc.error_code,
                    "remote_error": str(exc),
                },
            )
            return DatabaseSyncResult(
                databases=local_names,
                synced=False,
                sync_error=_exception_message(exc),
            )

        remote_set = set(remote_names)
        local_set = set(local_names)
        added = sorted(remote_set - local_set)
        removed = sorted(local_set - remote_set)
        for name in added:
            self._databases.add_if_missing(hosting.id, name)
        self._databases.remove_names(hosting.id, removed)
        if added or removed:
            self._audit.create_event(
                action="hosting.databases.synced",
                target_type="hosting",
                target_id=str(hosting.id),
                metadata={"added": added, "removed": removed},
            )
        self._db_session.commit()
        return DatabaseSyncResult(databases=self._databases.list_names(hosting.id), synced=True)

    def create_database(self, hosting_id: uuid.UUID, name: str) -> HostingDatabase:
        hosting = self._require_operational(hosting_id)
        if not DATABASE_NAME_PATTERN.fullmatch(name):
            raise HostingValidationError(
                "Database name must be 1-16 letters or digits",
                error_code="INVALID_DATABASE_NAME",
            )
        if self._databases.get(hosting.id, name) is not None:
            raise HostingValidationError("Database already exists", error_code="DATABASE_EXISTS")

        try:
            self._with_panel(
                hosting,
                "create_database",
                lambda session: session.create_database(name),
            )
        except PanelSessionError as exc:
            raise _remote_error(hosting, "create_database", exc) from exc

        self._databases.add_if_missing(hosting.id, name)
        self._audit.create_event(
            action="hosting.database.created",
            target_type="hosting",
            target_id=str(hosting.id),
            metadata={"name": name},
        )
        self._db_session.commit()
        database = self._databases.get(hosting.id, name)
        if database is None:
            raise HostingConflictError(f"database {name} vanished during creation")
        return database

    def delete_database(self, hosting_id: uuid.UUID, name: str) -> None:
        hosting = self._require_operational(hosting_id)
        try:
            self._with_panel(
                hosting,
                "delete_database",
                lambda session: session.delete_database(name),
            )
        except PanelSessionError as exc:
            raise _remote_error(hosting, "delete_database", exc) from exc

        self._databases.remove_names(hosting.id, [name])
        self._audit.create_event(
            action="hosting.database.deleted",
            target_type="hosting",
            target_id=str(hosting.id),
            metadata={"name": name},
        )
        self._db_session.commit()

    def get_stats(self, hosting_id: uuid.UUID) -> dict[str, str]:
        hosting = self._require_operational(hosting_id)
        try:
            return self._with_panel(
                hosting,
                "get_stats",
                lambda session: session.get_user_stats(),
            )
        except PanelSessionError as exc:
            raise _remote_error(hosting, "get_stats", exc) from exc

    def _with_panel(
        self,
        hosting: Hosting,
        operation: str,
        call: Callable[[PanelSession], T],
    ) -> T:
        if not hosting.vp_username or not hosting.password:
            raise HostingConflictError(
                "hosting has no panel credentials",
                error_code="MISSING_CREDENTIALS",
            )
        with open_panel_session(
            self._panel_sessions,
            username=hosting.vp_username,
            password=hosting.password,
            operation=operation,
        ) as session:
            return call(session)

    def _require(self, hosting_id: uuid.UUID) -> Hosting:
        hosting = self._hostings.get_by_id(hosting_id)
        if hosting is None:
            raise HostingNotFoundError("Hosting account not found")
        return hosting

    def _require_operational(self, hosting_id: uuid.UUID) -> Hosting:
        hosting = self._require(hosting_id)
        rejection = check_operational(hosting)
        if rejection is not None:
            raise rejection.to_error()
        return hosting


_DRIVE_OPERATIONS: dict[HostingStatus, str] = {
    HostingStatus.PENDING: "create_account",
    HostingStatus.SUSPENDING: "suspend_account",
    HostingStatus.REACTIVATING: "unsuspend_account",
}


def drive_hosting(
    *,
    db_session: Session,
    hosting_id: uuid.UUID,
    reseller_api: ResellerApi,
    notifier: NotificationDispatcher,
) -> Hosting | None:
    """Advance an in-flight hosting one step towards its target status.

    Safe to call repeatedly: a drive claims the record before any remote call,
    overlapping drives skip while the claim is held, and the remote mutation
    for the current intermediate status is submitted at most once, after which
    only the remote account status is re-checked.
    """
    hosting_repo = HostingRepository(db_session)
    audit_repo = AuditEventRepository(db_session)

    hosting = hosting_repo.get_for_update(hosting_id)
    if hosting is None:
        audit_repo.create_event(
            action="hosting.drive.missing",
            target_type="hosting",
            target_id=str(hosting_id),
            metadata={"provider_name": reseller_api.provider_name},
        )
        db_session.commit()
        return None

    if hosting.status not in IN_FLIGHT_HOSTING_STATUSES:
        db_session.commit()
        logger.info(
            "hosting not in flight; nothing to drive",
            extra={"hosting_id": str(hosting.id), "to_status": hosting.status.value},
        )
        return hosting

    if hosting.drive_started_at is not None:
        db_session.commit()
        logger.info(
            "hosting drive already running; skipping",
            extra={"hosting_id": str(hosting.id), "operation": _DRIVE_OPERATIONS[hosting.status]},
        )
        return hosting

    hosting_repo.mark_drive_started(hosting)
    db_session.commit()

    operation = _DRIVE_OPERATIONS[hosting.status]
    try:
        if hosting.status is HostingStatus.PENDING:
            _drive_provisioning(db_session, hosting, reseller_api, notifier)
        elif hosting.status is HostingStatus.SUSPENDING:
            _drive_suspension(db_session, hosting, reseller_api, notifier)
        else:
            _drive_reactivation(db_session, hosting, reseller_api, notifier)
    except (ResellerApiError, HostingOperationError) as exc:
        _record_drive_failure(
            db_session=db_session,
            hosting_id=hosting_id,
            operation=operation,
            provider_name=reseller_api.provider_name,
            exc=exc,
        )
    finally:
        _release_drive(db_session, hosting_id)
    return hosting_repo.get_by_id(hosting_id)


def _drive_provisioning(
    db_session: Session,
    hosting: Hosting,
    reseller_api: ResellerApi,
    notifier: NotificationDispatcher,
) -> None:
    hosting_repo = HostingRepository(db_session)
    audit_repo = AuditEventRepository(db_session)

    if hosting.vp_username is None:
        created = reseller_api.create_account(
            username=hosting.username,
            password=hosting.password or "",
            domain=hosting.domain,
            contact_email=hosting.user.email or "",
            package=hosting.package,
        )
        hosting_repo.assign_remote_username(hosting, created.vp_username)
        hosting_repo.mark_remote_submitted(hosting)
        audit_repo.create_event(
            action="hosting.account.created",
            target_type="hosting",
            target_id=str(hosting.id),
            actor_user_id=hosting.user_id,
            metadata={
                "provider_name": reseller_api.provider_name,
                "vp_username": created.vp_username,
                "status_message": created.status_message,
            },
        )
        db_session.commit()
    _finish(db_session, hosting, HostingStatus.ACTIVE, notifier, NotificationKind.HOSTING_ACTIVATED)


def _drive_suspension(
    db_session: Session,
    hosting: Hosting,
    reseller_api: ResellerApi,
    notifier: NotificationDispatcher,
) -> None:
    vp_username = _require_remote_username(hosting)
    if hosting.remote_submitted_at is None:
        reason = SuspendReason.from_hosting(hosting)
        reseller_api.suspend_account(
            username=vp_username,
            reason=_remote_suspend_reason(reason),
        )
        _mark_submitted(db_session, hosting, action="hosting.suspend.submitted")

    remote = reseller_api.get_account_status(vp_username=vp_username)
    if remote.state is RemoteAccountState.SUSPENDED:
        _finish(
            db_session,
            hosting,
            HostingStatus.SUSPENDED,
            notifier,
            NotificationKind.HOSTING_SUSPENDED,
        )
        return
    logger.info(
        "awaiting remote suspension",
        extra={"hosting_id": str(hosting.id), "remote_error": remote.raw_status or ""},
    )


def _drive_reactivation(
    db_session: Session,
    hosting: Hosting,
    reseller_api: ResellerApi,
    notifier: NotificationDispatcher,
) -> None:
    vp_username = _require_remote_username(hosting)
    if hosting.remote_submitted_at is None:
        reseller_api.unsuspend_account(username=vp_username)
        _mark_submitted(db_session, hosting, action="hosting.unsuspend.submitted")

    remote = reseller_api.get_account_status(vp_username=vp_username)
    if remote.state is RemoteAccountState.ACTIVE:
        _finish(
            db_session,
            hosting,
            HostingStatus.ACTIVE,
            notifier,
            NotificationKind.HOSTING_REACTIVATED,
        )
        return
    logger.info(
        "awaiting remote reactivation",
        extra={"hosting_id": str(hosting.id), "remote_error": remote.raw_status or ""},
    )


def _mark_submitted(db_session: Session, hosting: Hosting, *, action: str) -> None:
    HostingRepository(db_session).mark_remote_submitted(hosting)
    AuditEventRepository(db_session).create_event(
        action=action,
        target_type="hosting",
        target_id=str(hosting.id),
        actor_user_id=hosting.user_id,
    )
    db_session.commit()


def _finish(
    db_session: Session,
    hosting: Hosting,
    new_status: HostingStatus,
    notifier: NotificationDispatcher,
    kind: NotificationKind,
) -> None:
    old_status = hosting.status
    HostingRepository(db_session).transition_status(hosting, new_status)
    AuditEventRepository(db_session).record_status_change(
        target_type="hosting",
        target_id=hosting.id,
        old_status=old_status,
        new_status=new_status,
        actor_user_id=hosting.user_id,
    )
    db_session.commit()
    _log_transition(hosting, old_status)
    _notify(notifier, hosting, kind)


def _release_drive(db_session: Session, hosting_id: uuid.UUID) -> None:
    db_session.rollback()
    hosting_repo = HostingRepository(db_session)
    hosting = hosting_repo.get_by_id(hosting_id)
    if hosting is not None and hosting.drive_started_at is not None:
        hosting_repo.clear_drive_marker(hosting)
    db_session.commit()


def _record_drive_failure(
    *,
    db_session: Session,
    hosting_id: uuid.UUID,
    operation: str,
    provider_name: str,
    exc: Exception,
) -> None:
    db_session.rollback()
    hosting = HostingRepository(db_session).get_by_id(hosting_id)
    if hosting is None:
        return

    message = _exception_message(exc)
    logger.warning(
        "hosting remote call failed",
        extra={
            "hosting_id": str(hosting_id),
            "operation": operation,
            "error_code": _exception_error_code(exc),
            "remote_error": str(exc),
        },
    )
    HostingRepository(db_session).record_error(hosting, message)
    AuditEventRepository(db_session).create_event(
        action="hosting.drive.failed",
        target_type="hosting",
        target_id=str(hosting_id),
        actor_user_id=hosting.user_id,
        metadata={
            "provider_name": provider_name,
            "operation": operation,
            "current_status": hosting.status.value,
            "error_code": _exception_error_code(exc),
            "error": message,
        },
    )
    db_session.commit()


def process_hosting_drive(*, hosting_id: uuid.UUID, settings: AppSettings) -> None:
    reseller_api = create_reseller_api(settings)
    with SessionLocal() as db_session:
        drive_hosting(
            db_session=db_session,
            hosting_id=hosting_id,
            reseller_api=reseller_api,
            notifier=LoggingNotificationDispatcher(),
        )


def reclaim_stale_hostings(db_session: Session, *, older_than: datetime) -> list[uuid.UUID]:
    """Collect stale in-flight hostings and release drive claims left by dead workers."""
    hosting_repo = HostingRepository(db_session)
    stale_ids = [hosting.id for hosting in hosting_repo.list_in_flight(started_before=older_than)]
    for hosting in hosting_repo.release_stale_drives(started_before=older_than):
        logger.warning(
            "releasing abandoned hosting drive",
            extra={"hosting_id": str(hosting.id), "operation": "sweep_stale_records"},
        )
    db_session.commit()
    return stale_ids


def _owned_or_missing(
    hosting: Hosting | None,
    *,
    actor_user_id: uuid.UUID,
    is_admin: bool,
) -> Hosting:
    if hosting is None or (hosting.status is HostingStatus.DELETED and not is_admin):
        raise HostingNotFoundError("Hosting account not found")
    if not is_admin and hosting.user_id != actor_user_id:
        raise HostingNotFoundError("Hosting account not found")
    return hosting


def _list_databases(session: PanelSession) -> list[str]:
    return list(session.list_databases())


def _require_remote_username(hosting: Hosting) -> str:
    if not hosting.vp_username:
        raise HostingConflictError(
            f"hosting {hosting.id} has no remote username",
            error_code="MISSING_REMOTE_ACCOUNT",
        )
    return hosting.vp_username


def _remote_suspend_reason(reason: SuspendReason | None) -> str:
    if reason is None:
        return "Suspended"
    if reason.note:
        return reason.note
    return reason.kind.value.replace("_", " ").capitalize()


def _remote_error(hosting: Hosting, operation: str, exc: PanelSessionError) -> HostingRemoteError:
    logger.warning(
        "panel operation failed",
        extra={
            "hosting_id": str(hosting.id),
            "operation": operation,
            "error_code": exc.error_code,
            "remote_error": str(exc),
        },
    )
    return HostingRemoteError(
        str(exc) or "panel operation failed",
        details={"remoteErrorCode": exc.error_code},
    )


def _notify(notifier: NotificationDispatcher, hosting: Hosting, kind: NotificationKind) -> None:
    titles = {
        NotificationKind.HOSTING_ACTIVATED: f"Hosting {hosting.domain} is active",
        NotificationKind.HOSTING_REACTIVATED: f"Hosting {hosting.domain} was reactivated",
        NotificationKind.HOSTING_SUSPENDED: f"Hosting {hosting.domain} was suspended",
        NotificationKind.HOSTING_DELETED: f"Hosting {hosting.domain} was deleted",
    }
    notifier.emit(
        NotificationEvent(
            kind=kind,
            user_id=hosting.user_id,
            target_type="hosting",
            target_id=hosting.id,
            title=titles[kind],
            details={"status": hosting.status.value, "vp_username": hosting.vp_username},
        )
    )


def _log_transition(hosting: Hosting, old_status: HostingStatus) -> None:
    logger.info(
        "hosting status changed",
        extra={
            "hosting_id": str(hosting.id),
            "from_status": old_status.value,
            "to_status": hosting.status.value,
        },
    )


def _generate_remote_username() -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(REMOTE_USERNAME_LENGTH))


def _exception_error_code(exc: Exception) -> str:
    return str(getattr(exc, "error_code", exc.__class__.__name__))


def _exception_message(exc: Exception) -> str:
    return f"{_exception_error_code(exc)}: {exc}"
