"""Hosting account lifecycle and database APIs."""

from __future__ import annotations

import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from app.config import AppSettings
from app.db.enums import IN_FLIGHT_HOSTING_STATUSES, SuspendKind
from app.db.models import Hosting
from app.dependencies import SessionActor, get_app_settings, get_hosting_manager
from app.provisioning.errors import ProvisioningError
from app.provisioning.hosting_lifecycle import (
    DatabaseSyncResult,
    HostingLifecycleManager,
    check_operational,
)
from app.provisioning.polling import is_hosting_terminal, poll_hint
from app.provisioning.tasks import enqueue_hosting_drive
from app.repositories.hostings import SuspendReason
from app.routes.common import (
    iso_datetime,
    operation_error_response,
    require_api_actor,
    success_response,
)

router = APIRouter(tags=["hostings"])
SettingsDep = Annotated[AppSettings, Depends(get_app_settings)]
ManagerDep = Annotated[HostingLifecycleManager, Depends(get_hosting_manager)]


class CreateHostingPayload(BaseModel):
    domain: str
    password: str | None = None
    package: str | None = None

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("password", "package")
    @classmethod
    def _normalize_optional_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class SuspendHostingPayload(BaseModel):
    reason: str
    kind: SuspendKind | None = None

    @field_validator("reason")
    @classmethod
    def _validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("reason is required")
        return normalized


class CreateDatabasePayload(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return value.strip()


@router.post("/api/v1/hostings")
def api_create_hosting(
    request: Request,
    payload: CreateHostingPayload,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = manager.create_hosting(
            user_id=actor.user_id,
            domain=payload.domain,
            password=payload.password,
            package=payload.package or settings.reseller_default_package,
        )
    except ProvisioningError as exc:
        return operation_error_response(exc)

    enqueue_hosting_drive(hosting_id=hosting.id, settings=settings)
    return success_response({"hosting": _serialize_hosting(hosting, settings)}, status_code=202)


@router.get("/api/v1/hostings")
def api_list_hostings(
    request: Request,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    hostings = manager.list_for_user(actor.user_id)
    return success_response(
        {"hostings": [_serialize_hosting(hosting, settings) for hosting in hostings]}
    )


@router.get("/api/v1/hostings/{hosting_id}")
def api_hosting_detail(
    request: Request,
    hosting_id: uuid.UUID,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_for(manager, actor, hosting_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"hosting": _serialize_hosting(hosting, settings)})


@router.post("/api/v1/hostings/{hosting_id}/suspend")
def api_suspend_hosting(
    request: Request,
    hosting_id: uuid.UUID,
    payload: SuspendHostingPayload,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_for(manager, actor, hosting_id)
        hosting = manager.request_suspend(
            hosting.id,
            reason=SuspendReason(kind=_suspend_kind(actor, payload.kind), note=payload.reason),
            actor_user_id=actor.user_id,
        )
    except ProvisioningError as exc:
        return operation_error_response(exc)

    enqueue_hosting_drive(hosting_id=hosting.id, settings=settings)
    return success_response({"hosting": _serialize_hosting(hosting, settings)}, status_code=202)


@router.post("/api/v1/hostings/{hosting_id}/unsuspend")
def api_unsuspend_hosting(
    request: Request,
    hosting_id: uuid.UUID,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_for(manager, actor, hosting_id)
        hosting = manager.request_reactivate(
            hosting.id,
            actor_user_id=actor.user_id,
            actor_is_admin=actor.is_admin,
        )
    except ProvisioningError as exc:
        return operation_error_response(exc)

    enqueue_hosting_drive(hosting_id=hosting.id, settings=settings)
    return success_response({"hosting": _serialize_hosting(hosting, settings)}, status_code=202)


@router.post("/api/v1/hostings/{hosting_id}/sync")
def api_sync_hosting_status(
    request: Request,
    hosting_id: uuid.UUID,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_for(manager, actor, hosting_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)

    queued = hosting.status in IN_FLIGHT_HOSTING_STATUSES
    if queued:
        enqueue_hosting_drive(hosting_id=hosting.id, settings=settings)
    return success_response(
        {"hosting": _serialize_hosting(hosting, settings), "queued": queued},
        status_code=202 if queued else 200,
    )


@router.post("/api/v1/hostings/{hosting_id}/panel-approved")
def api_mark_panel_approved(
    request: Request,
    hosting_id: uuid.UUID,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_for(manager, actor, hosting_id)
        hosting = manager.mark_panel_approved(hosting.id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"hosting": _serialize_hosting(hosting, settings)})


@router.delete("/api/v1/hostings/{hosting_id}")
def api_delete_hosting(
    request: Request,
    hosting_id: uuid.UUID,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_for(manager, actor, hosting_id)
        hosting = manager.delete_hosting(hosting.id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"hosting": _serialize_hosting(hosting, settings)})


@router.get("/api/v1/hostings/{vp_username}/databases")
def api_list_databases(
    request: Request,
    vp_username: str,
    manager: ManagerDep,
    sync: bool = False,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_by_vp_for(manager, actor, vp_username)
        result = manager.sync_databases(hosting.id, sync=sync)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response(_serialize_database_sync(hosting, result))


@router.post("/api/v1/hostings/{vp_username}/databases")
def api_create_database(
    request: Request,
    vp_username: str,
    payload: CreateDatabasePayload,
    manager: ManagerDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_by_vp_for(manager, actor, vp_username)
        database = manager.create_database(hosting.id, payload.name)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response(
        {"database": {"name": database.name, "fullName": database.full_name}},
        status_code=201,
    )


@router.delete("/api/v1/hostings/{vp_username}/databases/{name}")
def api_delete_database(
    request: Request,
    vp_username: str,
    name: str,
    manager: ManagerDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_by_vp_for(manager, actor, vp_username)
        manager.delete_database(hosting.id, name)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"deleted": name})


@router.get("/api/v1/hostings/{vp_username}/stats")
def api_hosting_stats(
    request: Request,
    vp_username: str,
    manager: ManagerDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = _hosting_by_vp_for(manager, actor, vp_username)
        stats = manager.get_stats(hosting.id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"stats": stats})


def _hosting_for(
    manager: HostingLifecycleManager,
    actor: SessionActor,
    hosting_id: uuid.UUID,
) -> Hosting:
    return manager.get_for_actor(hosting_id, actor_user_id=actor.user_id, is_admin=actor.is_admin)


def _hosting_by_vp_for(
    manager: HostingLifecycleManager,
    actor: SessionActor,
    vp_username: str,
) -> Hosting:
    return manager.get_by_vp_username_for_actor(
        vp_username,
        actor_user_id=actor.user_id,
        is_admin=actor.is_admin,
    )


def _suspend_kind(actor: SessionActor, requested: SuspendKind | None) -> SuspendKind:
    if not actor.is_admin:
        return SuspendKind.USER_REQUESTED
    if requested is SuspendKind.POLICY_VIOLATION:
        return SuspendKind.POLICY_VIOLATION
    return SuspendKind.ADMIN_SUSPENDED


def _serialize_hosting(hosting: Hosting, settings: AppSettings) -> dict[str, Any]:
    reason = SuspendReason.from_hosting(hosting)
    rejection = check_operational(hosting)
    return {
        "id": str(hosting.id),
        "username": hosting.username,
        "vpUsername": hosting.vp_username,
        "domain": hosting.domain,
        "package": hosting.package,
        "status": hosting.status.value,
        "suspendReason": (
            {"kind": reason.kind.value, "note": reason.note} if reason is not None else None
        ),
        "panelApproved": hosting.panel_approved,
        "operational": rejection is None,
        "operabilityErrorCode": rejection.error_code if rejection is not None else None,
        "lastError": hosting.last_error,
        "createdAt": iso_datetime(hosting.created_at),
        "activatedAt": iso_datetime(hosting.activated_at),
        "suspendedAt": iso_datetime(hosting.suspended_at),
        "deletedAt": iso_datetime(hosting.deleted_at),
        "poll": poll_hint(
            terminal=is_hosting_terminal(hosting.status),
            interval_seconds=settings.poll_interval_seconds,
        ),
    }


def _serialize_database_sync(hosting: Hosting, result: DatabaseSyncResult) -> dict[str, Any]:
    return {
        "databases": [
            {"name": name, "fullName": f"{hosting.vp_username}_{name}"}
            for name in result.databases
        ],
        "synced": result.synced,
        "syncError": result.sync_error,
    }
