"""SSL certificate APIs."""

from __future__ import annotations

import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.config import AppSettings
from app.db.enums import SslDomainType, SslProvider, SslStatus
from app.db.models import SslCertificate
from app.dependencies import (
    SessionActor,
    get_app_settings,
    get_hosting_manager,
    get_ssl_pipeline,
)
from app.provisioning.errors import ProvisioningError
from app.provisioning.hosting_lifecycle import HostingLifecycleManager
from app.provisioning.polling import is_certificate_terminal, poll_hint
from app.provisioning.ssl_pipeline import HIDDEN_PRIVATE_KEY, SslProvisioningPipeline
from app.provisioning.tasks import enqueue_certificate_issue, enqueue_subdomain_certificate
from app.routes.common import (
    error_response,
    iso_datetime,
    operation_error_response,
    require_api_actor,
    success_response,
)

router = APIRouter(tags=["ssl"])
SettingsDep = Annotated[AppSettings, Depends(get_app_settings)]
PipelineDep = Annotated[SslProvisioningPipeline, Depends(get_ssl_pipeline)]
ManagerDep = Annotated[HostingLifecycleManager, Depends(get_hosting_manager)]


class RequestCertificatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hosting_id: uuid.UUID = Field(alias="hostingId")
    domain: str
    domain_type: SslDomainType | None = Field(default=None, alias="domainType")
    provider: SslProvider = SslProvider.LETS_ENCRYPT

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("domain is required")
        return normalized


@router.post("/api/v1/ssl")
def api_request_certificate(
    request: Request,
    payload: RequestCertificatePayload,
    pipeline: PipelineDep,
    manager: ManagerDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        hosting = manager.get_for_actor(
            payload.hosting_id,
            actor_user_id=actor.user_id,
            is_admin=actor.is_admin,
        )
        certificate = pipeline.request_certificate(
            hosting=hosting,
            domain=payload.domain,
            domain_type=payload.domain_type,
            provider=payload.provider,
            actor_user_id=actor.user_id,
        )
    except ProvisioningError as exc:
        return operation_error_response(exc)

    if certificate.domain_type is SslDomainType.SUBDOMAIN:
        enqueue_subdomain_certificate(certificate_id=certificate.id, settings=settings)
    return success_response(
        {"certificate": _serialize_certificate(certificate, settings)},
        status_code=201,
    )


@router.get("/api/v1/ssl")
def api_list_certificates(
    request: Request,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    certificates = pipeline.list_for_user(actor.user_id)
    return success_response(
        {"certificates": [_serialize_certificate(item, settings) for item in certificates]}
    )


@router.get("/api/v1/ssl/{certificate_id}")
def api_certificate_detail(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = _certificate_for(pipeline, actor, certificate_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"certificate": _serialize_certificate(certificate, settings)})


@router.post("/api/v1/ssl/{certificate_id}/verify")
def api_verify_certificate(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = _certificate_for(pipeline, actor, certificate_id)
        certificate = pipeline.verify(certificate.id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)

    if certificate.status is not SslStatus.VERIFIED:
        return error_response(
            status_code=400,
            code="DNS_NOT_VERIFIED",
            message=certificate.last_error or "DNS verification failed",
            details={
                "status": certificate.status.value,
                "recordName": certificate.challenge_record_name,
                "expectedValue": certificate.txt_record,
            },
        )
    return success_response({"certificate": _serialize_certificate(certificate, settings)})


@router.post("/api/v1/ssl/{certificate_id}/issue")
def api_issue_certificate(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = _certificate_for(pipeline, actor, certificate_id)
        should_drive = pipeline.issue(certificate.id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)

    if should_drive:
        enqueue_certificate_issue(certificate_id=certificate.id, settings=settings)
    return success_response(
        {
            "certificate": _serialize_certificate(certificate, settings),
            "queued": should_drive,
        },
        status_code=202,
    )


@router.get("/api/v1/ssl/{certificate_id}/logs")
def api_certificate_logs(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = _certificate_for(pipeline, actor, certificate_id)
        view = pipeline.get_logs(certificate.id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response(
        {
            "logs": view.logs,
            "status": view.status.value,
            "lastError": view.last_error,
            "poll": poll_hint(
                terminal=view.status is not SslStatus.ISSUING,
                interval_seconds=settings.poll_interval_seconds,
            ),
        }
    )


@router.post("/api/v1/ssl/{certificate_id}/install")
def api_install_certificate(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = _certificate_for(pipeline, actor, certificate_id)
        certificate = pipeline.install_on_hosting(certificate.id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"certificate": _serialize_certificate(certificate, settings)})


@router.get("/api/v1/ssl/{certificate_id}/download")
def api_download_certificate(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = pipeline.get_for_actor(certificate_id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    if certificate.status is not SslStatus.ISSUED:
        return error_response(
            status_code=409,
            code="NOT_ISSUED",
            message="Certificate has not been issued",
            details={"status": certificate.status.value},
        )
    return success_response(
        {
            "domain": certificate.domain,
            "certificate": certificate.certificate,
            "privateKey": certificate.private_key,
            "caCertificate": certificate.ca_certificate,
            "expiresAt": iso_datetime(certificate.expires_at),
        }
    )


@router.delete("/api/v1/ssl/{certificate_id}")
def api_delete_certificate(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = _certificate_for(pipeline, actor, certificate_id)
        pipeline.delete(certificate.id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"deleted": str(certificate_id)})


@router.post("/api/v1/admin/ssl/{certificate_id}/retry")
def api_admin_retry_certificate(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request, require_admin=True)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = pipeline.retry(certificate_id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)

    if certificate.domain_type is SslDomainType.SUBDOMAIN:
        enqueue_subdomain_certificate(certificate_id=certificate.id, settings=settings)
    return success_response({"certificate": _serialize_certificate(certificate, settings)})


@router.post("/api/v1/admin/ssl/{certificate_id}/revoke")
def api_admin_revoke_certificate(
    request: Request,
    certificate_id: uuid.UUID,
    pipeline: PipelineDep,
    settings: SettingsDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request, require_admin=True)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    try:
        certificate = pipeline.revoke(certificate_id, actor_user_id=actor.user_id)
    except ProvisioningError as exc:
        return operation_error_response(exc)
    return success_response({"certificate": _serialize_certificate(certificate, settings)})


def _certificate_for(
    pipeline: SslProvisioningPipeline,
    actor: SessionActor,
    certificate_id: uuid.UUID,
) -> SslCertificate:
    return pipeline.get_for_actor(
        certificate_id,
        actor_user_id=actor.user_id,
        is_admin=actor.is_admin,
    )


def _serialize_certificate(certificate: SslCertificate, settings: AppSettings) -> dict[str, Any]:
    return {
        "id": str(certificate.id),
        "hostingId": str(certificate.hosting_id),
        "domain": certificate.domain,
        "domainType": certificate.domain_type.value,
        "provider": certificate.provider.value,
        "status": certificate.status.value,
        "txtRecord": certificate.txt_record,
        "recordName": certificate.challenge_record_name,
        "cnameRecord": certificate.cname_record,
        "certificate": certificate.certificate,
        "privateKey": HIDDEN_PRIVATE_KEY if certificate.private_key else None,
        "caCertificate": certificate.ca_certificate,
        "lastError": certificate.last_error,
        "installError": certificate.install_error,
        "retryCount": certificate.retry_count,
        "createdAt": iso_datetime(certificate.created_at),
        "verifiedAt": iso_datetime(certificate.verified_at),
        "issuedAt": iso_datetime(certificate.issued_at),
        "expiresAt": iso_datetime(certificate.expires_at),
        "installedAt": iso_datetime(certificate.installed_at),
        "poll": poll_hint(
            terminal=is_certificate_terminal(certificate.status),
            interval_seconds=settings.poll_interval_seconds,
        ),
        "logsAvailable": certificate.status is SslStatus.ISSUING,
    }
