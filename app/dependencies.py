"""Common FastAPI dependencies."""

from __future__ import annotations

import uuid
from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated, cast

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from app.config import AppSettings
from app.notifications import NotificationDispatcher
from app.provisioning.certificates import (
    CertificateAuthorityClient,
    DnsVerifier,
    DnsZoneClient,
)
from app.provisioning.hosting_lifecycle import HostingLifecycleManager
from app.provisioning.issue_log import IssueLogBuffer
from app.provisioning.panel import PanelSessionFactory
from app.provisioning.ssl_pipeline import SslPipelineConfig, SslProvisioningPipeline


def get_app_settings(request: Request) -> AppSettings:
    return cast(AppSettings, request.app.state.settings)


def get_db_session(request: Request) -> Generator[Session]:
    session_factory = cast(sessionmaker[Session], request.app.state.session_maker)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def get_panel_sessions(request: Request) -> PanelSessionFactory:
    return cast(PanelSessionFactory, request.app.state.panel_sessions)


def get_notifier(request: Request) -> NotificationDispatcher:
    return cast(NotificationDispatcher, request.app.state.notifier)


def get_hosting_manager(
    request: Request,
    db_session: Annotated[Session, Depends(get_db_session)],
) -> HostingLifecycleManager:
    return HostingLifecycleManager(
        db_session,
        panel_sessions=get_panel_sessions(request),
        notifier=get_notifier(request),
    )


def get_ssl_pipeline(
    request: Request,
    db_session: Annotated[Session, Depends(get_db_session)],
) -> SslProvisioningPipeline:
    state = request.app.state
    return SslProvisioningPipeline(
        db_session,
        config=SslPipelineConfig.from_settings(get_app_settings(request)),
        ca_client=cast(CertificateAuthorityClient, state.ca_client),
        dns_verifier=cast(DnsVerifier, state.dns_verifier),
        panel_sessions=get_panel_sessions(request),
        issue_log=cast(IssueLogBuffer, state.issue_log),
        notifier=get_notifier(request),
        dns_zone=cast(DnsZoneClient | None, state.dns_zone),
    )


@dataclass(frozen=True, slots=True)
class SessionActor:
    user_id: uuid.UUID
    is_admin: bool


def get_session_actor(request: Request) -> SessionActor:
    raw_user_id = request.session.get("user_id")
    if not isinstance(raw_user_id, str):
        raise HTTPException(status_code=401, detail="authentication required")

    try:
        user_id = uuid.UUID(raw_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="invalid session user") from exc

    is_admin = bool(request.session.get("is_admin", False))
    return SessionActor(user_id=user_id, is_admin=is_admin)


def get_admin_session_actor(
    actor: Annotated[SessionActor, Depends(get_session_actor)],
) -> SessionActor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="admin role required")
    return actor
