from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import AppSettings
from app.db import models as _models  # noqa: F401
from app.db.base import Base
from app.main import create_app
from app.provisioning import tasks
from app.provisioning.hosting_lifecycle import HostingLifecycleManager
from app.provisioning.issue_log import InMemoryIssueLogBuffer
from app.provisioning.ssl_pipeline import SslPipelineConfig, SslProvisioningPipeline

from fakes import (
    FakeCertificateAuthority,
    FakeDnsVerifier,
    FakeDnsZone,
    FakePanelSessionFactory,
    FakeResellerApi,
    RecordingNotifier,
    build_settings,
)


@pytest.fixture()
def settings() -> AppSettings:
    return build_settings()


@pytest.fixture()
def db_engine() -> Generator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, _: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=db_engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session]:
    with session_factory() as session:
        yield session


@pytest.fixture()
def panel_sessions() -> FakePanelSessionFactory:
    return FakePanelSessionFactory()


@pytest.fixture()
def reseller_api() -> FakeResellerApi:
    return FakeResellerApi()


@pytest.fixture()
def ca_client() -> FakeCertificateAuthority:
    return FakeCertificateAuthority()


@pytest.fixture()
def dns_verifier() -> FakeDnsVerifier:
    return FakeDnsVerifier()


@pytest.fixture()
def dns_zone(dns_verifier: FakeDnsVerifier) -> FakeDnsZone:
    return FakeDnsZone(verifier=dns_verifier)


@pytest.fixture()
def issue_log() -> InMemoryIssueLogBuffer:
    return InMemoryIssueLogBuffer(limit=50)


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def hosting_manager(
    db_session: Session,
    panel_sessions: FakePanelSessionFactory,
    notifier: RecordingNotifier,
) -> HostingLifecycleManager:
    return HostingLifecycleManager(db_session, panel_sessions=panel_sessions, notifier=notifier)


@pytest.fixture()
def ssl_pipeline(
    db_session: Session,
    settings: AppSettings,
    ca_client: FakeCertificateAuthority,
    dns_verifier: FakeDnsVerifier,
    dns_zone: FakeDnsZone,
    panel_sessions: FakePanelSessionFactory,
    issue_log: InMemoryIssueLogBuffer,
    notifier: RecordingNotifier,
) -> SslProvisioningPipeline:
    return SslProvisioningPipeline(
        db_session,
        config=SslPipelineConfig.from_settings(settings),
        ca_client=ca_client,
        dns_verifier=dns_verifier,
        panel_sessions=panel_sessions,
        issue_log=issue_log,
        notifier=notifier,
        dns_zone=dns_zone,
    )


@pytest.fixture()
def queued_tasks(monkeypatch: pytest.MonkeyPatch) -> dict[str, list[str]]:
    queued: dict[str, list[str]] = {"drive": [], "issue": [], "subdomain": []}

    def _recorder(bucket: str) -> Any:
        def fake_delay(record_id: str) -> None:
            queued[bucket].append(record_id)

        return fake_delay

    monkeypatch.setattr(tasks.drive_hosting_task, "delay", _recorder("drive"))
    monkeypatch.setattr(tasks.issue_certificate_task, "delay", _recorder("issue"))
    monkeypatch.setattr(tasks.subdomain_certificate_task, "delay", _recorder("subdomain"))
    return queued


@pytest.fixture()
def test_app(
    settings: AppSettings,
    session_factory: sessionmaker[Session],
    panel_sessions: FakePanelSessionFactory,
    ca_client: FakeCertificateAuthority,
    dns_verifier: FakeDnsVerifier,
    dns_zone: FakeDnsZone,
    issue_log: InMemoryIssueLogBuffer,
    notifier: RecordingNotifier,
    queued_tasks: dict[str, list[str]],
) -> FastAPI:
    app = create_app(settings=settings)
    app.state.session_maker = session_factory
    app.state.panel_sessions = panel_sessions
    app.state.ca_client = ca_client
    app.state.dns_verifier = dns_verifier
    app.state.dns_zone = dns_zone
    app.state.issue_log = issue_log
    app.state.notifier = notifier
    return app


@pytest.fixture()
def client(test_app: FastAPI) -> Generator[TestClient]:
    with TestClient(test_app) as test_client:
        yield test_client
