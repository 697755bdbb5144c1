from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from celery.exceptions import Retry  # type: ignore[import-untyped]
from sqlalchemy.orm import Session, sessionmaker

from app.config import AppSettings
from app.db.enums import HostingStatus, SslDomainType, SslStatus
from app.db.models import SslCertificate
from app.provisioning import tasks
from app.provisioning.issue_log import InMemoryIssueLogBuffer
from app.provisioning.ssl_pipeline import (
    IssueOutcome,
    SslPipelineConfig,
    SslProvisioningPipeline,
)

from fakes import (
    FakeCertificateAuthority,
    FakeDnsVerifier,
    FakeDnsZone,
    FakePanelSessionFactory,
    RecordingNotifier,
    build_settings,
    seed_hosting,
    seed_user,
)


@pytest.fixture()
def runtime_settings(monkeypatch: pytest.MonkeyPatch) -> AppSettings:
    settings = build_settings(stale_after_seconds=900, sweep_interval_seconds=120)
    monkeypatch.setattr(tasks, "get_settings", lambda: settings)
    return settings


@pytest.fixture()
def worker_database(
    monkeypatch: pytest.MonkeyPatch,
    session_factory: sessionmaker[Session],
    ca_client: FakeCertificateAuthority,
    dns_verifier: FakeDnsVerifier,
    dns_zone: FakeDnsZone,
    panel_sessions: FakePanelSessionFactory,
    notifier: RecordingNotifier,
) -> None:
    def build(db_session: Session, *, settings: AppSettings) -> SslProvisioningPipeline:
        return SslProvisioningPipeline(
            db_session,
            config=SslPipelineConfig.from_settings(settings),
            ca_client=ca_client,
            dns_verifier=dns_verifier,
            panel_sessions=panel_sessions,
            issue_log=InMemoryIssueLogBuffer(limit=20),
            notifier=notifier,
            dns_zone=dns_zone,
        )

    monkeypatch.setattr(tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(tasks, "build_ssl_pipeline", build)


def test_enqueue_hosting_drive_dispatches_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_delay(hosting_id: str) -> None:
        captured["hosting_id"] = hosting_id
        captured["broker_url"] = tasks.celery_app.conf.broker_url

    monkeypatch.setattr(tasks.drive_hosting_task, "delay", fake_delay)
    hosting_id = uuid.uuid4()

    tasks.enqueue_hosting_drive(hosting_id=hosting_id, settings=build_settings())

    assert captured["hosting_id"] == str(hosting_id)
    assert captured["broker_url"] == "memory://"


def test_enqueue_certificate_tasks_dispatch_delay(
    queued_tasks: dict[str, list[str]],
) -> None:
    certificate_id = uuid.uuid4()
    settings = build_settings()

    tasks.enqueue_certificate_issue(certificate_id=certificate_id, settings=settings)
    tasks.enqueue_subdomain_certificate(certificate_id=certificate_id, settings=settings)

    assert queued_tasks["issue"] == [str(certificate_id)]
    assert queued_tasks["subdomain"] == [str(certificate_id)]


def test_configure_celery_schedules_sweeps() -> None:
    tasks.configure_celery(build_settings(sweep_interval_seconds=120))

    schedule = tasks.celery_app.conf.beat_schedule
    assert schedule["sweep-stale-records"]["task"] == tasks.SWEEP_STALE_TASK_NAME
    assert schedule["sweep-stale-records"]["schedule"] == 120.0
    assert schedule["expire-certificates"]["task"] == tasks.EXPIRE_CERTIFICATES_TASK_NAME


def test_drive_task_uses_runtime_settings(
    monkeypatch: pytest.MonkeyPatch,
    runtime_settings: AppSettings,
) -> None:
    hosting_id = uuid.uuid4()
    captured: dict[str, Any] = {}

    def fake_process(*, hosting_id: uuid.UUID, settings: AppSettings) -> None:
        captured["hosting_id"] = hosting_id
        captured["reseller_username"] = settings.reseller_api_username

    monkeypatch.setattr(tasks, "process_hosting_drive", fake_process)

    tasks.drive_hosting_task(str(hosting_id))

    assert captured["hosting_id"] == hosting_id
    assert captured["reseller_username"] == "reseller"


def test_issue_task_schedules_retry_when_challenge_not_ready(
    monkeypatch: pytest.MonkeyPatch,
    runtime_settings: AppSettings,
) -> None:
    monkeypatch.setattr(
        tasks,
        "process_certificate_issue",
        _fixed_outcome(IssueOutcome.RETRY),
    )

    with pytest.raises(Retry):
        tasks.issue_certificate_task(str(uuid.uuid4()))


@pytest.mark.parametrize(
    "outcome",
    [IssueOutcome.ISSUED, IssueOutcome.FAILED, IssueOutcome.SKIPPED],
)
def test_issue_task_returns_settled_outcome(
    monkeypatch: pytest.MonkeyPatch,
    runtime_settings: AppSettings,
    outcome: IssueOutcome,
) -> None:
    monkeypatch.setattr(tasks, "process_certificate_issue", _fixed_outcome(outcome))

    assert tasks.issue_certificate_task(str(uuid.uuid4())) == outcome.value


def test_subdomain_task_schedules_retry(
    monkeypatch: pytest.MonkeyPatch,
    runtime_settings: AppSettings,
) -> None:
    monkeypatch.setattr(
        tasks,
        "process_subdomain_certificate",
        _fixed_outcome(IssueOutcome.RETRY),
    )

    with pytest.raises(Retry):
        tasks.subdomain_certificate_task(str(uuid.uuid4()))


def test_sweep_redrives_stale_records(
    db_session: Session,
    runtime_settings: AppSettings,
    worker_database: None,
    queued_tasks: dict[str, list[str]],
) -> None:
    user = seed_user(db_session)
    stale_hosting = seed_hosting(
        db_session,
        user=user,
        domain="stale.example.com",
        vp_username=None,
        status=HostingStatus.PENDING,
    )
    active = seed_hosting(db_session, user=user, domain="alice.example.com")
    stale_certificate = SslCertificate(
        user_id=user.id,
        hosting_id=active.id,
        domain="blog.example.org",
        domain_type=SslDomainType.SUBDOMAIN,
        status=SslStatus.PENDING_VERIFICATION,
        txt_record="token",
    )
    db_session.add(stale_certificate)
    db_session.commit()

    long_ago = datetime.now(UTC) - timedelta(hours=2)
    stale_hosting.updated_at = long_ago
    stale_certificate.updated_at = long_ago
    db_session.commit()

    tasks.sweep_stale_records_task()

    assert queued_tasks["drive"] == [str(stale_hosting.id)]
    assert queued_tasks["subdomain"] == [str(stale_certificate.id)]
    assert queued_tasks["issue"] == []


def test_expire_task_marks_past_certificates(
    db_session: Session,
    runtime_settings: AppSettings,
    worker_database: None,
    notifier: RecordingNotifier,
) -> None:
    user = seed_user(db_session)
    hosting = seed_hosting(db_session, user=user)
    certificate = SslCertificate(
        user_id=user.id,
        hosting_id=hosting.id,
        domain="shop.example.com",
        domain_type=SslDomainType.CUSTOM,
        status=SslStatus.ISSUED,
        txt_record="token",
        certificate="leaf",
        private_key="key",
        ca_certificate="",
        expires_at=datetime.now(UTC) - timedelta(days=1),
    )
    db_session.add(certificate)
    db_session.commit()

    tasks.expire_certificates_task()

    db_session.expire_all()
    refreshed = db_session.get(SslCertificate, certificate.id)
    assert refreshed is not None
    assert refreshed.status is SslStatus.EXPIRED
    assert refreshed.certificate is None
    assert len(notifier.events) == 1


def _fixed_outcome(outcome: IssueOutcome) -> Callable[..., IssueOutcome]:
    def fake_process(*, certificate_id: uuid.UUID, settings: AppSettings) -> IssueOutcome:
        return outcome

    return fake_process
