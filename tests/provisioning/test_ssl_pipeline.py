from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import AppSettings
from app.db.enums import SslDomainType, SslStatus
from app.db.models import AuditEvent, Hosting, SslCertificate
from app.notifications import NotificationKind
from app.provisioning.certificates import (
    CertificateAuthorityError,
    CertificateAuthorityFatalError,
    DnsLookupError,
)
from app.provisioning.certificates.acme_client import AcmeCertificateAuthority
from app.provisioning.errors import ProvisioningError
from app.provisioning.issue_log import InMemoryIssueLogBuffer
from app.provisioning.panel import PanelOperationError
from app.provisioning.ssl_pipeline import (
    IssueOutcome,
    SslPipelineConfig,
    SslProvisioningPipeline,
)

from fakes import (
    CA_VALIDATION_VALUE,
    FakeCertificateAuthority,
    FakeDnsVerifier,
    FakeDnsZone,
    FakePanelSessionFactory,
    RecordingNotifier,
    seed_hosting,
    seed_user,
)

CUSTOM_DOMAIN = "shop.example.com"
CUSTOM_RECORD = "_acme-challenge.shop.example.com"
SUBDOMAIN = "blog.example.org"
DELEGATED_RECORD = "_acme-challenge.blog.acme-dns.example.net"


@pytest.fixture()
def hosting(db_session: Session) -> Hosting:
    return seed_hosting(db_session, user=seed_user(db_session))


def _issued_custom_certificate(
    ssl_pipeline: SslProvisioningPipeline,
    dns_verifier: FakeDnsVerifier,
    hosting: Hosting,
) -> SslCertificate:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    dns_verifier.publish(CUSTOM_RECORD, certificate.txt_record)
    dns_verifier.publish(CUSTOM_RECORD, CA_VALIDATION_VALUE)
    ssl_pipeline.verify(certificate.id)
    assert ssl_pipeline.issue(certificate.id) is True
    assert ssl_pipeline.drive_issuance(certificate.id) is IssueOutcome.ISSUED
    return certificate


def test_subdomain_certificate_is_issued_through_delegated_zone(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    dns_zone: FakeDnsZone,
    panel_sessions: FakePanelSessionFactory,
    notifier: RecordingNotifier,
    issue_log: InMemoryIssueLogBuffer,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=SUBDOMAIN)
    assert certificate.domain_type is SslDomainType.SUBDOMAIN
    assert certificate.status is SslStatus.PENDING_VERIFICATION

    outcome = ssl_pipeline.drive_subdomain_challenge(certificate.id)

    assert outcome is IssueOutcome.ISSUED
    assert certificate.status is SslStatus.ISSUED
    assert certificate.cname_record == DELEGATED_RECORD
    assert panel_sessions.cname_records["epiz_alice"] == {
        "_acme-challenge.blog.example.org": DELEGATED_RECORD
    }
    # The token record is replaced by the CA validation value.
    assert dns_verifier.records[DELEGATED_RECORD] == [CA_VALIDATION_VALUE]
    assert certificate.dns_record_ref == "rec-2"
    assert dns_zone.deleted == ["rec-1"]
    assert certificate.txt_record == CA_VALIDATION_VALUE
    assert certificate.certificate is not None
    assert certificate.private_key is not None
    assert certificate.issue_started_at is None
    assert panel_sessions.installed_certificates["epiz_alice"][SUBDOMAIN] == certificate.certificate
    assert certificate.installed_at is not None
    assert notifier.kinds == [NotificationKind.CERTIFICATE_ISSUED]

    logs = issue_log.read(certificate.id)
    assert any("Certificate issued successfully" in line for line in logs)
    assert any("Certificate installed on hosting" in line for line in logs)


def test_subdomain_certificates_cannot_be_verified_manually(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=SUBDOMAIN)

    with pytest.raises(ProvisioningError) as exc_info:
        ssl_pipeline.verify(certificate.id)

    assert exc_info.value.error_code == "AUTOMATIC_VERIFICATION"
    assert exc_info.value.status_code == 409


def test_custom_certificate_waits_for_ca_value_then_issues(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
    notifier: RecordingNotifier,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    assert certificate.domain_type is SslDomainType.CUSTOM
    token = certificate.txt_record

    unverified = ssl_pipeline.verify(certificate.id)
    assert unverified.status is SslStatus.VERIFYING
    assert unverified.last_error is not None
    assert CUSTOM_RECORD in unverified.last_error

    dns_verifier.publish(CUSTOM_RECORD, token)
    verified = ssl_pipeline.verify(certificate.id)
    assert verified.status is SslStatus.VERIFIED
    assert verified.last_error is None
    assert verified.verified_at is not None

    assert ssl_pipeline.issue(certificate.id) is True
    assert certificate.status is SslStatus.ISSUING

    outcome = ssl_pipeline.drive_issuance(certificate.id)

    assert outcome is IssueOutcome.RETRY
    assert certificate.status is SslStatus.ISSUING
    assert certificate.txt_record == CA_VALIDATION_VALUE
    assert certificate.issue_started_at is None
    assert certificate.last_error is not None
    assert certificate.last_error.startswith("challenge_not_ready:")
    assert notifier.events == []

    dns_verifier.publish(CUSTOM_RECORD, CA_VALIDATION_VALUE)
    assert ssl_pipeline.drive_issuance(certificate.id) is IssueOutcome.ISSUED
    assert certificate.status is SslStatus.ISSUED
    assert certificate.last_error is None
    assert certificate.certificate is not None
    assert certificate.expires_at is not None
    assert certificate.expires_at > datetime.now(UTC)
    assert ca_client.issue_calls == [CUSTOM_DOMAIN, CUSTOM_DOMAIN]
    assert notifier.kinds == [NotificationKind.CERTIFICATE_ISSUED]


def test_repeated_verify_before_propagation_keeps_status_and_refreshes_error(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)

    first = ssl_pipeline.verify(certificate.id)
    assert first.status is SslStatus.VERIFYING
    first_error = first.last_error
    assert first_error is not None

    dns_verifier.error = DnsLookupError("SERVFAIL from 8.8.8.8")
    second = ssl_pipeline.verify(certificate.id)
    assert second.status is SslStatus.VERIFYING
    assert second.last_error == "dns_lookup_error: SERVFAIL from 8.8.8.8"

    dns_verifier.error = None
    dns_verifier.publish(CUSTOM_RECORD, "stale-token-from-earlier-request")
    third = ssl_pipeline.verify(certificate.id)
    assert third.status is SslStatus.VERIFYING
    assert third.last_error == first_error
    assert third.verified_at is None

    transitions = db_session.execute(
        select(AuditEvent).where(
            AuditEvent.target_id == str(certificate.id),
            AuditEvent.action == "ssl_certificate.status.changed",
        )
    ).scalars().all()
    assert len(transitions) == 1


def test_issue_requires_verified_certificate(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)

    with pytest.raises(ProvisioningError) as exc_info:
        ssl_pipeline.issue(certificate.id)

    assert exc_info.value.error_code == "NOT_VERIFIED"
    assert certificate.status is SslStatus.PENDING_VERIFICATION


def test_in_flight_marker_prevents_second_order(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    dns_verifier.publish(CUSTOM_RECORD, certificate.txt_record)
    ssl_pipeline.verify(certificate.id)
    ssl_pipeline.issue(certificate.id)

    certificate.issue_started_at = datetime.now(UTC)
    db_session.commit()

    assert ssl_pipeline.drive_issuance(certificate.id) is IssueOutcome.SKIPPED
    assert ssl_pipeline.issue(certificate.id) is False
    assert ca_client.issue_calls == []


def test_fatal_ca_error_fails_certificate_and_retry_restarts_it(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
    notifier: RecordingNotifier,
    issue_log: InMemoryIssueLogBuffer,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    dns_verifier.publish(CUSTOM_RECORD, certificate.txt_record)
    ssl_pipeline.verify(certificate.id)
    ssl_pipeline.issue(certificate.id)
    ca_client.error = CertificateAuthorityFatalError("order rejected")

    assert ssl_pipeline.drive_issuance(certificate.id) is IssueOutcome.FAILED
    assert certificate.status is SslStatus.FAILED
    assert certificate.last_error == "ca_fatal_error: order rejected"
    assert notifier.kinds == [NotificationKind.CERTIFICATE_FAILED]
    assert any("Failed: order rejected" in line for line in issue_log.read(certificate.id))

    old_token = certificate.txt_record
    retried = ssl_pipeline.retry(certificate.id)

    assert retried.status is SslStatus.PENDING_VERIFICATION
    assert retried.retry_count == 1
    assert retried.last_error is None
    assert retried.txt_record != old_token
    assert issue_log.read(certificate.id) == []


def test_retry_rejects_certificates_that_did_not_fail(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)

    with pytest.raises(ProvisioningError) as exc_info:
        ssl_pipeline.retry(certificate.id)

    assert exc_info.value.error_code == "NOT_FAILED"


def test_transient_ca_error_keeps_certificate_issuing(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
    issue_log: InMemoryIssueLogBuffer,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    dns_verifier.publish(CUSTOM_RECORD, certificate.txt_record)
    ssl_pipeline.verify(certificate.id)
    ssl_pipeline.issue(certificate.id)
    ca_client.error = CertificateAuthorityError("rate limited")

    assert ssl_pipeline.drive_issuance(certificate.id) is IssueOutcome.RETRY

    assert certificate.status is SslStatus.ISSUING
    assert certificate.issue_started_at is None
    assert certificate.last_error == "ca_error: rate limited"
    assert any("Error: rate limited" in line for line in issue_log.read(certificate.id))
    actions = db_session.execute(
        select(AuditEvent.action).where(AuditEvent.target_id == str(certificate.id))
    ).scalars().all()
    assert "ssl.issue.retryable" in actions


def test_install_failure_is_recorded_without_failing_issuance(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    panel_sessions: FakePanelSessionFactory,
) -> None:
    panel_sessions.errors["upload_certificate"] = PanelOperationError("ssl rejected")

    certificate = _issued_custom_certificate(ssl_pipeline, dns_verifier, hosting)

    assert certificate.status is SslStatus.ISSUED
    assert certificate.install_error == "panel_operation_error: ssl rejected"
    assert certificate.installed_at is None
    assert panel_sessions.closed == panel_sessions.opened
    failure = db_session.execute(
        select(AuditEvent).where(AuditEvent.action == "ssl.install.failed")
    ).scalar_one()
    assert failure.target_id == str(certificate.id)

    del panel_sessions.errors["upload_certificate"]
    installed = ssl_pipeline.install_on_hosting(certificate.id)
    assert installed.install_error is None
    assert installed.installed_at is not None


def test_auto_install_can_be_disabled(
    db_session: Session,
    settings: AppSettings,
    hosting: Hosting,
    ca_client: FakeCertificateAuthority,
    dns_verifier: FakeDnsVerifier,
    dns_zone: FakeDnsZone,
    panel_sessions: FakePanelSessionFactory,
    issue_log: InMemoryIssueLogBuffer,
    notifier: RecordingNotifier,
) -> None:
    pipeline = SslProvisioningPipeline(
        db_session,
        config=SslPipelineConfig(
            service_domains=settings.ssl_service_domains,
            intermediate_domain=settings.ssl_intermediate_domain,
            auto_install=False,
        ),
        ca_client=ca_client,
        dns_verifier=dns_verifier,
        panel_sessions=panel_sessions,
        issue_log=issue_log,
        notifier=notifier,
        dns_zone=dns_zone,
    )

    certificate = _issued_custom_certificate(pipeline, dns_verifier, hosting)

    assert certificate.installed_at is None
    assert panel_sessions.installed_certificates == {}


def test_request_rejects_duplicate_open_certificate(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
) -> None:
    ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)

    with pytest.raises(ProvisioningError) as exc_info:
        ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN.upper())

    assert exc_info.value.error_code == "DUPLICATE_CERTIFICATE"
    assert exc_info.value.status_code == 409


def test_request_rejects_mismatched_domain_type(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
) -> None:
    with pytest.raises(ProvisioningError) as exc_info:
        ssl_pipeline.request_certificate(
            hosting=hosting,
            domain=CUSTOM_DOMAIN,
            domain_type=SslDomainType.SUBDOMAIN,
        )

    assert exc_info.value.error_code == "DOMAIN_TYPE_MISMATCH"
    assert exc_info.value.status_code == 400


def test_request_requires_panel_approval(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
) -> None:
    hosting = seed_hosting(db_session, user=seed_user(db_session), panel_approved=False)

    with pytest.raises(ProvisioningError) as exc_info:
        ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)

    assert exc_info.value.error_code == "CPANEL_NOT_APPROVED"


def test_subdomain_request_requires_dns_zone(
    db_session: Session,
    settings: AppSettings,
    hosting: Hosting,
    ca_client: FakeCertificateAuthority,
    dns_verifier: FakeDnsVerifier,
    panel_sessions: FakePanelSessionFactory,
    issue_log: InMemoryIssueLogBuffer,
    notifier: RecordingNotifier,
) -> None:
    pipeline = SslProvisioningPipeline(
        db_session,
        config=SslPipelineConfig.from_settings(settings),
        ca_client=ca_client,
        dns_verifier=dns_verifier,
        panel_sessions=panel_sessions,
        issue_log=issue_log,
        notifier=notifier,
        dns_zone=None,
    )

    with pytest.raises(ProvisioningError) as exc_info:
        pipeline.request_certificate(hosting=hosting, domain=SUBDOMAIN)

    assert exc_info.value.error_code == "SSL_NOT_CONFIGURED"
    assert exc_info.value.status_code == 503


def test_delete_failed_certificate_skips_revocation(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    dns_verifier.publish(CUSTOM_RECORD, certificate.txt_record)
    ssl_pipeline.verify(certificate.id)
    ssl_pipeline.issue(certificate.id)
    ca_client.error = CertificateAuthorityFatalError("order rejected")
    ssl_pipeline.drive_issuance(certificate.id)
    certificate_id = certificate.id

    ssl_pipeline.delete(certificate_id)

    assert ca_client.revoked == []
    assert db_session.get(SslCertificate, certificate_id) is None


def test_delete_issued_certificate_survives_revoke_failure(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
    panel_sessions: FakePanelSessionFactory,
) -> None:
    certificate = _issued_custom_certificate(ssl_pipeline, dns_verifier, hosting)
    certificate_id = certificate.id
    issued_pem = certificate.certificate
    ca_client.revoke_error = CertificateAuthorityError("ca unavailable")

    ssl_pipeline.delete(certificate_id)

    assert ca_client.revoked == [issued_pem]
    assert panel_sessions.deleted_certificates == [CUSTOM_DOMAIN]
    assert db_session.get(SslCertificate, certificate_id) is None
    deleted = db_session.execute(
        select(AuditEvent).where(AuditEvent.action == "ssl.deleted")
    ).scalar_one()
    assert deleted.event_metadata == {"domain": CUSTOM_DOMAIN, "status": "ISSUED"}


def test_delete_issued_certificate_survives_unusable_acme_account_key(
    db_session: Session,
    settings: AppSettings,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    dns_zone: FakeDnsZone,
    panel_sessions: FakePanelSessionFactory,
    issue_log: InMemoryIssueLogBuffer,
    notifier: RecordingNotifier,
    tmp_path: Path,
) -> None:
    certificate_id = _issued_custom_certificate(ssl_pipeline, dns_verifier, hosting).id
    blocker = tmp_path / "acme"
    blocker.write_text("not a directory", encoding="utf-8")
    acme_pipeline = SslProvisioningPipeline(
        db_session,
        config=SslPipelineConfig.from_settings(settings),
        ca_client=AcmeCertificateAuthority(
            email="ops@example.net",
            account_key_path=str(blocker / "account.pem"),
        ),
        dns_verifier=dns_verifier,
        panel_sessions=panel_sessions,
        issue_log=issue_log,
        notifier=notifier,
        dns_zone=dns_zone,
    )

    acme_pipeline.delete(certificate_id)

    assert db_session.get(SslCertificate, certificate_id) is None
    assert panel_sessions.deleted_certificates == [CUSTOM_DOMAIN]


def test_delete_subdomain_certificate_removes_challenge_records(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    dns_zone: FakeDnsZone,
    panel_sessions: FakePanelSessionFactory,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=SUBDOMAIN)
    ssl_pipeline.drive_subdomain_challenge(certificate.id)
    certificate_id = certificate.id

    ssl_pipeline.delete(certificate_id)

    assert dns_zone.records == {}
    assert dns_verifier.records[DELEGATED_RECORD] == []
    assert panel_sessions.cname_records["epiz_alice"] == {}
    assert db_session.get(SslCertificate, certificate_id) is None


def test_revoke_clears_material(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
    notifier: RecordingNotifier,
) -> None:
    certificate = _issued_custom_certificate(ssl_pipeline, dns_verifier, hosting)
    issued_pem = certificate.certificate

    revoked = ssl_pipeline.revoke(certificate.id)

    assert revoked.status is SslStatus.REVOKED
    assert revoked.certificate is None
    assert revoked.private_key is None
    assert ca_client.revoked == [issued_pem]
    assert notifier.kinds[-1] is NotificationKind.CERTIFICATE_REVOKED


def test_revoke_failure_keeps_certificate_issued(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    ca_client: FakeCertificateAuthority,
) -> None:
    certificate = _issued_custom_certificate(ssl_pipeline, dns_verifier, hosting)
    ca_client.revoke_error = CertificateAuthorityError("ca unavailable")

    with pytest.raises(ProvisioningError) as exc_info:
        ssl_pipeline.revoke(certificate.id)

    assert exc_info.value.error_code == "REVOKE_FAILED"
    assert exc_info.value.status_code == 502
    assert certificate.status is SslStatus.ISSUED
    assert certificate.certificate is not None


def test_expire_due_moves_past_certificates_to_expired(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
    notifier: RecordingNotifier,
) -> None:
    certificate = _issued_custom_certificate(ssl_pipeline, dns_verifier, hosting)

    assert ssl_pipeline.expire_due(now=datetime.now(UTC)) == []

    expired = ssl_pipeline.expire_due(now=datetime.now(UTC) + timedelta(days=100))

    assert expired == [certificate.id]
    assert certificate.status is SslStatus.EXPIRED
    assert certificate.certificate is None
    assert notifier.kinds[-1] is NotificationKind.CERTIFICATE_EXPIRED


def test_reclaim_stale_releases_markers_and_lists_subdomain_work(
    db_session: Session,
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    dns_verifier: FakeDnsVerifier,
) -> None:
    issuing = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    dns_verifier.publish(CUSTOM_RECORD, issuing.txt_record)
    ssl_pipeline.verify(issuing.id)
    ssl_pipeline.issue(issuing.id)
    subdomain = ssl_pipeline.request_certificate(hosting=hosting, domain=SUBDOMAIN)
    fresh = ssl_pipeline.request_certificate(hosting=hosting, domain="fresh.example.org")

    long_ago = datetime.now(UTC) - timedelta(hours=2)
    issuing.issue_started_at = long_ago
    issuing.updated_at = long_ago
    subdomain.updated_at = long_ago
    db_session.commit()

    stale = ssl_pipeline.reclaim_stale(older_than=datetime.now(UTC) - timedelta(hours=1))

    assert stale.issuing_ids == [issuing.id]
    assert stale.subdomain_ids == [subdomain.id]
    assert fresh.id not in stale.subdomain_ids
    assert issuing.issue_started_at is None


def test_get_logs_reports_status_and_error(
    ssl_pipeline: SslProvisioningPipeline,
    hosting: Hosting,
    ca_client: FakeCertificateAuthority,
    dns_verifier: FakeDnsVerifier,
) -> None:
    certificate = ssl_pipeline.request_certificate(hosting=hosting, domain=CUSTOM_DOMAIN)
    dns_verifier.publish(CUSTOM_RECORD, certificate.txt_record)
    ssl_pipeline.verify(certificate.id)
    ssl_pipeline.issue(certificate.id)
    ca_client.error = CertificateAuthorityError("rate limited")
    ssl_pipeline.drive_issuance(certificate.id)

    view = ssl_pipeline.get_logs(certificate.id)

    assert view.status is SslStatus.ISSUING
    assert view.last_error == "ca_error: rate limited"
    assert view.logs[0].endswith(f"Starting LETS_ENCRYPT issuance for {CUSTOM_DOMAIN}")
    assert any("Fake order opened" in line for line in view.logs)
