"""SSL certificate pipeline: request, DNS verification, issuance, and installation."""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TypeVar

from sqlalchemy.orm import Session

from app.config import AppSettings
from app.db.enums import SslDomainType, SslProvider, SslStatus
from app.db.models import Hosting, SslCertificate
from app.db.session import SessionLocal
from app.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)
from app.provisioning.certificates import (
    CertificateAuthorityClient,
    CertificateAuthorityError,
    CertificateAuthorityFatalError,
    ChallengeResponder,
    DnsLookupError,
    DnsVerifier,
    DnsZoneClient,
    DnsZoneError,
    create_certificate_authority,
    create_dns_verifier,
    create_dns_zone_client,
)
from app.provisioning.certificates.challenges import (
    CustomDomainResponder,
    DelegatedSubdomainResponder,
    challenge_record_name,
    delegated_record_name,
)
from app.provisioning.certificates.dns_lookup import txt_record_matches
from app.provisioning.errors import (
    ConflictError,
    NotFoundError,
    ProvisioningError,
    RemoteOperationError,
    ValidationError,
)
from app.provisioning.hosting_lifecycle import DOMAIN_PATTERN, check_operational
from app.provisioning.issue_log import IssueLogBuffer, create_issue_log_buffer
from app.provisioning.panel import (
    PanelSession,
    PanelSessionError,
    PanelSessionFactory,
    create_panel_session_factory,
    open_panel_session,
)
from app.repositories.audit_events import AuditEventRepository
from app.repositories.errors import DuplicateOpenCertificateError
from app.repositories.ssl_certificates import SslCertificateRepository

logger = logging.getLogger(__name__)

HIDDEN_PRIVATE_KEY = "***HIDDEN***"
CHALLENGE_SOURCE = "_acme-challenge"
RETRYABLE_ISSUE_ERRORS = (
    CertificateAuthorityError,
    DnsLookupError,
    DnsZoneError,
    PanelSessionError,
)

T = TypeVar("T")


class CertificateNotFoundError(NotFoundError):
    error_code = "CERTIFICATE_NOT_FOUND"


class IssueOutcome(StrEnum):
    ISSUED = "issued"
    RETRY = "retry"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class SslPipelineConfig:
    service_domains: tuple[str, ...] = ()
    intermediate_domain: str = ""
    auto_install: bool = True

    @classmethod
    def from_settings(cls, settings: AppSettings) -> SslPipelineConfig:
        return cls(
            service_domains=settings.ssl_service_domains,
            intermediate_domain=settings.ssl_intermediate_domain,
            auto_install=settings.ssl_auto_install,
        )

    def service_domain_for(self, domain: str) -> str | None:
        for service_domain in self.service_domains:
            if domain.endswith(f".{service_domain}"):
                return service_domain
        return None


@dataclass(frozen=True, slots=True)
class IssueLogView:
    logs: list[str]
    status: SslStatus
    last_error: str | None


@dataclass(frozen=True, slots=True)
class StaleCertificates:
    issuing_ids: list[uuid.UUID]
    subdomain_ids: list[uuid.UUID]


def generate_challenge_token() -> str:
    return secrets.token_urlsafe(32)


class SslProvisioningPipeline:
    def __init__(
        self,
        db_session: Session,
        *,
        config: SslPipelineConfig,
        ca_client: CertificateAuthorityClient,
        dns_verifier: DnsVerifier,
        panel_sessions: PanelSessionFactory,
        issue_log: IssueLogBuffer,
        notifier: NotificationDispatcher,
        dns_zone: DnsZoneClient | None = None,
    ) -> None:
        self._db_session = db_session
        self._config = config
        self._ca_client = ca_client
        self._dns_verifier = dns_verifier
        self._panel_sessions = panel_sessions
        self._issue_log = issue_log
        self._notifier = notifier
        self._dns_zone = dns_zone
        self._certificates = SslCertificateRepository(db_session)
        self._audit = AuditEventRepository(db_session)

    def get_for_actor(
        self,
        certificate_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID,
        is_admin: bool = False,
    ) -> SslCertificate:
        certificate = self._certificates.get_by_id(certificate_id)
        if certificate is None or (not is_admin and certificate.user_id != actor_user_id):
            raise CertificateNotFoundError("Certificate not found")
        return certificate

    def list_for_user(self, user_id: uuid.UUID) -> list[SslCertificate]:
        return self._certificates.list_by_user_id(user_id)

    def request_certificate(
        self,
        *,
        hosting: Hosting,
        domain: str,
        domain_type: SslDomainType | None = None,
        provider: SslProvider = SslProvider.LETS_ENCRYPT,
        actor_user_id: uuid.UUID | None = None,
    ) -> SslCertificate:
        rejection = check_operational(hosting)
        if rejection is not None:
            raise rejection.to_error()

        normalized_domain = domain.strip().lower().rstrip(".")
        if not DOMAIN_PATTERN.fullmatch(normalized_domain):
            raise ValidationError(f"invalid domain: {domain!r}", error_code="INVALID_DOMAIN")

        derived_type = (
            SslDomainType.SUBDOMAIN
            if self._config.service_domain_for(normalized_domain)
            else SslDomainType.CUSTOM
        )
        if domain_type is not None and domain_type is not derived_type:
            raise ValidationError(
                f"{normalized_domain} must be requested as a {derived_type.value} certificate",
                error_code="DOMAIN_TYPE_MISMATCH",
            )
        if derived_type is SslDomainType.SUBDOMAIN and (
            not self._config.intermediate_domain or self._dns_zone is None
        ):
            raise ProvisioningError(
                "Subdomain certificates are not configured",
                error_code="SSL_NOT_CONFIGURED",
                status_code=503,
            )

        try:
            certificate = self._certificates.create_pending(
                user_id=hosting.user_id,
                hosting_id=hosting.id,
                domain=normalized_domain,
                domain_type=derived_type,
                provider=provider,
                txt_record=generate_challenge_token(),
            )
        except DuplicateOpenCertificateError as exc:
            self._db_session.rollback()
            raise ConflictError(
                "Certificate already exists for this domain",
                error_code="DUPLICATE_CERTIFICATE",
            ) from exc

        self._audit.create_event(
            action="ssl.requested",
            target_type="ssl_certificate",
            target_id=str(certificate.id),
            actor_user_id=actor_user_id,
            metadata={
                "domain": certificate.domain,
                "domain_type": certificate.domain_type.value,
                "provider": certificate.provider.value,
                "hosting_id": str(hosting.id),
            },
        )
        self._db_session.commit()
        logger.info(
            "certificate requested",
            extra={"certificate_id": str(certificate.id), "domain": certificate.domain},
        )
        return certificate

    def verify(
        self,
        certificate_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> SslCertificate:
        """Check the published challenge token; mismatches stay retryable."""
        certificate = self._require(certificate_id)
        if certificate.domain_type is SslDomainType.SUBDOMAIN:
            raise ConflictError(
                "Subdomain certificates are verified automatically",
                error_code="AUTOMATIC_VERIFICATION",
            )
        if certificate.status is SslStatus.VERIFIED:
            return certificate
        if certificate.status not in {SslStatus.PENDING_VERIFICATION, SslStatus.VERIFYING}:
            raise ConflictError(
                f"Certificate cannot be verified while {certificate.status.value}",
                error_code="INVALID_STATUS",
            )

        record_name = challenge_record_name(certificate.domain)
        try:
            verified = txt_record_matches(self._dns_verifier, record_name, certificate.txt_record)
            mismatch = f"TXT record {record_name} does not contain the verification token"
        except DnsLookupError as exc:
            verified = False
            mismatch = _exception_message(exc)

        old_status = certificate.status
        if verified:
            self._certificates.transition_status(certificate, SslStatus.VERIFIED)
            self._audit.record_status_change(
                target_type="ssl_certificate",
                target_id=certificate.id,
                old_status=old_status,
                new_status=SslStatus.VERIFIED,
                actor_user_id=actor_user_id,
            )
        elif old_status is SslStatus.PENDING_VERIFICATION:
            self._certificates.transition_status(
                certificate,
                SslStatus.VERIFYING,
                last_error=mismatch,
            )
            self._audit.record_status_change(
                target_type="ssl_certificate",
                target_id=certificate.id,
                old_status=old_status,
                new_status=SslStatus.VERIFYING,
                actor_user_id=actor_user_id,
                metadata={"error": mismatch},
            )
        else:
            self._certificates.record_error(certificate, mismatch)
        self._db_session.commit()
        if certificate.status is not old_status:
            _log_transition(certificate, old_status)
        return certificate

    def issue(
        self,
        certificate_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> bool:
        """Move a verified certificate to ISSUING; True when issuance should be driven."""
        certificate = self._require(certificate_id)
        if certificate.status is SslStatus.ISSUING:
            return certificate.issue_started_at is None
        if certificate.status is not SslStatus.VERIFIED:
            raise ConflictError(
                "Certificate must be verified before issuing",
                error_code="NOT_VERIFIED",
            )

        self._certificates.transition_status(certificate, SslStatus.ISSUING)
        self._audit.record_status_change(
            target_type="ssl_certificate",
            target_id=certificate.id,
            old_status=SslStatus.VERIFIED,
            new_status=SslStatus.ISSUING,
            actor_user_id=actor_user_id,
        )
        self._db_session.commit()
        self._issue_log.clear(certificate.id)
        _log_transition(certificate, SslStatus.VERIFIED)
        return True

    def drive_subdomain_challenge(self, certificate_id: uuid.UUID) -> IssueOutcome:
        """Publish the delegated challenge records, then hand over to issuance."""
        certificate = self._certificates.get_by_id(certificate_id)
        if certificate is None or certificate.domain_type is not SslDomainType.SUBDOMAIN:
            return IssueOutcome.SKIPPED
        if certificate.status is SslStatus.ISSUING:
            return self.drive_issuance(certificate_id)
        if certificate.status is not SslStatus.PENDING_VERIFICATION:
            return IssueOutcome.SKIPPED

        record_name = self._delegated_record_name(certificate)
        if record_name is None or self._dns_zone is None:
            return self._fail(
                certificate_id,
                ProvisioningError(
                    "Subdomain certificates are not configured",
                    error_code="SSL_NOT_CONFIGURED",
                ),
            )

        log = self._log_writer(certificate.id)
        try:
            if not certificate.dns_record_ref:
                log(f"Publishing TXT record {record_name}")
                record_ref = self._dns_zone.create_txt_record(
                    name=record_name,
                    content=certificate.txt_record,
                )
                self._certificates.update_challenge(certificate, dns_record_ref=record_ref)
                self._db_session.commit()

            if certificate.cname_record != record_name:
                log(f"Creating CNAME {challenge_record_name(certificate.domain)} -> {record_name}")
                self._with_panel(
                    certificate.hosting,
                    "create_cname_record",
                    lambda session: session.create_cname_record(
                        source=CHALLENGE_SOURCE,
                        domain=certificate.domain,
                        destination=record_name,
                    ),
                )
                self._certificates.update_challenge(certificate, cname_record=record_name)
                self._db_session.commit()
        except (DnsZoneError, PanelSessionError, ProvisioningError) as exc:
            return self._record_retryable(certificate_id, "subdomain_challenge", exc)

        self._certificates.transition_status(certificate, SslStatus.ISSUING)
        self._audit.record_status_change(
            target_type="ssl_certificate",
            target_id=certificate.id,
            old_status=SslStatus.PENDING_VERIFICATION,
            new_status=SslStatus.ISSUING,
            metadata={"cname_record": record_name},
        )
        self._db_session.commit()
        _log_transition(certificate, SslStatus.PENDING_VERIFICATION)
        return self.drive_issuance(certificate_id)

    def drive_issuance(self, certificate_id: uuid.UUID) -> IssueOutcome:
        """Run one CA order for an ISSUING certificate.

        The in-flight marker is committed before the CA is contacted so a
        duplicate delivery of the same task does not open a second order.
        """
        certificate = self._certificates.get_by_id(certificate_id)
        if certificate is None or certificate.status is not SslStatus.ISSUING:
            return IssueOutcome.SKIPPED
        if certificate.issue_started_at is not None:
            logger.info(
                "issuance already in flight",
                extra={"certificate_id": str(certificate_id), "operation": "issue"},
            )
            return IssueOutcome.SKIPPED

        self._certificates.mark_issue_started(certificate)
        self._db_session.commit()

        log = self._log_writer(certificate.id)
        log(f"Starting {certificate.provider.value} issuance for {certificate.domain}")
        try:
            responder = self._build_responder(certificate, log)
            issued = self._ca_client.issue_certificate(
                domain=certificate.domain,
                provider=certificate.provider,
                responder=responder,
                log=log,
            )
        except CertificateAuthorityFatalError as exc:
            return self._fail(certificate_id, exc)
        except RETRYABLE_ISSUE_ERRORS as exc:
            return self._record_retryable(certificate_id, "issue", exc)

        current = self._certificates.reload(certificate_id)
        if current is None or current.status is not SslStatus.ISSUING:
            logger.warning(
                "certificate changed during issuance; discarding result",
                extra={"certificate_id": str(certificate_id), "operation": "issue"},
            )
            return IssueOutcome.SKIPPED

        self._certificates.transition_status(
            current,
            SslStatus.ISSUED,
            certificate_pem=issued.certificate_pem,
            private_key_pem=issued.private_key_pem,
            ca_bundle_pem=issued.ca_bundle_pem,
            expires_at=issued.expires_at,
        )
        self._audit.record_status_change(
            target_type="ssl_certificate",
            target_id=current.id,
            old_status=SslStatus.ISSUING,
            new_status=SslStatus.ISSUED,
            actor_user_id=current.user_id,
            metadata={"expires_at": issued.expires_at.isoformat()},
        )
        self._db_session.commit()
        log("Certificate issued successfully")
        log(f"Expires: {issued.expires_at.isoformat()}")
        _log_transition(current, SslStatus.ISSUING)
        _notify(self._notifier, current, NotificationKind.CERTIFICATE_ISSUED)

        if self._config.auto_install and check_operational(current.hosting) is None:
            try:
                self.install_on_hosting(current.id)
                log("Certificate installed on hosting")
            except ProvisioningError as exc:
                log(f"Automatic install failed: {exc}")
        return IssueOutcome.ISSUED

    def install_on_hosting(
        self,
        certificate_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> SslCertificate:
        certificate = self._require(certificate_id)
        if certificate.status is not SslStatus.ISSUED:
            raise ConflictError(
                "Only issued certificates can be installed",
                error_code="NOT_ISSUED",
            )
        hosting = certificate.hosting
        rejection = check_operational(hosting)
        if rejection is not None:
            raise rejection.to_error()

        certificate_pem = certificate.certificate or ""
        private_key_pem = certificate.private_key or ""
        ca_bundle_pem = certificate.ca_certificate or None
        try:
            self._with_panel(
                hosting,
                "install_certificate",
                lambda session: _upload_material(
                    session,
                    domain=certificate.domain,
                    certificate_pem=certificate_pem,
                    private_key_pem=private_key_pem,
                    ca_bundle_pem=ca_bundle_pem,
                ),
            )
        except PanelSessionError as exc:
            message = _exception_message(exc)
            self._certificates.record_install(certificate, error=message)
            self._audit.create_event(
                action="ssl.install.failed",
                target_type="ssl_certificate",
                target_id=str(certificate.id),
                actor_user_id=actor_user_id,
                metadata={"hosting_id": str(hosting.id), "error": message},
            )
            self._db_session.commit()
            raise RemoteOperationError(
                str(exc) or "certificate install failed",
                error_code="INSTALL_FAILED",
                details={"remoteErrorCode": exc.error_code},
            ) from exc

        self._certificates.record_install(certificate)
        self._audit.create_event(
            action="ssl.installed",
            target_type="ssl_certificate",
            target_id=str(certificate.id),
            actor_user_id=actor_user_id,
            metadata={"hosting_id": str(hosting.id)},
        )
        self._db_session.commit()
        logger.info(
            "certificate installed",
            extra={"certificate_id": str(certificate.id), "hosting_id": str(hosting.id)},
        )
        return certificate

    def delete(
        self,
        certificate_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> None:
        """Remove the record from any state; remote cleanup is best-effort."""
        certificate = self._require(certificate_id)

        if certificate.status is SslStatus.ISSUED:
            self._best_effort(
                certificate,
                "revoke_certificate",
                lambda: self._ca_client.revoke_certificate(
                    certificate_pem=certificate.certificate or "",
                    provider=certificate.provider,
                ),
            )
            if check_operational(certificate.hosting) is None:
                self._best_effort(
                    certificate,
                    "delete_installed_certificate",
                    lambda: self._with_panel(
                        certificate.hosting,
                        "delete_installed_certificate",
                        lambda session: session.delete_certificate(domain=certificate.domain),
                    ),
                )

        dns_zone = self._dns_zone
        record_ref = certificate.dns_record_ref
        if dns_zone is not None and record_ref:
            self._best_effort(
                certificate,
                "delete_txt_record",
                lambda: dns_zone.delete_record(record_ref),
            )
        if certificate.cname_record and check_operational(certificate.hosting) is None:
            self._best_effort(
                certificate,
                "delete_cname_record",
                lambda: self._with_panel(
                    certificate.hosting,
                    "delete_cname_record",
                    lambda session: session.delete_cname_record(
                        challenge_record_name(certificate.domain)
                    ),
                ),
            )

        self._audit.create_event(
            action="ssl.deleted",
            target_type="ssl_certificate",
            target_id=str(certificate.id),
            actor_user_id=actor_user_id,
            metadata={"domain": certificate.domain, "status": certificate.status.value},
        )
        self._certificates.delete(certificate)
        self._db_session.commit()
        self._issue_log.clear(certificate_id)
        logger.info(
            "certificate deleted",
            extra={"certificate_id": str(certificate_id), "domain": certificate.domain},
        )

    def retry(
        self,
        certificate_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> SslCertificate:
        certificate = self._require(certificate_id)
        if certificate.status is not SslStatus.FAILED:
            raise ConflictError(
                "Only failed certificates can be retried",
                error_code="NOT_FAILED",
            )
        if self._certificates.get_open_for_domain(certificate.domain) is not None:
            raise ConflictError(
                "Certificate already exists for this domain",
                error_code="DUPLICATE_CERTIFICATE",
            )

        self._certificates.transition_status(
            certificate,
            SslStatus.PENDING_VERIFICATION,
            increment_retry=True,
        )
        self._certificates.update_challenge(certificate, txt_record=generate_challenge_token())
        self._audit.record_status_change(
            target_type="ssl_certificate",
            target_id=certificate.id,
            old_status=SslStatus.FAILED,
            new_status=SslStatus.PENDING_VERIFICATION,
            actor_user_id=actor_user_id,
            metadata={"retry_count": certificate.retry_count},
        )
        self._db_session.commit()
        self._issue_log.clear(certificate.id)
        _log_transition(certificate, SslStatus.FAILED)
        return certificate

    def revoke(
        self,
        certificate_id: uuid.UUID,
        *,
        actor_user_id: uuid.UUID | None = None,
    ) -> SslCertificate:
        certificate = self._require(certificate_id)
        if certificate.status is not SslStatus.ISSUED:
            raise ConflictError(
                "Only issued certificates can be revoked",
                error_code="NOT_ISSUED",
            )
        try:
            self._ca_client.revoke_certificate(
                certificate_pem=certificate.certificate or "",
                provider=certificate.provider,
            )
        except CertificateAuthorityError as exc:
            logger.warning(
                "certificate revoke failed",
                extra={
                    "certificate_id": str(certificate.id),
                    "operation": "revoke",
                    "error_code": exc.error_code,
                    "remote_error": str(exc),
                },
            )
            raise RemoteOperationError(
                str(exc) or "certificate revoke failed",
                error_code="REVOKE_FAILED",
            ) from exc

        self._certificates.transition_status(certificate, SslStatus.REVOKED)
        self._audit.record_status_change(
            target_type="ssl_certificate",
            target_id=certificate.id,
            old_status=SslStatus.ISSUED,
            new_status=SslStatus.REVOKED,
            actor_user_id=actor_user_id,
        )
        self._db_session.commit()
        _log_transition(certificate, SslStatus.ISSUED)
        _notify(self._notifier, certificate, NotificationKind.CERTIFICATE_REVOKED)
        return certificate

    def expire_due(self, *, now: datetime) -> list[uuid.UUID]:
        expired: list[uuid.UUID] = []
        for certificate in self._certificates.list_issued_expiring_before(now):
            self._certificates.transition_status(certificate, SslStatus.EXPIRED)
            self._audit.record_status_change(
                target_type="ssl_certificate",
                target_id=certificate.id,
                old_status=SslStatus.ISSUED,
                new_status=SslStatus.EXPIRED,
            )
            expired.append(certificate.id)
        self._db_session.commit()
        for certificate_id in expired:
            certificate = self._certificates.get_by_id(certificate_id)
            if certificate is not None:
                _log_transition(certificate, SslStatus.ISSUED)
                _notify(self._notifier, certificate, NotificationKind.CERTIFICATE_EXPIRED)
        return expired

    def reclaim_stale(self, *, older_than: datetime) -> StaleCertificates:
        """Release abandoned issuance markers and collect records to re-drive."""
        issuing_ids: list[uuid.UUID] = []
        subdomain_ids: list[uuid.UUID] = []
        for certificate in self._certificates.list_stale_open(updated_before=older_than):
            if certificate.status is SslStatus.ISSUING:
                if certificate.issue_started_at is not None:
                    self._certificates.clear_issue_marker(certificate)
                issuing_ids.append(certificate.id)
            elif (
                certificate.status is SslStatus.PENDING_VERIFICATION
                and certificate.domain_type is SslDomainType.SUBDOMAIN
            ):
                subdomain_ids.append(certificate.id)
        self._db_session.commit()
        return StaleCertificates(issuing_ids=issuing_ids, subdomain_ids=subdomain_ids)

    def get_logs(self, certificate_id: uuid.UUID) -> IssueLogView:
        certificate = self._require(certificate_id)
        return IssueLogView(
            logs=self._issue_log.read(certificate.id),
            status=certificate.status,
            last_error=certificate.last_error,
        )

    def _build_responder(
        self,
        certificate: SslCertificate,
        log: Callable[[str], None],
    ) -> ChallengeResponder:
        certificate_id = certificate.id

        def store_challenge(value: str, record_ref: str | None) -> None:
            current = self._certificates.get_by_id(certificate_id)
            if current is None:
                return
            self._certificates.update_challenge(
                current,
                txt_record=value,
                dns_record_ref=record_ref,
            )
            self._db_session.commit()

        if certificate.domain_type is SslDomainType.CUSTOM:
            return CustomDomainResponder(
                verifier=self._dns_verifier,
                on_value_changed=store_challenge,
                log=log,
            )

        record_name = certificate.cname_record or self._delegated_record_name(certificate)
        if record_name is None or self._dns_zone is None:
            raise CertificateAuthorityFatalError("Subdomain certificates are not configured")
        return DelegatedSubdomainResponder(
            zone_client=self._dns_zone,
            verifier=self._dns_verifier,
            record_name=record_name,
            current_value=certificate.txt_record,
            current_record_ref=certificate.dns_record_ref,
            on_record_changed=store_challenge,
            log=log,
        )

    def _delegated_record_name(self, certificate: SslCertificate) -> str | None:
        service_domain = self._config.service_domain_for(certificate.domain)
        if service_domain is None or not self._config.intermediate_domain:
            return None
        return delegated_record_name(
            certificate.domain,
            service_domain=service_domain,
            intermediate_domain=self._config.intermediate_domain,
        )

    def _record_retryable(
        self,
        certificate_id: uuid.UUID,
        operation: str,
        exc: Exception,
    ) -> IssueOutcome:
        self._db_session.rollback()
        message = _exception_message(exc)
        logger.warning(
            "certificate step failed; will retry",
            extra={
                "certificate_id": str(certificate_id),
                "operation": operation,
                "error_code": _exception_error_code(exc),
                "remote_error": str(exc),
            },
        )
        certificate = self._certificates.reload(certificate_id)
        if certificate is None:
            return IssueOutcome.SKIPPED

        self._issue_log.append(certificate_id, f"Error: {exc}")
        self._certificates.clear_issue_marker(certificate)
        self._certificates.record_error(certificate, message)
        self._audit.create_event(
            action="ssl.issue.retryable",
            target_type="ssl_certificate",
            target_id=str(certificate_id),
            actor_user_id=certificate.user_id,
            metadata={
                "operation": operation,
                "current_status": certificate.status.value,
                "error_code": _exception_error_code(exc),
                "error": message,
            },
        )
        self._db_session.commit()
        return IssueOutcome.RETRY

    def _fail(self, certificate_id: uuid.UUID, exc: Exception) -> IssueOutcome:
        self._db_session.rollback()
        message = _exception_message(exc)
        logger.error(
            "certificate issuance failed",
            extra={
                "certificate_id": str(certificate_id),
                "operation": "issue",
                "error_code": _exception_error_code(exc),
                "remote_error": str(exc),
            },
        )
        certificate = self._certificates.reload(certificate_id)
        if certificate is None or certificate.status not in {
            SslStatus.PENDING_VERIFICATION,
            SslStatus.ISSUING,
        }:
            return IssueOutcome.SKIPPED

        self._issue_log.append(certificate_id, f"Failed: {exc}")
        old_status = certificate.status
        self._certificates.transition_status(certificate, SslStatus.FAILED, last_error=message)
        self._audit.record_status_change(
            target_type="ssl_certificate",
            target_id=certificate.id,
            old_status=old_status,
            new_status=SslStatus.FAILED,
            actor_user_id=certificate.user_id,
            metadata={"error_code": _exception_error_code(exc), "error": message},
        )
        self._db_session.commit()
        _log_transition(certificate, old_status)
        _notify(self._notifier, certificate, NotificationKind.CERTIFICATE_FAILED)
        return IssueOutcome.FAILED

    def _best_effort(
        self,
        certificate: SslCertificate,
        operation: str,
        call: Callable[[], object],
    ) -> None:
        try:
            call()
        except (
            CertificateAuthorityError,
            DnsZoneError,
            PanelSessionError,
            ProvisioningError,
        ) as exc:
            logger.warning(
                "certificate cleanup step failed",
                extra={
                    "certificate_id": str(certificate.id),
                    "operation": operation,
                    "error_code": _exception_error_code(exc),
                    "remote_error": str(exc),
                },
            )

    def _with_panel(
        self,
        hosting: Hosting,
        operation: str,
        call: Callable[[PanelSession], T],
    ) -> T:
        if not hosting.vp_username or not hosting.password:
            raise ConflictError(
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

    def _log_writer(self, certificate_id: uuid.UUID) -> Callable[[str], None]:
        def write(message: str) -> None:
            self._issue_log.append(certificate_id, message)

        return write

    def _require(self, certificate_id: uuid.UUID) -> SslCertificate:
        certificate = self._certificates.get_by_id(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError("Certificate not found")
        return certificate


def build_ssl_pipeline(db_session: Session, *, settings: AppSettings) -> SslProvisioningPipeline:
    dns_zone: DnsZoneClient | None = None
    if settings.cloudflare_api_token.strip():
        dns_zone = create_dns_zone_client(settings)
    return SslProvisioningPipeline(
        db_session,
        config=SslPipelineConfig.from_settings(settings),
        ca_client=create_certificate_authority(settings),
        dns_verifier=create_dns_verifier(settings),
        panel_sessions=create_panel_session_factory(settings),
        issue_log=create_issue_log_buffer(settings),
        notifier=LoggingNotificationDispatcher(),
        dns_zone=dns_zone,
    )


def process_certificate_issue(*, certificate_id: uuid.UUID, settings: AppSettings) -> IssueOutcome:
    with SessionLocal() as db_session:
        return build_ssl_pipeline(db_session, settings=settings).drive_issuance(certificate_id)


def process_subdomain_certificate(
    *,
    certificate_id: uuid.UUID,
    settings: AppSettings,
) -> IssueOutcome:
    with SessionLocal() as db_session:
        pipeline = build_ssl_pipeline(db_session, settings=settings)
        return pipeline.drive_subdomain_challenge(certificate_id)


def _upload_material(
    session: PanelSession,
    *,
    domain: str,
    certificate_pem: str,
    private_key_pem: str,
    ca_bundle_pem: str | None,
) -> None:
    session.upload_private_key(domain=domain, private_key_pem=private_key_pem)
    session.upload_certificate(
        domain=domain,
        certificate_pem=certificate_pem,
        ca_bundle_pem=ca_bundle_pem,
    )


def _notify(
    notifier: NotificationDispatcher,
    certificate: SslCertificate,
    kind: NotificationKind,
) -> None:
    titles = {
        NotificationKind.CERTIFICATE_ISSUED: f"SSL certificate for {certificate.domain} issued",
        NotificationKind.CERTIFICATE_FAILED: f"SSL certificate for {certificate.domain} failed",
        NotificationKind.CERTIFICATE_EXPIRED: f"SSL certificate for {certificate.domain} expired",
        NotificationKind.CERTIFICATE_REVOKED: f"SSL certificate for {certificate.domain} revoked",
    }
    notifier.emit(
        NotificationEvent(
            kind=kind,
            user_id=certificate.user_id,
            target_type="ssl_certificate",
            target_id=certificate.id,
            title=titles[kind],
            details={"status": certificate.status.value, "last_error": certificate.last_error},
        )
    )


def _log_transition(certificate: SslCertificate, old_status: SslStatus) -> None:
    logger.info(
        "certificate status changed",
        extra={
            "certificate_id": str(certificate.id),
            "from_status": old_status.value,
            "to_status": certificate.status.value,
        },
    )


def _exception_error_code(exc: Exception) -> str:
    return str(getattr(exc, "error_code", exc.__class__.__name__))


def _exception_message(exc: Exception) -> str:
    return f"{_exception_error_code(exc)}: {exc}"
