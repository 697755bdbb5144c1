"""Repositories for SSL certificate lifecycle."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.enums import (
    OPEN_SSL_STATUSES,
    SslDomainType,
    SslProvider,
    SslStatus,
    can_transition_ssl_status,
)
from app.db.models import SslCertificate
from app.repositories.errors import DuplicateOpenCertificateError, InvalidStateTransitionError


class SslCertificateRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, certificate_id: uuid.UUID) -> SslCertificate | None:
        return self._session.get(SslCertificate, certificate_id)

    def reload(self, certificate_id: uuid.UUID) -> SslCertificate | None:
        statement = (
            select(SslCertificate)
            .where(SslCertificate.id == certificate_id)
            .execution_options(populate_existing=True)
        )
        return self._session.execute(statement).scalar_one_or_none()

    def list_by_user_id(self, user_id: uuid.UUID) -> list[SslCertificate]:
        statement = (
            select(SslCertificate)
            .where(SslCertificate.user_id == user_id)
            .order_by(SslCertificate.created_at.desc())
        )
        return list(self._session.execute(statement).scalars())

    def get_open_for_domain(self, domain: str) -> SslCertificate | None:
        statement = select(SslCertificate).where(
            SslCertificate.domain == domain,
            SslCertificate.status.in_(OPEN_SSL_STATUSES),
        )
        return self._session.execute(statement).scalar_one_or_none()

    def list_stale_open(self, *, updated_before: datetime) -> list[SslCertificate]:
        statement = (
            select(SslCertificate)
            .where(
                SslCertificate.status.in_(OPEN_SSL_STATUSES),
                SslCertificate.updated_at <= updated_before,
            )
            .order_by(SslCertificate.updated_at.asc())
        )
        return list(self._session.execute(statement).scalars())

    def list_issued_expiring_before(self, moment: datetime) -> list[SslCertificate]:
        statement = select(SslCertificate).where(
            SslCertificate.status == SslStatus.ISSUED,
            SslCertificate.expires_at.is_not(None),
            SslCertificate.expires_at <= moment,
        )
        return list(self._session.execute(statement).scalars())

    def create_pending(
        self,
        *,
        user_id: uuid.UUID,
        hosting_id: uuid.UUID,
        domain: str,
        domain_type: SslDomainType,
        provider: SslProvider,
        txt_record: str,
    ) -> SslCertificate:
        certificate = SslCertificate(
            user_id=user_id,
            hosting_id=hosting_id,
            domain=domain,
            domain_type=domain_type,
            provider=provider,
            status=SslStatus.PENDING_VERIFICATION,
            txt_record=txt_record,
        )
        try:
            with self._session.begin_nested():
                self._session.add(certificate)
                self._session.flush()
        except IntegrityError as exc:
            message = str(exc.orig)
            if "uq_ssl_certificate_open_domain" in message or "ssl_certificate.domain" in message:
                raise DuplicateOpenCertificateError(
                    f"certificate already in progress for domain={domain}"
                ) from exc
            raise
        return certificate

    def transition_status(
        self,
        certificate: SslCertificate,
        new_status: SslStatus,
        *,
        last_error: str | None = None,
        certificate_pem: str | None = None,
        private_key_pem: str | None = None,
        ca_bundle_pem: str | None = None,
        expires_at: datetime | None = None,
        increment_retry: bool = False,
    ) -> SslCertificate:
        current_status = certificate.status
        if not can_transition_ssl_status(
            current_status,
            new_status,
            domain_type=certificate.domain_type,
        ):
            raise InvalidStateTransitionError("ssl certificate", current_status, new_status)
        if new_status is SslStatus.ISSUED and (not certificate_pem or not private_key_pem):
            raise ValueError("certificate and private key are required for issued status")

        now = datetime.now(UTC)
        certificate.status = new_status
        certificate.issue_started_at = None
        certificate.last_error = last_error

        if new_status is SslStatus.VERIFIED:
            certificate.verified_at = now
        if new_status is SslStatus.ISSUED:
            certificate.certificate = certificate_pem
            certificate.private_key = private_key_pem
            certificate.ca_certificate = ca_bundle_pem or ""
            certificate.issued_at = now
            certificate.expires_at = expires_at
            certificate.install_error = None
        elif current_status is SslStatus.ISSUED:
            certificate.certificate = None
            certificate.private_key = None
            certificate.ca_certificate = None
        if increment_retry:
            certificate.retry_count += 1

        self._session.flush()
        return certificate

    def record_error(self, certificate: SslCertificate, message: str) -> SslCertificate:
        certificate.last_error = message
        self._session.flush()
        return certificate

    def update_challenge(
        self,
        certificate: SslCertificate,
        *,
        txt_record: str | None = None,
        cname_record: str | None = None,
        dns_record_ref: str | None = None,
    ) -> SslCertificate:
        if txt_record is not None:
            certificate.txt_record = txt_record
        if cname_record is not None:
            certificate.cname_record = cname_record
        if dns_record_ref is not None:
            certificate.dns_record_ref = dns_record_ref
        self._session.flush()
        return certificate

    def mark_issue_started(self, certificate: SslCertificate) -> SslCertificate:
        certificate.issue_started_at = datetime.now(UTC)
        self._session.flush()
        return certificate

    def clear_issue_marker(self, certificate: SslCertificate) -> SslCertificate:
        certificate.issue_started_at = None
        self._session.flush()
        return certificate

    def record_install(
        self,
        certificate: SslCertificate,
        *,
        error: str | None = None,
    ) -> SslCertificate:
        if error is None:
            certificate.installed_at = datetime.now(UTC)
            certificate.install_error = None
        else:
            certificate.install_error = error
        self._session.flush()
        return certificate

    def delete(self, certificate: SslCertificate) -> None:
        self._session.delete(certificate)
        self._session.flush()
