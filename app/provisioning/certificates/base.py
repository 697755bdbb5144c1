"""Certificate authority, DNS, and challenge interfaces."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from app.db.enums import SslProvider

IssueLogWriter = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class IssuedCertificate:
    certificate_pem: str
    private_key_pem: str
    ca_bundle_pem: str
    expires_at: datetime


class ChallengeResponder(Protocol):
    def present(self, *, domain: str, validation: str) -> None:
        """Make the DNS-01 validation value resolvable for the domain.

        Raise ChallengeNotReadyError when the value is not visible yet so the
        caller can retry later without burning a CA attempt.
        """


class CertificateAuthorityClient(Protocol):
    def issue_certificate(
        self,
        *,
        domain: str,
        provider: SslProvider,
        responder: ChallengeResponder,
        log: IssueLogWriter,
    ) -> IssuedCertificate:
        """Run the DNS-01 order for the domain and return the signed chain."""

    def revoke_certificate(self, *, certificate_pem: str, provider: SslProvider) -> None:
        """Revoke a previously issued certificate."""


class DnsVerifier(Protocol):
    def txt_values(self, name: str) -> list[str]:
        """Return the TXT strings published at the name; empty when absent."""

    def cname_target(self, name: str) -> str | None:
        """Return the CNAME target of the name without the trailing dot."""


class DnsZoneClient(Protocol):
    def create_txt_record(self, *, name: str, content: str) -> str:
        """Create a TXT record and return an opaque reference for deletion."""

    def delete_record(self, record_ref: str) -> None: ...


class CertificateAuthorityError(Exception):
    """Base CA exception. Unless fatal, the order may be retried."""

    error_code = "ca_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CertificateAuthorityValidationError(CertificateAuthorityError):
    error_code = "ca_validation_error"


class ChallengeNotReadyError(CertificateAuthorityValidationError):
    error_code = "challenge_not_ready"


class CertificateAuthorityFatalError(CertificateAuthorityError):
    error_code = "ca_fatal_error"


class DnsLookupError(Exception):
    error_code = "dns_lookup_error"


class DnsZoneError(Exception):
    error_code = "dns_zone_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
