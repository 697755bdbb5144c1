"""Certificate authority, DNS, and challenge collaborators."""

from app.provisioning.certificates.base import (
    CertificateAuthorityClient,
    CertificateAuthorityError,
    CertificateAuthorityFatalError,
    CertificateAuthorityValidationError,
    ChallengeNotReadyError,
    ChallengeResponder,
    DnsLookupError,
    DnsVerifier,
    DnsZoneClient,
    DnsZoneError,
    IssuedCertificate,
    IssueLogWriter,
)
from app.provisioning.certificates.factory import (
    create_certificate_authority,
    create_dns_verifier,
    create_dns_zone_client,
)

__all__ = [
    "CertificateAuthorityClient",
    "CertificateAuthorityError",
    "CertificateAuthorityFatalError",
    "CertificateAuthorityValidationError",
    "ChallengeNotReadyError",
    "ChallengeResponder",
    "DnsLookupError",
    "DnsVerifier",
    "DnsZoneClient",
    "DnsZoneError",
    "IssueLogWriter",
    "IssuedCertificate",
    "create_certificate_authority",
    "create_dns_verifier",
    "create_dns_zone_client",
]
