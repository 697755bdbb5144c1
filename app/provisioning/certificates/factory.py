"""Certificate collaborators built from runtime settings."""

from __future__ import annotations

from app.config import AppSettings
from app.provisioning.certificates.acme_client import AcmeCertificateAuthority
from app.provisioning.certificates.base import (
    CertificateAuthorityClient,
    DnsVerifier,
    DnsZoneClient,
)
from app.provisioning.certificates.cloudflare import CloudflareDnsZoneClient
from app.provisioning.certificates.dns_lookup import PublicDnsVerifier


def create_certificate_authority(settings: AppSettings) -> CertificateAuthorityClient:
    return AcmeCertificateAuthority(
        email=settings.acme_email,
        account_key_path=settings.acme_account_key_path,
        use_staging=settings.acme_use_staging,
        google_eab_key_id=settings.google_eab_key_id,
        google_eab_hmac_key=settings.google_eab_hmac_key,
    )


def create_dns_verifier(settings: AppSettings) -> DnsVerifier:
    return PublicDnsVerifier(nameservers=settings.ssl_dns_resolvers)


def create_dns_zone_client(settings: AppSettings) -> DnsZoneClient:
    api_token = settings.cloudflare_api_token.strip()
    if not api_token:
        raise ValueError("CLOUDFLARE_API_TOKEN is required for subdomain certificates")
    return CloudflareDnsZoneClient(
        base_url=settings.cloudflare_base_url,
        api_token=api_token,
        zone_id=settings.cloudflare_zone_id,
    )
