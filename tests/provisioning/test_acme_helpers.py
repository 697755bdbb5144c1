from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from acme import messages
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from app.db.enums import SslProvider
from app.provisioning.certificates import (
    CertificateAuthorityError,
    CertificateAuthorityFatalError,
    create_certificate_authority,
)
from app.provisioning.certificates.acme_client import (
    DEFAULT_CERTIFICATE_LIFETIME,
    AcmeCertificateAuthority,
    _map_problem,
    acme_directory_url,
    certificate_expiry,
    split_certificate_chain,
)

from fakes import build_settings


def _self_signed_pem(*, common_name: str, not_after: datetime) -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=90))
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


def test_split_certificate_chain_separates_leaf_and_bundle() -> None:
    not_after = datetime(2027, 1, 1, tzinfo=UTC)
    leaf = _self_signed_pem(common_name="shop.example.com", not_after=not_after)
    intermediate = _self_signed_pem(common_name="Intermediate", not_after=not_after)
    root = _self_signed_pem(common_name="Root", not_after=not_after)

    certificate_pem, ca_bundle_pem = split_certificate_chain(leaf + intermediate + root)

    assert certificate_pem == leaf
    assert ca_bundle_pem == intermediate + root


def test_split_certificate_chain_without_intermediates() -> None:
    leaf = _self_signed_pem(
        common_name="shop.example.com",
        not_after=datetime(2027, 1, 1, tzinfo=UTC),
    )

    assert split_certificate_chain(leaf) == (leaf, "")


def test_split_certificate_chain_rejects_empty_chain() -> None:
    with pytest.raises(CertificateAuthorityError, match="empty certificate chain"):
        split_certificate_chain("   \n")


def test_certificate_expiry_reads_not_after() -> None:
    not_after = datetime(2027, 3, 4, 5, 6, 7, tzinfo=UTC)
    pem = _self_signed_pem(common_name="shop.example.com", not_after=not_after)

    assert certificate_expiry(pem) == not_after


def test_certificate_expiry_falls_back_for_unparseable_pem() -> None:
    before = datetime.now(UTC)

    expiry = certificate_expiry("-----BEGIN CERTIFICATE-----\ngarbage\n-----END CERTIFICATE-----\n")

    assert before + DEFAULT_CERTIFICATE_LIFETIME <= expiry
    assert expiry <= datetime.now(UTC) + DEFAULT_CERTIFICATE_LIFETIME


@pytest.mark.parametrize(
    ("provider", "use_staging", "expected"),
    [
        (
            SslProvider.LETS_ENCRYPT,
            False,
            "https://acme-v02.api.letsencrypt.org/directory",
        ),
        (
            SslProvider.LETS_ENCRYPT,
            True,
            "https://acme-staging-v02.api.letsencrypt.org/directory",
        ),
        (SslProvider.GOOGLE_TRUST, False, "https://dv.acme-v02.api.pki.goog/directory"),
        (SslProvider.GOOGLE_TRUST, True, "https://dv.acme-v02.test-api.pki.goog/directory"),
    ],
)
def test_acme_directory_url(provider: SslProvider, use_staging: bool, expected: str) -> None:
    assert acme_directory_url(provider, use_staging=use_staging) == expected


def test_problem_codes_map_to_fatal_or_retryable_errors() -> None:
    fatal = _map_problem(messages.Error.with_code("caa", detail="CAA record forbids issuance"))
    retryable = _map_problem(messages.Error.with_code("rateLimited", detail="too many orders"))

    assert isinstance(fatal, CertificateAuthorityFatalError)
    assert str(fatal) == "CAA record forbids issuance"
    assert not isinstance(retryable, CertificateAuthorityFatalError)
    assert isinstance(retryable, CertificateAuthorityError)


def test_revoke_rejects_invalid_stored_certificate(tmp_path: Path) -> None:
    key_path = tmp_path / "acme" / "account.pem"
    authority = AcmeCertificateAuthority(email="ops@example.net", account_key_path=str(key_path))

    with pytest.raises(CertificateAuthorityFatalError, match="not valid PEM"):
        authority.revoke_certificate(
            certificate_pem="not a certificate",
            provider=SslProvider.LETS_ENCRYPT,
        )

    # The account key is generated on first use and kept private.
    assert key_path.exists()
    assert key_path.stat().st_mode & 0o777 == 0o600


def test_unreadable_account_key_location_is_a_ca_error(tmp_path: Path) -> None:
    blocker = tmp_path / "acme"
    blocker.write_text("not a directory", encoding="utf-8")
    authority = AcmeCertificateAuthority(
        email="ops@example.net",
        account_key_path=str(blocker / "account.pem"),
    )

    with pytest.raises(CertificateAuthorityError, match="not accessible") as exc_info:
        authority.revoke_certificate(
            certificate_pem=_self_signed_pem(
                common_name="shop.example.com",
                not_after=datetime.now(UTC) + timedelta(days=30),
            ),
            provider=SslProvider.LETS_ENCRYPT,
        )

    assert not isinstance(exc_info.value, CertificateAuthorityFatalError)


def test_corrupt_account_key_is_fatal(tmp_path: Path) -> None:
    key_path = tmp_path / "account.pem"
    key_path.write_text("garbage", encoding="utf-8")
    authority = AcmeCertificateAuthority(email="ops@example.net", account_key_path=str(key_path))

    with pytest.raises(CertificateAuthorityFatalError, match="not a valid PEM private key"):
        authority.revoke_certificate(
            certificate_pem="not a certificate",
            provider=SslProvider.LETS_ENCRYPT,
        )


def test_factory_builds_acme_authority() -> None:
    authority = create_certificate_authority(build_settings(acme_email="ops@example.net"))

    assert isinstance(authority, AcmeCertificateAuthority)
