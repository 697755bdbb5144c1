"""ACME DNS-01 certificate authority adapter."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime, timedelta
from pathlib import Path

import josepy as jose
import requests
from acme import challenges, messages
from acme import client as acme_client
from acme import errors as acme_errors
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from app.db.enums import SslProvider
from app.provisioning.certificates.base import (
    CertificateAuthorityError,
    CertificateAuthorityFatalError,
    CertificateAuthorityValidationError,
    ChallengeResponder,
    IssuedCertificate,
    IssueLogWriter,
)

logger = logging.getLogger(__name__)

ACME_DIRECTORIES: dict[tuple[SslProvider, bool], str] = {
    (SslProvider.LETS_ENCRYPT, False): "https://acme-v02.api.letsencrypt.org/directory",
    (SslProvider.LETS_ENCRYPT, True): "https://acme-staging-v02.api.letsencrypt.org/directory",
    (SslProvider.GOOGLE_TRUST, False): "https://dv.acme-v02.api.pki.goog/directory",
    (SslProvider.GOOGLE_TRUST, True): "https://dv.acme-v02.test-api.pki.goog/directory",
}
# ACME problem types that no amount of retrying will fix.
FATAL_ACME_ERROR_CODES = frozenset(
    {
        "rejectedIdentifier",
        "unsupportedIdentifier",
        "caa",
        "badCSR",
        "externalAccountRequired",
    }
)
DEFAULT_CERTIFICATE_LIFETIME = timedelta(days=90)
_PEM_BOUNDARY = re.compile(r"(?=-----BEGIN CERTIFICATE-----)")


def acme_directory_url(provider: SslProvider, *, use_staging: bool = False) -> str:
    return ACME_DIRECTORIES[(provider, use_staging)]


class AcmeCertificateAuthority:
    def __init__(
        self,
        *,
        email: str,
        account_key_path: str,
        use_staging: bool = False,
        google_eab_key_id: str = "",
        google_eab_hmac_key: str = "",
        validation_timeout_seconds: int = 180,
        user_agent: str = "hostpanel",
    ) -> None:
        self._email = email.strip()
        self._account_key_path = Path(account_key_path)
        self._use_staging = use_staging
        self._google_eab_key_id = google_eab_key_id.strip()
        self._google_eab_hmac_key = google_eab_hmac_key.strip()
        self._validation_timeout_seconds = validation_timeout_seconds
        self._user_agent = user_agent

    def issue_certificate(
        self,
        *,
        domain: str,
        provider: SslProvider,
        responder: ChallengeResponder,
        log: IssueLogWriter,
    ) -> IssuedCertificate:
        account_key = self._load_account_key()
        try:
            client = self._register(provider, account_key, log)

            log("Generating certificate private key and CSR...")
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
            csr_pem = _build_csr(domain, private_key)

            log("Creating order...")
            order = client.new_order(csr_pem)
            for authz in order.authorizations:
                identifier = authz.body.identifier.value
                challenge_body = _find_dns_challenge(authz)
                response, validation = challenge_body.response_and_validation(account_key)
                log(f"Publishing DNS-01 validation for {identifier}...")
                responder.present(domain=identifier, validation=validation)
                client.answer_challenge(challenge_body, response)
                log(f"Challenge completion requested for {identifier}")

            log("Waiting for challenge validation...")
            # acme compares the deadline against naive local time.
            deadline = datetime.now() + timedelta(seconds=self._validation_timeout_seconds)
            finalized = client.poll_and_finalize(order, deadline=deadline)
        except acme_errors.ValidationError as exc:
            raise CertificateAuthorityValidationError(_describe_failed_authorizations(exc)) from exc
        except acme_errors.TimeoutError as exc:
            raise CertificateAuthorityValidationError(
                "timed out waiting for the CA to validate the challenge"
            ) from exc
        except messages.Error as exc:
            raise _map_problem(exc) from exc
        except acme_errors.Error as exc:
            raise CertificateAuthorityError(f"acme request failed: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise CertificateAuthorityError(f"acme transport failed: {exc}") from exc

        log("Certificate downloaded")
        certificate_pem, ca_bundle_pem = split_certificate_chain(finalized.fullchain_pem)
        private_key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        return IssuedCertificate(
            certificate_pem=certificate_pem,
            private_key_pem=private_key_pem,
            ca_bundle_pem=ca_bundle_pem,
            expires_at=certificate_expiry(certificate_pem),
        )

    def revoke_certificate(self, *, certificate_pem: str, provider: SslProvider) -> None:
        account_key = self._load_account_key()
        try:
            certificate = x509.load_pem_x509_certificate(certificate_pem.encode("ascii"))
        except ValueError as exc:
            raise CertificateAuthorityFatalError("stored certificate is not valid PEM") from exc
        try:
            client = self._register(provider, account_key, logger.debug)
            client.revoke(certificate, 0)
        except messages.Error as exc:
            raise _map_problem(exc) from exc
        except acme_errors.Error as exc:
            raise CertificateAuthorityError(f"acme revoke failed: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise CertificateAuthorityError(f"acme transport failed: {exc}") from exc

    def _register(
        self,
        provider: SslProvider,
        account_key: jose.JWKRSA,
        log: IssueLogWriter,
    ) -> acme_client.ClientV2:
        directory_url = acme_directory_url(provider, use_staging=self._use_staging)
        log(f"Using ACME directory: {directory_url}")
        network = acme_client.ClientNetwork(account_key, user_agent=self._user_agent)
        directory = acme_client.ClientV2.get_directory(directory_url, network)
        client = acme_client.ClientV2(directory, network)

        registration_fields: dict[str, object] = {"terms_of_service_agreed": True}
        if self._email:
            registration_fields["email"] = self._email
        if provider is SslProvider.GOOGLE_TRUST:
            if not self._google_eab_key_id or not self._google_eab_hmac_key:
                raise CertificateAuthorityFatalError(
                    "Google Trust Services requires external account binding credentials"
                )
            log("Using external account binding")
            registration_fields["external_account_binding"] = (
                messages.ExternalAccountBinding.from_data(
                    account_public_key=account_key.public_key(),
                    kid=self._google_eab_key_id,
                    hmac_key=self._google_eab_hmac_key,
                    directory=directory,
                )
            )

        registration = messages.NewRegistration.from_data(**registration_fields)
        try:
            client.new_account(registration)
            log("ACME account registered")
        except acme_errors.ConflictError as exc:
            existing = messages.RegistrationResource(uri=exc.location, body=messages.Registration())
            client.query_registration(existing)
            log("Using existing ACME account")
        return client

    def _load_account_key(self) -> jose.JWKRSA:
        path = self._account_key_path
        try:
            if path.exists():
                return _read_account_key(path)
            return _create_account_key(path)
        except OSError as exc:
            raise CertificateAuthorityError(
                f"ACME account key at {path} is not accessible: {exc}"
            ) from exc


def _read_account_key(path: Path) -> jose.JWKRSA:
    try:
        key = serialization.load_pem_private_key(path.read_bytes(), password=None)
    except ValueError as exc:
        raise CertificateAuthorityFatalError(
            f"ACME account key at {path} is not a valid PEM private key"
        ) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertificateAuthorityFatalError(f"ACME account key at {path} is not RSA")
    return jose.JWKRSA(key=key)


def _create_account_key(path: Path) -> jose.JWKRSA:
    logger.info("generating acme account key", extra={"operation": "acme_account_key"})
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    path.chmod(0o600)
    return jose.JWKRSA(key=key)


def split_certificate_chain(fullchain_pem: str) -> tuple[str, str]:
    parts = [part for part in _PEM_BOUNDARY.split(fullchain_pem) if part.strip()]
    if not parts:
        raise CertificateAuthorityError("CA returned an empty certificate chain")
    return parts[0], "".join(parts[1:])


def certificate_expiry(certificate_pem: str) -> datetime:
    try:
        leaf = x509.load_pem_x509_certificate(certificate_pem.encode("ascii"))
    except ValueError:
        logger.warning("could not parse issued certificate; assuming default lifetime")
        return datetime.now(UTC) + DEFAULT_CERTIFICATE_LIFETIME
    return leaf.not_valid_after_utc


def _build_csr(domain: str, private_key: rsa.RSAPrivateKey) -> bytes:
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)]))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .sign(private_key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM)


def _find_dns_challenge(authz: messages.AuthorizationResource) -> messages.ChallengeBody:
    for challenge_body in authz.body.challenges:
        if isinstance(challenge_body.chall, challenges.DNS01):
            return challenge_body
    raise CertificateAuthorityFatalError(
        f"CA offered no DNS-01 challenge for {authz.body.identifier.value}"
    )


def _describe_failed_authorizations(exc: acme_errors.ValidationError) -> str:
    messages_by_identifier: list[str] = []
    for authzr in exc.failed_authzrs:
        for challenge_body in authzr.body.challenges:
            error = challenge_body.error
            if error is not None:
                messages_by_identifier.append(
                    f"{authzr.body.identifier.value}: {error.detail or error.typ}"
                )
    if not messages_by_identifier:
        return "CA could not validate the DNS-01 challenge"
    return "; ".join(messages_by_identifier)


def _map_problem(problem: messages.Error) -> CertificateAuthorityError:
    detail = problem.detail or problem.typ
    if problem.code in FATAL_ACME_ERROR_CODES:
        return CertificateAuthorityFatalError(detail)
    return CertificateAuthorityError(detail)
