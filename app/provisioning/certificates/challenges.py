"""DNS-01 challenge responders for custom and delegated subdomain certificates."""

from __future__ import annotations

import logging
from collections.abc import Callable

from app.provisioning.certificates.base import (
    ChallengeNotReadyError,
    DnsVerifier,
    DnsZoneClient,
    DnsZoneError,
    IssueLogWriter,
)

logger = logging.getLogger(__name__)

RecordChangedCallback = Callable[[str, str | None], None]


def challenge_record_name(domain: str) -> str:
    return f"_acme-challenge.{domain}"


def delegated_record_name(domain: str, *, service_domain: str, intermediate_domain: str) -> str:
    """Name on the intermediate zone that the subdomain's challenge CNAME points at."""
    lowered = domain.lower()
    suffix = f".{service_domain.lower()}"
    prefix = lowered[: -len(suffix)] if lowered.endswith(suffix) else lowered
    return f"_acme-challenge.{prefix}.{intermediate_domain}"


class CustomDomainResponder:
    """The domain owner publishes the value; we can only check that it is visible."""

    def __init__(
        self,
        *,
        verifier: DnsVerifier,
        on_value_changed: RecordChangedCallback,
        log: IssueLogWriter,
    ) -> None:
        self._verifier = verifier
        self._on_value_changed = on_value_changed
        self._log = log

    def present(self, *, domain: str, validation: str) -> None:
        name = challenge_record_name(domain)
        if validation in self._verifier.txt_values(name):
            self._log(f"TXT record {name} carries the CA validation value")
            return
        self._on_value_changed(validation, None)
        self._log(f"TXT record {name} must be updated to the CA validation value")
        raise ChallengeNotReadyError(
            f"publish TXT {name} with value {validation} and retry issuance"
        )


class DelegatedSubdomainResponder:
    """Publishes the value on the intermediate zone the subdomain CNAME points at."""

    def __init__(
        self,
        *,
        zone_client: DnsZoneClient,
        verifier: DnsVerifier,
        record_name: str,
        current_value: str,
        current_record_ref: str | None,
        on_record_changed: RecordChangedCallback,
        log: IssueLogWriter,
    ) -> None:
        self._zone_client = zone_client
        self._verifier = verifier
        self._record_name = record_name
        self._current_value = current_value
        self._current_record_ref = current_record_ref
        self._on_record_changed = on_record_changed
        self._log = log

    def present(self, *, domain: str, validation: str) -> None:
        if validation != self._current_value or not self._current_record_ref:
            self._replace_record(validation)

        if validation not in self._verifier.txt_values(self._record_name):
            self._log(f"Waiting for {self._record_name} to propagate")
            raise ChallengeNotReadyError(
                f"TXT {self._record_name} is not visible yet for {domain}"
            )
        self._log(f"TXT record {self._record_name} is visible")

    def _replace_record(self, validation: str) -> None:
        if self._current_record_ref:
            try:
                self._zone_client.delete_record(self._current_record_ref)
                self._log("Deleted previous challenge record")
            except DnsZoneError as exc:
                logger.warning(
                    "failed to delete previous challenge record",
                    extra={"domain": self._record_name, "remote_error": str(exc)},
                )
        record_ref = self._zone_client.create_txt_record(
            name=self._record_name,
            content=validation,
        )
        self._log(f"Published TXT record {self._record_name}")
        self._current_value = validation
        self._current_record_ref = record_ref
        self._on_record_changed(validation, record_ref)
