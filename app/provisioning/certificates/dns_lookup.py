"""DNS lookups used to verify ACME challenge records."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import dns.exception
import dns.resolver

from app.provisioning.certificates.base import DnsLookupError, DnsVerifier

logger = logging.getLogger(__name__)


class PublicDnsVerifier:
    """Resolves against fixed public nameservers to bypass local caches."""

    def __init__(self, *, nameservers: Sequence[str], timeout_seconds: float = 5.0) -> None:
        if not nameservers:
            raise ValueError("at least one nameserver is required")
        self._resolver = dns.resolver.Resolver(configure=False)
        self._resolver.nameservers = list(nameservers)
        self._resolver.lifetime = timeout_seconds

    def txt_values(self, name: str) -> list[str]:
        answer = self._resolve(name, "TXT")
        if answer is None:
            return []
        values: list[str] = []
        for rdata in answer:
            values.append(b"".join(rdata.strings).decode("utf-8", errors="replace"))
        return values

    def cname_target(self, name: str) -> str | None:
        answer = self._resolve(name, "CNAME")
        if answer is None:
            return None
        for rdata in answer:
            return str(rdata.target).rstrip(".").lower()
        return None

    def _resolve(self, name: str, record_type: str) -> dns.resolver.Answer | None:
        try:
            return self._resolver.resolve(name, record_type)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return None
        except (dns.resolver.NoNameservers, dns.exception.Timeout) as exc:
            logger.warning(
                "dns lookup failed",
                extra={"domain": name, "remote_error": str(exc)},
            )
            raise DnsLookupError(f"dns lookup for {record_type} {name} failed: {exc}") from exc


def txt_record_matches(verifier: DnsVerifier, name: str, expected: str) -> bool:
    return expected in verifier.txt_values(name)
