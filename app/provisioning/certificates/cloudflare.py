"""Cloudflare DNS zone client for delegated challenge records."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from app.provisioning.certificates.base import DnsZoneError

logger = logging.getLogger(__name__)

HTTPClientFactory = Callable[..., httpx.Client]


class CloudflareDnsZoneClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_token: str,
        zone_id: str = "",
        timeout_seconds: float = 15.0,
        http_client_factory: HTTPClientFactory = httpx.Client,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._zone_id = zone_id.strip()
        self._timeout_seconds = timeout_seconds
        self._http_client_factory = http_client_factory

    def create_txt_record(self, *, name: str, content: str) -> str:
        zone_id = self._zone_id or self._lookup_zone_id(name)
        body = self._call(
            "POST",
            f"/zones/{zone_id}/dns_records",
            json_body={"type": "TXT", "name": name, "content": content, "ttl": 1},
            operation="create dns record",
        )
        result = body.get("result")
        record_id = result.get("id") if isinstance(result, dict) else None
        if not isinstance(record_id, str) or not record_id:
            raise DnsZoneError(f"cloudflare did not return a record id for name={name}")
        logger.info("dns challenge record created", extra={"domain": name})
        return f"{zone_id}:{record_id}"

    def delete_record(self, record_ref: str) -> None:
        zone_id, _, record_id = record_ref.partition(":")
        if not zone_id or not record_id:
            raise DnsZoneError(f"invalid dns record reference: {record_ref!r}")
        self._call(
            "DELETE",
            f"/zones/{zone_id}/dns_records/{record_id}",
            operation="delete dns record",
            missing_ok=True,
        )

    def _lookup_zone_id(self, name: str) -> str:
        root_domain = ".".join(name.rstrip(".").split(".")[-2:])
        body = self._call(
            "GET",
            "/zones",
            params={"name": root_domain},
            operation="lookup zone",
        )
        zones = body.get("result")
        if not isinstance(zones, list) or not zones or not isinstance(zones[0], dict):
            raise DnsZoneError(f"cloudflare zone not found for domain={root_domain}")
        return str(zones[0]["id"])

    def _call(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        missing_ok: bool = False,
    ) -> dict[str, Any]:
        with self._http_client_factory(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_token}"},
            timeout=self._timeout_seconds,
        ) as client:
            try:
                response = client.request(method, path, json=json_body, params=params)
            except httpx.HTTPError as exc:
                raise DnsZoneError(f"cloudflare {operation} failed: {exc}") from exc

        if missing_ok and response.status_code == 404:
            return {}
        if response.status_code >= 400:
            detail = f"cloudflare {operation} failed; status={response.status_code}"
            response_text = response.text.strip()
            if response_text:
                detail = f"{detail}; body={response_text[:240]}"
            raise DnsZoneError(detail, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise DnsZoneError(f"cloudflare {operation} returned invalid JSON") from exc
        if not isinstance(body, dict) or body.get("success") is False:
            raise DnsZoneError(f"cloudflare {operation} was not successful")
        return body
