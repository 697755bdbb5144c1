"""MyOwnFreeHost reseller API adapter."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from app.provisioning.reseller.base import (
    CreatedAccount,
    RemoteAccountState,
    RemoteAccountStatus,
    ResellerAuthError,
    ResellerRejectedError,
    ResellerRequestError,
)

logger = logging.getLogger(__name__)

HTTPClientFactory = Callable[..., httpx.Client]

# getuserdomains reports a suspended account with the status "x".
_SUSPENDED_MARKERS = frozenset({"x", "suspended"})


class MofhResellerApi:
    provider_name = "mofh"

    def __init__(
        self,
        *,
        base_url: str,
        api_username: str,
        api_password: str,
        timeout_seconds: float = 30.0,
        http_client_factory: HTTPClientFactory = httpx.Client,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_username = api_username
        self._api_password = api_password
        self._timeout_seconds = timeout_seconds
        self._http_client_factory = http_client_factory

    def create_account(
        self,
        *,
        username: str,
        password: str,
        domain: str,
        contact_email: str,
        package: str,
    ) -> CreatedAccount:
        result = self._json_call(
            "createacct.php",
            {
                "username": username,
                "password": password,
                "contactemail": contact_email,
                "domain": domain,
                "plan": package,
            },
            operation="create account",
        )
        options = result.get("options")
        vp_username = options.get("vpusername") if isinstance(options, dict) else None
        if not isinstance(vp_username, str) or not vp_username.strip():
            raise ResellerRequestError(
                f"reseller create account response is missing vpusername for domain={domain}"
            )
        return CreatedAccount(
            vp_username=vp_username.strip(),
            status_message=str(result.get("statusmsg", "")),
        )

    def suspend_account(self, *, username: str, reason: str) -> None:
        self._json_call(
            "suspendacct.php",
            {"user": username, "reason": reason},
            operation="suspend account",
        )

    def unsuspend_account(self, *, username: str) -> None:
        self._json_call(
            "unsuspendacct.php",
            {"user": username},
            operation="unsuspend account",
        )

    def get_account_status(self, *, vp_username: str) -> RemoteAccountStatus:
        response = self._request(
            "/xml-api/getuserdomains.php",
            {
                "api_user": self._api_username,
                "api_key": self._api_password,
                "username": vp_username,
            },
        )
        self._raise_for_status(response, default_message="failed to read reseller account status")

        try:
            payload: Any = response.json()
        except ValueError:
            payload = None

        if not isinstance(payload, list) or not payload:
            return RemoteAccountStatus(state=RemoteAccountState.MISSING)

        first = payload[0]
        if not isinstance(first, list) or not first:
            return RemoteAccountStatus(state=RemoteAccountState.OTHER)

        raw_status = str(first[0])
        domain = str(first[1]) if len(first) > 1 else None
        normalized = raw_status.strip().lower()
        if normalized == "active":
            state = RemoteAccountState.ACTIVE
        elif normalized in _SUSPENDED_MARKERS:
            state = RemoteAccountState.SUSPENDED
        else:
            state = RemoteAccountState.OTHER
        return RemoteAccountStatus(state=state, raw_status=raw_status, domain=domain)

    def _json_call(
        self,
        endpoint: str,
        data: dict[str, str],
        *,
        operation: str,
    ) -> dict[str, Any]:
        response = self._request(f"/json-api/{endpoint}", data)
        self._raise_for_status(response, default_message=f"reseller {operation} failed")

        try:
            body = response.json()
        except ValueError as exc:
            raise ResellerRequestError(
                f"reseller {operation} response was not valid JSON "
                f"(status={response.status_code})",
                status_code=response.status_code,
            ) from exc

        results = body.get("result") if isinstance(body, dict) else None
        result = results[0] if isinstance(results, list) and results else None
        if not isinstance(result, dict):
            raise ResellerRequestError(
                f"reseller {operation} response has no result entry",
                status_code=response.status_code,
            )
        if result.get("status") != 1:
            message = str(result.get("statusmsg") or f"reseller {operation} was rejected")
            logger.warning(
                "reseller call rejected",
                extra={"operation": operation, "remote_error": message},
            )
            raise ResellerRejectedError(message, status_code=response.status_code)
        return result

    def _request(self, path: str, data: dict[str, str]) -> httpx.Response:
        with self._http_client_factory(
            base_url=self._base_url,
            auth=(self._api_username, self._api_password),
            timeout=self._timeout_seconds,
        ) as client:
            try:
                return client.post(path, data=data)
            except httpx.HTTPError as exc:
                raise ResellerRequestError(f"reseller request failed: {exc}") from exc

    def _raise_for_status(self, response: httpx.Response, *, default_message: str) -> None:
        if response.status_code < 400:
            return

        status_code = response.status_code
        if status_code in {401, 403}:
            raise ResellerAuthError(
                f"reseller authentication failed with status={status_code}",
                status_code=status_code,
            )

        response_text = response.text.strip()
        detail = f"{default_message}; status={status_code}"
        if response_text:
            detail = f"{detail}; body={response_text[:240]}"
        raise ResellerRequestError(detail, status_code=status_code)
