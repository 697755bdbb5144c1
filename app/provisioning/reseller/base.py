"""Reseller account API interface and normalized results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class RemoteAccountState(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    MISSING = "missing"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class CreatedAccount:
    vp_username: str
    status_message: str


@dataclass(frozen=True, slots=True)
class RemoteAccountStatus:
    state: RemoteAccountState
    raw_status: str | None = None
    domain: str | None = None


class ResellerApi(Protocol):
    provider_name: str

    def create_account(
        self,
        *,
        username: str,
        password: str,
        domain: str,
        contact_email: str,
        package: str,
    ) -> CreatedAccount:
        """Create the remote hosting account and return its panel username."""

    def suspend_account(self, *, username: str, reason: str) -> None:
        """Request remote suspension; completion is observed via account status."""

    def unsuspend_account(self, *, username: str) -> None:
        """Request remote reactivation; completion is observed via account status."""

    def get_account_status(self, *, vp_username: str) -> RemoteAccountStatus:
        """Return the remote state of the account."""


class ResellerApiError(Exception):
    """Base reseller API exception."""

    error_code = "reseller_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResellerAuthError(ResellerApiError):
    error_code = "reseller_auth_error"


class ResellerRequestError(ResellerApiError):
    error_code = "reseller_request_error"


class ResellerRejectedError(ResellerApiError):
    error_code = "reseller_rejected"
