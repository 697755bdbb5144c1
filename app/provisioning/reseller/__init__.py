"""Reseller account API."""

from app.provisioning.reseller.base import (
    CreatedAccount,
    RemoteAccountState,
    RemoteAccountStatus,
    ResellerApi,
    ResellerApiError,
    ResellerAuthError,
    ResellerRejectedError,
    ResellerRequestError,
)
from app.provisioning.reseller.factory import create_reseller_api

__all__ = [
    "CreatedAccount",
    "RemoteAccountState",
    "RemoteAccountStatus",
    "ResellerApi",
    "ResellerApiError",
    "ResellerAuthError",
    "ResellerRejectedError",
    "ResellerRequestError",
    "create_reseller_api",
]
