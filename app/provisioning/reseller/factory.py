"""Reseller API selection based on runtime settings."""

from __future__ import annotations

from app.config import AppSettings
from app.provisioning.reseller.base import ResellerApi
from app.provisioning.reseller.mofh import MofhResellerApi


def create_reseller_api(settings: AppSettings) -> ResellerApi:
    username = settings.reseller_api_username.strip()
    password = settings.reseller_api_password.strip()
    if not username or not password:
        raise ValueError(
            "reseller.api_username and RESELLER_API_PASSWORD are required for hosting provisioning"
        )
    base_url = settings.reseller_base_url.strip()
    if not base_url:
        raise ValueError("reseller.base_url is required for hosting provisioning")
    return MofhResellerApi(
        base_url=base_url,
        api_username=username,
        api_password=password,
        timeout_seconds=settings.reseller_timeout_seconds,
    )
