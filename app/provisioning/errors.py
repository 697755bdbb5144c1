"""Structured operation errors surfaced to API callers."""

from __future__ import annotations

from typing import Any


class ProvisioningError(Exception):
    error_code = "PROVISIONING_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}


class NotFoundError(ProvisioningError):
    error_code = "NOT_FOUND"
    status_code = 404


class ValidationError(ProvisioningError):
    error_code = "VALIDATION_ERROR"
    status_code = 400


class ConflictError(ProvisioningError):
    error_code = "CONFLICT"
    status_code = 409


class ForbiddenError(ProvisioningError):
    error_code = "FORBIDDEN"
    status_code = 403


class RemoteOperationError(ProvisioningError):
    error_code = "REMOTE_ERROR"
    status_code = 502
