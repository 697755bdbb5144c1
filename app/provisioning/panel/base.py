"""Panel session capability interface and scoped acquisition."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

logger = logging.getLogger(__name__)


class PanelSession(Protocol):
    """An authenticated session against the hosting control panel.

    Sessions are short-lived: open one per logical operation, run a bounded
    sequence of calls, then close it.
    """

    username: str

    def close(self) -> None:
        """Log out and release the underlying connection."""

    def list_databases(self) -> list[str]:
        """Return database names without the account prefix."""

    def create_database(self, name: str) -> None: ...

    def delete_database(self, name: str) -> None: ...

    def create_cname_record(self, *, source: str, domain: str, destination: str) -> None: ...

    def delete_cname_record(self, source: str) -> None: ...

    def upload_private_key(self, *, domain: str, private_key_pem: str, csr_pem: str = "") -> None:
        ...

    def upload_certificate(
        self,
        *,
        domain: str,
        certificate_pem: str,
        ca_bundle_pem: str | None = None,
    ) -> None: ...

    def delete_certificate(self, *, domain: str) -> None: ...

    def get_user_stats(self) -> dict[str, str]: ...


class PanelSessionFactory(Protocol):
    def __call__(self, *, username: str, password: str) -> PanelSession:
        """Authenticate and return an open session."""


class PanelSessionError(Exception):
    """Base panel session exception."""

    error_code = "panel_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PanelAuthError(PanelSessionError):
    error_code = "panel_auth_error"


class PanelAccountSuspendedError(PanelSessionError):
    error_code = "panel_account_suspended"


class PanelRequestError(PanelSessionError):
    error_code = "panel_request_error"


class PanelOperationError(PanelSessionError):
    error_code = "panel_operation_error"


@contextmanager
def open_panel_session(
    factory: PanelSessionFactory,
    *,
    username: str,
    password: str,
    operation: str,
) -> Iterator[PanelSession]:
    session = factory(username=username, password=password)
    try:
        yield session
    finally:
        try:
            session.close()
        except PanelSessionError as exc:
            logger.warning(
                "panel session close failed",
                extra={
                    "operation": operation,
                    "vp_username": username,
                    "error_code": exc.error_code,
                    "remote_error": str(exc),
                },
            )
