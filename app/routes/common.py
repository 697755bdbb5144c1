"""Response envelopes and actor resolution shared by the API routers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from app.dependencies import SessionActor, get_admin_session_actor, get_session_actor
from app.provisioning.errors import ProvisioningError


def require_api_actor(
    request: Request,
    *,
    require_admin: bool = False,
) -> tuple[SessionActor | None, JSONResponse | None]:
    try:
        actor = get_session_actor(request)
        if require_admin:
            actor = get_admin_session_actor(actor)
    except HTTPException as exc:
        if exc.status_code == 401:
            return None, error_response(
                status_code=401,
                code="UNAUTHENTICATED",
                message="Authentication required.",
            )
        if exc.status_code == 403:
            return None, error_response(
                status_code=403,
                code="FORBIDDEN",
                message="Admin role required.",
            )
        return None, error_response(
            status_code=exc.status_code,
            code="REQUEST_REJECTED",
            message=str(exc.detail),
        )
    return actor, None


def success_response(data: dict[str, Any], *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"data": data})


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "errorCode": code,
            "details": details or {},
        },
    )


def operation_error_response(exc: ProvisioningError) -> JSONResponse:
    return error_response(
        status_code=exc.status_code,
        code=exc.error_code,
        message=str(exc),
        details=exc.details,
    )


def iso_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
