"""Authentication API routes."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.auth import normalize_login_username, verify_password
from app.config import AppSettings
from app.db.models import AppUser
from app.dependencies import get_app_settings, get_db_session
from app.repositories.audit_events import AuditEventRepository
from app.repositories.users import LocalCredentialRepository, UserRepository
from app.routes.common import error_response, require_api_actor, success_response

router = APIRouter(tags=["auth"])
SettingsDep = Annotated[AppSettings, Depends(get_app_settings)]
DbSessionDep = Annotated[Session, Depends(get_db_session)]


class LocalLoginPayload(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def _normalize_username(cls, value: str) -> str:
        return normalize_login_username(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError("password is required")
        return value


@router.post("/api/v1/auth/local/login")
def api_auth_local_login(
    request: Request,
    payload: LocalLoginPayload,
    settings: SettingsDep,
    db_session: DbSessionDep,
) -> JSONResponse:
    audit_repo = AuditEventRepository(db_session)
    if not settings.local_auth_enabled:
        _audit_local_login_failure(
            audit_repo,
            login_username=payload.username,
            failure_code="local_auth_disabled",
        )
        db_session.commit()
        return error_response(
            status_code=403,
            code="LOCAL_AUTH_DISABLED",
            message="Local login is disabled in this deployment.",
        )

    credential_repo = LocalCredentialRepository(db_session)
    credential = credential_repo.get_by_login_username(payload.username)

    if credential is None:
        _audit_local_login_failure(
            audit_repo,
            login_username=payload.username,
            failure_code="invalid_credentials",
        )
        db_session.commit()
        return error_response(
            status_code=401,
            code="INVALID_CREDENTIALS",
            message="Invalid username or password.",
        )

    if not credential.is_enabled:
        _audit_local_login_failure(
            audit_repo,
            actor_user_id=credential.user_id,
            login_username=credential.login_username,
            failure_code="credential_disabled",
        )
        db_session.commit()
        return error_response(
            status_code=403,
            code="CREDENTIAL_DISABLED",
            message="This local account is disabled. Contact support.",
        )

    if not verify_password(password=payload.password, encoded_hash=credential.password_hash):
        _audit_local_login_failure(
            audit_repo,
            actor_user_id=credential.user_id,
            login_username=credential.login_username,
            failure_code="invalid_credentials",
        )
        db_session.commit()
        return error_response(
            status_code=401,
            code="INVALID_CREDENTIALS",
            message="Invalid username or password.",
        )

    user = credential.user
    credential_repo.touch_last_login(credential)
    request.session.clear()
    request.session.update(
        {
            "user_id": str(user.id),
            "is_admin": user.is_admin,
            "authenticated_at": datetime.now(UTC).isoformat(),
        }
    )

    audit_repo.create_event(
        action="auth.local_login.succeeded",
        target_type="app_user",
        target_id=str(user.id),
        actor_user_id=user.id,
        metadata={"login_username": credential.login_username},
    )
    db_session.commit()
    return success_response({"user": _serialize_user(user)})


@router.post("/api/v1/auth/logout")
def api_auth_logout(
    request: Request,
    db_session: DbSessionDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    request.session.clear()
    AuditEventRepository(db_session).create_event(
        action="auth.logout",
        target_type="auth_session",
        target_id=str(actor.user_id),
        actor_user_id=actor.user_id,
    )
    db_session.commit()
    return success_response({"logged_out": True})


@router.get("/api/v1/me")
def api_me(
    request: Request,
    db_session: DbSessionDep,
) -> JSONResponse:
    actor, auth_error = require_api_actor(request)
    if auth_error is not None:
        return auth_error
    assert actor is not None

    user = UserRepository(db_session).get_by_id(actor.user_id)
    if user is None:
        return error_response(
            status_code=401,
            code="UNAUTHENTICATED",
            message="Authentication required.",
        )
    return success_response({"user": _serialize_user(user)})


def _audit_local_login_failure(
    audit_repo: AuditEventRepository,
    *,
    login_username: str,
    failure_code: str,
    actor_user_id: uuid.UUID | None = None,
) -> None:
    audit_repo.create_event(
        action="auth.local_login.failed",
        target_type="local_login",
        target_id=login_username,
        actor_user_id=actor_user_id,
        metadata={
            "code": failure_code,
            "login_username": login_username,
        },
    )


def _serialize_user(user: AppUser) -> dict[str, Any]:
    return {
        "id": str(user.id),
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
        "is_admin": user.is_admin,
    }
