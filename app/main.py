from __future__ import annotations

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from app.config import AppSettings, get_settings
from app.db.session import SessionLocal
from app.logging_config import configure_logging
from app.notifications import LoggingNotificationDispatcher
from app.provisioning.certificates import (
    DnsZoneClient,
    create_certificate_authority,
    create_dns_verifier,
    create_dns_zone_client,
)
from app.provisioning.issue_log import create_issue_log_buffer
from app.provisioning.panel import create_panel_session_factory
from app.routes.auth import router as auth_router
from app.routes.hostings import router as hostings_router
from app.routes.ssl import router as ssl_router


def create_app(settings: AppSettings | None = None) -> FastAPI:
    app_settings = settings or get_settings()
    configure_logging(app_settings.log_level, app_settings.log_format)

    app = FastAPI(title="Hostpanel Provisioning", version="0.1.0")
    app.state.settings = app_settings
    app.state.session_maker = SessionLocal
    app.state.panel_sessions = create_panel_session_factory(app_settings)
    app.state.ca_client = create_certificate_authority(app_settings)
    app.state.dns_verifier = create_dns_verifier(app_settings)
    app.state.dns_zone = _optional_dns_zone(app_settings)
    app.state.issue_log = create_issue_log_buffer(app_settings)
    app.state.notifier = LoggingNotificationDispatcher()

    app.add_middleware(
        SessionMiddleware,
        secret_key=app_settings.app_secret_key,
        session_cookie=app_settings.session_cookie_name,
        max_age=app_settings.session_cookie_max_age_seconds,
        same_site="lax",
        https_only=app_settings.session_cookie_secure,
    )

    app.include_router(auth_router)
    app.include_router(hostings_router)
    app.include_router(ssl_router)

    @app.get("/", tags=["system"], name="root")
    async def root() -> dict[str, str]:
        return {"service": "hostpanel", "status": "ok"}

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


def _optional_dns_zone(settings: AppSettings) -> DnsZoneClient | None:
    if not settings.cloudflare_api_token.strip():
        return None
    return create_dns_zone_client(settings)


app = create_app()
