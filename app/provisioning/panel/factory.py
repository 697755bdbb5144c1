"""Panel session factory selection based on runtime settings."""

from __future__ import annotations

from dataclasses import dataclass

from app.config import AppSettings
from app.provisioning.panel.base import PanelSession, PanelSessionFactory
from app.provisioning.panel.vistapanel import VistaPanelSession


@dataclass(frozen=True, slots=True)
class VistaPanelSessionFactory:
    base_url: str
    theme: str
    timeout_seconds: float
    attempts: int

    def __call__(self, *, username: str, password: str) -> PanelSession:
        return VistaPanelSession.login(
            base_url=self.base_url,
            username=username,
            password=password,
            theme=self.theme,
            timeout_seconds=self.timeout_seconds,
            attempts=self.attempts,
        )


def create_panel_session_factory(settings: AppSettings) -> PanelSessionFactory:
    base_url = settings.panel_base_url.strip()
    if not base_url:
        raise ValueError("panel.base_url is required for panel operations")
    return VistaPanelSessionFactory(
        base_url=base_url,
        theme=settings.panel_theme,
        timeout_seconds=settings.panel_timeout_seconds,
        attempts=settings.panel_login_attempts,
    )
