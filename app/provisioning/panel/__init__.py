"""Hosting control panel sessions."""

from app.provisioning.panel.base import (
    PanelAccountSuspendedError,
    PanelAuthError,
    PanelOperationError,
    PanelRequestError,
    PanelSession,
    PanelSessionError,
    PanelSessionFactory,
    open_panel_session,
)
from app.provisioning.panel.factory import create_panel_session_factory

__all__ = [
    "PanelAccountSuspendedError",
    "PanelAuthError",
    "PanelOperationError",
    "PanelRequestError",
    "PanelSession",
    "PanelSessionError",
    "PanelSessionFactory",
    "create_panel_session_factory",
    "open_panel_session",
]
