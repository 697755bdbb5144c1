"""Terminal-transition notifications."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    HOSTING_ACTIVATED = "hosting.activated"
    HOSTING_REACTIVATED = "hosting.reactivated"
    HOSTING_SUSPENDED = "hosting.suspended"
    HOSTING_DELETED = "hosting.deleted"
    CERTIFICATE_ISSUED = "ssl.issued"
    CERTIFICATE_FAILED = "ssl.failed"
    CERTIFICATE_EXPIRED = "ssl.expired"
    CERTIFICATE_REVOKED = "ssl.revoked"


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    kind: NotificationKind
    user_id: uuid.UUID
    target_type: str
    target_id: uuid.UUID
    title: str
    details: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def emit(self, event: NotificationEvent) -> None:
        """Deliver the event; must not raise into lifecycle code."""


class LoggingNotificationDispatcher:
    """Hands events to the log stream for the delivery service to pick up."""

    def emit(self, event: NotificationEvent) -> None:
        target_field = "hosting_id" if event.target_type == "hosting" else "certificate_id"
        logger.info(
            event.title,
            extra={"operation": event.kind.value, target_field: str(event.target_id)},
        )
