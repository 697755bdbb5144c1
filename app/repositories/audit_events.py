"""Repositories for audit events."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import AuditEvent


class AuditEventRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_event(
        self,
        *,
        action: str,
        target_type: str,
        target_id: str,
        actor_user_id: uuid.UUID | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditEvent:
        event = AuditEvent(
            actor_user_id=actor_user_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            event_metadata=dict(metadata or {}),
        )
        self._session.add(event)
        self._session.flush()
        return event

    def record_status_change(
        self,
        *,
        target_type: str,
        target_id: uuid.UUID,
        old_status: StrEnum,
        new_status: StrEnum,
        actor_user_id: uuid.UUID | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditEvent:
        audit_metadata: dict[str, Any] = {
            "from_status": old_status.value,
            "to_status": new_status.value,
        }
        if metadata:
            audit_metadata.update(metadata)
        return self.create_event(
            action=f"{target_type}.status.changed",
            target_type=target_type,
            target_id=str(target_id),
            actor_user_id=actor_user_id,
            metadata=audit_metadata,
        )

    def list_for_target(self, *, target_type: str, target_id: str) -> list[AuditEvent]:
        statement = (
            select(AuditEvent)
            .where(AuditEvent.target_type == target_type, AuditEvent.target_id == target_id)
            .order_by(AuditEvent.created_at.asc())
        )
        return list(self._session.execute(statement).scalars())

    def list_actions_for_target(self, *, target_type: str, target_id: str) -> list[str]:
        return [
            event.action
            for event in self.list_for_target(target_type=target_type, target_id=target_id)
        ]
