"""Celery task wiring for hosting and certificate provisioning."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from celery import Celery  # type: ignore[import-untyped]

from app.config import AppSettings, get_settings
from app.db.session import SessionLocal
from app.logging_config import configure_logging
from app.provisioning.hosting_lifecycle import process_hosting_drive, reclaim_stale_hostings
from app.provisioning.ssl_pipeline import (
    IssueOutcome,
    build_ssl_pipeline,
    process_certificate_issue,
    process_subdomain_certificate,
)

logger = logging.getLogger(__name__)

DRIVE_HOSTING_TASK_NAME = "hostpanel.drive_hosting"
ISSUE_CERTIFICATE_TASK_NAME = "hostpanel.issue_certificate"
SUBDOMAIN_CERTIFICATE_TASK_NAME = "hostpanel.subdomain_certificate"
SWEEP_STALE_TASK_NAME = "hostpanel.sweep_stale_records"
EXPIRE_CERTIFICATES_TASK_NAME = "hostpanel.expire_certificates"

ISSUE_RETRY_COUNTDOWN_SECONDS = 60
ISSUE_MAX_RETRIES = 10
EXPIRY_SWEEP_INTERVAL_SECONDS = 60 * 60

celery_app = Celery("hostpanel")


def configure_celery(settings: AppSettings) -> None:
    celery_app.conf.broker_url = settings.redis_url
    celery_app.conf.result_backend = None
    celery_app.conf.task_ignore_result = True
    celery_app.conf.task_serializer = "json"
    celery_app.conf.accept_content = ["json"]
    celery_app.conf.beat_schedule = {
        "sweep-stale-records": {
            "task": SWEEP_STALE_TASK_NAME,
            "schedule": float(settings.sweep_interval_seconds),
        },
        "expire-certificates": {
            "task": EXPIRE_CERTIFICATES_TASK_NAME,
            "schedule": float(EXPIRY_SWEEP_INTERVAL_SECONDS),
        },
    }


def _task_settings() -> AppSettings:
    settings = get_settings()
    configure_celery(settings)
    configure_logging(settings.log_level, settings.log_format)
    return settings


@celery_app.task(name=DRIVE_HOSTING_TASK_NAME)  # type: ignore[misc]
def drive_hosting_task(hosting_id: str) -> None:
    settings = _task_settings()
    process_hosting_drive(hosting_id=uuid.UUID(hosting_id), settings=settings)


@celery_app.task(bind=True, name=ISSUE_CERTIFICATE_TASK_NAME)  # type: ignore[misc]
def issue_certificate_task(self: Any, certificate_id: str) -> str:
    settings = _task_settings()
    outcome = process_certificate_issue(
        certificate_id=uuid.UUID(certificate_id),
        settings=settings,
    )
    _retry_if_needed(self, outcome, certificate_id)
    return outcome.value


@celery_app.task(bind=True, name=SUBDOMAIN_CERTIFICATE_TASK_NAME)  # type: ignore[misc]
def subdomain_certificate_task(self: Any, certificate_id: str) -> str:
    settings = _task_settings()
    outcome = process_subdomain_certificate(
        certificate_id=uuid.UUID(certificate_id),
        settings=settings,
    )
    _retry_if_needed(self, outcome, certificate_id)
    return outcome.value


@celery_app.task(name=SWEEP_STALE_TASK_NAME)  # type: ignore[misc]
def sweep_stale_records_task() -> None:
    settings = _task_settings()
    older_than = datetime.now(UTC) - timedelta(seconds=settings.stale_after_seconds)
    with SessionLocal() as db_session:
        hosting_ids = reclaim_stale_hostings(db_session, older_than=older_than)
        stale = build_ssl_pipeline(db_session, settings=settings).reclaim_stale(
            older_than=older_than
        )

    for hosting_id in hosting_ids:
        drive_hosting_task.delay(str(hosting_id))
    for certificate_id in stale.issuing_ids:
        issue_certificate_task.delay(str(certificate_id))
    for certificate_id in stale.subdomain_ids:
        subdomain_certificate_task.delay(str(certificate_id))
    if hosting_ids or stale.issuing_ids or stale.subdomain_ids:
        logger.info(
            "re-driving stale records",
            extra={
                "operation": "sweep_stale_records",
                "hosting_id": ",".join(str(item) for item in hosting_ids),
                "certificate_id": ",".join(
                    str(item) for item in [*stale.issuing_ids, *stale.subdomain_ids]
                ),
            },
        )


@celery_app.task(name=EXPIRE_CERTIFICATES_TASK_NAME)  # type: ignore[misc]
def expire_certificates_task() -> None:
    settings = _task_settings()
    with SessionLocal() as db_session:
        build_ssl_pipeline(db_session, settings=settings).expire_due(now=datetime.now(UTC))


def _retry_if_needed(task: Any, outcome: IssueOutcome, certificate_id: str) -> None:
    if outcome is not IssueOutcome.RETRY:
        return
    if task.request.retries >= ISSUE_MAX_RETRIES:
        logger.warning(
            "certificate retries exhausted; waiting for stale sweep or manual issue",
            extra={"certificate_id": certificate_id, "operation": task.name},
        )
        return
    raise task.retry(countdown=ISSUE_RETRY_COUNTDOWN_SECONDS, max_retries=ISSUE_MAX_RETRIES)


def enqueue_hosting_drive(*, hosting_id: uuid.UUID, settings: AppSettings) -> None:
    configure_celery(settings)
    drive_hosting_task.delay(str(hosting_id))


def enqueue_certificate_issue(*, certificate_id: uuid.UUID, settings: AppSettings) -> None:
    configure_celery(settings)
    issue_certificate_task.delay(str(certificate_id))


def enqueue_subdomain_certificate(*, certificate_id: uuid.UUID, settings: AppSettings) -> None:
    configure_celery(settings)
    subdomain_certificate_task.delay(str(certificate_id))
