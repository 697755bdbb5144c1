"""Bounded, most-recent-N progress log for certificate issuance."""

from __future__ import annotations

import threading
import uuid
from collections import deque
from datetime import UTC, datetime
from typing import Protocol

import redis

from app.config import AppSettings

ISSUE_LOG_TTL_SECONDS = 24 * 60 * 60


class IssueLogBuffer(Protocol):
    def append(self, certificate_id: uuid.UUID, message: str) -> None: ...

    def read(self, certificate_id: uuid.UUID) -> list[str]: ...

    def clear(self, certificate_id: uuid.UUID) -> None: ...


def format_log_line(message: str, *, now: datetime | None = None) -> str:
    moment = now or datetime.now(UTC)
    return f"[{moment.isoformat()}] {message}"


class InMemoryIssueLogBuffer:
    """Per-process buffer; API and worker share it only in eager mode."""

    def __init__(self, *, limit: int = 200) -> None:
        self._limit = limit
        self._lines: dict[uuid.UUID, deque[str]] = {}
        self._lock = threading.Lock()

    def append(self, certificate_id: uuid.UUID, message: str) -> None:
        line = format_log_line(message)
        with self._lock:
            buffer = self._lines.setdefault(certificate_id, deque(maxlen=self._limit))
            buffer.append(line)

    def read(self, certificate_id: uuid.UUID) -> list[str]:
        with self._lock:
            return list(self._lines.get(certificate_id, ()))

    def clear(self, certificate_id: uuid.UUID) -> None:
        with self._lock:
            self._lines.pop(certificate_id, None)


class RedisIssueLogBuffer:
    def __init__(
        self,
        client: redis.Redis,
        *,
        limit: int = 200,
        ttl_seconds: int = ISSUE_LOG_TTL_SECONDS,
    ) -> None:
        self._client = client
        self._limit = limit
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, *, limit: int = 200) -> RedisIssueLogBuffer:
        return cls(redis.from_url(url, decode_responses=True), limit=limit)

    def append(self, certificate_id: uuid.UUID, message: str) -> None:
        key = _key(certificate_id)
        pipeline = self._client.pipeline()
        pipeline.rpush(key, format_log_line(message))
        pipeline.ltrim(key, -self._limit, -1)
        pipeline.expire(key, self._ttl_seconds)
        pipeline.execute()

    def read(self, certificate_id: uuid.UUID) -> list[str]:
        return [str(line) for line in self._client.lrange(_key(certificate_id), 0, -1)]

    def clear(self, certificate_id: uuid.UUID) -> None:
        self._client.delete(_key(certificate_id))


def _key(certificate_id: uuid.UUID) -> str:
    return f"hostpanel:ssl:issue-log:{certificate_id}"


def create_issue_log_buffer(settings: AppSettings) -> IssueLogBuffer:
    backend = settings.ssl_issue_log_backend
    if backend == "redis":
        return RedisIssueLogBuffer.from_url(settings.redis_url, limit=settings.ssl_issue_log_limit)
    if backend == "memory":
        return InMemoryIssueLogBuffer(limit=settings.ssl_issue_log_limit)
    raise ValueError(
        f"unsupported ssl.issue_log_backend: {backend!r}; expected 'memory' or 'redis'"
    )
