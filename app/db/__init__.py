"""Database layer exports."""

from app.db.base import Base
from app.db.enums import (
    HostingStatus,
    SslDomainType,
    SslProvider,
    SslStatus,
    SuspendKind,
    can_transition_hosting_status,
    can_transition_ssl_status,
)
from app.db.models import (
    AppUser,
    AuditEvent,
    Hosting,
    HostingDatabase,
    LocalCredential,
    SslCertificate,
)

__all__ = [
    "AppUser",
    "AuditEvent",
    "Base",
    "Hosting",
    "HostingDatabase",
    "HostingStatus",
    "LocalCredential",
    "SslCertificate",
    "SslDomainType",
    "SslProvider",
    "SslStatus",
    "SuspendKind",
    "can_transition_hosting_status",
    "can_transition_ssl_status",
]
