"""Repository layer exports."""

from app.repositories.audit_events import AuditEventRepository
from app.repositories.errors import (
    DuplicateHostingDomainError,
    DuplicateOpenCertificateError,
    InvalidStateTransitionError,
    MissingHostingCredentialError,
    RepositoryError,
)
from app.repositories.hostings import (
    HostingDatabaseRepository,
    HostingRepository,
    SuspendReason,
)
from app.repositories.ssl_certificates import SslCertificateRepository
from app.repositories.users import LocalCredentialRepository, UserRepository

__all__ = [
    "AuditEventRepository",
    "DuplicateHostingDomainError",
    "DuplicateOpenCertificateError",
    "HostingDatabaseRepository",
    "HostingRepository",
    "InvalidStateTransitionError",
    "LocalCredentialRepository",
    "MissingHostingCredentialError",
    "RepositoryError",
    "SslCertificateRepository",
    "SuspendReason",
    "UserRepository",
]
