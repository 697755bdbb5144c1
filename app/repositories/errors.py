"""Repository-level domain errors."""

from enum import StrEnum


class RepositoryError(Exception):
    """Base repository exception."""


class DuplicateHostingDomainError(RepositoryError):
    """Raised when a non-deleted hosting account already uses the domain."""


class DuplicateOpenCertificateError(RepositoryError):
    """Raised when a certificate for the domain is already in progress."""


class MissingHostingCredentialError(RepositoryError):
    """Raised when a hosting would enter a live status without a panel password."""


class InvalidStateTransitionError(RepositoryError):
    """Raised when a status transition is not part of the lifecycle."""

    def __init__(self, entity: str, current_status: StrEnum, new_status: StrEnum) -> None:
        message = (
            f"cannot transition {entity} from {current_status.value} "
            f"to {new_status.value}"
        )
        super().__init__(message)
        self.entity = entity
        self.current_status = current_status
        self.new_status = new_status
