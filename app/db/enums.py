"""Domain enums and transition helpers."""

from enum import StrEnum


class HostingStatus(StrEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDING = "SUSPENDING"
    SUSPENDED = "SUSPENDED"
    REACTIVATING = "REACTIVATING"
    DELETED = "DELETED"


class SuspendKind(StrEnum):
    ADMIN_SUSPENDED = "ADMIN_SUSPENDED"
    USER_REQUESTED = "USER_REQUESTED"
    POLICY_VIOLATION = "POLICY_VIOLATION"


class SslDomainType(StrEnum):
    SUBDOMAIN = "SUBDOMAIN"
    CUSTOM = "CUSTOM"


class SslProvider(StrEnum):
    LETS_ENCRYPT = "LETS_ENCRYPT"
    GOOGLE_TRUST = "GOOGLE_TRUST"


class SslStatus(StrEnum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    VERIFYING = "VERIFYING"
    VERIFIED = "VERIFIED"
    ISSUING = "ISSUING"
    ISSUED = "ISSUED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


# Statuses whose record must carry the remote panel password.
CREDENTIAL_REQUIRED_HOSTING_STATUSES = frozenset(
    {
        HostingStatus.ACTIVE,
        HostingStatus.SUSPENDING,
        HostingStatus.SUSPENDED,
        HostingStatus.REACTIVATING,
    }
)
IN_FLIGHT_HOSTING_STATUSES = frozenset(
    {
        HostingStatus.PENDING,
        HostingStatus.SUSPENDING,
        HostingStatus.REACTIVATING,
    }
)
OWNER_LOCKED_SUSPEND_KINDS = frozenset(
    {
        SuspendKind.ADMIN_SUSPENDED,
        SuspendKind.POLICY_VIOLATION,
    }
)

ALLOWED_HOSTING_TRANSITIONS: dict[HostingStatus, frozenset[HostingStatus]] = {
    HostingStatus.PENDING: frozenset({HostingStatus.ACTIVE}),
    HostingStatus.ACTIVE: frozenset({HostingStatus.SUSPENDING, HostingStatus.DELETED}),
    HostingStatus.SUSPENDING: frozenset({HostingStatus.SUSPENDED}),
    HostingStatus.SUSPENDED: frozenset({HostingStatus.REACTIVATING, HostingStatus.DELETED}),
    HostingStatus.REACTIVATING: frozenset({HostingStatus.ACTIVE}),
}

TERMINAL_SSL_STATUSES = frozenset(
    {
        SslStatus.ISSUED,
        SslStatus.FAILED,
        SslStatus.EXPIRED,
        SslStatus.REVOKED,
    }
)
OPEN_SSL_STATUSES = frozenset(set(SslStatus) - TERMINAL_SSL_STATUSES)

ALLOWED_SSL_TRANSITIONS: dict[SslStatus, frozenset[SslStatus]] = {
    SslStatus.PENDING_VERIFICATION: frozenset(
        {SslStatus.VERIFYING, SslStatus.VERIFIED, SslStatus.FAILED}
    ),
    SslStatus.VERIFYING: frozenset({SslStatus.VERIFIED, SslStatus.FAILED}),
    SslStatus.VERIFIED: frozenset({SslStatus.ISSUING, SslStatus.FAILED}),
    SslStatus.ISSUING: frozenset({SslStatus.ISSUED, SslStatus.FAILED}),
    SslStatus.ISSUED: frozenset({SslStatus.EXPIRED, SslStatus.REVOKED}),
    SslStatus.FAILED: frozenset({SslStatus.PENDING_VERIFICATION}),
}


def can_transition_hosting_status(
    current_status: HostingStatus,
    new_status: HostingStatus,
) -> bool:
    return new_status in ALLOWED_HOSTING_TRANSITIONS.get(current_status, frozenset())


def can_transition_ssl_status(
    current_status: SslStatus,
    new_status: SslStatus,
    *,
    domain_type: SslDomainType,
) -> bool:
    # Subdomain certificates skip the user-facing verification step.
    if (
        domain_type is SslDomainType.SUBDOMAIN
        and current_status is SslStatus.PENDING_VERIFICATION
        and new_status is SslStatus.ISSUING
    ):
        return True
    return new_status in ALLOWED_SSL_TRANSITIONS.get(current_status, frozenset())
