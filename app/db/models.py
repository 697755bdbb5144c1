"""SQLAlchemy ORM models for hosting and certificate provisioning."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.enums import (
    HostingStatus,
    SslDomainType,
    SslProvider,
    SslStatus,
    SuspendKind,
)

HOSTING_STATUS_ENUM = Enum(
    HostingStatus,
    name="hosting_status",
    values_callable=lambda enum_cls: [status.value for status in enum_cls],
)
SUSPEND_KIND_ENUM = Enum(
    SuspendKind,
    name="suspend_kind",
    values_callable=lambda enum_cls: [kind.value for kind in enum_cls],
)
SSL_STATUS_ENUM = Enum(
    SslStatus,
    name="ssl_status",
    values_callable=lambda enum_cls: [status.value for status in enum_cls],
)
SSL_DOMAIN_TYPE_ENUM = Enum(
    SslDomainType,
    name="ssl_domain_type",
    values_callable=lambda enum_cls: [domain_type.value for domain_type in enum_cls],
)
SSL_PROVIDER_ENUM = Enum(
    SslProvider,
    name="ssl_provider",
    values_callable=lambda enum_cls: [provider.value for provider in enum_cls],
)
AUDIT_METADATA_TYPE = JSONB().with_variant(JSON(), "sqlite")  # type: ignore[no-untyped-call]

OPEN_SSL_STATUS_WHERE = (
    "status IN ('PENDING_VERIFICATION', 'VERIFYING', 'VERIFIED', 'ISSUING')"
)


class AppUser(Base):
    __tablename__ = "app_user"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    local_credential: Mapped[LocalCredential | None] = relationship(
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    hostings: Mapped[list[Hosting]] = relationship(back_populates="user")
    audit_events: Mapped[list[AuditEvent]] = relationship(back_populates="actor_user")


class LocalCredential(Base):
    __tablename__ = "local_credential"
    __table_args__ = (
        CheckConstraint(
            "login_username = lower(login_username)",
            name="local_credential_login_username_lower",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    login_username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped[AppUser] = relationship(back_populates="local_credential")


class Hosting(Base):
    __tablename__ = "hosting"
    __table_args__ = (
        CheckConstraint(
            "status NOT IN ('ACTIVE', 'SUSPENDING', 'SUSPENDED', 'REACTIVATING') "
            "OR password IS NOT NULL",
            name="hosting_password_required_when_live",
        ),
        Index("idx_hosting_status", "status"),
        Index("idx_hosting_user", "user_id"),
        Index(
            "uq_hosting_live_domain",
            "domain",
            unique=True,
            postgresql_where=text("status <> 'DELETED'"),
            sqlite_where=text("status <> 'DELETED'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.id", ondelete="RESTRICT"),
        nullable=False,
    )
    vp_username: Mapped[str | None] = mapped_column(Text, unique=True)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(Text, nullable=False)
    package: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default=text("''"),
    )
    status: Mapped[HostingStatus] = mapped_column(
        HOSTING_STATUS_ENUM,
        nullable=False,
        default=HostingStatus.PENDING,
        server_default=text("'PENDING'"),
    )
    password: Mapped[str | None] = mapped_column(Text)
    suspend_kind: Mapped[SuspendKind | None] = mapped_column(SUSPEND_KIND_ENUM)
    suspend_note: Mapped[str | None] = mapped_column(Text)
    panel_approved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    panel_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text)
    remote_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    drive_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    user: Mapped[AppUser] = relationship(back_populates="hostings")
    databases: Mapped[list[HostingDatabase]] = relationship(
        back_populates="hosting",
        cascade="all, delete-orphan",
        order_by="HostingDatabase.name",
    )
    certificates: Mapped[list[SslCertificate]] = relationship(back_populates="hosting")


class HostingDatabase(Base):
    __tablename__ = "hosting_database"
    __table_args__ = (UniqueConstraint("hosting_id", "name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    hosting_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("hosting.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    hosting: Mapped[Hosting] = relationship(back_populates="databases")

    @property
    def full_name(self) -> str:
        return f"{self.hosting.vp_username}_{self.name}"


class SslCertificate(Base):
    __tablename__ = "ssl_certificate"
    __table_args__ = (
        CheckConstraint(
            "(status = 'ISSUED' AND certificate IS NOT NULL AND private_key IS NOT NULL) "
            "OR (status <> 'ISSUED' AND certificate IS NULL AND private_key IS NULL "
            "AND ca_certificate IS NULL)",
            name="ssl_certificate_material_only_when_issued",
        ),
        Index("idx_ssl_certificate_status", "status"),
        Index("idx_ssl_certificate_hosting", "hosting_id"),
        Index(
            "uq_ssl_certificate_open_domain",
            "domain",
            unique=True,
            postgresql_where=text(OPEN_SSL_STATUS_WHERE),
            sqlite_where=text(OPEN_SSL_STATUS_WHERE),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("app_user.id", ondelete="RESTRICT"),
        nullable=False,
    )
    hosting_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("hosting.id", ondelete="RESTRICT"),
        nullable=False,
    )
    domain: Mapped[str] = mapped_column(Text, nullable=False)
    domain_type: Mapped[SslDomainType] = mapped_column(SSL_DOMAIN_TYPE_ENUM, nullable=False)
    provider: Mapped[SslProvider] = mapped_column(
        SSL_PROVIDER_ENUM,
        nullable=False,
        default=SslProvider.LETS_ENCRYPT,
        server_default=text("'LETS_ENCRYPT'"),
    )
    status: Mapped[SslStatus] = mapped_column(
        SSL_STATUS_ENUM,
        nullable=False,
        default=SslStatus.PENDING_VERIFICATION,
        server_default=text("'PENDING_VERIFICATION'"),
    )
    txt_record: Mapped[str] = mapped_column(Text, nullable=False)
    cname_record: Mapped[str | None] = mapped_column(Text)
    dns_record_ref: Mapped[str | None] = mapped_column(Text)
    certificate: Mapped[str | None] = mapped_column(Text)
    private_key: Mapped[str | None] = mapped_column(Text)
    ca_certificate: Mapped[str | None] = mapped_column(Text)
    last_error: Mapped[str | None] = mapped_column(Text)
    install_error: Mapped[str | None] = mapped_column(Text)
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    issue_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    installed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    hosting: Mapped[Hosting] = relationship(back_populates="certificates")

    @property
    def challenge_record_name(self) -> str:
        return f"_acme-challenge.{self.domain}"


class AuditEvent(Base):
    __tablename__ = "audit_event"
    __table_args__ = (
        Index("idx_audit_event_created_at", "created_at"),
        Index("idx_audit_event_target", "target_type", "target_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("app_user.id", ondelete="SET NULL"),
    )
    action: Mapped[str] = mapped_column(Text, nullable=False)
    target_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[str] = mapped_column(Text, nullable=False)
    event_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        AUDIT_METADATA_TYPE,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    actor_user: Mapped[AppUser | None] = relationship(back_populates="audit_events")
