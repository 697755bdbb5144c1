"""hosting and ssl schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:01

"""

from __future__ import annotations

from typing import Final

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None

LIVE_HOSTING_WHERE: Final[str] = "status <> 'DELETED'"
OPEN_SSL_STATUS_WHERE: Final[str] = (
    "status IN ('PENDING_VERIFICATION', 'VERIFYING', 'VERIFIED', 'ISSUING')"
)

HOSTING_STATUS_VALUES: Final[tuple[str, ...]] = (
    "PENDING",
    "ACTIVE",
    "SUSPENDING",
    "SUSPENDED",
    "REACTIVATING",
    "DELETED",
)
SUSPEND_KIND_VALUES: Final[tuple[str, ...]] = (
    "ADMIN_SUSPENDED",
    "USER_REQUESTED",
    "POLICY_VIOLATION",
)
SSL_STATUS_VALUES: Final[tuple[str, ...]] = (
    "PENDING_VERIFICATION",
    "VERIFYING",
    "VERIFIED",
    "ISSUING",
    "ISSUED",
    "FAILED",
    "EXPIRED",
    "REVOKED",
)
SSL_DOMAIN_TYPE_VALUES: Final[tuple[str, ...]] = ("SUBDOMAIN", "CUSTOM")
SSL_PROVIDER_VALUES: Final[tuple[str, ...]] = ("LETS_ENCRYPT", "GOOGLE_TRUST")

ENUM_NAMES: Final[tuple[str, ...]] = (
    "hosting_status",
    "suspend_kind",
    "ssl_status",
    "ssl_domain_type",
    "ssl_provider",
)


def _uuid_column(name: str, dialect_name: str) -> sa.Column[sa.Uuid]:
    kwargs: dict[str, object] = {"nullable": False, "primary_key": True}
    if dialect_name == "postgresql":
        kwargs["server_default"] = sa.text("gen_random_uuid()")
    return sa.Column(name, sa.Uuid(), **kwargs)


def _timestamp_column(name: str) -> sa.Column[sa.DateTime]:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def _enum(values: tuple[str, ...], name: str, dialect_name: str) -> sa.types.TypeEngine[str]:
    if dialect_name == "postgresql":
        return postgresql.ENUM(*values, name=name, create_type=False)
    return sa.Enum(*values, name=name)


def _create_partial_unique_index(
    name: str,
    table_name: str,
    columns: list[str],
    where: str,
    dialect_name: str,
) -> None:
    if dialect_name == "postgresql":
        op.create_index(
            name,
            table_name,
            columns,
            unique=True,
            postgresql_where=sa.text(where),
        )
    elif dialect_name == "sqlite":
        op.create_index(
            name,
            table_name,
            columns,
            unique=True,
            sqlite_where=sa.text(where),
        )
    else:
        op.create_index(name, table_name, columns, unique=True)


def upgrade() -> None:
    bind = op.get_bind()
    dialect_name = bind.dialect.name

    if dialect_name == "postgresql":
        op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')
        for values, name in (
            (HOSTING_STATUS_VALUES, "hosting_status"),
            (SUSPEND_KIND_VALUES, "suspend_kind"),
            (SSL_STATUS_VALUES, "ssl_status"),
            (SSL_DOMAIN_TYPE_VALUES, "ssl_domain_type"),
            (SSL_PROVIDER_VALUES, "ssl_provider"),
        ):
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)
        audit_metadata_type: sa.types.TypeEngine[object] = postgresql.JSONB()
        audit_metadata_default = sa.text("'{}'::jsonb")
    else:
        audit_metadata_type = sa.JSON()
        audit_metadata_default = sa.text("'{}'")

    op.create_table(
        "app_user",
        _uuid_column("id", dialect_name),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_app_user"),
        sa.UniqueConstraint("username", name="uq_app_user_username"),
    )

    op.create_table(
        "local_credential",
        _uuid_column("id", dialect_name),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("login_username", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp_column("created_at"),
        sa.CheckConstraint(
            "login_username = lower(login_username)",
            name="ck_local_credential_local_credential_login_username_lower",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["app_user.id"],
            name="fk_local_credential_user_id_app_user",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_local_credential"),
        sa.UniqueConstraint("user_id", name="uq_local_credential_user_id"),
        sa.UniqueConstraint("login_username", name="uq_local_credential_login_username"),
    )

    op.create_table(
        "hosting",
        _uuid_column("id", dialect_name),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("vp_username", sa.Text(), nullable=True),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("domain", sa.Text(), nullable=False),
        sa.Column("package", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "status",
            _enum(HOSTING_STATUS_VALUES, "hosting_status", dialect_name),
            nullable=False,
            server_default=sa.text("'PENDING'"),
        ),
        sa.Column("password", sa.Text(), nullable=True),
        sa.Column(
            "suspend_kind",
            _enum(SUSPEND_KIND_VALUES, "suspend_kind", dialect_name),
            nullable=True,
        ),
        sa.Column("suspend_note", sa.Text(), nullable=True),
        sa.Column("panel_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("panel_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("remote_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("drive_started_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("suspended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status NOT IN ('ACTIVE', 'SUSPENDING', 'SUSPENDED', 'REACTIVATING') "
            "OR password IS NOT NULL",
            name="ck_hosting_hosting_password_required_when_live",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["app_user.id"],
            name="fk_hosting_user_id_app_user",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_hosting"),
        sa.UniqueConstraint("vp_username", name="uq_hosting_vp_username"),
    )
    op.create_index("idx_hosting_status", "hosting", ["status"], unique=False)
    op.create_index("idx_hosting_user", "hosting", ["user_id"], unique=False)
    _create_partial_unique_index(
        "uq_hosting_live_domain",
        "hosting",
        ["domain"],
        LIVE_HOSTING_WHERE,
        dialect_name,
    )

    op.create_table(
        "hosting_database",
        _uuid_column("id", dialect_name),
        sa.Column("hosting_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        _timestamp_column("created_at"),
        sa.ForeignKeyConstraint(
            ["hosting_id"],
            ["hosting.id"],
            name="fk_hosting_database_hosting_id_hosting",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_hosting_database"),
        sa.UniqueConstraint("hosting_id", "name", name="uq_hosting_database_hosting_id"),
    )

    op.create_table(
        "ssl_certificate",
        _uuid_column("id", dialect_name),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("hosting_id", sa.Uuid(), nullable=False),
        sa.Column("domain", sa.Text(), nullable=False),
        sa.Column(
            "domain_type",
            _enum(SSL_DOMAIN_TYPE_VALUES, "ssl_domain_type", dialect_name),
            nullable=False,
        ),
        sa.Column(
            "provider",
            _enum(SSL_PROVIDER_VALUES, "ssl_provider", dialect_name),
            nullable=False,
            server_default=sa.text("'LETS_ENCRYPT'"),
        ),
        sa.Column(
            "status",
            _enum(SSL_STATUS_VALUES, "ssl_status", dialect_name),
            nullable=False,
            server_default=sa.text("'PENDING_VERIFICATION'"),
        ),
        sa.Column("txt_record", sa.Text(), nullable=False),
        sa.Column("cname_record", sa.Text(), nullable=True),
        sa.Column("dns_record_ref", sa.Text(), nullable=True),
        sa.Column("certificate", sa.Text(), nullable=True),
        sa.Column("private_key", sa.Text(), nullable=True),
        sa.Column("ca_certificate", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("install_error", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("issue_started_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("installed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(status = 'ISSUED' AND certificate IS NOT NULL AND private_key IS NOT NULL) "
            "OR (status <> 'ISSUED' AND certificate IS NULL AND private_key IS NULL "
            "AND ca_certificate IS NULL)",
            name="ck_ssl_certificate_ssl_certificate_material_only_when_issued",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["app_user.id"],
            name="fk_ssl_certificate_user_id_app_user",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["hosting_id"],
            ["hosting.id"],
            name="fk_ssl_certificate_hosting_id_hosting",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_ssl_certificate"),
    )
    op.create_index("idx_ssl_certificate_status", "ssl_certificate", ["status"], unique=False)
    op.create_index(
        "idx_ssl_certificate_hosting",
        "ssl_certificate",
        ["hosting_id"],
        unique=False,
    )
    _create_partial_unique_index(
        "uq_ssl_certificate_open_domain",
        "ssl_certificate",
        ["domain"],
        OPEN_SSL_STATUS_WHERE,
        dialect_name,
    )

    op.create_table(
        "audit_event",
        _uuid_column("id", dialect_name),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("target_type", sa.Text(), nullable=False),
        sa.Column("target_id", sa.Text(), nullable=False),
        sa.Column(
            "metadata",
            audit_metadata_type,
            nullable=False,
            server_default=audit_metadata_default,
        ),
        _timestamp_column("created_at"),
        sa.ForeignKeyConstraint(
            ["actor_user_id"],
            ["app_user.id"],
            name="fk_audit_event_actor_user_id_app_user",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_audit_event"),
    )
    op.create_index("idx_audit_event_created_at", "audit_event", ["created_at"], unique=False)
    op.create_index(
        "idx_audit_event_target",
        "audit_event",
        ["target_type", "target_id"],
        unique=False,
    )


def downgrade() -> None:
    bind = op.get_bind()
    dialect_name = bind.dialect.name

    op.drop_index("idx_audit_event_target", table_name="audit_event")
    op.drop_index("idx_audit_event_created_at", table_name="audit_event")
    op.drop_table("audit_event")
    op.drop_index("uq_ssl_certificate_open_domain", table_name="ssl_certificate")
    op.drop_index("idx_ssl_certificate_hosting", table_name="ssl_certificate")
    op.drop_index("idx_ssl_certificate_status", table_name="ssl_certificate")
    op.drop_table("ssl_certificate")
    op.drop_table("hosting_database")
    op.drop_index("uq_hosting_live_domain", table_name="hosting")
    op.drop_index("idx_hosting_user", table_name="hosting")
    op.drop_index("idx_hosting_status", table_name="hosting")
    op.drop_table("hosting")
    op.drop_table("local_credential")
    op.drop_table("app_user")

    if dialect_name == "postgresql":
        for name in ENUM_NAMES:
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)
