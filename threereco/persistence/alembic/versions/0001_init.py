"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _entity_columns() -> list[sa.Column]:
    # Identity and bookkeeping columns shared by every domain entity.
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_by_id", postgresql.UUID(as_uuid=True), nullable=True),
    ]


def _association(name: str, left: tuple[str, str], right: tuple[str, str]) -> None:
    op.create_table(
        name,
        sa.Column(
            left[0],
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{left[1]}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            right[0],
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(f"{right[1]}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )


def upgrade() -> None:
    op.create_table(
        "users",
        *_entity_columns(),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password", sa.LargeBinary(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("job_title", sa.String(), nullable=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("permissions", postgresql.JSONB(), nullable=False),
        sa.Column("mfa_secret", sa.LargeBinary(), nullable=True),
        sa.Column("mfa_enabled", sa.Boolean(), nullable=False),
        sa.Column("mfa_verified", sa.Boolean(), nullable=False),
        # FK to organizations is added once that table exists.
        sa.Column("primary_organization_id", postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "roles",
        *_entity_columns(),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("permissions", postgresql.JSONB(), nullable=False),
        sa.Column("default", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "organizations",
        *_entity_columns(),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("domain", sa.String(), nullable=False, unique=True),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_foreign_key(
        "fk_users_primary_organization_id",
        "users",
        "organizations",
        ["primary_organization_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "materials",
        *_entity_columns(),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("gw_code", sa.String(), nullable=False, unique=True),
        sa.Column("carbon_factor", sa.String(), nullable=False),
    )

    op.create_table(
        "products",
        *_entity_columns(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("value", sa.Numeric(10, 2), nullable=False),
    )

    op.create_table(
        "collections",
        *_entity_columns(),
        sa.Column(
            "seller_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "buyer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("ix_collections_seller_id", "collections", ["seller_id"])
    op.create_index("ix_collections_buyer_id", "collections", ["buyer_id"])

    op.create_table(
        "collection_materials",
        *_entity_columns(),
        sa.Column(
            "collection_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "material_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("materials.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("gw_code", sa.String(), nullable=False),
        sa.Column("carbon_factor", sa.String(), nullable=False),
        sa.Column("weight", sa.Numeric(10, 2), nullable=False),
        sa.Column("value", sa.Numeric(10, 2), nullable=False),
    )
    op.create_index(
        "ix_collection_materials_collection_id", "collection_materials", ["collection_id"]
    )

    op.create_table(
        "transactions",
        *_entity_columns(),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("weight", sa.Numeric(10, 2), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("seller_accepted", sa.Boolean(), nullable=False),
        sa.Column("seller_declined", sa.Boolean(), nullable=False),
        sa.Column("seller_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("buyer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("seller_type", sa.String(), nullable=True),
        sa.Column("buyer_type", sa.String(), nullable=True),
    )
    op.create_index("ix_transactions_seller_id", "transactions", ["seller_id"])
    op.create_index("ix_transactions_buyer_id", "transactions", ["buyer_id"])

    op.create_table(
        "bank_details",
        *_entity_columns(),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("account_holder", sa.String(), nullable=False),
        sa.Column("account_number", sa.String(), nullable=False),
        sa.Column("bank_name", sa.String(), nullable=False),
        sa.Column("branch_code", sa.String(), nullable=False),
    )
    op.create_index("ix_bank_details_user_id", "bank_details", ["user_id"])
    op.create_index("ix_bank_details_organization_id", "bank_details", ["organization_id"])

    op.create_table(
        "notifications",
        *_entity_columns(),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(), nullable=True),
        sa.Column("link_text", sa.String(), nullable=True),
        sa.Column("closed", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    _association("users_roles", ("user_id", "users"), ("role_id", "roles"))
    _association("organizations_users", ("organization_id", "organizations"), ("user_id", "users"))
    _association("organizations_roles", ("organization_id", "organizations"), ("role_id", "roles"))
    _association("products_materials", ("product_id", "products"), ("material_id", "materials"))
    _association(
        "transactions_products", ("transaction_id", "transactions"), ("product_id", "products")
    )

    # Audit rows carry no foreign keys so history survives deletes.
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("table_name", sa.String(), nullable=False),
        sa.Column("operation_type", sa.String(), nullable=False),
        sa.Column("object_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_table_object", "audit_logs", ["table_name", "object_id"])
    op.create_index(
        "ix_audit_logs_organization_created_at", "audit_logs", ["organization_id", "created_at"]
    )

    op.create_table(
        "sessions",
        sa.Column("token_hash", sa.String(64), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])


def downgrade() -> None:
    op.drop_table("sessions")
    op.drop_table("audit_logs")
    op.drop_table("transactions_products")
    op.drop_table("products_materials")
    op.drop_table("organizations_roles")
    op.drop_table("organizations_users")
    op.drop_table("users_roles")
    op.drop_table("notifications")
    op.drop_table("bank_details")
    op.drop_table("transactions")
    op.drop_table("collection_materials")
    op.drop_table("collections")
    op.drop_table("products")
    op.drop_table("materials")
    op.drop_constraint("fk_users_primary_organization_id", "users", type_="foreignkey")
    op.drop_table("organizations")
    op.drop_table("roles")
    op.drop_table("users")
