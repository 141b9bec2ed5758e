from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates


# JSONB on Postgres, plain JSON elsewhere so the test suite can run on sqlite.
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    # Shared identity and bookkeeping columns for every domain entity.
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )
    modified_by_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)


users_roles = Table(
    "users_roles",
    Base.metadata,
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

organizations_users = Table(
    "organizations_users",
    Base.metadata,
    Column(
        "organization_id", Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

organizations_roles = Table(
    "organizations_roles",
    Base.metadata,
    Column(
        "organization_id", Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

products_materials = Table(
    "products_materials",
    Base.metadata,
    Column("product_id", Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("material_id", Uuid, ForeignKey("materials.id", ondelete="CASCADE"), primary_key=True),
)

transactions_products = Table(
    "transactions_products",
    Base.metadata,
    Column(
        "transaction_id", Uuid, ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("product_id", Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class User(TimestampMixin, Base):
    __tablename__ = "users"

    # Emails are stored lower-cased so uniqueness and lookup are case-insensitive.
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    password: Mapped[bytes] = mapped_column(LargeBinary)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_title: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[str] = mapped_column(String, default="system")
    # Direct grants on top of whatever the user's roles carry.
    permissions: Mapped[list[str]] = mapped_column(JSONType, default=list)
    # Base32 TOTP secret; never serialized into audit rows or responses.
    mfa_secret: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    mfa_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    mfa_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    primary_organization_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="SET NULL", use_alter=True), nullable=True
    )

    roles: Mapped[list["Role"]] = relationship(secondary=users_roles, lazy="raise")
    organizations: Mapped[list["Organization"]] = relationship(
        secondary=organizations_users, lazy="raise", viewonly=True
    )

    @validates("email")
    def _normalize_email(self, _key: str, value: str) -> str:
        return value.strip().lower()


class Role(TimestampMixin, Base):
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Ordered set of dotted permission strings.
    permissions: Mapped[list[str]] = mapped_column(JSONType, default=list)
    default: Mapped[bool] = mapped_column(Boolean, default=False)


class Organization(TimestampMixin, Base):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String, unique=True)
    domain: Mapped[str] = mapped_column(String, unique=True)
    owner_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"))

    users: Mapped[list[User]] = relationship(secondary=organizations_users, lazy="raise")
    roles: Mapped[list[Role]] = relationship(secondary=organizations_roles, lazy="raise")


class Material(TimestampMixin, Base):
    __tablename__ = "materials"

    name: Mapped[str] = mapped_column(String, unique=True)
    gw_code: Mapped[str] = mapped_column(String, unique=True)
    carbon_factor: Mapped[str] = mapped_column(String)


class Product(TimestampMixin, Base):
    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String)
    value: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0.0)

    materials: Mapped[list[Material]] = relationship(secondary=products_materials, lazy="raise")


class Collection(TimestampMixin, Base):
    __tablename__ = "collections"

    seller_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    buyer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), index=True
    )

    materials: Mapped[list["CollectionMaterial"]] = relationship(
        lazy="raise", cascade="all, delete-orphan", order_by="CollectionMaterial.created_at"
    )


class CollectionMaterial(TimestampMixin, Base):
    __tablename__ = "collection_materials"

    # Snapshot of the material at the time it was weighed into the collection.
    collection_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("collections.id", ondelete="CASCADE"), index=True
    )
    material_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("materials.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String)
    gw_code: Mapped[str] = mapped_column(String)
    carbon_factor: Mapped[str] = mapped_column(String)
    weight: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0.0)
    value: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0.0)


class Transaction(TimestampMixin, Base):
    __tablename__ = "transactions"

    type: Mapped[str] = mapped_column(String)
    weight: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0.0)
    amount: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0.0)
    seller_accepted: Mapped[bool] = mapped_column(Boolean, default=False)
    seller_declined: Mapped[bool] = mapped_column(Boolean, default=False)
    seller_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    buyer_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    # Optional discriminators; nothing branches on them.
    seller_type: Mapped[str | None] = mapped_column(String, nullable=True)
    buyer_type: Mapped[str | None] = mapped_column(String, nullable=True)

    products: Mapped[list[Product]] = relationship(secondary=transactions_products, lazy="raise")


class BankDetails(TimestampMixin, Base):
    __tablename__ = "bank_details"

    user_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    organization_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    account_holder: Mapped[str] = mapped_column(String)
    account_number: Mapped[str] = mapped_column(String)
    bank_name: Mapped[str] = mapped_column(String)
    branch_code: Mapped[str] = mapped_column(String)


class Notification(TimestampMixin, Base):
    __tablename__ = "notifications"

    user_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String)
    message: Mapped[str] = mapped_column(Text)
    link: Mapped[str | None] = mapped_column(String, nullable=True)
    link_text: Mapped[str | None] = mapped_column(String, nullable=True)
    closed: Mapped[bool] = mapped_column(Boolean, default=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_table_object", "table_name", "object_id"),
        Index("ix_audit_logs_organization_created_at", "organization_id", "created_at"),
    )

    # Append-only; no foreign keys so history survives deletes of the actor.
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    table_name: Mapped[str] = mapped_column(String)
    operation_type: Mapped[str] = mapped_column(String)
    object_id: Mapped[UUID] = mapped_column(Uuid)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    organization_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)


class HttpSession(Base):
    __tablename__ = "sessions"

    # Only the sha-256 of the cookie value is stored.
    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
