"""
Module: ledger_kernel.models.organization
Responsibility: ORM persistence for the tenancy collaborators: organizations
    (tenant roots), users, and organization memberships.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Organization.base_currency is a 3-letter ISO 4217 code (validated by
      OrganizationService before insert).
    - User.email is unique (uq_user_email).
    - A user holds at most one membership per organization
      (uq_member_org_user), with role in the fixed set.

Failure modes:
    - IntegrityError on duplicate email or membership if the service-level
      pre-check loses a race (translated by the service).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString


class MemberRole(str, Enum):
    """Role a user holds inside an organization."""

    OWNER = "owner"
    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"


class Organization(TrackedBase):
    """
    Tenant root.  Every account, entry and line belongs to exactly one
    organization, and no read or write ever crosses organizations.
    """

    __tablename__ = "organizations"

    # Display name
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Currency inherited by accounts without an explicit currency
    base_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.base_currency})>"


class User(TrackedBase):
    """A person who can be a member of one or more organizations."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
    )

    # Login identity, stored lower-cased
    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
    )

    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class OrganizationMember(Base):
    """Membership of a user in an organization, with a role."""

    __tablename__ = "organization_members"

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_member_org_user"),
        CheckConstraint(
            "role IN ('owner', 'admin', 'accountant', 'viewer')",
            name="ck_member_role",
        ),
        Index("idx_members_user", "user_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    role: Mapped[MemberRole] = mapped_column(
        String(20),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<OrganizationMember {self.user_id} in {self.organization_id} as {self.role}>"
