"""
OrganizationService -- tenancy collaborators: organizations, users, members.

Responsibility:
    Creates the tenant roots the ledger hangs off, plus the users and
    memberships that callers authorize against.  The ledger itself never
    checks membership; every ledger call receives an already-authorized
    (organization_id, actor_id) pair.

Architecture position:
    Kernel > Services.  Transactional (see services/base.py).

Failure modes:
    - InvalidCurrencyError for a malformed base currency.
    - DuplicateEmailError, including when a concurrent insert wins the race.
    - InvalidRoleError, DuplicateMembershipError.
    - OrganizationNotFoundError, UserNotFoundError.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.db.types import validate_currency
from ledger_kernel.exceptions import (
    DuplicateEmailError,
    DuplicateMembershipError,
    InvalidRoleError,
    OrganizationNotFoundError,
    UserNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.organization import (
    MemberRole,
    Organization,
    OrganizationMember,
    User,
)
from ledger_kernel.services.base import TransactionalService

logger = get_logger("services.organization")

_ROLES = tuple(role.value for role in MemberRole)


class OrganizationService(TransactionalService):
    """Create and look up organizations, users and memberships."""

    def create_organization(
        self,
        name: str,
        base_currency: str = "USD",
        actor_id: UUID | None = None,
    ) -> Organization:
        currency = validate_currency(base_currency)
        with self._transaction("create_organization", actor_id=actor_id):
            now = self._clock.now()
            organization = Organization(
                id=self._ids.new_id(),
                name=name,
                base_currency=currency,
                created_at=now,
                updated_at=now,
                created_by_id=actor_id,
            )
            self.session.add(organization)
            self.session.flush()
            logger.info(
                "organization_created",
                extra={
                    "organization_id": str(organization.id),
                    "base_currency": currency,
                },
            )
        return organization

    def get_organization(self, organization_id: UUID) -> Organization:
        with self._transaction("get_organization", organization_id=organization_id):
            organization = self.session.get(Organization, organization_id)
            if organization is None:
                raise OrganizationNotFoundError(str(organization_id))
        return organization

    def create_user(self, email: str, full_name: str | None = None) -> User:
        normalized = email.strip().lower()
        with self._transaction("create_user"):
            existing = self.session.scalar(select(User.id).where(User.email == normalized))
            if existing is not None:
                raise DuplicateEmailError(normalized)
            now = self._clock.now()
            user = User(
                id=self._ids.new_id(),
                email=normalized,
                full_name=full_name,
                created_at=now,
                updated_at=now,
            )
            self.session.add(user)
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise DuplicateEmailError(normalized) from exc
            logger.info("user_created", extra={"user_id": str(user.id)})
        return user

    def get_user(self, user_id: UUID) -> User:
        with self._transaction("get_user"):
            user = self.session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(str(user_id))
        return user

    def add_member(
        self,
        organization_id: UUID,
        user_id: UUID,
        role: MemberRole | str,
    ) -> OrganizationMember:
        """Grant ``user_id`` a role in the organization."""
        role_value = getattr(role, "value", role)
        if role_value not in _ROLES:
            raise InvalidRoleError(str(role_value), _ROLES)

        with self._transaction("add_member", organization_id=organization_id):
            if self.session.get(Organization, organization_id) is None:
                raise OrganizationNotFoundError(str(organization_id))
            if self.session.get(User, user_id) is None:
                raise UserNotFoundError(str(user_id))

            existing = self.session.scalar(
                select(OrganizationMember.id).where(
                    OrganizationMember.organization_id == organization_id,
                    OrganizationMember.user_id == user_id,
                )
            )
            if existing is not None:
                raise DuplicateMembershipError(str(organization_id), str(user_id))

            member = OrganizationMember(
                id=self._ids.new_id(),
                organization_id=organization_id,
                user_id=user_id,
                role=role_value,
                created_at=self._clock.now(),
            )
            self.session.add(member)
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise DuplicateMembershipError(str(organization_id), str(user_id)) from exc
            logger.info(
                "member_added",
                extra={"user_id": str(user_id), "role": role_value},
            )
        return member

    def list_members(self, organization_id: UUID) -> list[OrganizationMember]:
        with self._transaction("list_members", organization_id=organization_id):
            if self.session.get(Organization, organization_id) is None:
                raise OrganizationNotFoundError(str(organization_id))
            members = list(
                self.session.scalars(
                    select(OrganizationMember)
                    .where(OrganizationMember.organization_id == organization_id)
                    .order_by(OrganizationMember.created_at, OrganizationMember.user_id)
                )
            )
        return members
