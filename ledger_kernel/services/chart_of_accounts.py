"""
ChartOfAccounts -- per-organization account catalog and lifecycle.

Responsibility:
    Creates, looks up, renames, restructures and deactivates accounts.
    Account codes are unique within an organization; account types come from
    a fixed set; an account's currency defaults to the organization's base
    currency.

Architecture position:
    Kernel > Services.  Transactional (see services/base.py).  Uses the
    BalanceProjector read path to report the balance of an account being
    deactivated.

Invariants enforced:
    - (organization_id, code) unique, also under a concurrent insert race
      (storage constraint uq_account_org_code backs the pre-check).
    - code/account_type never change once a posted or voided line
      references the account (AccountStructureLockedError here; the ORM
      guard in db/immutability.py is the backstop).
    - Deactivation never fails for balance reasons.  A non-zero balance is
      reported on the result and logged at WARNING.

Failure modes:
    - DuplicateAccountCodeError, InvalidAccountTypeError, InvalidCurrencyError.
    - OrganizationNotFoundError for an unknown organization.
    - AccountNotFoundError for an absent account or one owned by another
      organization (indistinguishable by design of tenant isolation).
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.immutability import account_has_posted_references
from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import DeactivationResult
from ledger_kernel.domain.identifiers import IdGenerator
from ledger_kernel.domain.policies import DEFAULT_POLICY, LedgerPolicy
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AccountStructureLockedError,
    DuplicateAccountCodeError,
    InvalidAccountTypeError,
    OrganizationNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.organization import Organization
from ledger_kernel.selectors.balance_projector import BalanceProjector
from ledger_kernel.services.base import TransactionalService

logger = get_logger("services.chart_of_accounts")

ACCOUNT_TYPES = tuple(t.value for t in AccountType)


def _account_type_value(account_type: AccountType | str) -> str:
    value = getattr(account_type, "value", account_type)
    if value not in ACCOUNT_TYPES:
        raise InvalidAccountTypeError(str(value), ACCOUNT_TYPES)
    return value


class ChartOfAccounts(TransactionalService):
    """Per-organization chart of accounts."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        policy: LedgerPolicy | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock, id_generator, auto_commit)
        self._policy = policy or DEFAULT_POLICY

    # -------------------------------------------------------------------------
    # Creation and lookup
    # -------------------------------------------------------------------------

    def create_account(
        self,
        organization_id: UUID,
        actor_id: UUID,
        code: str,
        name: str,
        account_type: AccountType | str,
        currency: str | None = None,
    ) -> Account:
        type_value = _account_type_value(account_type)
        currency_value = validate_currency(currency) if currency is not None else None
        code = code.strip()

        with self._transaction(
            "create_account", organization_id=organization_id, actor_id=actor_id
        ):
            if self.session.get(Organization, organization_id) is None:
                raise OrganizationNotFoundError(str(organization_id))
            if self._find_by_code(organization_id, code) is not None:
                raise DuplicateAccountCodeError(str(organization_id), code)

            now = self._clock.now()
            account = Account(
                id=self._ids.new_id(),
                organization_id=organization_id,
                code=code,
                name=name,
                account_type=type_value,
                currency=currency_value,
                is_active=True,
                created_at=now,
                updated_at=now,
                created_by_id=actor_id,
            )
            self.session.add(account)
            try:
                self.session.flush()
            except IntegrityError as exc:
                # Lost the race against a concurrent insert of the same code
                raise DuplicateAccountCodeError(str(organization_id), code) from exc

            logger.info(
                "account_created",
                extra={
                    "account_id": str(account.id),
                    "account_code": code,
                    "account_type": type_value,
                    "currency": currency_value,
                },
            )
        return account

    def lookup(self, organization_id: UUID, account_id: UUID) -> Account:
        with self._transaction("lookup_account", organization_id=organization_id):
            account = self._get_owned(organization_id, account_id)
        return account

    def lookup_by_code(self, organization_id: UUID, code: str) -> Account:
        with self._transaction("lookup_account_by_code", organization_id=organization_id):
            account = self._find_by_code(organization_id, code.strip())
            if account is None:
                raise AccountNotFoundError(code)
        return account

    def list_accounts(
        self,
        organization_id: UUID,
        include_inactive: bool = True,
    ) -> list[Account]:
        """Accounts of the organization ordered by code."""
        with self._transaction("list_accounts", organization_id=organization_id):
            stmt = (
                select(Account)
                .where(Account.organization_id == organization_id)
                .order_by(Account.code)
            )
            if not include_inactive:
                stmt = stmt.where(Account.is_active.is_(True))
            accounts = list(self.session.scalars(stmt))
        return accounts

    # -------------------------------------------------------------------------
    # Changes
    # -------------------------------------------------------------------------

    def rename(
        self,
        organization_id: UUID,
        actor_id: UUID,
        account_id: UUID,
        name: str,
    ) -> Account:
        with self._transaction(
            "rename_account", organization_id=organization_id, actor_id=actor_id
        ):
            account = self._get_owned(organization_id, account_id, for_update=True)
            account.name = name
            self._touch(account, actor_id)
            self.session.flush()
            logger.info("account_renamed", extra={"account_id": str(account_id)})
        return account

    def amend_structure(
        self,
        organization_id: UUID,
        actor_id: UUID,
        account_id: UUID,
        code: str | None = None,
        account_type: AccountType | str | None = None,
    ) -> Account:
        """
        Change code and/or type of an account that has no posted history.

        Raises:
            AccountStructureLockedError: a posted or voided line references
                the account.
        """
        type_value = _account_type_value(account_type) if account_type is not None else None
        new_code = code.strip() if code is not None else None

        with self._transaction(
            "amend_account_structure", organization_id=organization_id, actor_id=actor_id
        ):
            account = self._get_owned(organization_id, account_id, for_update=True)
            fields = []
            if new_code is not None and new_code != account.code:
                fields.append("code")
            if type_value is not None and type_value != account.account_type:
                fields.append("account_type")
            if not fields:
                return account

            if account_has_posted_references(self.session.connection(), account.id):
                raise AccountStructureLockedError(str(account.id), fields)

            if "code" in fields:
                if self._find_by_code(organization_id, new_code) is not None:
                    raise DuplicateAccountCodeError(str(organization_id), new_code)
                account.code = new_code
            if "account_type" in fields:
                account.account_type = type_value
            self._touch(account, actor_id)
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise DuplicateAccountCodeError(str(organization_id), new_code) from exc
            logger.info(
                "account_structure_amended",
                extra={"account_id": str(account.id), "fields": fields},
            )
        return account

    def deactivate(
        self,
        organization_id: UUID,
        actor_id: UUID,
        account_id: UUID,
    ) -> DeactivationResult:
        """
        Stop the account from accepting new postings.

        Idempotent.  Never fails because of a non-zero balance; the balance
        is returned so the caller can follow up.
        """
        with self._transaction(
            "deactivate_account", organization_id=organization_id, actor_id=actor_id
        ):
            account = self._get_owned(organization_id, account_id, for_update=True)
            was_active = account.is_active
            if was_active:
                account.is_active = False
                self._touch(account, actor_id)
                self.session.flush()

            balance = BalanceProjector(self.session, self._policy).account_balance(
                organization_id, account_id
            )
            result = DeactivationResult(
                account_id=account.id,
                was_active=was_active,
                balance=balance,
            )
            if result.has_nonzero_balance:
                logger.warning(
                    "account_deactivated_with_balance",
                    extra={
                        "account_id": str(account.id),
                        "account_code": account.code,
                        "currency": balance.currency,
                        "net_balance": str(balance.net_balance),
                    },
                )
            else:
                logger.info(
                    "account_deactivated",
                    extra={"account_id": str(account.id), "was_active": was_active},
                )
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _get_owned(
        self,
        organization_id: UUID,
        account_id: UUID,
        for_update: bool = False,
    ) -> Account:
        stmt = select(Account).where(Account.id == account_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        account = self.session.scalar(stmt)
        if account is None or account.organization_id != organization_id:
            raise AccountNotFoundError(str(account_id))
        return account

    def _find_by_code(self, organization_id: UUID, code: str) -> Account | None:
        return self.session.scalar(
            select(Account).where(
                Account.organization_id == organization_id,
                Account.code == code,
            )
        )

    def _touch(self, account: Account, actor_id: UUID) -> None:
        account.updated_at = self._clock.now()
        account.updated_by_id = actor_id
