"""
Draft-phase tests for the JournalEntry aggregate.

Tests cover:
- Draft creation with injected clock and ids
- Line validation on add and update (shape, tenant, currency)
- Line ordering, removal and draft discard
- Draft-only guard once the entry is posted
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.policies import CurrencyPolicy, LedgerPolicy
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    BothSidesSetError,
    CrossTenantReferenceError,
    CurrencyMismatchError,
    EntryNotDraftError,
    EntryNotFoundError,
    InvalidAmountError,
    InvalidCurrencyError,
    LineNotFoundError,
    NegativeAmountError,
    OrganizationNotFoundError,
    ZeroAmountLineError,
)
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.services.ledger_posting_service import LedgerPostingService

ENTRY_DATE = date(2024, 1, 15)


@pytest.fixture
def draft(posting, organization, actor_id):
    return posting.create_draft(organization.id, actor_id, ENTRY_DATE, reference="INV-1")


class TestCreateDraft:
    def test_new_draft(self, posting, organization, actor_id, deterministic_clock):
        entry = posting.create_draft(
            organization.id, actor_id, ENTRY_DATE, reference="INV-7", memo="March sale"
        )
        assert entry.status == "draft"
        assert entry.posted_at is None
        assert entry.created_at == deterministic_clock.now()
        assert entry.created_by_id == actor_id
        assert entry.reference == "INV-7"
        assert entry.organization_id == organization.id

    def test_unknown_organization(self, posting, actor_id):
        with pytest.raises(OrganizationNotFoundError):
            posting.create_draft(uuid4(), actor_id, ENTRY_DATE)

    def test_get_entry_other_tenant(self, posting, draft, other_organization):
        with pytest.raises(EntryNotFoundError):
            posting.get_entry(other_organization.id, draft.id)


class TestAddLine:
    def test_lines_get_increasing_sequence(self, posting, organization, actor_id, draft, accounts):
        first = posting.add_line(organization.id, actor_id, draft.id, accounts["cash"].id, debit="100.00")
        second = posting.add_line(organization.id, actor_id, draft.id, accounts["revenue"].id, credit="60.00")
        third = posting.add_line(organization.id, actor_id, draft.id, accounts["revenue"].id, credit="40.00")

        assert [first.line_seq, second.line_seq, third.line_seq] == [1, 2, 3]
        entry = posting.get_entry(organization.id, draft.id)
        assert [line.id for line in entry.lines] == [first.id, second.id, third.id]
        assert sum(line.debit for line in entry.lines) == Decimal("100.00")
        assert sum(line.credit for line in entry.lines) == Decimal("100.00")

    def test_accepts_money_values(self, posting, organization, actor_id, draft, accounts):
        line = posting.add_line(
            organization.id, actor_id, draft.id, accounts["revenue"].id, credit=Money.of("12.30")
        )
        assert line.credit == Decimal("12.30")
        assert line.debit == Decimal("0.00")

    def test_line_inherits_entry_organization(self, posting, organization, actor_id, draft, accounts):
        line = posting.add_line(organization.id, actor_id, draft.id, accounts["cash"].id, debit=5)
        assert line.organization_id == organization.id
        assert line.debit == Decimal("5.00")
        assert line.credit == Decimal("0.00")

    @pytest.mark.parametrize(
        "debit, credit, error",
        [
            ("-1.00", 0, NegativeAmountError),
            (0, "-1.00", NegativeAmountError),
            ("1.00", "1.00", BothSidesSetError),
            (0, 0, ZeroAmountLineError),
            ("1.001", 0, InvalidAmountError),
            (1.5, 0, InvalidAmountError),
        ],
    )
    def test_line_shape(self, posting, organization, actor_id, draft, accounts, session, debit, credit, error):
        with pytest.raises(error):
            posting.add_line(
                organization.id, actor_id, draft.id, accounts["cash"].id, debit=debit, credit=credit
            )
        assert session.query(JournalLine).count() == 0

    def test_unknown_account(self, posting, organization, actor_id, draft):
        with pytest.raises(AccountNotFoundError):
            posting.add_line(organization.id, actor_id, draft.id, uuid4(), debit="1.00")

    def test_cross_tenant_account(
        self, posting, organization, other_organization, actor_id, draft, create_standard_accounts
    ):
        foreign = create_standard_accounts(other_organization.id)["cash"]
        with pytest.raises(CrossTenantReferenceError) as exc_info:
            posting.add_line(organization.id, actor_id, draft.id, foreign.id, debit="1.00")
        assert exc_info.value.actual_organization_id == str(other_organization.id)
        assert exc_info.value.expected_organization_id == str(organization.id)

    def test_entry_of_other_tenant(self, posting, other_organization, actor_id, draft, accounts):
        with pytest.raises(EntryNotFoundError):
            posting.add_line(other_organization.id, actor_id, draft.id, accounts["cash"].id, debit="1.00")

    def test_explicit_currency_must_match_account(self, posting, organization, actor_id, draft, accounts):
        with pytest.raises(CurrencyMismatchError):
            posting.add_line(
                organization.id, actor_id, draft.id, accounts["cash"].id, debit="1.00", currency="EUR"
            )

    def test_explicit_currency_matching_base(self, posting, organization, actor_id, draft, accounts):
        line = posting.add_line(
            organization.id, actor_id, draft.id, accounts["cash"].id, debit="1.00", currency="usd"
        )
        assert line.currency == "USD"

    def test_invalid_currency(self, posting, organization, actor_id, draft, accounts):
        with pytest.raises(InvalidCurrencyError):
            posting.add_line(
                organization.id, actor_id, draft.id, accounts["cash"].id, debit="1.00", currency="ZZZ"
            )

    def test_homogeneous_policy_rejects_second_currency(
        self, session, deterministic_clock, id_generator, chart, organization, actor_id, accounts
    ):
        eur = chart.create_account(organization.id, actor_id, "1010", "Cash EUR", "asset", currency="EUR")
        service = LedgerPostingService(
            session, deterministic_clock, id_generator,
            policy=LedgerPolicy(currency_policy=CurrencyPolicy.HOMOGENEOUS),
        )
        entry = service.create_draft(organization.id, actor_id, ENTRY_DATE)
        service.add_line(organization.id, actor_id, entry.id, accounts["cash"].id, debit="1.00")

        with pytest.raises(CurrencyMismatchError) as exc_info:
            service.add_line(organization.id, actor_id, entry.id, eur.id, credit="1.00")
        assert exc_info.value.reason == "entry must use a single currency"

    def test_mutation_bumps_entry_version(self, posting, organization, actor_id, draft, accounts):
        assert draft.version == 1
        posting.add_line(organization.id, actor_id, draft.id, accounts["cash"].id, debit="1.00")
        assert posting.get_entry(organization.id, draft.id).version == 2


class TestUpdateAndRemoveLine:
    @pytest.fixture
    def line(self, posting, organization, actor_id, draft, accounts):
        return posting.add_line(
            organization.id, actor_id, draft.id, accounts["cash"].id, debit="10.00", description="cash"
        )

    def test_update_merges_fields(self, posting, organization, actor_id, draft, accounts, line):
        updated = posting.update_line(
            organization.id, actor_id, draft.id, line.id,
            account_id=accounts["expense"].id, debit="12.50",
        )
        assert updated.account_id == accounts["expense"].id
        assert updated.debit == Decimal("12.50")
        assert updated.description == "cash"

    def test_update_to_other_side(self, posting, organization, actor_id, draft, line):
        updated = posting.update_line(organization.id, actor_id, draft.id, line.id, debit=0, credit="3.00")
        assert updated.debit == 0
        assert updated.credit == Decimal("3.00")

    def test_update_revalidates_merged_line(self, posting, organization, actor_id, draft, line):
        # Setting only the credit leaves the existing debit in place
        with pytest.raises(BothSidesSetError):
            posting.update_line(organization.id, actor_id, draft.id, line.id, credit="3.00")
        line_after = posting.get_entry(organization.id, draft.id).lines[0]
        assert line_after.debit == Decimal("10.00")

    def test_update_cross_tenant_account(
        self, posting, organization, other_organization, actor_id, draft, line, create_standard_accounts
    ):
        foreign = create_standard_accounts(other_organization.id)["cash"]
        with pytest.raises(CrossTenantReferenceError):
            posting.update_line(organization.id, actor_id, draft.id, line.id, account_id=foreign.id)

    def test_update_unknown_line(self, posting, organization, actor_id, draft, line):
        with pytest.raises(LineNotFoundError) as exc_info:
            posting.update_line(organization.id, actor_id, draft.id, uuid4(), debit="1.00")
        assert exc_info.value.code == "NOT_FOUND"

    def test_line_of_other_entry_is_not_found(self, posting, organization, actor_id, line, accounts):
        other = posting.create_draft(organization.id, actor_id, ENTRY_DATE)
        with pytest.raises(LineNotFoundError):
            posting.remove_line(organization.id, actor_id, other.id, line.id)

    def test_remove_line(self, posting, organization, actor_id, draft, line, session):
        posting.remove_line(organization.id, actor_id, draft.id, line.id)
        assert posting.get_entry(organization.id, draft.id).lines == []
        assert session.get(JournalLine, line.id) is None


class TestDiscardDraft:
    def test_discard_deletes_entry_and_lines(self, posting, organization, actor_id, draft, accounts, session):
        posting.add_line(organization.id, actor_id, draft.id, accounts["cash"].id, debit="1.00")
        posting.discard_draft(organization.id, actor_id, draft.id)

        assert session.query(JournalEntry).count() == 0
        assert session.query(JournalLine).count() == 0

    def test_discard_posted_entry_fails(self, posting, organization, actor_id, accounts, record_entry):
        posted = record_entry((accounts["cash"], "1.00", 0), (accounts["revenue"], 0, "1.00"))
        with pytest.raises(EntryNotDraftError):
            posting.discard_draft(organization.id, actor_id, posted.entry_id)


class TestPostedEntryIsFrozenThroughService:
    """Once posted, every draft operation is refused."""

    @pytest.fixture
    def posted(self, accounts, record_entry):
        return record_entry((accounts["cash"], "1.00", 0), (accounts["revenue"], 0, "1.00"))

    def test_add_line(self, posting, organization, actor_id, accounts, posted):
        with pytest.raises(EntryNotDraftError) as exc_info:
            posting.add_line(organization.id, actor_id, posted.entry_id, accounts["cash"].id, debit="1.00")
        assert exc_info.value.status == "posted"

    def test_update_line(self, posting, organization, actor_id, posted):
        line = posting.get_entry(organization.id, posted.entry_id).lines[0]
        with pytest.raises(EntryNotDraftError):
            posting.update_line(organization.id, actor_id, posted.entry_id, line.id, description="x")

    def test_remove_line(self, posting, organization, actor_id, posted):
        line = posting.get_entry(organization.id, posted.entry_id).lines[0]
        with pytest.raises(EntryNotDraftError):
            posting.remove_line(organization.id, actor_id, posted.entry_id, line.id)
