"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger sit behind an API layer that has to turn failures into
responses, alerts, or retries.  Parsing message strings for that is fragile,
so every failure the kernel can raise is:
  1. a TYPED exception class (catch by type, not message)
  2. tagged with a CODE class attribute (machine-readable, API-safe)
  3. carrying structured DATA as attributes (not just a message string)

Example:
    try:
        posting.post(org_id, actor_id, entry_id)
    except UnbalancedEntryError as e:
        return {"error": e.code, "currency": e.currency, "difference": e.difference}
    except ConcurrencyConflictError:
        ...  # safe to re-run the whole operation after re-reading state

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- LedgerValidationError           caller-correctable, never auto-retried
    |   +-- InvalidAmountError
    |   |   +-- NegativeAmountError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |   +-- DuplicateAccountCodeError
    |   +-- InvalidAccountTypeError
    |   +-- CrossTenantReferenceError
    |   +-- BothSidesSetError
    |   +-- ZeroAmountLineError
    |   +-- UnbalancedEntryError
    |   +-- EmptyEntryError
    |   +-- AccountInactiveError
    |   +-- AccountStructureLockedError
    |   +-- EntryNotDraftError
    |   +-- EntryNotPostedError
    |   +-- EntryAlreadyVoidedError
    |   +-- DuplicateEmailError
    |   +-- InvalidRoleError
    |   +-- DuplicateMembershipError
    |   +-- NotFoundError
    |       +-- OrganizationNotFoundError
    |       +-- UserNotFoundError
    |       +-- AccountNotFoundError
    |       +-- EntryNotFoundError
    |       +-- LineNotFoundError
    |
    +-- ConcurrencyError                transient, retry from scratch
    |   +-- ConcurrencyConflictError
    |
    +-- LedgerIntegrityError            fatal, alert rather than retry
        +-- ImmutabilityViolationError
        +-- AccountReferencedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                  | When Raised
-------------|-----------------------|---------------------------------------------
Amount       | INVALID_AMOUNT        | Float, NaN, or more than 2 fractional digits
             | NEGATIVE_AMOUNT       | Debit/credit below zero
Currency     | INVALID_CURRENCY      | Not an ISO 4217 code
             | CURRENCY_MISMATCH     | Line currency disagrees with account/entry
Chart        | DUPLICATE_CODE        | Account code already used in organization
             | INVALID_TYPE          | Account type outside the fixed set
             | ACCOUNT_STRUCTURE_LOCKED | Code/type change after first posting
Line         | CROSS_TENANT_REFERENCE| Line/account/entry organizations differ
             | BOTH_SIDES_SET        | Debit and credit both positive
             | ZERO_AMOUNT_LINE      | Debit and credit both zero
Posting      | UNBALANCED            | Debits != credits for a currency
             | EMPTY_ENTRY           | Posting an entry without lines
             | INACTIVE_ACCOUNT      | Line targets a deactivated account
Lifecycle    | ENTRY_NOT_DRAFT       | Mutating/posting a non-draft entry
             | NOT_POSTED            | Voiding a draft
             | ALREADY_VOIDED        | Voiding a voided entry
Lookup       | NOT_FOUND             | Absent or belongs to another organization
Concurrency  | CONCURRENCY_CONFLICT  | Serialization failure, lock timeout, stale row
Integrity    | INTEGRITY_VIOLATION   | Storage rejected a write validation allowed
             | IMMUTABILITY_VIOLATION| Modifying posted/voided history
             | ACCOUNT_REFERENCED    | Deleting an account with posted lines

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception (not ValueError etc.) so domain failures can be
   caught as a group without catching programming errors.
2. ``code`` and ``retryable`` are class attributes: static per type and
   readable without instantiation.
3. Integrity failures are NOT validation failures.  A caller that retries
   validation errors blindly must never retry an integrity violation.
===============================================================================
"""

from decimal import Decimal


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification and a ``retryable`` flag.
    """

    code: str = "LEDGER_ERROR"
    retryable: bool = False


# =============================================================================
# Validation errors
# =============================================================================


class LedgerValidationError(LedgerError):
    """Base for caller-correctable failures reported synchronously."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(LedgerValidationError):
    """Amount is not an exact two-decimal value."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid amount {value!s}: {reason}")


class NegativeAmountError(InvalidAmountError):
    """A debit or credit amount is negative."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, value: str, side: str | None = None):
        self.side = side
        label = f"{side} amount" if side else "amount"
        super().__init__(value, f"{label} must not be negative")


class InvalidCurrencyError(LedgerValidationError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


class CurrencyMismatchError(LedgerValidationError):
    """Line currency disagrees with the account or the rest of the entry."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str, reason: str):
        self.expected = expected
        self.received = received
        self.reason = reason
        super().__init__(
            f"Currency mismatch: expected {expected}, got {received} ({reason})"
        )


class DuplicateAccountCodeError(LedgerValidationError):
    """Account code already exists in the organization."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, organization_id: str, account_code: str):
        self.organization_id = organization_id
        self.account_code = account_code
        super().__init__(
            f"Account code '{account_code}' already exists in organization "
            f"{organization_id}"
        )


class InvalidAccountTypeError(LedgerValidationError):
    """Account type is outside the fixed set."""

    code: str = "INVALID_TYPE"

    def __init__(self, account_type: str, allowed: tuple[str, ...]):
        self.account_type = account_type
        self.allowed = allowed
        super().__init__(
            f"Invalid account type '{account_type}'; expected one of "
            f"{', '.join(allowed)}"
        )


class CrossTenantReferenceError(LedgerValidationError):
    """An entity references another entity belonging to a different organization."""

    code: str = "CROSS_TENANT_REFERENCE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_organization_id: str,
        actual_organization_id: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_organization_id = expected_organization_id
        self.actual_organization_id = actual_organization_id
        super().__init__(
            f"{entity_type} {entity_id} belongs to organization "
            f"{actual_organization_id}, not {expected_organization_id}"
        )


class BothSidesSetError(LedgerValidationError):
    """A line carries both a positive debit and a positive credit."""

    code: str = "BOTH_SIDES_SET"

    def __init__(self, debit: str, credit: str):
        self.debit = debit
        self.credit = credit
        super().__init__(
            f"Line cannot have both debit ({debit}) and credit ({credit}) positive"
        )


class ZeroAmountLineError(LedgerValidationError):
    """A line has neither a debit nor a credit amount."""

    code: str = "ZERO_AMOUNT_LINE"

    def __init__(self):
        super().__init__("Line must have a positive debit or a positive credit")


class UnbalancedEntryError(LedgerValidationError):
    """Journal entry debits do not equal credits for a currency."""

    code: str = "UNBALANCED"

    def __init__(self, currency: str, debits: str, credits: str):
        self.currency = currency
        self.debits = debits
        self.credits = credits
        self.difference = str(Decimal(debits) - Decimal(credits))
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}, "
            f"difference={self.difference}"
        )


class EmptyEntryError(LedgerValidationError):
    """Entry has no lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Journal entry {journal_entry_id} has no lines")


class AccountInactiveError(LedgerValidationError):
    """Account is not active for posting."""

    code: str = "INACTIVE_ACCOUNT"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account is inactive: {account_id}")


class AccountStructureLockedError(LedgerValidationError):
    """Code or type change requested on an account used by posted lines."""

    code: str = "ACCOUNT_STRUCTURE_LOCKED"

    def __init__(self, account_id: str, fields: list[str]):
        self.account_id = account_id
        self.fields = fields
        super().__init__(
            f"Cannot change {', '.join(fields)} on account {account_id}: "
            "referenced by posted journal lines"
        )


class EntryNotDraftError(LedgerValidationError):
    """Entry is no longer a draft."""

    code: str = "ENTRY_NOT_DRAFT"

    def __init__(self, journal_entry_id: str, status: str):
        self.journal_entry_id = journal_entry_id
        self.status = status
        super().__init__(
            f"Journal entry {journal_entry_id} is {status}, not draft"
        )


class EntryNotPostedError(LedgerValidationError):
    """Cannot void an entry that is not posted."""

    code: str = "NOT_POSTED"

    def __init__(self, journal_entry_id: str, status: str):
        self.journal_entry_id = journal_entry_id
        self.status = status
        super().__init__(
            f"Cannot void entry {journal_entry_id}: status is {status}, not posted"
        )


class EntryAlreadyVoidedError(LedgerValidationError):
    """Entry has already been voided."""

    code: str = "ALREADY_VOIDED"

    def __init__(self, journal_entry_id: str):
        self.journal_entry_id = journal_entry_id
        super().__init__(f"Entry {journal_entry_id} has already been voided")


class DuplicateEmailError(LedgerValidationError):
    """A user with this email already exists."""

    code: str = "DUPLICATE_EMAIL"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User with email '{email}' already exists")


class InvalidRoleError(LedgerValidationError):
    """Membership role outside the fixed set."""

    code: str = "INVALID_ROLE"

    def __init__(self, role: str, allowed: tuple[str, ...]):
        self.role = role
        self.allowed = allowed
        super().__init__(
            f"Invalid membership role '{role}'; expected one of {', '.join(allowed)}"
        )


class DuplicateMembershipError(LedgerValidationError):
    """User is already a member of the organization."""

    code: str = "DUPLICATE_MEMBERSHIP"

    def __init__(self, organization_id: str, user_id: str):
        self.organization_id = organization_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id} is already a member of organization {organization_id}"
        )


class NotFoundError(LedgerValidationError):
    """Entity is absent, or belongs to another organization."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class OrganizationNotFoundError(NotFoundError):
    entity_type = "Organization"


class UserNotFoundError(NotFoundError):
    entity_type = "User"


class AccountNotFoundError(NotFoundError):
    entity_type = "Account"


class EntryNotFoundError(NotFoundError):
    entity_type = "JournalEntry"


class LineNotFoundError(NotFoundError):
    entity_type = "JournalLine"


# =============================================================================
# Concurrency errors
# =============================================================================


class ConcurrencyError(LedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConcurrencyConflictError(ConcurrencyError):
    """
    The transaction lost a race and was rolled back.

    Safe to retry the whole operation from scratch after re-reading state.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Concurrency conflict during {operation}: {reason}"
        )


# =============================================================================
# Integrity violations
# =============================================================================


class LedgerIntegrityError(LedgerError):
    """
    Storage state contradicts what validation observed.

    Example: a referenced account vanished between validation and commit.
    Callers should alert rather than silently retry.
    """

    code: str = "INTEGRITY_VIOLATION"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Integrity violation during {operation}: {reason}")


class ImmutabilityViolationError(LedgerIntegrityError):
    """Attempted to modify or delete posted/voided ledger history."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"write to {entity_type} {entity_id}", reason)


class AccountReferencedError(LedgerIntegrityError):
    """Account cannot be deleted because it is referenced by posted lines."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"delete of Account {account_id}",
            "account is referenced by posted journal lines",
        )
