"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted ledger history must be tamper-proof.  A posted entry is never edited
or deleted; the only permitted change is the one-way POSTED -> VOIDED
transition, after which the entry is frozen for good.  Balances are derived
from these rows, so a silent edit would silently change every report.

The posting services already refuse such writes.  These listeners are the
backstop for code that reaches the ORM directly: they fire during
session.flush(), BEFORE the SQL is sent, and abort the flush with a typed
error.

    session.flush()
         |
         v
    [before_flush]  --> _check_account_deletion_before_flush --> AccountReferencedError
         |
    [before_insert/update/delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule
--------------|---------------------------------------------------------------
JournalEntry  | POSTED: frozen except the void transition fields.
              | VOIDED: frozen.  DRAFT -> VOIDED is rejected.
              | Only drafts may be deleted.
JournalLine   | Insert/update/delete only while the parent entry is a DRAFT.
Account       | code, account_type, organization_id, currency frozen once
              | referenced by a posted or voided line.  Such accounts are
              | never deleted.
Organization  | base_currency frozen once a posted or voided line resolves its
              | currency from it (no line or account currency of its own).

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id / version may always change.  They are audit
   and concurrency metadata, not financial data.

2. Status checks use the value BEFORE this flush (attribute history), so the
   posting workflow itself can set status=POSTED while any later edit of a
   posted row is rejected.

3. Line checks read the parent status through the flush connection rather
   than the relationship, so they see what is actually stored in this
   transaction and never trigger a lazy load mid-flush.

4. Inline model imports avoid a db -> models import cycle.

===============================================================================
USAGE
===============================================================================

Registered by init_engine_from_url(enforce_immutability=True).  Registration
is idempotent.

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
===============================================================================
"""

from sqlalchemy import event, inspect, text
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import AccountReferencedError, ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Fields that may change on any row, including frozen ones
AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id", "version"})

# Fields the POSTED -> VOIDED transition is allowed to touch
VOID_TRANSITION_FIELDS = AUDIT_FIELDS | frozenset({
    "status",
    "posted_at",
    "voided_at",
    "voided_by_id",
    "void_reason",
})

# Structural fields that become immutable once an account is referenced
ACCOUNT_STRUCTURAL_FIELDS = frozenset({"code", "account_type", "organization_id", "currency"})

_HISTORY_STATUSES = ("posted", "voided")


def _block(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "write_operation": operation,
            "reason": reason,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _status_value(status) -> str | None:
    if status is None:
        return None
    return getattr(status, "value", status)


def _changed_fields(target) -> list[str]:
    return sorted(
        attr.key
        for attr in inspect(target).attrs
        if attr.history.has_changes()
    )


def account_has_posted_references(connection, account_id) -> bool:
    """True if any posted or voided journal line references the account."""
    result = connection.execute(
        text(
            """
            SELECT EXISTS (
                SELECT 1 FROM journal_lines jl
                JOIN journal_entries je ON jl.journal_entry_id = je.id
                WHERE jl.account_id = :account_id
                AND je.status IN ('posted', 'voided')
            )
            """
        ),
        {"account_id": str(account_id)},
    )
    return bool(result.scalar())


def organization_has_inherited_currency_lines(connection, organization_id) -> bool:
    """True if a posted or voided line falls back to the organization base currency."""
    result = connection.execute(
        text(
            """
            SELECT EXISTS (
                SELECT 1 FROM journal_lines jl
                JOIN journal_entries je ON jl.journal_entry_id = je.id
                JOIN accounts a ON jl.account_id = a.id
                WHERE jl.organization_id = :organization_id
                AND jl.currency IS NULL
                AND a.currency IS NULL
                AND je.status IN ('posted', 'voided')
            )
            """
        ),
        {"organization_id": str(organization_id)},
    )
    return bool(result.scalar())


def _stored_entry_status(connection, journal_entry_id) -> str | None:
    return connection.execute(
        text("SELECT status FROM journal_entries WHERE id = :entry_id"),
        {"entry_id": str(journal_entry_id)},
    ).scalar()


# =============================================================================
# JournalEntry
# =============================================================================


def _check_journal_entry_immutability(mapper, connection, target):
    """
    Enforce the entry state machine on UPDATE.

    DRAFT may become POSTED.  POSTED may only become VOIDED, touching the
    void fields.  VOIDED never changes.
    """
    from ledger_kernel.models.journal import JournalEntry

    if not isinstance(target, JournalEntry):
        return

    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = _status_value(status_history.deleted[0])
    else:
        old_status = _status_value(target.status)
    new_status = _status_value(target.status)

    changed = [f for f in _changed_fields(target) if f not in AUDIT_FIELDS]

    if old_status == "draft":
        if new_status == "voided":
            _block(
                "JournalEntry", target.id, "UPDATE",
                "Draft entries cannot be voided",
            )
        return

    if old_status == "posted" and new_status == "voided":
        illegal = [f for f in changed if f not in VOID_TRANSITION_FIELDS]
        if illegal:
            _block(
                "JournalEntry", target.id, "UPDATE",
                f"Cannot modify field '{illegal[0]}' while voiding a posted entry",
                field=illegal[0],
            )
        return

    if changed:
        _block(
            "JournalEntry", target.id, "UPDATE",
            f"Cannot modify field '{changed[0]}' on {old_status} journal entry",
            field=changed[0],
        )


def _check_journal_entry_delete(mapper, connection, target):
    """Only drafts may be deleted."""
    from ledger_kernel.models.journal import JournalEntry

    if not isinstance(target, JournalEntry):
        return

    status = _status_value(target.status)
    if status != "draft":
        _block(
            "JournalEntry", target.id, "DELETE",
            f"{status.capitalize()} journal entries cannot be deleted",
        )


# =============================================================================
# JournalLine
# =============================================================================


def _check_journal_line_write(operation: str):
    def _check(mapper, connection, target):
        from ledger_kernel.models.journal import JournalLine

        if not isinstance(target, JournalLine):
            return

        status = _stored_entry_status(connection, target.journal_entry_id)
        if status is not None and status != "draft":
            _block(
                "JournalLine", target.id, operation,
                f"Journal lines cannot be written while parent entry is {status}",
                journal_entry_id=str(target.journal_entry_id),
            )

    _check.__name__ = f"_check_journal_line_{operation.lower()}"
    return _check


_check_journal_line_insert = _check_journal_line_write("INSERT")
_check_journal_line_immutability = _check_journal_line_write("UPDATE")
_check_journal_line_delete = _check_journal_line_write("DELETE")


# =============================================================================
# Account
# =============================================================================


def _check_account_structural_immutability(mapper, connection, target):
    """Freeze code, type, organization and currency once posted lines reference the account."""
    from ledger_kernel.models.account import Account

    if not isinstance(target, Account):
        return

    changed = [
        field
        for field in sorted(ACCOUNT_STRUCTURAL_FIELDS)
        if get_history(target, field).has_changes()
    ]
    if not changed:
        return

    if account_has_posted_references(connection, target.id):
        _block(
            "Account", target.id, "UPDATE",
            f"Cannot modify structural field '{changed[0]}' on an account "
            "referenced by posted journal lines",
            field=changed[0],
        )


def _check_organization_base_currency(mapper, connection, target):
    """Freeze base_currency while posted history inherits it."""
    from ledger_kernel.models.organization import Organization

    if not isinstance(target, Organization):
        return

    if not get_history(target, "base_currency").has_changes():
        return

    if organization_has_inherited_currency_lines(connection, target.id):
        _block(
            "Organization", target.id, "UPDATE",
            "Cannot change base_currency while posted journal lines inherit it",
            field="base_currency",
        )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Prevent deletion of accounts referenced by posted or voided lines.

    Runs in SessionEvents.before_flush, before the flush plan is finalized.
    """
    from ledger_kernel.models.account import Account

    for obj in list(session.deleted):
        if not isinstance(obj, Account):
            continue

        with session.no_autoflush:
            referenced = account_has_posted_references(session.connection(), obj.id)

        if referenced:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Account",
                    "entity_id": str(obj.id),
                    "write_operation": "DELETE",
                    "reason": "account_has_posted_references",
                },
            )
            raise AccountReferencedError(account_id=str(obj.id))


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalEntry, JournalLine
    from ledger_kernel.models.organization import Organization

    return [
        (Session, "before_flush", _check_account_deletion_before_flush),
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_insert", _check_journal_line_insert),
        (JournalLine, "before_update", _check_journal_line_immutability),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (Account, "before_update", _check_account_structural_immutability),
        (Organization, "before_update", _check_organization_base_currency),
    ]


def register_immutability_listeners() -> None:
    """Register all immutability event listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove all immutability event listeners.  FOR TESTING ONLY."""
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
