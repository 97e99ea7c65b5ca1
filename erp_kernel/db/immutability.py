"""
ORM-level append-only enforcement for ledger and layer records.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity          | Rule
----------------|-------------------------------------------------------------
JournalEntry    | Never updated, never deleted (corrections are reversals)
JournalLine     | Never updated, never deleted
LayerDepletion  | Never updated, never deleted
InventoryLayer  | Never deleted; after insert only remaining_qty (downwards)
                | and is_depleted may change

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The check raises inside the flush, so the caller's transaction aborts and
nothing reaches the database.  Raw SQL and bulk UPDATE statements bypass
mapper events; no code path in this system issues them against these tables.

===============================================================================
USAGE
===============================================================================

    from erp_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup; idempotent

Tests that need to bypass the guard call unregister_immutability_listeners().
"""

from sqlalchemy import event, inspect

from erp_kernel.exceptions import ImmutabilityViolationError
from erp_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields a depletion is allowed to touch on an existing layer
LAYER_MUTABLE_FIELDS = AUDIT_FIELDS | {"remaining_qty", "is_depleted"}


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_columns(target) -> list[str]:
    """Column attributes with pending changes, excluding audit metadata."""
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in AUDIT_FIELDS and insp.attrs[attr.key].history.has_changes()
    ]


def _check_journal_entry_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "JournalEntry",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a posted journal entry",
            field=changed[0],
        )


def _check_journal_entry_delete(mapper, connection, target):
    _block("JournalEntry", target, "DELETE", "Posted journal entries cannot be deleted")


def _check_journal_line_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "JournalLine",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a posted journal line",
            field=changed[0],
        )


def _check_journal_line_delete(mapper, connection, target):
    _block("JournalLine", target, "DELETE", "Posted journal lines cannot be deleted")


def _check_depletion_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "LayerDepletion",
            target,
            "UPDATE",
            "Layer depletion records are immutable",
            field=changed[0],
        )


def _check_depletion_delete(mapper, connection, target):
    _block("LayerDepletion", target, "DELETE", "Layer depletion records cannot be deleted")


def _check_layer_update(mapper, connection, target):
    """
    Allow depletion bookkeeping only.

    remaining_qty may decrease; every other financial field is frozen.
    """
    for key in _changed_columns(target):
        if key not in LAYER_MUTABLE_FIELDS:
            _block(
                "InventoryLayer",
                target,
                "UPDATE",
                f"Cannot modify field '{key}' on an inventory layer",
                field=key,
            )

    history = inspect(target).attrs.remaining_qty.history
    if history.deleted and history.added:
        old, new = history.deleted[0], history.added[0]
        if old is not None and new is not None and new > old:
            _block(
                "InventoryLayer",
                target,
                "UPDATE",
                f"remaining_qty may only decrease ({old} -> {new})",
                field="remaining_qty",
            )


def _check_layer_delete(mapper, connection, target):
    _block("InventoryLayer", target, "DELETE", "Inventory layers cannot be deleted")


def _listeners():
    from erp_kernel.models.inventory import InventoryLayer, LayerDepletion
    from erp_kernel.models.journal import JournalEntry, JournalLine

    return [
        (JournalEntry, "before_update", _check_journal_entry_update),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_update),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (LayerDepletion, "before_update", _check_depletion_update),
        (LayerDepletion, "before_delete", _check_depletion_delete),
        (InventoryLayer, "before_update", _check_layer_update),
        (InventoryLayer, "before_delete", _check_layer_delete),
    ]


def register_immutability_listeners() -> None:
    """Install the mapper listeners.  Safe to call more than once."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove the mapper listeners.  FOR TESTING ONLY."""
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
