"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below reject changes that would rewrite history:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------

Entity          | Rule
----------------|----------------------------------------------------------
AuditEntry      | never updated, never deleted
StockMovement   | never updated, never deleted
Order           | never updated; deleted only while it has no lines
OrderLine       | never updated, never deleted
CatalogItem     | stock_quantity never written through the ORM
Budget          | spent_amount never written through the ORM

Stock and spend change only through the ledgers' single-statement atomic
UPDATEs, which bypass the unit of work and therefore these listeners.

Usage
-----

    from pharmacy_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    unregister_immutability_listeners()  # tests only
"""

from sqlalchemy import event, func, inspect, select

from pharmacy_kernel.exceptions import ImmutabilityViolationError
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_columns(target) -> set[str]:
    """Names of column attributes with pending changes on ``target``."""
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.add(attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# Append-only records


def _check_audit_entry_update(mapper, connection, target):
    if _changed_columns(target):
        _block("AuditEntry", target, "UPDATE", "Audit entries are immutable")


def _check_audit_entry_delete(mapper, connection, target):
    _block("AuditEntry", target, "DELETE", "Audit entries cannot be deleted")


def _check_stock_movement_update(mapper, connection, target):
    if _changed_columns(target):
        _block("StockMovement", target, "UPDATE", "Stock movements are immutable")


def _check_stock_movement_delete(mapper, connection, target):
    _block("StockMovement", target, "DELETE", "Stock movements cannot be deleted")


# Orders


def _check_order_update(mapper, connection, target):
    # Appending to Order.lines marks the header dirty without column changes.
    if _changed_columns(target):
        _block("Order", target, "UPDATE", "Orders are never modified after creation")


def _check_order_delete(mapper, connection, target):
    from pharmacy_kernel.models.order import OrderLine

    line_count = connection.execute(
        select(func.count())
        .select_from(OrderLine)
        .where(OrderLine.order_id == target.id)
    ).scalar_one()

    if line_count:
        _block(
            "Order",
            target,
            "DELETE",
            f"Order has {line_count} persisted lines; only orphaned headers can be discarded",
        )


def _check_order_line_update(mapper, connection, target):
    if _changed_columns(target):
        _block("OrderLine", target, "UPDATE", "Order lines are never modified")


def _check_order_line_delete(mapper, connection, target):
    _block("OrderLine", target, "DELETE", "Order lines cannot be deleted")


# Ledger-owned columns


def _check_catalog_item_update(mapper, connection, target):
    if "stock_quantity" in _changed_columns(target):
        _block(
            "CatalogItem",
            target,
            "UPDATE",
            "stock_quantity changes only through InventoryLedger",
        )


def _check_budget_update(mapper, connection, target):
    if "spent_amount" in _changed_columns(target):
        _block(
            "Budget",
            target,
            "UPDATE",
            "spent_amount changes only through BudgetLedger",
        )


def _listeners():
    from pharmacy_kernel.models.audit_entry import AuditEntry
    from pharmacy_kernel.models.budget import Budget
    from pharmacy_kernel.models.catalog import CatalogItem, StockMovement
    from pharmacy_kernel.models.order import Order, OrderLine

    return [
        (AuditEntry, "before_update", _check_audit_entry_update),
        (AuditEntry, "before_delete", _check_audit_entry_delete),
        (StockMovement, "before_update", _check_stock_movement_update),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (Order, "before_update", _check_order_update),
        (Order, "before_delete", _check_order_delete),
        (OrderLine, "before_update", _check_order_line_update),
        (OrderLine, "before_delete", _check_order_line_delete),
        (CatalogItem, "before_update", _check_catalog_item_update),
        (Budget, "before_update", _check_budget_update),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability event listeners.

    Call once after models are importable and before any writes.  Calling
    again is harmless.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability event listeners.

    WARNING: Only for tests that must bypass the rules to set up state.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
