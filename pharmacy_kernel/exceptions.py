"""
Typed exception hierarchy for the pharmacy kernel.

Every error carries a machine-readable ``code`` class attribute and its
context as attributes, so callers catch by type and read structured data
instead of parsing messages.

    PharmacyKernelError (base)
    |
    +-- ValidationError                 malformed input, pre-commit
    +-- ReferenceNotFoundError          missing within tenant scope, pre-commit
    +-- StockError
    |   +-- InsufficientStockError      known stock too low, pre-commit
    +-- ShareCodeInvalidError           unresolvable / inactive, pre-commit
    +-- OrderCancelledError             caller cancelled before any write
    +-- StorageError                    database failure before the header
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError    stock decrement lost a race
    +-- PersistencePartialFailure       a step after the header failed
    |   +-- InventoryConflictError      (also a ConcurrencyConflictError)
    +-- ExpenseStateError
    +-- ImmutabilityViolationError

Error codes
-----------
VALIDATION_ERROR, REFERENCE_NOT_FOUND, INSUFFICIENT_STOCK,
SHARE_CODE_INVALID, ORDER_CANCELLED, STORAGE_ERROR, CONCURRENCY_CONFLICT,
PERSISTENCE_PARTIAL_FAILURE, INVENTORY_CONFLICT, EXPENSE_STATE,
IMMUTABILITY_VIOLATION.

Pre-commit errors (validation, reference, stock, share code, cancellation,
storage) leave nothing durable behind and are safe to retry after fixing
input.
``ConcurrencyConflictError`` raised by the pipeline and every
``PersistencePartialFailure`` mean an order header exists; they carry the
order id and per-step / per-line outcomes so a repair can be driven.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from pharmacy_kernel.domain.dtos import LineOutcome


class PharmacyKernelError(Exception):
    """
    Base exception for all pharmacy kernel errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "PHARMACY_KERNEL_ERROR"


# Input errors


class ValidationError(PharmacyKernelError):
    """Malformed request: zero/negative quantity, empty cart, bad status."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class ReferenceNotFoundError(PharmacyKernelError):
    """Entity does not exist within the caller's tenant scope."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Stock


class StockError(PharmacyKernelError):
    """Base exception for stock-related errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested quantity exceeds known stock at validation time."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        item_name: str,
        requested_quantity: int,
        available_quantity: int,
    ):
        self.item_id = item_id
        self.item_name = item_name
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity
        super().__init__(
            f"Insufficient stock for {item_name}: "
            f"requested {requested_quantity}, available {available_quantity}"
        )


# Share codes


class ShareCodeInvalidError(PharmacyKernelError):
    """Share code does not resolve to an active, unexpired prescription."""

    code: str = "SHARE_CODE_INVALID"

    def __init__(self, share_code: str, reason: str):
        self.share_code = share_code
        self.reason = reason
        super().__init__(f"Invalid share code {share_code!r}: {reason}")


# Cancellation


class OrderCancelledError(PharmacyKernelError):
    """The caller cancelled the submission before anything was persisted."""

    code: str = "ORDER_CANCELLED"

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Order submission cancelled during {stage}")


# Storage


class StorageError(PharmacyKernelError):
    """The database failed before the order header was written; nothing is durable."""

    code: str = "STORAGE_ERROR"

    def __init__(self, stage: str, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(f"Storage failure during {stage}: {reason}")


# Concurrency


class ConcurrencyError(PharmacyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """
    Atomic stock decrement found less stock than requested.

    Validation saw enough stock, but a concurrent order consumed it first.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(
        self,
        item_id: str,
        requested_quantity: int,
        order_id: str | None = None,
    ):
        self.item_id = item_id
        self.requested_quantity = requested_quantity
        self.order_id = order_id
        super().__init__(
            f"Stock decrement of {requested_quantity} for item {item_id} "
            "lost a race against a concurrent order"
        )


# Partial persistence


class PersistencePartialFailure(PharmacyKernelError):
    """
    A pipeline step after the order header failed.

    The order header is durable.  ``step_outcomes`` maps every pipeline
    step to ``succeeded`` / ``failed`` / ``not_run``; ``line_outcomes``
    holds the per-line inventory results when that step ran.
    """

    code: str = "PERSISTENCE_PARTIAL_FAILURE"

    def __init__(
        self,
        order_id: str,
        failed_step: str,
        step_outcomes: Mapping[str, str],
        line_outcomes: tuple[LineOutcome, ...] = (),
        reason: str = "",
    ):
        self._init_partial(order_id, failed_step, step_outcomes, line_outcomes, reason)
        super().__init__(self._partial_message())

    def _init_partial(
        self,
        order_id: str,
        failed_step: str,
        step_outcomes: Mapping[str, str],
        line_outcomes: tuple[LineOutcome, ...],
        reason: str,
    ) -> None:
        self.order_id = order_id
        self.failed_step = failed_step
        self.step_outcomes = dict(step_outcomes)
        self.line_outcomes = tuple(line_outcomes)
        self.reason = reason

    def _partial_message(self) -> str:
        msg = (
            f"Order {self.order_id} created but {self.failed_step} "
            "incomplete; review required"
        )
        if self.reason:
            msg += f" ({self.reason})"
        return msg

    @property
    def succeeded_lines(self) -> tuple[LineOutcome, ...]:
        return tuple(o for o in self.line_outcomes if o.succeeded)

    @property
    def failed_lines(self) -> tuple[LineOutcome, ...]:
        return tuple(o for o in self.line_outcomes if not o.succeeded)


class InventoryConflictError(PersistencePartialFailure, ConcurrencyConflictError):
    """
    Inventory step failed only because stock decrements lost races.

    Catchable both as ``PersistencePartialFailure`` (repair path) and as
    ``ConcurrencyConflictError`` (race path).  ``item_id`` and
    ``requested_quantity`` describe the first conflicting line.
    """

    code: str = "INVENTORY_CONFLICT"

    def __init__(
        self,
        order_id: str,
        step_outcomes: Mapping[str, str],
        line_outcomes: tuple[LineOutcome, ...],
    ):
        self._init_partial(
            order_id,
            "adjusting_inventory",
            step_outcomes,
            line_outcomes,
            "stock consumed by a concurrent order",
        )
        first = self.failed_lines[0] if self.failed_lines else None
        self.item_id = str(first.catalog_item_id) if first else ""
        self.requested_quantity = first.quantity if first else 0
        # Both parents define __init__; neither fits this combined shape.
        PharmacyKernelError.__init__(self, self._partial_message())


# Expenses


class ExpenseStateError(PharmacyKernelError):
    """Expense is not in the state the requested transition needs."""

    code: str = "EXPENSE_STATE"

    def __init__(self, expense_id: str, current_status: str, attempted: str):
        self.expense_id = expense_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} expense {expense_id} in status {current_status}"
        )


# Immutability


class ImmutabilityViolationError(PharmacyKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


def error_payload(exc: PharmacyKernelError) -> dict[str, Any]:
    """Flatten an error into a response-ready dict (code, message, fields)."""
    payload: dict[str, Any] = {"code": exc.code, "message": str(exc)}
    for key, value in vars(exc).items():
        if key.startswith("_"):
            continue
        if key == "line_outcomes":
            value = [o.as_dict() for o in value]
        payload[key] = value
    return payload
