"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through the fulfillment
    pipeline: OrderRequest / LineRequest (input), PricedCart / PricedLine
    (pricer output), LineOutcome (per-line inventory result), OrderReceipt
    (coordinator output), plus the read-side views returned by selectors.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Free of ORM
    dependencies; services convert models to these at the boundary.

Data flow:
    OrderRequest -> PricedCart -> (Order, OrderLine rows) -> OrderReceipt
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class PipelineState(str, Enum):
    """
    States of the order persistence state machine.

    Contract:
        VALIDATING -> PRICING -> PERSISTING_HEADER -> PERSISTING_LINES ->
        ADJUSTING_INVENTORY -> POSTING_BUDGET -> LOGGING_AUDIT -> COMMITTED.
        FAILED is terminal and reachable from every state.
    """

    VALIDATING = "validating"
    PRICING = "pricing"
    PERSISTING_HEADER = "persisting_header"
    PERSISTING_LINES = "persisting_lines"
    ADJUSTING_INVENTORY = "adjusting_inventory"
    POSTING_BUDGET = "posting_budget"
    LOGGING_AUDIT = "logging_audit"
    COMMITTED = "committed"
    FAILED = "failed"


# Steps reported in a partial failure's step_outcomes map
DURABLE_STEPS: tuple[PipelineState, ...] = (
    PipelineState.PERSISTING_HEADER,
    PipelineState.PERSISTING_LINES,
    PipelineState.ADJUSTING_INVENTORY,
    PipelineState.POSTING_BUDGET,
    PipelineState.LOGGING_AUDIT,
)


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_RUN = "not_run"


class BudgetStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    OVER_BUDGET = "over_budget"


# =============================================================================
# Pipeline input
# =============================================================================


@dataclass(frozen=True)
class LineRequest:
    """
    One requested cart line.

    unit_price is an override (procurement vendor price); None means the
    current catalog price.
    """

    catalog_item_id: UUID
    quantity: int
    discount: Decimal = Decimal("0")
    unit_price: Decimal | None = None


@dataclass(frozen=True)
class OrderRequest:
    """
    Caller-supplied order.

    When share_code is set, the prescription's lines replace ``lines``.
    budget_amount, when set, is the sub-amount posted to the budget instead
    of the order total (e.g. the insurance-covered portion).
    """

    payment_method: str
    payment_status: str = "paid"
    lines: tuple[LineRequest, ...] = ()
    customer_ref: UUID | None = None
    customer_name: str | None = None
    prescription_ref: UUID | None = None
    share_code: str | None = None
    vendor_ref: str | None = None
    budget_category: str | None = None
    budget_amount: Decimal | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.lines, tuple):
            object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class ResolvedPrescription:
    """A share code resolved to its prescription, patient and fixed lines."""

    prescription_id: UUID
    share_code: str
    patient_id: UUID
    patient_name: str
    doctor_name: str | None
    lines: tuple[LineRequest, ...]


# =============================================================================
# Pricing
# =============================================================================


@dataclass(frozen=True)
class PricedLine:
    """A validated line with its price snapshot and rounded total."""

    line_no: int
    catalog_item_id: UUID
    item_name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total_price: Decimal

    def as_dict(self) -> dict[str, Any]:
        return {
            "line_no": self.line_no,
            "catalog_item_id": str(self.catalog_item_id),
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "discount": str(self.discount),
            "total_price": str(self.total_price),
        }


@dataclass(frozen=True)
class PricedCart:
    """
    Output of LinePricer.

    Guarantees:
        total_amount == sum(line.total_price for line in lines), exactly.
    """

    lines: tuple[PricedLine, ...]
    total_amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        if not self.lines:
            raise ValueError("PricedCart must have at least one line")
        line_sum = sum((line.total_price for line in self.lines), Decimal("0"))
        if line_sum != self.total_amount:
            raise ValueError(
                f"PricedCart total {self.total_amount} != sum of lines {line_sum}"
            )


# =============================================================================
# Pipeline output
# =============================================================================


@dataclass(frozen=True)
class LineOutcome:
    """Result of one line's inventory adjustment."""

    line_no: int
    catalog_item_id: UUID
    quantity: int
    succeeded: bool
    error_code: str | None = None
    message: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "line_no": self.line_no,
            "catalog_item_id": str(self.catalog_item_id),
            "quantity": self.quantity,
            "succeeded": self.succeeded,
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass(frozen=True)
class OrderReceipt:
    """Returned by OrderCoordinator.submit once the order is committed."""

    order_id: UUID
    invoice_number: str
    kind: str
    total_amount: Decimal
    currency: str
    lines: tuple[PricedLine, ...]
    budget_id: UUID | None = None
    audit_entry_id: UUID | None = None
    states: tuple[PipelineState, ...] = field(default_factory=tuple)

    @property
    def state(self) -> PipelineState:
        return self.states[-1] if self.states else PipelineState.COMMITTED


# =============================================================================
# Read-side views
# =============================================================================


@dataclass(frozen=True)
class CatalogItemView:
    id: UUID
    sku: str
    name: str
    category: str
    unit_price: Decimal
    currency: str
    stock_quantity: int
    reorder_level: int
    expiry_date: date | None
    is_active: bool

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity < self.reorder_level


@dataclass(frozen=True)
class OrderLineView:
    line_no: int
    catalog_item_id: UUID
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class OrderView:
    id: UUID
    kind: str
    invoice_number: str
    customer_ref: UUID | None
    customer_name: str | None
    prescription_ref: UUID | None
    vendor_ref: str | None
    currency: str
    total_amount: Decimal
    payment_method: str
    payment_status: str
    budget_category: str | None
    created_by_id: UUID
    created_at: datetime
    lines: tuple[OrderLineView, ...] = ()

    @property
    def lines_total(self) -> Decimal:
        return sum((line.total_price for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class BudgetView:
    """Budget with its derived fields, computed at read time."""

    id: UUID
    year: int
    month: int
    category: str
    currency: str
    allocated_amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    percentage_used: Decimal
    status: BudgetStatus


@dataclass(frozen=True)
class ExpenseView:
    id: UUID
    description: str
    amount: Decimal
    category: str
    expense_date: date
    payment_method: str | None
    status: str
    recorded_by_id: UUID
    approved_by_id: UUID | None
    approved_at: datetime | None
    budget_id: UUID | None


@dataclass(frozen=True)
class AuditEntryView:
    id: UUID
    actor_id: UUID
    action: str
    entity_type: str
    entity_id: str
    details: dict[str, Any] | None
    payload_hash: str
    occurred_at: datetime
