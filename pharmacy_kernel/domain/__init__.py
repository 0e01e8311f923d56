"""Pure domain layer: DTOs, pricing, cart, budget health, clock, context."""

from pharmacy_kernel.domain.cancellation import CancellationToken
from pharmacy_kernel.domain.cart import Cart
from pharmacy_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import (
    BudgetStatus,
    LineOutcome,
    LineRequest,
    OrderReceipt,
    OrderRequest,
    PipelineState,
    PricedCart,
    PricedLine,
    ResolvedPrescription,
    StepStatus,
)

__all__ = [
    "BudgetStatus",
    "CancellationToken",
    "Cart",
    "Clock",
    "DeterministicClock",
    "LineOutcome",
    "LineRequest",
    "OrderReceipt",
    "OrderRequest",
    "PipelineState",
    "PricedCart",
    "PricedLine",
    "ResolvedPrescription",
    "StepStatus",
    "SystemClock",
    "TenantContext",
]
