"""SQLAlchemy models for the pharmacy kernel."""

from pharmacy_kernel.models.audit_entry import AuditAction, AuditEntry
from pharmacy_kernel.models.budget import Budget, Expense, ExpenseStatus
from pharmacy_kernel.models.catalog import CatalogItem, StockMovement, StockMovementReason
from pharmacy_kernel.models.order import Order, OrderKind, OrderLine, PaymentStatus
from pharmacy_kernel.models.prescription import (
    Patient,
    Prescription,
    PrescriptionItem,
    PrescriptionStatus,
)
from pharmacy_kernel.models.repair import OrderRepairClaim
from pharmacy_kernel.models.sequence import SequenceCounter

__all__ = [
    "AuditAction",
    "AuditEntry",
    "Budget",
    "CatalogItem",
    "Expense",
    "ExpenseStatus",
    "Order",
    "OrderKind",
    "OrderLine",
    "OrderRepairClaim",
    "Patient",
    "PaymentStatus",
    "Prescription",
    "PrescriptionItem",
    "PrescriptionStatus",
    "SequenceCounter",
    "StockMovement",
    "StockMovementReason",
]
