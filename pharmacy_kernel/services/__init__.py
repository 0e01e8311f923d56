"""Kernel services: pricing, resolution, ledgers, audit and the order saga."""

from pharmacy_kernel.services.audit_logger import AuditLogger
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.services.budget_ledger import BudgetLedger
from pharmacy_kernel.services.inventory_ledger import InventoryLedger
from pharmacy_kernel.services.line_pricer import LinePricer
from pharmacy_kernel.services.order_coordinator import OrderCoordinator
from pharmacy_kernel.services.order_repair import OrderRepairService, StockRestoration
from pharmacy_kernel.services.sequence_service import SequenceService
from pharmacy_kernel.services.share_code_resolver import ShareCodeResolver

__all__ = [
    "AuditLogger",
    "BaseService",
    "BudgetLedger",
    "InventoryLedger",
    "LinePricer",
    "OrderCoordinator",
    "OrderRepairService",
    "SequenceService",
    "ShareCodeResolver",
    "StockRestoration",
]
