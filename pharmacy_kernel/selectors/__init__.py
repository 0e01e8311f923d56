"""Read-only selectors for the pharmacy kernel."""

from pharmacy_kernel.selectors.audit_selector import AuditSelector
from pharmacy_kernel.selectors.base import BaseSelector
from pharmacy_kernel.selectors.budget_selector import BudgetSelector
from pharmacy_kernel.selectors.catalog_selector import CatalogSelector
from pharmacy_kernel.selectors.order_selector import OrderSelector

__all__ = [
    "AuditSelector",
    "BaseSelector",
    "BudgetSelector",
    "CatalogSelector",
    "OrderSelector",
]
