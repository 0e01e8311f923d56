"""Sales module: point-of-sale orders and share-code prescriptions."""

from pharmacy_modules.sales.service import SalesService

__all__ = ["SalesService"]
