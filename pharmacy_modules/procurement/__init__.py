"""Procurement module: purchase orders and goods receiving."""

from pharmacy_modules.procurement.service import ProcurementService

__all__ = ["ProcurementService"]
