"""Orders module: customer orders."""

from pharmacy_modules.orders.service import OrdersService

__all__ = ["OrdersService"]
