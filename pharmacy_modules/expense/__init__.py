"""Expense module: expense approval and budget allocation."""

from pharmacy_modules.expense.service import ExpenseService

__all__ = ["ExpenseService"]
