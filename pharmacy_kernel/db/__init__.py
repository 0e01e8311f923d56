"""Database layer - engine, base classes, types, and immutability listeners."""

from pharmacy_kernel.db.base import UUID, Base, TenantScopedMixin, TrackedBase, UUIDString
from pharmacy_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from pharmacy_kernel.db.types import round_money, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TenantScopedMixin",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "round_money",
    "to_decimal",
]
