"""
Module: pharmacy_kernel.models.audit_entry
Responsibility: ORM persistence for the append-only who-did-what trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit entries are append-only; no UPDATE or DELETE (db/immutability.py).
    - payload_hash = SHA-256 of the canonical JSON of details, so a details
      blob edited outside the ORM is detectable.

Audit entries never feed back into stock or budget state.  Writing one is a
side channel; replaying it changes nothing else.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import Base, TenantScopedMixin, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DEACTIVATE = "deactivate"
    REVOKE_ACCESS = "revoke_access"

    # Expense lifecycle
    APPROVE = "approve"
    REJECT = "reject"

    # Order repair
    RESTORE_STOCK = "restore_stock"
    DISCARD = "discard"


class AuditEntry(TenantScopedMixin, Base):
    """One immutable audit record."""

    __tablename__ = "audit_entries"

    __table_args__ = (
        Index("idx_audit_entry_entity", "tenant_id", "entity_type", "entity_id"),
        Index("idx_audit_entry_actor", "tenant_id", "actor_id"),
        Index("idx_audit_entry_occurred", "occurred_at"),
    )

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(30), nullable=False)

    # e.g. "order", "expense", "budget"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action} on {self.entity_type}:{self.entity_id}>"
