"""
AuditSelector -- read the audit trail.
"""

from uuid import UUID

from sqlalchemy import select

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import AuditEntryView
from pharmacy_kernel.models.audit_entry import AuditEntry
from pharmacy_kernel.selectors.base import BaseSelector
from pharmacy_kernel.utils.hashing import hash_payload


class AuditSelector(BaseSelector):

    def list_for_entity(
        self,
        ctx: TenantContext,
        entity_type: str,
        entity_id: UUID | str,
    ) -> list[AuditEntryView]:
        """Entries for one entity, oldest first."""
        stmt = (
            select(AuditEntry)
            .where(
                AuditEntry.tenant_id == ctx.tenant_id,
                AuditEntry.entity_type == entity_type,
                AuditEntry.entity_id == str(entity_id),
            )
            .order_by(AuditEntry.occurred_at)
        )
        return [
            AuditEntryView(
                id=e.id,
                actor_id=e.actor_id,
                action=e.action,
                entity_type=e.entity_type,
                entity_id=e.entity_id,
                details=e.details,
                payload_hash=e.payload_hash,
                occurred_at=e.occurred_at,
            )
            for e in self.session.scalars(stmt)
        ]

    @staticmethod
    def payload_intact(entry: AuditEntryView) -> bool:
        """True when the stored details still hash to payload_hash."""
        return hash_payload(entry.details or {}) == entry.payload_hash
