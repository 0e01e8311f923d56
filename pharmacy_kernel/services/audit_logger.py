"""
AuditLogger -- best-effort, append-only who-did-what trail.

Responsibility:
    ``record`` appends one AuditEntry inside a savepoint.  It never raises:
    any failure is rolled back to the savepoint, logged as
    ``audit_record_failed`` and reported by returning None.  The business
    operation that triggered it stands regardless.

Architecture position:
    Kernel > Services.  Flushes only.  Writing an entry touches nothing but
    the audit table, so recording the same event twice never alters stock
    or budget state.
"""

from typing import Any
from uuid import UUID

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.audit_entry import AuditAction, AuditEntry
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.utils.hashing import hash_payload, json_safe

logger = get_logger("services.audit_logger")


class AuditLogger(BaseService):

    def record(
        self,
        ctx: TenantContext,
        action: AuditAction | str,
        entity_type: str,
        entity_id: UUID | str,
        details: dict[str, Any] | None = None,
    ) -> UUID | None:
        """
        Append one audit entry.

        Returns:
            The entry id, or None when recording failed.
        """
        action_value = action.value if isinstance(action, AuditAction) else str(action)
        try:
            payload = json_safe(details or {})
            entry = AuditEntry(
                tenant_id=ctx.tenant_id,
                actor_id=ctx.actor_id,
                action=action_value,
                entity_type=entity_type,
                entity_id=str(entity_id),
                details=payload,
                payload_hash=hash_payload(payload),
                occurred_at=self.clock.now(),
            )
            with self.session.begin_nested():
                self.session.add(entry)
        except Exception:
            logger.error(
                "audit_record_failed",
                exc_info=True,
                extra={
                    "action": action_value,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                },
            )
            return None

        logger.info(
            "audit_recorded",
            extra={
                "audit_entry_id": str(entry.id),
                "action": action_value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return entry.id
