"""
TenantContext -- explicit caller scope.

Every service call receives the tenant (pharmacy) and the acting user as a
value instead of reading ambient session state.  Every query and write is
filtered by ``tenant_id``.
"""

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True)
class TenantContext:
    """Who is calling, on behalf of which pharmacy."""

    tenant_id: UUID
    actor_id: UUID
    correlation_id: str | None = None

    def with_correlation(self, correlation_id: str | None = None) -> "TenantContext":
        """Return a copy carrying a correlation id (generated if omitted)."""
        return TenantContext(
            tenant_id=self.tenant_id,
            actor_id=self.actor_id,
            correlation_id=correlation_id or str(uuid4()),
        )
