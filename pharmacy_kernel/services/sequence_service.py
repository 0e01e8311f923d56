"""
SequenceService -- monotonic counters for invoice numbers.

Responsibility:
    Hands out strictly increasing values per named counter.  The increment
    is one conditional ``UPDATE ... SET current_value = current_value + 1``,
    so concurrent allocators serialize on the counter row in the database
    and can never read the same value.

Failure modes:
    - IntegrityError: two transactions create the same counter at once.
      The loser rolls back its savepoint and increments the winner's row.
    - RuntimeError: the counter could not be created or incremented.

Transactional: the increment is only visible when the caller commits; a
rollback returns the value.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.sequence import SequenceCounter
from pharmacy_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService):
    """
    Allocates sequence values.  Flushes only; the caller commits.

    Usage:
        number = SequenceService(session).next_invoice_number(tenant_id, "INV")
        # "INV-000001"
    """

    _MAX_ATTEMPTS = 3

    def next_value(self, sequence_name: str) -> int:
        """
        Return the next value for ``sequence_name`` (first value is 1).
        """
        for _ in range(self._MAX_ATTEMPTS):
            result = self.session.execute(
                update(SequenceCounter)
                .where(SequenceCounter.name == sequence_name)
                .values(current_value=SequenceCounter.current_value + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                value = self.session.execute(
                    select(SequenceCounter.current_value)
                    .where(SequenceCounter.name == sequence_name)
                ).scalar_one()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": value},
                )
                return value

            # First use of this sequence.  Create it inside a savepoint so a
            # concurrent creator does not roll back the caller's work.
            savepoint = self.session.begin_nested()
            try:
                self.session.add(SequenceCounter(name=sequence_name, current_value=1))
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                continue
            logger.debug(
                "sequence_allocated",
                extra={"sequence_name": sequence_name, "value": 1},
            )
            return 1

        raise RuntimeError(f"Could not allocate a value for sequence {sequence_name!r}")

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        return self.session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def next_invoice_number(self, tenant_id, prefix: str) -> str:
        """Allocate the tenant's next document number for ``prefix``."""
        value = self.next_value(f"{prefix.lower()}:{tenant_id}")
        return f"{prefix}-{value:06d}"
