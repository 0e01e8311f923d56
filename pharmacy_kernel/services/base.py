"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session contract.  Services receive a SQLAlchemy
    ``Session`` and persist with ``session.flush()`` -- never
    ``session.commit()``.  The caller (OrderCoordinator, a module service,
    or a test) owns commit and rollback.

Failure modes:
    - A subclass that commits on its own breaks the step boundaries the
      coordinator relies on to report partial failures accurately.
"""

from abc import ABC

from sqlalchemy.orm import Session

from pharmacy_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - ``self.clock`` is always set (SystemClock unless injected).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
