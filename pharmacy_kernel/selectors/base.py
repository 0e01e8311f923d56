"""
Module: pharmacy_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    are the read side of the kernel: stock levels, orders, budgets with their
    derived status, and the audit trail.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (for the DTOs they return).  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never call session.add(), delete(), flush() or
      commit().
    - Tenant scope: every query filters on the caller's tenant_id.
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Selectors accept a Session from the caller and do not manage its
    transaction.
    """

    def __init__(self, session: Session):
        self.session = session
