"""
Module: pharmacy_kernel.models.sequence
Responsibility: Named monotonic counters (invoice numbers).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Values are only
    ever advanced by SequenceService's single-statement increment.
    """

    __tablename__ = "sequence_counters"

    # e.g. "invoice:<tenant_id>"
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
