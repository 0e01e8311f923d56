"""
Module: pharmacy_kernel.models.prescription
Responsibility: ORM persistence for patients, prescriptions and their
    predetermined items.  A prescription is reachable by its share code.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - share_code is unique per tenant.
    - A single-use prescription moves active -> dispensed exactly once; the
      transition is a conditional UPDATE performed with the order header.
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import Base, TenantScopedMixin, TrackedBase, UUIDString


class PrescriptionStatus(str, Enum):
    ACTIVE = "active"
    DISPENSED = "dispensed"
    CANCELLED = "cancelled"


class Patient(TenantScopedMixin, TrackedBase):
    """Patient record referenced by prescriptions and sales."""

    __tablename__ = "patients"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)

    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Patient {self.full_name}>"


class Prescription(TenantScopedMixin, TrackedBase):
    """
    A doctor's prescription with a fixed list of items.

    The share code is the opaque token a patient presents at the counter.
    """

    __tablename__ = "prescriptions"

    __table_args__ = (
        UniqueConstraint("tenant_id", "share_code", name="uq_prescription_tenant_share_code"),
    )

    patient_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("patients.id"),
        nullable=False,
    )

    share_code: Mapped[str] = mapped_column(String(64), nullable=False)

    doctor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)

    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PrescriptionStatus.ACTIVE.value,
    )

    # Set when a single-use prescription is claimed by an order
    dispensed_order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    patient: Mapped[Patient] = relationship(lazy="joined")

    items: Mapped[list["PrescriptionItem"]] = relationship(
        back_populates="prescription",
        order_by="PrescriptionItem.line_no",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Prescription {self.share_code} ({self.status})>"


class PrescriptionItem(TenantScopedMixin, Base):
    __tablename__ = "prescription_items"

    __table_args__ = (
        UniqueConstraint("prescription_id", "line_no", name="uq_prescription_item_line"),
        CheckConstraint("quantity > 0", name="ck_prescription_item_quantity_positive"),
    )

    prescription_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("prescriptions.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

    catalog_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("catalog_items.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    dosage: Mapped[str | None] = mapped_column(String(200), nullable=True)

    prescription: Mapped[Prescription] = relationship(back_populates="items")
