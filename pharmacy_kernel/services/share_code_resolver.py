"""
ShareCodeResolver -- map an opaque share code to a prescription.

Responsibility:
    ``resolve`` looks up an active, unexpired prescription by share code in
    the caller's tenant and returns its patient and fixed lines.  It performs
    no writes.  ``claim`` is the single-use transition
    ``active -> dispensed`` used inside the order header transaction.

Failure modes:
    - ShareCodeInvalidError: blank, unknown, not active, expired, or no items;
      or, from ``claim``, another order dispensed it first.
    - ReferenceNotFoundError: the prescription's patient is not in the tenant.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import LineRequest, ResolvedPrescription
from pharmacy_kernel.exceptions import ReferenceNotFoundError, ShareCodeInvalidError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.prescription import Prescription, PrescriptionStatus
from pharmacy_kernel.services.base import BaseService

logger = get_logger("services.share_code_resolver")


class ShareCodeResolver(BaseService):

    def resolve(self, ctx: TenantContext, share_code: str) -> ResolvedPrescription:
        code = (share_code or "").strip()
        if not code:
            raise ShareCodeInvalidError(share_code or "", "share code is empty")

        prescription = self.session.execute(
            select(Prescription)
            .where(
                Prescription.tenant_id == ctx.tenant_id,
                Prescription.share_code == code,
            )
            .options(selectinload(Prescription.items))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if prescription is None:
            logger.info("share_code_not_found", extra={"share_code": code})
            raise ShareCodeInvalidError(code, "no prescription found for this code")

        if prescription.status != PrescriptionStatus.ACTIVE.value:
            raise ShareCodeInvalidError(code, f"prescription is {prescription.status}")

        if (
            prescription.expiry_date is not None
            and prescription.expiry_date < self.clock.today()
        ):
            raise ShareCodeInvalidError(
                code, f"prescription expired on {prescription.expiry_date.isoformat()}"
            )

        if not prescription.items:
            raise ShareCodeInvalidError(code, "prescription has no items")

        patient = prescription.patient
        if patient is None or patient.tenant_id != ctx.tenant_id:
            raise ReferenceNotFoundError("Patient", str(prescription.patient_id))

        resolved = ResolvedPrescription(
            prescription_id=prescription.id,
            share_code=code,
            patient_id=patient.id,
            patient_name=patient.full_name,
            doctor_name=prescription.doctor_name,
            lines=tuple(
                LineRequest(catalog_item_id=item.catalog_item_id, quantity=item.quantity)
                for item in prescription.items
            ),
        )
        logger.info(
            "share_code_resolved",
            extra={
                "prescription_id": str(prescription.id),
                "line_count": len(resolved.lines),
            },
        )
        return resolved

    def claim(
        self,
        ctx: TenantContext,
        resolved: ResolvedPrescription,
        order_id: UUID,
    ) -> None:
        """
        Mark the prescription dispensed by ``order_id``.

        One conditional UPDATE; if another order already claimed it the
        row no longer matches and nothing changes.
        """
        result = self.session.execute(
            update(Prescription)
            .where(
                Prescription.id == resolved.prescription_id,
                Prescription.tenant_id == ctx.tenant_id,
                Prescription.status == PrescriptionStatus.ACTIVE.value,
            )
            .values(
                status=PrescriptionStatus.DISPENSED.value,
                dispensed_order_id=order_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "share_code_claim_lost",
                extra={"prescription_id": str(resolved.prescription_id)},
            )
            raise ShareCodeInvalidError(
                resolved.share_code, "prescription was already dispensed"
            )
