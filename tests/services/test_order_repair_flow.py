"""
Tests for OrderRepairService -- compensating orders a partial failure left behind.
"""

from uuid import UUID, uuid4

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError

from pharmacy_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from pharmacy_kernel.domain.dtos import LineRequest, OrderRequest
from pharmacy_kernel.exceptions import (
    ImmutabilityViolationError,
    InventoryConflictError,
    PersistencePartialFailure,
    ReferenceNotFoundError,
    ShareCodeInvalidError,
)
from pharmacy_kernel.models.audit_entry import AuditAction
from pharmacy_kernel.models.order import Order, OrderLine
from pharmacy_kernel.selectors.audit_selector import AuditSelector
from pharmacy_kernel.services.inventory_ledger import InventoryLedger
from pharmacy_kernel.services.line_pricer import LinePricer
from pharmacy_kernel.services.order_coordinator import OrderCoordinator
from pharmacy_kernel.services.order_repair import OrderRepairService
from pharmacy_kernel.services.share_code_resolver import ShareCodeResolver


def _storage_fault(*args, **kwargs):
    raise OperationalError("INSERT INTO order_lines", {}, Exception("disk I/O error"))


@pytest.fixture
def orphaned_order(session_factory, policy, deterministic_clock, ctx):
    """Factory: submit a request whose lines fail to persist; return the order id."""

    def _submit(request: OrderRequest) -> UUID:
        coordinator = OrderCoordinator(session_factory, policy, deterministic_clock)
        event.listen(OrderLine, "before_insert", _storage_fault)
        try:
            with pytest.raises(PersistencePartialFailure) as exc_info:
                coordinator.submit(ctx, "sale", request)
        finally:
            event.remove(OrderLine, "before_insert", _storage_fault)
        return UUID(exc_info.value.order_id)

    return _submit


@pytest.fixture
def without_immutability_listeners():
    """Run as a process that never registered the ORM immutability listeners."""
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


def _order_count(session) -> int:
    return session.execute(select(func.count()).select_from(Order)).scalar_one()


class TestDiscardOrphanedHeader:

    def test_discard_removes_header(self, session, ctx, deterministic_clock, orphaned_order, create_item):
        order_id = orphaned_order(
            OrderRequest(payment_method="cash", lines=(LineRequest(create_item(), 1),))
        )
        assert _order_count(session) == 1

        OrderRepairService(session, deterministic_clock).discard_orphaned_header(ctx, order_id)
        session.commit()

        assert _order_count(session) == 0
        actions = [e.action for e in AuditSelector(session).list_for_entity(ctx, "order", order_id)]
        assert AuditAction.DISCARD.value in actions

    def test_discard_releases_prescription(
        self, session, session_factory, ctx, deterministic_clock, orphaned_order,
        create_item, create_prescription,
    ):
        code = create_prescription([(create_item(), 1)])
        order_id = orphaned_order(OrderRequest(payment_method="cash", share_code=code))

        # the claim happened with the header
        reader = session_factory()
        try:
            with pytest.raises(ShareCodeInvalidError):
                ShareCodeResolver(reader, deterministic_clock).resolve(ctx, code)
        finally:
            reader.close()

        OrderRepairService(session, deterministic_clock).discard_orphaned_header(ctx, order_id)
        session.commit()

        resolved = ShareCodeResolver(session, deterministic_clock).resolve(ctx, code)
        assert resolved.share_code == code

    def test_order_with_lines_cannot_be_discarded(
        self, session, session_factory, policy, deterministic_clock, ctx, create_item
    ):
        receipt = OrderCoordinator(session_factory, policy, deterministic_clock).submit(
            ctx, "sale", OrderRequest(payment_method="cash", lines=(LineRequest(create_item(), 1),))
        )
        with pytest.raises(ImmutabilityViolationError):
            OrderRepairService(session, deterministic_clock).discard_orphaned_header(
                ctx, receipt.order_id
            )
        session.rollback()
        assert _order_count(session) == 1

    def test_committed_sale_kept_without_listeners(
        self, session, session_factory, policy, deterministic_clock, ctx,
        create_item, stock_of, without_immutability_listeners,
    ):
        item = create_item(stock=5)
        receipt = OrderCoordinator(session_factory, policy, deterministic_clock).submit(
            ctx, "sale", OrderRequest(payment_method="cash", lines=(LineRequest(item, 2),))
        )

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            OrderRepairService(session, deterministic_clock).discard_orphaned_header(
                ctx, receipt.order_id
            )
        session.rollback()

        assert "1 persisted lines" in exc_info.value.reason
        assert _order_count(session) == 1
        line_count = session.execute(
            select(func.count()).select_from(OrderLine).where(OrderLine.order_id == receipt.order_id)
        ).scalar_one()
        assert line_count == 1
        assert stock_of(item) == 3

    def test_unknown_order(self, session, ctx, other_ctx, orphaned_order, create_item):
        order_id = orphaned_order(
            OrderRequest(payment_method="cash", lines=(LineRequest(create_item(), 1),))
        )
        repair = OrderRepairService(session)
        with pytest.raises(ReferenceNotFoundError):
            repair.discard_orphaned_header(ctx, uuid4())
        with pytest.raises(ReferenceNotFoundError):
            repair.discard_orphaned_header(other_ctx, order_id)
        session.rollback()


class TestRestoreStock:

    @pytest.fixture
    def conflicted_order(self, session_factory, policy, deterministic_clock, ctx, create_item):
        """An order whose second line lost a stock race; returns (order_id, plenty, scarce)."""
        plenty = create_item(stock=10)
        scarce = create_item(stock=2)

        class DrainingPricer(LinePricer):
            def price(self, *args, **kwargs):
                priced = super().price(*args, **kwargs)
                competitor = session_factory()
                try:
                    InventoryLedger(competitor).decrement(ctx, scarce, 2, uuid4())
                    competitor.commit()
                finally:
                    competitor.close()
                return priced

        coordinator = OrderCoordinator(
            session_factory, policy, deterministic_clock, pricer_cls=DrainingPricer
        )
        with pytest.raises(InventoryConflictError) as exc_info:
            coordinator.submit(
                ctx, "sale",
                OrderRequest(
                    payment_method="cash",
                    lines=(LineRequest(plenty, 3), LineRequest(scarce, 1)),
                ),
            )
        return UUID(exc_info.value.order_id), plenty, scarce

    def test_restores_consumed_units(self, session, ctx, deterministic_clock, conflicted_order, stock_of):
        order_id, plenty, scarce = conflicted_order
        assert stock_of(plenty) == 7

        restored = OrderRepairService(session, deterministic_clock).restore_stock(ctx, order_id)
        session.commit()

        assert [(r.catalog_item_id, r.quantity, r.stock_quantity) for r in restored] == [
            (plenty, 3, 10)
        ]
        assert stock_of(plenty) == 10
        assert stock_of(scarce) == 0

    def test_second_restore_is_noop(self, session, ctx, deterministic_clock, conflicted_order, stock_of):
        order_id, plenty, _ = conflicted_order
        repair = OrderRepairService(session, deterministic_clock)
        repair.restore_stock(ctx, order_id)
        session.commit()

        assert repair.restore_stock(ctx, order_id) == []
        session.commit()
        assert stock_of(plenty) == 10

    def test_restore_is_audited(self, session, ctx, deterministic_clock, conflicted_order):
        order_id, plenty, _ = conflicted_order
        OrderRepairService(session, deterministic_clock).restore_stock(ctx, order_id)
        session.commit()

        trail = AuditSelector(session).list_for_entity(ctx, "order", order_id)
        restore = [e for e in trail if e.action == AuditAction.RESTORE_STOCK.value]
        assert len(restore) == 1
        assert restore[0].details["items"] == [
            {"catalog_item_id": str(plenty), "quantity": 3}
        ]
