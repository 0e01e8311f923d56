"""
OrderCoordinator -- the order persistence saga.

Responsibility:
    Turns an OrderRequest into a committed order while keeping four ledgers
    consistent: the order header, its lines, catalog stock and (optionally)
    a budget.  Runs the state machine

        VALIDATING -> PRICING -> PERSISTING_HEADER -> PERSISTING_LINES
          -> ADJUSTING_INVENTORY -> POSTING_BUDGET -> LOGGING_AUDIT -> COMMITTED

    with FAILED reachable from every state.

Architecture position:
    Kernel > Services -- the one component that owns transaction
    boundaries.  Every durable step is its own committed transaction, so a
    failure after the header never rolls back what is already durable; it
    is reported instead.

Invariants enforced:
    - Nothing is written before the header step.  Validation, pricing,
      share-code and cancellation failures leave no trace.
    - Order.total_amount is the pricer's total, which equals the sum of the
      persisted line totals exactly.
    - Stock is decremented line by line through InventoryLedger's atomic
      conditional update; no failed line is skipped silently.
    - Budget spend goes through BudgetLedger's atomic increment.
    - Audit failures are logged, never raised.

Failure modes:
    - Pre-commit: ValidationError, ReferenceNotFoundError (including a
      tracked category with no budget for the current month),
      InsufficientStockError, ShareCodeInvalidError, OrderCancelledError,
      StorageError (a database error before the header, wrapped).
    - Post-header: PersistencePartialFailure carrying the order id, the
      per-step outcome map and per-line inventory outcomes.  A budget
      removed between pricing and posting fails POSTING_BUDGET this way.
    - Post-header, races only: InventoryConflictError (also a ConcurrencyConflictError) when every
      failed line lost a stock race.
"""

from collections.abc import Callable
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_kernel.db.types import round_money, to_decimal
from pharmacy_kernel.domain.cancellation import CancellationToken
from pharmacy_kernel.domain.cart import Cart
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import (
    DURABLE_STEPS,
    LineOutcome,
    OrderReceipt,
    OrderRequest,
    PipelineState,
    PricedCart,
    ResolvedPrescription,
    StepStatus,
)
from pharmacy_kernel.domain.policy import FlowProfile, PipelinePolicy
from pharmacy_kernel.exceptions import (
    ConcurrencyConflictError,
    InventoryConflictError,
    OrderCancelledError,
    PersistencePartialFailure,
    PharmacyKernelError,
    ReferenceNotFoundError,
    StorageError,
    ValidationError,
)
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.models.audit_entry import AuditAction
from pharmacy_kernel.models.order import Order, OrderLine, PaymentStatus
from pharmacy_kernel.services.audit_logger import AuditLogger
from pharmacy_kernel.services.budget_ledger import BudgetLedger
from pharmacy_kernel.services.inventory_ledger import InventoryLedger
from pharmacy_kernel.services.line_pricer import LinePricer
from pharmacy_kernel.services.sequence_service import SequenceService
from pharmacy_kernel.services.share_code_resolver import ShareCodeResolver

logger = get_logger("services.order_coordinator")

_STEP_ERRORS = (PharmacyKernelError, SQLAlchemyError)


class _Run:
    """Mutable bookkeeping for one submission."""

    def __init__(self) -> None:
        self.states: list[PipelineState] = []
        self.steps: dict[str, str] = {s.value: StepStatus.NOT_RUN.value for s in DURABLE_STEPS}
        self.line_outcomes: list[LineOutcome] = []
        self.order_id: UUID | None = None

    def enter(self, state: PipelineState) -> None:
        self.states.append(state)
        logger.debug("order_state_entered", extra={"state": state.value})

    def mark(self, step: PipelineState, status: StepStatus) -> None:
        self.steps[step.value] = status.value


class OrderCoordinator:
    """
    Runs the fulfillment saga for one tenant-scoped request.

    Collaborators are created per submission from the session; the class
    hooks (``pricer_cls`` and friends) let callers substitute their own
    implementations.

    Args:
        session_factory: Callable returning a new Session.
        policy: Pipeline policy (flows, currency, budget tracking).
        clock: Time source for created_at, budget period and expiry.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        policy: PipelinePolicy,
        clock: Clock | None = None,
        *,
        pricer_cls: type[LinePricer] = LinePricer,
        resolver_cls: type[ShareCodeResolver] = ShareCodeResolver,
        inventory_cls: type[InventoryLedger] = InventoryLedger,
        budget_cls: type[BudgetLedger] = BudgetLedger,
        audit_cls: type[AuditLogger] = AuditLogger,
    ):
        self._session_factory = session_factory
        self._policy = policy
        self._clock = clock or SystemClock()
        self._pricer_cls = pricer_cls
        self._resolver_cls = resolver_cls
        self._inventory_cls = inventory_cls
        self._budget_cls = budget_cls
        self._audit_cls = audit_cls

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(
        self,
        ctx: TenantContext,
        flow: str,
        request: OrderRequest,
        cancel_token: CancellationToken | None = None,
    ) -> OrderReceipt:
        """
        Run the saga for ``request`` under flow profile ``flow``.

        Returns:
            OrderReceipt once every participating step has committed.
        """
        profile = self._policy.flow(flow)
        run = _Run()

        with LogContext.bind(
            correlation_id=ctx.correlation_id,
            tenant_id=ctx.tenant_id,
            actor_id=ctx.actor_id,
            flow=profile.name,
        ):
            session = self._session_factory()
            try:
                return self._run(session, ctx, profile, request, cancel_token, run)
            except PharmacyKernelError as exc:
                self._reject(run, exc)
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                stage = run.states[-1] if run.states else PipelineState.VALIDATING
                if run.order_id is None:
                    error: PharmacyKernelError = StorageError(stage.value, str(exc))
                else:
                    if stage.value in run.steps:
                        run.mark(stage, StepStatus.FAILED)
                    error = self._fail(session, ctx, run, stage, exc)
                self._reject(run, error)
                raise error from exc
            finally:
                session.close()

    def _reject(self, run: _Run, exc: PharmacyKernelError) -> None:
        run.enter(PipelineState.FAILED)
        if run.order_id is None:
            logger.info(
                "order_rejected",
                extra={"error_code": exc.code, "states": [s.value for s in run.states]},
            )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _run(
        self,
        session: Session,
        ctx: TenantContext,
        profile: FlowProfile,
        request: OrderRequest,
        cancel_token: CancellationToken | None,
        run: _Run,
    ) -> OrderReceipt:
        # VALIDATING
        run.enter(PipelineState.VALIDATING)
        self._validate_request(request)
        cart = Cart(request.lines)
        resolved: ResolvedPrescription | None = None
        if request.share_code is not None:
            resolved = self._resolver_cls(session, self._clock).resolve(ctx, request.share_code)
            cart.apply_prescription(resolved)
        self._check_cancelled_before_header(cancel_token, PipelineState.VALIDATING)

        # PRICING
        run.enter(PipelineState.PRICING)
        priced = self._pricer_cls(session, self._policy).price(
            ctx,
            cart.lines,
            check_stock=profile.check_stock,
            allow_price_override=profile.allow_price_override,
        )
        category = request.budget_category or profile.default_budget_category
        post_budget = profile.post_budget and self._policy.is_budget_tracked(category)
        budget_amount = None
        if post_budget:
            budget_amount = self._budget_amount(request, priced)
            self._require_budget(session, ctx, category)
        # End the read-only transaction before the first write.
        session.rollback()
        self._check_cancelled_before_header(cancel_token, PipelineState.PRICING)

        # PERSISTING_HEADER
        run.enter(PipelineState.PERSISTING_HEADER)
        order = self._persist_header(session, ctx, profile, request, cart, resolved, priced, category)
        run.order_id = order.id
        run.mark(PipelineState.PERSISTING_HEADER, StepStatus.SUCCEEDED)
        logger.info(
            "order_header_persisted",
            extra={
                "order_id": str(order.id),
                "invoice_number": order.invoice_number,
                "total_amount": str(priced.total_amount),
            },
        )
        self._check_cancelled_after_header(session, ctx, cancel_token, run)

        # PERSISTING_LINES
        run.enter(PipelineState.PERSISTING_LINES)
        try:
            for line in priced.lines:
                session.add(
                    OrderLine(
                        tenant_id=ctx.tenant_id,
                        order_id=order.id,
                        line_no=line.line_no,
                        catalog_item_id=line.catalog_item_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        discount=line.discount,
                        total_price=line.total_price,
                    )
                )
            session.flush()
            session.commit()
        except _STEP_ERRORS as exc:
            session.rollback()
            run.mark(PipelineState.PERSISTING_LINES, StepStatus.FAILED)
            raise self._fail(session, ctx, run, PipelineState.PERSISTING_LINES, exc) from exc
        run.mark(PipelineState.PERSISTING_LINES, StepStatus.SUCCEEDED)
        self._check_cancelled_after_header(session, ctx, cancel_token, run)

        # ADJUSTING_INVENTORY
        run.enter(PipelineState.ADJUSTING_INVENTORY)
        if profile.decrement_stock:
            self._adjust_inventory(session, ctx, priced, run)
        else:
            run.mark(PipelineState.ADJUSTING_INVENTORY, StepStatus.SKIPPED)
        self._check_cancelled_after_header(session, ctx, cancel_token, run)

        # POSTING_BUDGET
        run.enter(PipelineState.POSTING_BUDGET)
        budget_id = None
        if post_budget:
            budget_id = self._post_budget(session, ctx, order, category, budget_amount, run)
        else:
            run.mark(PipelineState.POSTING_BUDGET, StepStatus.SKIPPED)

        # LOGGING_AUDIT
        run.enter(PipelineState.LOGGING_AUDIT)
        audit_id = self._audit(session, ctx, order, priced, run, details_extra={
            "budget_id": budget_id,
            "budget_amount": budget_amount,
        })

        run.enter(PipelineState.COMMITTED)
        logger.info(
            "order_committed",
            extra={
                "order_id": str(order.id),
                "invoice_number": order.invoice_number,
                "total_amount": str(priced.total_amount),
                "line_count": len(priced.lines),
            },
        )
        return OrderReceipt(
            order_id=order.id,
            invoice_number=order.invoice_number,
            kind=order.kind,
            total_amount=priced.total_amount,
            currency=priced.currency,
            lines=priced.lines,
            budget_id=budget_id,
            audit_entry_id=audit_id,
            states=tuple(run.states),
        )

    def _validate_request(self, request: OrderRequest) -> None:
        if not request.payment_method or not request.payment_method.strip():
            raise ValidationError("payment_method", "is required")
        allowed = {s.value for s in PaymentStatus}
        if request.payment_status not in allowed:
            raise ValidationError(
                "payment_status",
                f"must be one of {sorted(allowed)}, got {request.payment_status!r}",
            )
        if request.share_code is None and not request.lines:
            raise ValidationError("lines", "order must contain at least one line")

    def _budget_amount(self, request: OrderRequest, priced: PricedCart) -> Decimal:
        if request.budget_amount is None:
            return priced.total_amount
        try:
            amount = round_money(to_decimal(request.budget_amount), self._policy.minor_units)
        except ValueError as exc:
            raise ValidationError("budget_amount", str(exc)) from exc
        if amount <= 0 or amount > priced.total_amount:
            raise ValidationError(
                "budget_amount",
                f"must be positive and at most the order total {priced.total_amount}",
            )
        return amount

    def _require_budget(self, session: Session, ctx: TenantContext, category: str) -> None:
        """A tracked category must have a budget for this month before anything is written."""
        today = self._clock.now().date()
        budget_id = self._budget_cls(session, self._clock).find_budget_for_date(ctx, today, category)
        if budget_id is None:
            raise ReferenceNotFoundError("Budget", f"{category} {today.year}-{today.month:02d}")

    def _persist_header(
        self,
        session: Session,
        ctx: TenantContext,
        profile: FlowProfile,
        request: OrderRequest,
        cart: Cart,
        resolved: ResolvedPrescription | None,
        priced: PricedCart,
        category: str | None,
    ) -> Order:
        """One transaction: prescription claim, document number, header row."""
        order_id = uuid4()
        try:
            if resolved is not None and self._policy.share_code_single_use:
                self._resolver_cls(session, self._clock).claim(ctx, resolved, order_id)
            invoice_number = SequenceService(session, self._clock).next_invoice_number(
                ctx.tenant_id, profile.invoice_prefix
            )
            order = Order(
                id=order_id,
                tenant_id=ctx.tenant_id,
                kind=profile.order_kind,
                invoice_number=invoice_number,
                customer_ref=cart.customer_ref or request.customer_ref,
                customer_name=cart.customer_name or request.customer_name,
                prescription_ref=cart.prescription_ref or request.prescription_ref,
                vendor_ref=request.vendor_ref,
                currency=priced.currency,
                total_amount=priced.total_amount,
                payment_method=request.payment_method,
                payment_status=request.payment_status,
                budget_category=category,
                created_at=self._clock.now(),
                created_by_id=ctx.actor_id,
            )
            session.add(order)
            session.flush()
            session.commit()
        except Exception:
            session.rollback()
            raise
        return order

    def _adjust_inventory(
        self,
        session: Session,
        ctx: TenantContext,
        priced: PricedCart,
        run: _Run,
    ) -> None:
        """Decrement each line in its own transaction and keep every outcome."""
        ledger = self._inventory_cls(session, self._clock)
        for line in priced.lines:
            try:
                ledger.decrement(ctx, line.catalog_item_id, line.quantity, run.order_id)
                session.commit()
            except _STEP_ERRORS as exc:
                session.rollback()
                run.line_outcomes.append(
                    LineOutcome(
                        line_no=line.line_no,
                        catalog_item_id=line.catalog_item_id,
                        quantity=line.quantity,
                        succeeded=False,
                        error_code=getattr(exc, "code", "STORAGE_ERROR"),
                        message=str(exc),
                    )
                )
                continue
            run.line_outcomes.append(
                LineOutcome(
                    line_no=line.line_no,
                    catalog_item_id=line.catalog_item_id,
                    quantity=line.quantity,
                    succeeded=True,
                )
            )

        failed = [o for o in run.line_outcomes if not o.succeeded]
        if not failed:
            run.mark(PipelineState.ADJUSTING_INVENTORY, StepStatus.SUCCEEDED)
            return

        run.mark(PipelineState.ADJUSTING_INVENTORY, StepStatus.FAILED)
        if all(o.error_code == ConcurrencyConflictError.code for o in failed):
            error = InventoryConflictError(
                order_id=str(run.order_id),
                step_outcomes=run.steps,
                line_outcomes=tuple(run.line_outcomes),
            )
        else:
            error = PersistencePartialFailure(
                order_id=str(run.order_id),
                failed_step=PipelineState.ADJUSTING_INVENTORY.value,
                step_outcomes=run.steps,
                line_outcomes=tuple(run.line_outcomes),
                reason=f"{len(failed)} of {len(run.line_outcomes)} lines not adjusted",
            )
        self._report_partial(session, ctx, run, error)
        raise error

    def _post_budget(
        self,
        session: Session,
        ctx: TenantContext,
        order: Order,
        category: str,
        amount: Decimal,
        run: _Run,
    ) -> UUID:
        ledger = self._budget_cls(session, self._clock)
        try:
            order_date = order.created_at.date()
            budget_id = ledger.find_budget_for_date(ctx, order_date, category)
            if budget_id is None:
                raise ValidationError(
                    "budget_category",
                    f"no {category} budget for {order_date.year}-{order_date.month:02d}",
                )
            ledger.post_spending(ctx, budget_id, amount)
            session.commit()
        except _STEP_ERRORS as exc:
            session.rollback()
            run.mark(PipelineState.POSTING_BUDGET, StepStatus.FAILED)
            raise self._fail(session, ctx, run, PipelineState.POSTING_BUDGET, exc) from exc
        run.mark(PipelineState.POSTING_BUDGET, StepStatus.SUCCEEDED)
        return budget_id

    def _audit(
        self,
        session: Session,
        ctx: TenantContext,
        order: Order,
        priced: PricedCart,
        run: _Run,
        details_extra: dict,
    ) -> UUID | None:
        details = {
            "kind": order.kind,
            "invoice_number": order.invoice_number,
            "total_amount": priced.total_amount,
            "currency": priced.currency,
            "line_count": len(priced.lines),
            "lines": [line.as_dict() for line in priced.lines],
            **details_extra,
        }
        audit_id = self._write_audit(session, ctx, run.order_id, details)
        run.mark(
            PipelineState.LOGGING_AUDIT,
            StepStatus.SUCCEEDED if audit_id is not None else StepStatus.FAILED,
        )
        return audit_id

    def _write_audit(
        self,
        session: Session,
        ctx: TenantContext,
        order_id: UUID,
        details: dict,
    ) -> UUID | None:
        audit_id = self._audit_cls(session, self._clock).record(
            ctx, AuditAction.CREATE, "order", order_id, details
        )
        try:
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.error(
                "audit_commit_failed",
                exc_info=True,
                extra={"order_id": str(order_id)},
            )
            return None
        return audit_id

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _check_cancelled_before_header(
        self,
        token: CancellationToken | None,
        stage: PipelineState,
    ) -> None:
        if token is not None and token.is_cancelled:
            raise OrderCancelledError(stage.value)

    def _check_cancelled_after_header(
        self,
        session: Session,
        ctx: TenantContext,
        token: CancellationToken | None,
        run: _Run,
    ) -> None:
        if token is None or not token.is_cancelled:
            return
        error = PersistencePartialFailure(
            order_id=str(run.order_id),
            failed_step="cancelled",
            step_outcomes=run.steps,
            line_outcomes=tuple(run.line_outcomes),
            reason=token.reason or "cancelled by caller",
        )
        self._report_partial(session, ctx, run, error)
        raise error

    def _fail(
        self,
        session: Session,
        ctx: TenantContext,
        run: _Run,
        step: PipelineState,
        cause: Exception,
    ) -> PersistencePartialFailure:
        """Build and report the partial failure for ``step``; the caller raises it."""
        error = PersistencePartialFailure(
            order_id=str(run.order_id),
            failed_step=step.value,
            step_outcomes=run.steps,
            line_outcomes=tuple(run.line_outcomes),
            reason=str(cause),
        )
        self._report_partial(session, ctx, run, error)
        return error

    def _report_partial(
        self,
        session: Session,
        ctx: TenantContext,
        run: _Run,
        error: PersistencePartialFailure,
    ) -> None:
        logger.warning(
            "order_partial_failure",
            extra={
                "order_id": str(run.order_id),
                "failed_step": error.failed_step,
                "step_outcomes": run.steps,
                "failed_lines": [o.line_no for o in error.failed_lines],
            },
        )
        audit_id = self._write_audit(
            session,
            ctx,
            run.order_id,
            {
                "status": "partial_failure",
                "failed_step": error.failed_step,
                "error_code": error.code,
                "step_outcomes": dict(run.steps),
                "line_outcomes": [o.as_dict() for o in run.line_outcomes],
            },
        )
        if audit_id is not None:
            run.mark(PipelineState.LOGGING_AUDIT, StepStatus.SUCCEEDED)
            error.step_outcomes[PipelineState.LOGGING_AUDIT.value] = StepStatus.SUCCEEDED.value
