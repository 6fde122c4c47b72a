"""
Purchasing Module Service (``farm_modules.purchasing.service``).

Responsibility
--------------
Orchestrates the purchase order lifecycle -- creation with a collision-free
order number, guarded edits, guarded status transitions, guarded deletion --
and keeps each order's payment schedule reconciled through
``ScheduleReconciler``.

Architecture position
---------------------
**Modules layer** -- ``PurchaseOrderService`` is the sole public entry point
for purchasing operations.  It composes the pure parser, pricing and
workflow functions with the order and expense stores.

Invariants enforced
-------------------
* Each public mutating method owns the transaction boundary (``commit`` on
  success, ``rollback`` on exception).
* Every guard is evaluated against a fresh read of the order, and every
  write is a compare-and-swap on ``(status, version)``.  A missed write
  re-reads and names the authoritative status.
* Reconciliation failures never fail the transition that triggered them;
  they surface as ``ReconciliationWarning`` on the outcome.
* Cancellation soft-ends unsettled auto-generated expenses; paid expenses
  are never touched.

Failure modes
-------------
* ``ValidationError`` -- malformed payload, rejected before persistence.
* ``InvalidTransitionError`` / ``EditNotAllowedError`` -- state guard
  violations naming the authoritative status.
* ``OptimisticLockError`` -- ``expected_version`` is stale while the status
  still allows the operation.
* ``OrderNotFoundError`` -- unknown order id.

Usage::

    service = PurchaseOrderService(session, PurchasingConfig.with_defaults())
    created = service.create_order(payload, actor_id=user_id)
    outcome = service.transition_order(created.order.id, "approved", actor_id=user_id)
    if outcome.warning:
        service.retry_reconciliation(created.order.id, actor_id=user_id)
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from farm_kernel.domain.clock import Clock, SystemClock
from farm_kernel.exceptions import (
    EditNotAllowedError,
    InvalidTransitionError,
    OptimisticLockError,
    ValidationError,
)
from farm_kernel.logging_config import LogContext, get_logger
from farm_modules.purchasing.config import PurchasingConfig
from farm_modules.purchasing.models import (
    UNSETTLED_EXPENSE_STATUSES,
    Expense,
    Installment,
    OrderResult,
    PurchaseOrder,
    PurchaseOrderItem,
    ReconciliationResult,
    ReconciliationStatus,
    TransitionOutcome,
)
from farm_modules.purchasing.payment_terms import parse_payment_terms
from farm_modules.purchasing.pricing import compute_item_amounts, compute_order_totals
from farm_modules.purchasing.reconciler import ScheduleReconciler
from farm_modules.purchasing.schemas import OrderDraft
from farm_modules.purchasing.stores import (
    ExpenseStore,
    OrderStore,
    SqlExpenseStore,
    SqlOrderStore,
)
from farm_modules.purchasing.workflows import (
    Workflow,
    ensure_editable,
    get_workflow,
    transition,
)

logger = get_logger("modules.purchasing.service")


class PurchaseOrderService:
    """
    Orchestrates purchase order operations against persistence.

    Contract
    --------
    * ``create_order`` returns ``OrderResult``; ``transition_order`` returns
      ``TransitionOutcome``.  Both carry the reconciliation result when a
      schedule was attempted.
    * Read helpers never write.

    Guarantees
    ----------
    * Session is committed only when the whole operation succeeded.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT enforce authorization (assumed upstream).
    * Does NOT fetch exchange rates; callers supply them.
    """

    def __init__(
        self,
        session: Session,
        config: PurchasingConfig | None = None,
        clock: Clock | None = None,
        workflow: Workflow | None = None,
        order_store: OrderStore | None = None,
        expense_store: ExpenseStore | None = None,
    ):
        self._session = session
        self._config = config or PurchasingConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._workflow = workflow or get_workflow(self._config.workflow)
        self._orders = order_store or SqlOrderStore(
            session, order_number_prefix=self._config.order_number_prefix,
        )
        self._expenses = expense_store or SqlExpenseStore(session)
        self._reconciler = ScheduleReconciler(self._expenses, self._workflow)

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    # =========================================================================
    # Creation
    # =========================================================================

    def create_order(self, payload: Mapping[str, Any], actor_id: UUID) -> OrderResult:
        """
        Validate and persist a new order in the workflow's initial status.

        The order number is allocated from the firm's yearly sequence.  When
        the schedule is configured to materialize on creation, the order is
        reconciled in the same transaction.
        """
        draft = self._validate(payload)

        with LogContext.bind(actor_id=actor_id, firm_id=draft.firm_id):
            try:
                order_id = uuid4()
                order_number = self._orders.next_order_number(draft.firm_id, draft.order_date)
                order = self._build_order(
                    draft,
                    order_id=order_id,
                    order_number=order_number,
                    status=self._workflow.initial_state,
                    version=1,
                )
                self._orders.create(order, actor_id)

                reconciliation = None
                if self._config.generate_schedule_on == "create":
                    reconciliation = self._reconciler.reconcile(order, actor_id)

                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "purchase_order_created",
                extra={
                    "order_id": str(order_id),
                    "order_number": order_number,
                    "status": order.status,
                    "currency": order.currency,
                    "total_amount": str(order.total_amount),
                    "item_count": len(order.items),
                    "payment_terms": order.payment_terms,
                },
            )
            return OrderResult(order=order, reconciliation=reconciliation)

    # =========================================================================
    # Editing
    # =========================================================================

    def update_order(
        self,
        order_id: UUID,
        payload: Mapping[str, Any],
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> PurchaseOrder:
        """
        Edit header fields and/or replace items while the order is in its
        initial status.

        ``payload`` is merged over the stored order; when it carries
        ``items`` they replace the current items.  Totals are recomputed
        from quantities, prices and tax rates.

        Raises:
            EditNotAllowedError: the authoritative status is past initial.
            OptimisticLockError: ``expected_version`` is stale.
            ValidationError: the merged payload is invalid or tries to move
                the order to another firm.
        """
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            try:
                current = self._orders.read(order_id)
                ensure_editable(current.status, self._workflow, order_id=str(order_id))
                self._check_version(current, expected_version)

                if "firm_id" in payload and str(payload["firm_id"]) != str(current.firm_id):
                    raise ValidationError.single("firm_id", "cannot be changed")

                merged = {**_payload_from_order(current), **payload}
                if (
                    "currency" in payload
                    and "exchange_rate" not in payload
                    and payload["currency"] != current.currency
                ):
                    # The stored rate was quoted for the previous currency.
                    merged["exchange_rate"] = None
                draft = self._validate(merged)
                edited = self._build_order(
                    draft,
                    order_id=current.id,
                    order_number=current.order_number,
                    status=current.status,
                    version=current.version,
                )

                updated = self._orders.update(
                    order_id,
                    _header_fields(edited),
                    expected_status=self._workflow.initial_state,
                    expected_version=current.version,
                    actor_id=actor_id,
                )
                if updated is None:
                    self._raise_edit_conflict(order_id, current.version)

                self._orders.replace_items(order_id, edited.items, actor_id)
                updated = self._orders.read(order_id)

                self._refresh_draft_schedule(current, updated, actor_id)

                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "purchase_order_updated",
                extra={
                    "order_id": str(order_id),
                    "order_number": updated.order_number,
                    "version": updated.version,
                    "total_amount": str(updated.total_amount),
                    "fields": sorted(payload.keys()),
                },
            )
            return updated

    def _refresh_draft_schedule(
        self,
        before: PurchaseOrder,
        after: PurchaseOrder,
        actor_id: UUID,
    ) -> None:
        """Rebuild a schedule generated at creation when its inputs changed."""
        if self._config.generate_schedule_on != "create":
            return
        if (
            before.payment_terms == after.payment_terms
            and before.total_amount == after.total_amount
            and before.order_date == after.order_date
            and before.currency == after.currency
        ):
            return
        removed = self._expenses.delete(after.id, UNSETTLED_EXPENSE_STATUSES)
        result = self._reconciler.reconcile(after, actor_id)
        logger.info(
            "schedule_regenerated",
            extra={
                "order_id": str(after.id),
                "removed": removed,
                "status": result.status.value,
            },
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition_order(
        self,
        order_id: UUID,
        target_status: str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> TransitionOutcome:
        """
        Move an order to ``target_status``.

        The approval transition reconciles the payment schedule and promotes
        draft expenses; the cancellation status cascades to unsettled
        expenses.  A reconciliation failure is reported on the outcome, the
        transition itself still commits.
        """
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            try:
                current = self._orders.read(order_id)
                result = transition(current, target_status, self._workflow)
                self._check_version(current, expected_version)

                updated = self._orders.update(
                    order_id,
                    {"status": target_status},
                    expected_status=current.status,
                    expected_version=current.version,
                    actor_id=actor_id,
                )
                if updated is None:
                    self._raise_transition_conflict(order_id, target_status, current.version)

                reconciliation: ReconciliationResult | None = None
                cancelled = 0
                if target_status == self._workflow.approval_state:
                    self._reconciler.sync_status(order_id, target_status, actor_id)
                    reconciliation = self._reconciler.reconcile(updated, actor_id)
                elif target_status == self._workflow.cancellation_state:
                    cancelled = self._reconciler.cascade_cancel(order_id, actor_id)

                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "purchase_order_transitioned",
                extra={
                    "order_id": str(order_id),
                    "order_number": updated.order_number,
                    "from_status": result.old_status,
                    "to_status": result.new_status,
                    "version": updated.version,
                    "reconciliation": reconciliation.status.value if reconciliation else None,
                    "cancelled_expenses": cancelled,
                },
            )
            if reconciliation is not None and reconciliation.warning is not None:
                logger.warning(
                    "purchase_order_schedule_pending",
                    extra={
                        "order_id": str(order_id),
                        "cause": reconciliation.warning.cause,
                    },
                )

            return TransitionOutcome(
                order=updated,
                old_status=result.old_status,
                new_status=result.new_status,
                reconciliation=reconciliation,
                cancelled_expenses=cancelled,
            )

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_order(
        self,
        order_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> int:
        """
        Delete an order in its initial status with its unsettled
        auto-generated expenses.

        Returns:
            Number of expenses removed.
        """
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            try:
                current = self._orders.read(order_id)
                ensure_editable(current.status, self._workflow, order_id=str(order_id))
                self._check_version(current, expected_version)

                removed = self._expenses.delete(order_id, UNSETTLED_EXPENSE_STATUSES)
                deleted = self._orders.delete(
                    order_id,
                    expected_status=self._workflow.initial_state,
                    expected_version=current.version,
                )
                if not deleted:
                    self._raise_edit_conflict(order_id, current.version)

                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "purchase_order_deleted",
                extra={
                    "order_id": str(order_id),
                    "order_number": current.order_number,
                    "expenses_removed": removed,
                },
            )
            return removed

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def retry_reconciliation(self, order_id: UUID, actor_id: UUID) -> ReconciliationResult:
        """Re-run reconciliation alone (after a ``ReconciliationWarning``)."""
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            try:
                order = self._orders.read(order_id)
                if (
                    self._config.generate_schedule_on == "approve"
                    and order.status == self._workflow.initial_state
                ):
                    result = ReconciliationResult(
                        order_id=order_id,
                        status=ReconciliationStatus.SKIPPED,
                        reason="order not approved yet",
                    )
                else:
                    result = self._reconciler.reconcile(order, actor_id)
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "schedule_reconciliation_retried",
                extra={"order_id": str(order_id), "status": result.status.value},
            )
            return result

    def preview_schedule(
        self,
        code: str | None,
        total: Decimal | str | int,
        order_date: date | None = None,
        currency: str | None = None,
    ) -> tuple[Installment, ...]:
        """Pure schedule preview; nothing is read or written."""
        return parse_payment_terms(
            code,
            total,
            order_date or self._clock.today(),
            currency or self._config.base_currency,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_order(self, order_id: UUID) -> PurchaseOrder:
        return self._orders.read(order_id)

    def list_orders(self, firm_id: UUID, status: str | None = None) -> tuple[PurchaseOrder, ...]:
        return self._orders.list(firm_id, status)

    def get_payment_schedule(self, order_id: UUID) -> tuple[Expense, ...]:
        """Auto-generated expenses of an order, by installment number."""
        self._orders.read(order_id)
        return self._expenses.query(order_id, is_auto_generated=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate(self, payload: Mapping[str, Any]) -> OrderDraft:
        return OrderDraft.from_payload(
            payload,
            base_currency=self._config.base_currency,
            default_tax_rate=self._config.default_tax_rate,
            default_order_date=self._clock.today(),
        )

    def _build_order(
        self,
        draft: OrderDraft,
        *,
        order_id: UUID,
        order_number: str,
        status: str,
        version: int,
    ) -> PurchaseOrder:
        base = self._config.base_currency
        items: list[PurchaseOrderItem] = []
        amounts = []
        for line_number, item in enumerate(draft.items, start=1):
            figures = compute_item_amounts(
                item.quantity,
                item.unit_price,
                item.tax_rate,
                draft.currency,
                exchange_rate=draft.exchange_rate,
                base_currency=base,
            )
            amounts.append(figures)
            items.append(
                PurchaseOrderItem(
                    id=uuid4(),
                    purchase_order_id=order_id,
                    line_number=line_number,
                    description=item.description,
                    quantity=item.quantity,
                    unit=item.unit,
                    unit_price=item.unit_price,
                    tax_rate=item.tax_rate,
                    subtotal=figures.subtotal,
                    tax_amount=figures.tax_amount,
                    total=figures.total,
                    subtotal_base=figures.subtotal_base,
                    tax_amount_base=figures.tax_amount_base,
                    total_base=figures.total_base,
                    category=item.category,
                )
            )

        totals = compute_order_totals(
            amounts, draft.currency, exchange_rate=draft.exchange_rate, base_currency=base,
        )

        return PurchaseOrder(
            id=order_id,
            firm_id=draft.firm_id,
            order_number=order_number,
            status=status,
            currency=draft.currency,
            order_date=draft.order_date,
            supplier_name=draft.supplier_name,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            exchange_rate=draft.exchange_rate,
            subtotal_base=totals.subtotal_base,
            tax_amount_base=totals.tax_amount_base,
            total_amount_base=totals.total_amount_base,
            payment_terms=draft.payment_terms,
            supplier_rut=draft.supplier_rut,
            supplier_phone=draft.supplier_phone,
            supplier_email=draft.supplier_email,
            supplier_address=draft.supplier_address,
            premise_id=draft.premise_id,
            delivery_date=draft.delivery_date,
            delivery_address=draft.delivery_address,
            notes=draft.notes,
            version=version,
            items=tuple(items),
        )

    def _check_version(self, current: PurchaseOrder, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != current.version:
            raise OptimisticLockError(
                "PurchaseOrder",
                str(current.id),
                expected_version=expected_version,
                actual_version=current.version,
            )

    def _raise_edit_conflict(self, order_id: UUID, expected_version: int) -> None:
        fresh = self._orders.read(order_id)
        logger.info(
            "purchase_order_edit_conflict",
            extra={
                "order_id": str(order_id),
                "current_status": fresh.status,
                "expected_version": expected_version,
                "actual_version": fresh.version,
            },
        )
        if not self._workflow.is_editable(fresh.status):
            raise EditNotAllowedError(fresh.status, order_id=str(order_id))
        raise OptimisticLockError(
            "PurchaseOrder",
            str(order_id),
            expected_version=expected_version,
            actual_version=fresh.version,
        )

    def _raise_transition_conflict(
        self,
        order_id: UUID,
        target_status: str,
        expected_version: int,
    ) -> None:
        fresh = self._orders.read(order_id)
        logger.info(
            "purchase_order_transition_conflict",
            extra={
                "order_id": str(order_id),
                "current_status": fresh.status,
                "requested_status": target_status,
                "expected_version": expected_version,
                "actual_version": fresh.version,
            },
        )
        allowed = self._workflow.allowed_targets(fresh.status)
        if target_status not in allowed:
            raise InvalidTransitionError(fresh.status, target_status, allowed)
        raise OptimisticLockError(
            "PurchaseOrder",
            str(order_id),
            expected_version=expected_version,
            actual_version=fresh.version,
        )


# Header columns written by update_order (items are replaced separately).
_HEADER_FIELDS = (
    "currency",
    "order_date",
    "supplier_name",
    "subtotal",
    "tax_amount",
    "total_amount",
    "exchange_rate",
    "subtotal_base",
    "tax_amount_base",
    "total_amount_base",
    "payment_terms",
    "supplier_rut",
    "supplier_phone",
    "supplier_email",
    "supplier_address",
    "premise_id",
    "delivery_date",
    "delivery_address",
    "notes",
)


def _header_fields(order: PurchaseOrder) -> dict[str, Any]:
    return {name: getattr(order, name) for name in _HEADER_FIELDS}


def _payload_from_order(order: PurchaseOrder) -> dict[str, Any]:
    """Stored order as an input payload, the base that edits merge over."""
    return {
        "firm_id": order.firm_id,
        "supplier_name": order.supplier_name,
        "supplier_rut": order.supplier_rut,
        "supplier_phone": order.supplier_phone,
        "supplier_email": order.supplier_email,
        "supplier_address": order.supplier_address,
        "order_date": order.order_date,
        "currency": order.currency,
        "exchange_rate": order.exchange_rate,
        "payment_terms": order.payment_terms,
        "premise_id": order.premise_id,
        "delivery_date": order.delivery_date,
        "delivery_address": order.delivery_address,
        "notes": order.notes,
        "items": [
            {
                "description": item.description,
                "category": item.category,
                "quantity": item.quantity,
                "unit": item.unit,
                "unit_price": item.unit_price,
                "tax_rate": item.tax_rate,
            }
            for item in order.items
        ],
    }
