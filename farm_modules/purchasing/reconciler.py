"""
Schedule-to-expense reconciler (``farm_modules.purchasing.reconciler``).

Responsibility
--------------
Ensure that exactly one schedule of auto-generated expenses exists for a
purchase order, and keep those expenses in step with the order's status
(approval, cancellation).

Architecture position
---------------------
**Modules layer** -- composes the pure payment-terms parser with an
``ExpenseStore``.  Called by ``PurchaseOrderService``; never commits.

Invariants enforced
-------------------
* Idempotent: an order that already has auto-generated expenses is left
  alone, and a uniqueness violation on ``(purchase_order_id,
  installment_number)`` during insert counts as already reconciled.
* Soft failure: any other persistence error is reported as a
  ``ReconciliationWarning`` on the result and never raised, so it cannot
  undo the transition that triggered it.  The existence check and the
  insert run in one savepoint.
* Settled history is immutable: ``paid`` (and already ``cancelled``)
  expenses are never updated.

Failure modes
-------------
* ``ReconciliationResult.status == FAILED`` with ``warning`` set.  Retry
  with ``PurchaseOrderService.retry_reconciliation``.
"""

from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from farm_kernel.logging_config import get_logger
from farm_modules.purchasing.models import (
    UNSETTLED_EXPENSE_STATUSES,
    Expense,
    ExpenseStatus,
    Installment,
    PurchaseOrder,
    ReconciliationResult,
    ReconciliationStatus,
    ReconciliationWarning,
)
from farm_modules.purchasing.payment_terms import generates_obligations, parse_payment_terms
from farm_modules.purchasing.stores import ExpenseStore
from farm_modules.purchasing.workflows import FIVE_STATE_WORKFLOW, Workflow

logger = get_logger("modules.purchasing.reconciler")


class ScheduleReconciler:
    """
    Materializes and maintains an order's payment schedule.

    Contract
    --------
    * ``reconcile`` returns a ``ReconciliationResult``; it raises only for
      programming errors, never for persistence failures.
    * ``preview`` is pure: no store access.
    """

    def __init__(self, expense_store: ExpenseStore, workflow: Workflow = FIVE_STATE_WORKFLOW):
        self._expenses = expense_store
        self._workflow = workflow

    def expense_status_for(self, order_status: str) -> ExpenseStatus:
        """Mirror an order status onto the restricted expense vocabulary."""
        if order_status == self._workflow.initial_state:
            return ExpenseStatus.DRAFT
        if order_status == self._workflow.cancellation_state:
            return ExpenseStatus.CANCELLED
        return ExpenseStatus.APPROVED

    def preview(self, order: PurchaseOrder) -> tuple[Installment, ...]:
        """Installments ``reconcile`` would persist for ``order``."""
        return parse_payment_terms(
            order.payment_terms,
            order.total_amount,
            order.order_date,
            order.currency,
        )

    def build_expenses(self, order: PurchaseOrder) -> tuple[Expense, ...]:
        installments = self.preview(order)
        status = self.expense_status_for(order.status)
        count = len(installments)
        return tuple(
            Expense(
                id=uuid4(),
                firm_id=order.firm_id,
                purchase_order_id=order.id,
                installment_number=inst.installment_number,
                total_installments=count,
                due_date=inst.due_date,
                invoice_date=order.order_date,
                amount=inst.amount,
                currency=order.currency,
                status=status,
                is_auto_generated=True,
                payment_condition_code=order.payment_terms,
                provider_name=order.supplier_name,
                provider_rut=order.supplier_rut,
                provider_phone=order.supplier_phone,
                provider_email=order.supplier_email,
                description=(
                    f"Scheduled payment {inst.installment_number}/{count} "
                    f"- PO #{order.order_number}"
                ),
            )
            for inst in installments
        )

    def reconcile(self, order: PurchaseOrder, actor_id: UUID) -> ReconciliationResult:
        """
        Ensure the order's schedule exists exactly once.

        Steps: skip codes without obligations and cancelled orders; skip when
        auto-generated expenses already exist; otherwise insert one expense
        per installment.
        """
        if not generates_obligations(order.payment_terms):
            logger.debug(
                "schedule_reconciliation_skipped",
                extra={
                    "order_id": str(order.id),
                    "payment_terms": order.payment_terms,
                    "reason": "no_obligations",
                },
            )
            return ReconciliationResult(
                order_id=order.id,
                status=ReconciliationStatus.SKIPPED,
                reason="payment terms generate no obligations",
            )

        if order.status == self._workflow.cancellation_state:
            return ReconciliationResult(
                order_id=order.id,
                status=ReconciliationStatus.SKIPPED,
                reason=f"order is {order.status}",
            )

        try:
            # Read and insert share one savepoint: a failed statement must not
            # leave the caller's transaction aborted.
            with self._expenses.savepoint():
                existing = self._expenses.query(order.id, is_auto_generated=True)
                if not existing:
                    expenses = self.build_expenses(order)
                    self._expenses.insert(expenses, actor_id)

        except IntegrityError:
            # A concurrent trigger inserted the schedule first.
            logger.info(
                "schedule_reconciliation_race_resolved",
                extra={"order_id": str(order.id)},
            )
            return ReconciliationResult(
                order_id=order.id,
                status=ReconciliationStatus.ALREADY_RECONCILED,
            )

        except SQLAlchemyError as exc:
            logger.warning(
                "schedule_reconciliation_failed",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "payment_terms": order.payment_terms,
                },
                exc_info=True,
            )
            return ReconciliationResult(
                order_id=order.id,
                status=ReconciliationStatus.FAILED,
                warning=ReconciliationWarning(
                    order_id=order.id,
                    cause=f"{type(exc).__name__}: {exc}",
                    order_approved=order.status != self._workflow.initial_state,
                ),
            )

        if existing:
            logger.debug(
                "schedule_already_reconciled",
                extra={"order_id": str(order.id), "expense_count": len(existing)},
            )
            return ReconciliationResult(
                order_id=order.id,
                status=ReconciliationStatus.ALREADY_RECONCILED,
                expenses=existing,
            )

        logger.info(
            "schedule_reconciled",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "payment_terms": order.payment_terms,
                "installments": len(expenses),
                "total_amount": str(order.total_amount),
                "currency": order.currency,
            },
        )
        return ReconciliationResult(
            order_id=order.id,
            status=ReconciliationStatus.GENERATED,
            expenses=expenses,
        )

    def sync_status(self, order_id: UUID, order_status: str, actor_id: UUID | None = None) -> int:
        """
        Mirror an order status change onto its auto-generated expenses.

        Approval promotes draft expenses; cancellation soft-ends unsettled
        ones.  Returns the number of expenses changed.
        """
        if order_status == self._workflow.cancellation_state:
            return self.cascade_cancel(order_id, actor_id)
        if order_status == self._workflow.initial_state:
            return 0
        count = self._expenses.update_status(
            order_id,
            (ExpenseStatus.DRAFT,),
            ExpenseStatus.APPROVED,
            actor_id,
        )
        if count:
            logger.info(
                "schedule_status_synced",
                extra={
                    "order_id": str(order_id),
                    "order_status": order_status,
                    "expense_count": count,
                },
            )
        return count

    def cascade_cancel(self, order_id: UUID, actor_id: UUID | None = None) -> int:
        """Cancel unsettled auto-generated expenses; paid ones are untouched."""
        count = self._expenses.update_status(
            order_id,
            UNSETTLED_EXPENSE_STATUSES,
            ExpenseStatus.CANCELLED,
            actor_id,
        )
        logger.info(
            "schedule_cancelled",
            extra={"order_id": str(order_id), "expense_count": count},
        )
        return count
