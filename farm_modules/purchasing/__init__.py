"""
Purchasing Module (``farm_modules.purchasing``).

Responsibility
--------------
The purchase order lifecycle of a farm firm: guarded status transitions,
validated order payloads, per-firm order numbering, cross-currency totals,
and payment schedules materialized as scheduled expenses exactly once.

Architecture position
---------------------
**Modules layer** -- pure parser, pricing and workflow definitions, ORM
models, stores, and a service facade (``PurchaseOrderService``) that owns
the transaction boundary.

Invariants enforced
-------------------
* Payment schedules sum exactly to the order total.
* Orders are editable and deletable only in the workflow's initial status,
  checked against a fresh read and a version-guarded write.
* At most one auto-generated schedule per order (database backstop on
  ``(purchase_order_id, installment_number)``).
* Paid expenses are never rewritten.
"""

from farm_modules.purchasing.config import PurchasingConfig
from farm_modules.purchasing.models import (
    Expense,
    ExpenseStatus,
    Installment,
    OrderResult,
    OrderStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    ReconciliationResult,
    ReconciliationStatus,
    ReconciliationWarning,
    TransitionOutcome,
    TransitionResult,
)
from farm_modules.purchasing.payment_terms import (
    PAYMENT_TERMS_CATALOG,
    parse_payment_terms,
)
from farm_modules.purchasing.reconciler import ScheduleReconciler
from farm_modules.purchasing.service import PurchaseOrderService
from farm_modules.purchasing.workflows import (
    FIVE_STATE_WORKFLOW,
    THREE_STATE_WORKFLOW,
    transition,
)

__all__ = [
    "PurchaseOrder",
    "PurchaseOrderItem",
    "Expense",
    "ExpenseStatus",
    "Installment",
    "OrderStatus",
    "OrderResult",
    "ReconciliationResult",
    "ReconciliationStatus",
    "ReconciliationWarning",
    "TransitionOutcome",
    "TransitionResult",
    "PAYMENT_TERMS_CATALOG",
    "parse_payment_terms",
    "ScheduleReconciler",
    "PurchaseOrderService",
    "FIVE_STATE_WORKFLOW",
    "THREE_STATE_WORKFLOW",
    "transition",
    "PurchasingConfig",
]
