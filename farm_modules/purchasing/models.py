"""
Purchasing Domain Models.

The nouns of purchasing: purchase orders, their items, scheduled expenses
and the installments a payment-terms code expands into.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from farm_kernel.logging_config import get_logger

logger = get_logger("modules.purchasing.models")


class OrderStatus(Enum):
    """Purchase order statuses of both workflow vocabularies."""
    # Five-state workflow
    DRAFT = "draft"
    APPROVED = "approved"
    SENT = "sent"
    RECEIVED = "received"
    CANCELLED = "cancelled"
    # Three-state workflow
    PENDIENTE = "pendiente"
    APROBADA = "aprobada"
    RECHAZADA = "rechazada"


class ExpenseStatus(Enum):
    """Scheduled expense statuses (a restricted mirror of the order status)."""
    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


# Settled or soft-ended expenses are never rewritten.
TERMINAL_EXPENSE_STATUSES: frozenset[ExpenseStatus] = frozenset({
    ExpenseStatus.PAID,
    ExpenseStatus.CANCELLED,
})

# Expenses that cancellation and deletion may still touch.
UNSETTLED_EXPENSE_STATUSES: tuple[ExpenseStatus, ...] = (
    ExpenseStatus.DRAFT,
    ExpenseStatus.APPROVED,
)


class ReconciliationStatus(Enum):
    """Outcome of one reconciliation attempt."""
    SKIPPED = "skipped"  # no terms, pay-on-receipt, or order not eligible
    ALREADY_RECONCILED = "already_reconciled"
    GENERATED = "generated"
    FAILED = "failed"


@dataclass(frozen=True)
class Installment:
    """One scheduled partial payment derived from a payment-terms code."""
    installment_number: int
    percentage: Decimal
    day_offset: int
    due_date: date
    amount: Decimal


@dataclass(frozen=True)
class PurchaseOrderItem:
    """A line item on a purchase order."""
    id: UUID
    purchase_order_id: UUID
    line_number: int
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    tax_rate: Decimal
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    subtotal_base: Decimal | None = None
    tax_amount_base: Decimal | None = None
    total_base: Decimal | None = None
    category: str | None = None


@dataclass(frozen=True)
class PurchaseOrder:
    """
    A purchase order.

    ``version`` is the optimistic-concurrency token; every write bumps it.
    The ``*_base`` figures are set only when ``exchange_rate`` is.
    """
    id: UUID
    firm_id: UUID
    order_number: str
    status: str
    currency: str
    order_date: date
    supplier_name: str
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    exchange_rate: Decimal | None = None
    subtotal_base: Decimal | None = None
    tax_amount_base: Decimal | None = None
    total_amount_base: Decimal | None = None
    payment_terms: str | None = None
    supplier_rut: str | None = None
    supplier_phone: str | None = None
    supplier_email: str | None = None
    supplier_address: str | None = None
    premise_id: UUID | None = None
    delivery_date: date | None = None
    delivery_address: str | None = None
    notes: str | None = None
    version: int = 1
    items: tuple[PurchaseOrderItem, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.total_amount != self.subtotal + self.tax_amount:
            logger.warning(
                "purchase_order_totals_mismatch",
                extra={
                    "order_id": str(self.id),
                    "subtotal": str(self.subtotal),
                    "tax_amount": str(self.tax_amount),
                    "total_amount": str(self.total_amount),
                },
            )
            raise ValueError(
                f"total_amount ({self.total_amount}) must equal "
                f"subtotal + tax_amount ({self.subtotal + self.tax_amount})"
            )


@dataclass(frozen=True)
class Expense:
    """A scheduled financial obligation (auto-generated from an order or manual)."""
    id: UUID
    firm_id: UUID
    purchase_order_id: UUID | None
    installment_number: int
    total_installments: int
    due_date: date
    invoice_date: date
    amount: Decimal
    currency: str
    status: ExpenseStatus = ExpenseStatus.DRAFT
    is_auto_generated: bool = True
    payment_condition_code: str | None = None
    provider_name: str | None = None
    provider_rut: str | None = None
    provider_phone: str | None = None
    provider_email: str | None = None
    description: str = ""


@dataclass(frozen=True)
class ReconciliationWarning:
    """
    The order transition succeeded but its schedule was not materialized.

    Returned, never raised.  Retry with
    ``PurchaseOrderService.retry_reconciliation``.
    """
    order_id: UUID
    cause: str
    order_approved: bool = True
    schedule_generated: bool = False
    code: str = "SCHEDULE_NOT_GENERATED"


@dataclass(frozen=True)
class ReconciliationResult:
    """Result of ScheduleReconciler.reconcile."""
    order_id: UUID
    status: ReconciliationStatus
    expenses: tuple[Expense, ...] = field(default_factory=tuple)
    warning: ReconciliationWarning | None = None
    reason: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status is not ReconciliationStatus.FAILED

    @property
    def generated_count(self) -> int:
        return len(self.expenses) if self.status is ReconciliationStatus.GENERATED else 0


@dataclass(frozen=True)
class TransitionResult:
    """Pure result of a workflow transition: the moved order and both statuses."""
    order: PurchaseOrder
    old_status: str
    new_status: str


@dataclass(frozen=True)
class OrderResult:
    """Result of creating an order (reconciliation set when generated at creation)."""
    order: PurchaseOrder
    reconciliation: ReconciliationResult | None = None

    @property
    def warning(self) -> ReconciliationWarning | None:
        return self.reconciliation.warning if self.reconciliation else None


@dataclass(frozen=True)
class TransitionOutcome:
    """
    Result of PurchaseOrderService.transition_order.

    ``reconciliation`` is set on the approval transition; ``cancelled_expenses``
    counts expenses soft-ended by a cancellation.
    """
    order: PurchaseOrder
    old_status: str
    new_status: str
    reconciliation: ReconciliationResult | None = None
    cancelled_expenses: int = 0

    @property
    def warning(self) -> ReconciliationWarning | None:
        return self.reconciliation.warning if self.reconciliation else None
