"""
SQLAlchemy ORM persistence models for the Purchasing module.

Responsibility
--------------
Provide database-backed persistence for purchase orders, their items and
the scheduled expenses generated from their payment terms.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by the purchasing stores.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Status fields stored as String(50) for readability and portability.
* ``order_number`` is unique per firm.
* ``(purchase_order_id, installment_number)`` is unique on expenses: the
  database backstop against a schedule being generated twice.
* ``version`` starts at 1 and is bumped by every conditional UPDATE.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farm_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order.

    Maps to the ``PurchaseOrder`` DTO in ``farm_modules.purchasing.models``.

    Guarantees:
        - ``(firm_id, order_number)`` is unique.
        - ``*_base`` columns are populated iff ``exchange_rate`` is set.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("firm_id", "order_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_firm_status", "firm_id", "status"),
        Index("idx_purchase_order_date", "order_date"),
    )

    firm_id: Mapped[UUID]
    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="UYU")
    exchange_rate: Mapped[Decimal | None]
    payment_terms: Mapped[str | None] = mapped_column(String(50), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    subtotal_base: Mapped[Decimal | None]
    tax_amount_base: Mapped[Decimal | None]
    total_amount_base: Mapped[Decimal | None]

    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_rut: Mapped[str | None] = mapped_column(String(50), nullable=True)
    supplier_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    supplier_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    premise_id: Mapped[UUID | None]
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    items: Mapped[list["PurchaseOrderItemModel"]] = relationship(
        "PurchaseOrderItemModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PurchaseOrderItemModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from farm_modules.purchasing.models import PurchaseOrder

        item_dtos = tuple(item.to_dto() for item in self.items) if self.items else ()

        return PurchaseOrder(
            id=self.id,
            firm_id=self.firm_id,
            order_number=self.order_number,
            status=self.status,
            currency=self.currency,
            order_date=self.order_date,
            supplier_name=self.supplier_name,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            exchange_rate=self.exchange_rate,
            subtotal_base=self.subtotal_base,
            tax_amount_base=self.tax_amount_base,
            total_amount_base=self.total_amount_base,
            payment_terms=self.payment_terms,
            supplier_rut=self.supplier_rut,
            supplier_phone=self.supplier_phone,
            supplier_email=self.supplier_email,
            supplier_address=self.supplier_address,
            premise_id=self.premise_id,
            delivery_date=self.delivery_date,
            delivery_address=self.delivery_address,
            notes=self.notes,
            version=self.version,
            items=item_dtos,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PurchaseOrderModel":
        return cls(
            id=dto.id,
            firm_id=dto.firm_id,
            order_number=dto.order_number,
            status=dto.status,
            version=dto.version,
            order_date=dto.order_date,
            currency=dto.currency,
            exchange_rate=dto.exchange_rate,
            payment_terms=dto.payment_terms,
            subtotal=dto.subtotal,
            tax_amount=dto.tax_amount,
            total_amount=dto.total_amount,
            subtotal_base=dto.subtotal_base,
            tax_amount_base=dto.tax_amount_base,
            total_amount_base=dto.total_amount_base,
            supplier_name=dto.supplier_name,
            supplier_rut=dto.supplier_rut,
            supplier_phone=dto.supplier_phone,
            supplier_email=dto.supplier_email,
            supplier_address=dto.supplier_address,
            premise_id=dto.premise_id,
            delivery_date=dto.delivery_date,
            delivery_address=dto.delivery_address,
            notes=dto.notes,
            created_by_id=created_by_id,
            items=[
                PurchaseOrderItemModel.from_dto(item, created_by_id)
                for item in dto.items
            ],
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_number} [{self.status}] v{self.version}>"


# ---------------------------------------------------------------------------
# PurchaseOrderItemModel
# ---------------------------------------------------------------------------


class PurchaseOrderItemModel(TrackedBase):
    """
    A line item on a purchase order.

    Guarantees:
        - Belongs to exactly one ``PurchaseOrderModel``; deleted with it.
        - (purchase_order_id, line_number) is unique.
    """

    __tablename__ = "purchase_order_items"

    __table_args__ = (
        UniqueConstraint(
            "purchase_order_id", "line_number",
            name="uq_purchase_order_item_line",
        ),
        Index("idx_po_item_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False,
    )
    line_number: Mapped[int]
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[Decimal]
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="unidad")
    unit_price: Mapped[Decimal]
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    subtotal_base: Mapped[Decimal | None]
    tax_amount_base: Mapped[Decimal | None]
    total_base: Mapped[Decimal | None]

    # Parent relationship
    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel",
        back_populates="items",
    )

    def to_dto(self):
        from farm_modules.purchasing.models import PurchaseOrderItem

        return PurchaseOrderItem(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            line_number=self.line_number,
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
            tax_rate=self.tax_rate,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total=self.total,
            subtotal_base=self.subtotal_base,
            tax_amount_base=self.tax_amount_base,
            total_base=self.total_base,
            category=self.category,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PurchaseOrderItemModel":
        return cls(
            id=dto.id,
            purchase_order_id=dto.purchase_order_id,
            line_number=dto.line_number,
            description=dto.description,
            category=dto.category,
            quantity=dto.quantity,
            unit=dto.unit,
            unit_price=dto.unit_price,
            tax_rate=dto.tax_rate,
            subtotal=dto.subtotal,
            tax_amount=dto.tax_amount,
            total=dto.total,
            subtotal_base=dto.subtotal_base,
            tax_amount_base=dto.tax_amount_base,
            total_base=dto.total_base,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderItemModel line {self.line_number}: {self.description}>"


# ---------------------------------------------------------------------------
# ScheduledExpenseModel
# ---------------------------------------------------------------------------


class ScheduledExpenseModel(TrackedBase):
    """
    A scheduled financial obligation.

    Maps to the ``Expense`` DTO in ``farm_modules.purchasing.models``.

    Guarantees:
        - ``(purchase_order_id, installment_number)`` is unique.
        - ``paid`` and ``cancelled`` rows are never updated by the purchasing
          stores.
        - Deleting the order keeps settled history (``purchase_order_id`` is
          set to NULL).
    """

    __tablename__ = "scheduled_expenses"

    __table_args__ = (
        UniqueConstraint(
            "purchase_order_id", "installment_number",
            name="uq_expense_order_installment",
        ),
        Index("idx_expense_order", "purchase_order_id"),
        Index("idx_expense_firm_due", "firm_id", "due_date"),
        Index("idx_expense_status", "status"),
    )

    firm_id: Mapped[UUID]
    purchase_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="SET NULL"), nullable=True,
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal]
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    is_auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    payment_condition_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_rut: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    def to_dto(self):
        from farm_modules.purchasing.models import Expense, ExpenseStatus

        return Expense(
            id=self.id,
            firm_id=self.firm_id,
            purchase_order_id=self.purchase_order_id,
            installment_number=self.installment_number,
            total_installments=self.total_installments,
            due_date=self.due_date,
            invoice_date=self.invoice_date,
            amount=self.amount,
            currency=self.currency,
            status=ExpenseStatus(self.status),
            is_auto_generated=self.is_auto_generated,
            payment_condition_code=self.payment_condition_code,
            provider_name=self.provider_name,
            provider_rut=self.provider_rut,
            provider_phone=self.provider_phone,
            provider_email=self.provider_email,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ScheduledExpenseModel":
        from farm_modules.purchasing.models import ExpenseStatus

        return cls(
            id=dto.id,
            firm_id=dto.firm_id,
            purchase_order_id=dto.purchase_order_id,
            installment_number=dto.installment_number,
            total_installments=dto.total_installments,
            due_date=dto.due_date,
            invoice_date=dto.invoice_date,
            amount=dto.amount,
            currency=dto.currency,
            status=dto.status.value if isinstance(dto.status, ExpenseStatus) else dto.status,
            is_auto_generated=dto.is_auto_generated,
            payment_condition_code=dto.payment_condition_code,
            provider_name=dto.provider_name,
            provider_rut=dto.provider_rut,
            provider_phone=dto.provider_phone,
            provider_email=dto.provider_email,
            description=dto.description,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<ScheduledExpenseModel {self.installment_number}/{self.total_installments} "
            f"{self.amount} {self.currency} [{self.status}]>"
        )
