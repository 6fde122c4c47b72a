"""
Purchasing stores -- persistence seams for orders and scheduled expenses.

Responsibility
--------------
``OrderStore`` and ``ExpenseStore`` are the protocols the reconciler and
the purchase order service depend on; ``SqlOrderStore`` and
``SqlExpenseStore`` implement them on a SQLAlchemy session.

Invariants enforced
-------------------
* Reads bypass the session identity map (``populate_existing``) so callers
  always see the authoritative persisted status, never a cached copy.
* Order writes are single conditional statements
  (``WHERE id = ? AND status = ? AND version = ?``) that bump ``version``;
  a zero row count means another actor moved the order.
* Expense inserts run inside a savepoint so a failed insert never rolls
  back the caller's transaction.  ``savepoint()`` lets callers extend that
  scope over the reads that precede an insert.
* Order numbers come from the locked per-firm sequence counter, never from
  ``max(order_number) + 1``.

Non-goals
---------
* Stores never commit; the service owns the transaction boundary.
"""

from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from datetime import date
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, SessionTransaction

from farm_kernel.exceptions import OrderNotFoundError
from farm_kernel.logging_config import get_logger
from farm_kernel.services.sequence_service import SequenceService
from farm_modules.purchasing.models import (
    Expense,
    ExpenseStatus,
    PurchaseOrder,
    PurchaseOrderItem,
)
from farm_modules.purchasing.orm import (
    PurchaseOrderItemModel,
    PurchaseOrderModel,
    ScheduledExpenseModel,
)

logger = get_logger("modules.purchasing.stores")


class OrderStore(Protocol):
    """Persisted purchase orders."""

    def create(self, order: PurchaseOrder, actor_id: UUID) -> UUID: ...

    def read(self, order_id: UUID) -> PurchaseOrder: ...

    def update(
        self,
        order_id: UUID,
        fields: dict[str, Any],
        expected_status: str,
        expected_version: int,
        actor_id: UUID,
    ) -> PurchaseOrder | None: ...

    def replace_items(
        self,
        order_id: UUID,
        items: Sequence[PurchaseOrderItem],
        actor_id: UUID,
    ) -> None: ...

    def delete(self, order_id: UUID, expected_status: str, expected_version: int) -> bool: ...

    def list(self, firm_id: UUID, status: str | None = None) -> tuple[PurchaseOrder, ...]: ...

    def next_order_number(self, firm_id: UUID, order_date: date) -> str: ...


class ExpenseStore(Protocol):
    """Persisted scheduled expenses."""

    def savepoint(self) -> AbstractContextManager[Any]: ...

    def insert(self, expenses: Sequence[Expense], actor_id: UUID) -> tuple[UUID, ...]: ...

    def query(
        self,
        order_id: UUID,
        is_auto_generated: bool | None = True,
    ) -> tuple[Expense, ...]: ...

    def update_status(
        self,
        order_id: UUID,
        from_statuses: Iterable[ExpenseStatus],
        new_status: ExpenseStatus,
        actor_id: UUID | None = None,
    ) -> int: ...

    def delete(self, order_id: UUID, statuses: Iterable[ExpenseStatus]) -> int: ...


class SqlOrderStore:
    """
    SQLAlchemy implementation of ``OrderStore``.

    ``update`` returns None when the guard (status and version) no longer
    holds; the caller re-reads and reports the authoritative status.
    """

    def __init__(self, session: Session, order_number_prefix: str = "OC"):
        self._session = session
        self._sequences = SequenceService(session)
        self._prefix = order_number_prefix

    def _load(self, order_id: UUID) -> PurchaseOrderModel | None:
        return self._session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def create(self, order: PurchaseOrder, actor_id: UUID) -> UUID:
        model = PurchaseOrderModel.from_dto(order, created_by_id=actor_id)
        self._session.add(model)
        self._session.flush()
        return model.id

    def read(self, order_id: UUID) -> PurchaseOrder:
        model = self._load(order_id)
        if model is None:
            raise OrderNotFoundError(str(order_id))
        return model.to_dto()

    def update(
        self,
        order_id: UUID,
        fields: dict[str, Any],
        expected_status: str,
        expected_version: int,
        actor_id: UUID,
    ) -> PurchaseOrder | None:
        result = self._session.execute(
            update(PurchaseOrderModel)
            .where(
                PurchaseOrderModel.id == order_id,
                PurchaseOrderModel.status == expected_status,
                PurchaseOrderModel.version == expected_version,
            )
            .values(
                **fields,
                version=PurchaseOrderModel.version + 1,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "purchase_order_conditional_update_missed",
                extra={
                    "order_id": str(order_id),
                    "expected_status": expected_status,
                    "expected_version": expected_version,
                },
            )
            return None
        return self.read(order_id)

    def replace_items(
        self,
        order_id: UUID,
        items: Sequence[PurchaseOrderItem],
        actor_id: UUID,
    ) -> None:
        self._session.execute(
            delete(PurchaseOrderItemModel)
            .where(PurchaseOrderItemModel.purchase_order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        # Bulk delete bypasses the identity map; drop stale item instances.
        self._session.expire_all()
        for item in items:
            self._session.add(PurchaseOrderItemModel.from_dto(item, created_by_id=actor_id))
        self._session.flush()

    def delete(self, order_id: UUID, expected_status: str, expected_version: int) -> bool:
        result = self._session.execute(
            delete(PurchaseOrderModel)
            .where(
                PurchaseOrderModel.id == order_id,
                PurchaseOrderModel.status == expected_status,
                PurchaseOrderModel.version == expected_version,
            )
            .execution_options(synchronize_session=False)
        )
        self._session.expire_all()
        return result.rowcount > 0

    def list(self, firm_id: UUID, status: str | None = None) -> tuple[PurchaseOrder, ...]:
        stmt = select(PurchaseOrderModel).where(PurchaseOrderModel.firm_id == firm_id)
        if status is not None:
            stmt = stmt.where(PurchaseOrderModel.status == status)
        stmt = stmt.order_by(
            PurchaseOrderModel.order_date.desc(),
            PurchaseOrderModel.order_number.desc(),
        ).execution_options(populate_existing=True)
        return tuple(m.to_dto() for m in self._session.execute(stmt).scalars())

    def next_order_number(self, firm_id: UUID, order_date: date) -> str:
        """Allocate ``<prefix>-YYYY-NNNNN`` from the firm's yearly counter."""
        value = self._sequences.next_value(f"purchase_order:{firm_id}:{order_date.year}")
        return f"{self._prefix}-{order_date.year}-{value:05d}"


class SqlExpenseStore:
    """SQLAlchemy implementation of ``ExpenseStore``."""

    def __init__(self, session: Session):
        self._session = session

    def savepoint(self) -> SessionTransaction:
        """Nested transaction; a failure inside rolls back only its own work."""
        return self._session.begin_nested()

    def insert(self, expenses: Sequence[Expense], actor_id: UUID) -> tuple[UUID, ...]:
        """
        Insert expenses atomically inside a savepoint.

        Raises:
            IntegrityError: an installment already exists for the order.
        """
        with self._session.begin_nested():
            models = [
                ScheduledExpenseModel.from_dto(expense, created_by_id=actor_id)
                for expense in expenses
            ]
            self._session.add_all(models)
            self._session.flush()
        return tuple(m.id for m in models)

    def query(
        self,
        order_id: UUID,
        is_auto_generated: bool | None = True,
    ) -> tuple[Expense, ...]:
        stmt = select(ScheduledExpenseModel).where(
            ScheduledExpenseModel.purchase_order_id == order_id,
        )
        if is_auto_generated is not None:
            stmt = stmt.where(ScheduledExpenseModel.is_auto_generated == is_auto_generated)
        stmt = stmt.order_by(ScheduledExpenseModel.installment_number).execution_options(
            populate_existing=True,
        )
        return tuple(m.to_dto() for m in self._session.execute(stmt).scalars())

    def update_status(
        self,
        order_id: UUID,
        from_statuses: Iterable[ExpenseStatus],
        new_status: ExpenseStatus,
        actor_id: UUID | None = None,
    ) -> int:
        """Move auto-generated expenses in ``from_statuses`` to ``new_status``."""
        values: dict[str, Any] = {"status": new_status.value}
        if actor_id is not None:
            values["updated_by_id"] = actor_id
        result = self._session.execute(
            update(ScheduledExpenseModel)
            .where(
                ScheduledExpenseModel.purchase_order_id == order_id,
                ScheduledExpenseModel.is_auto_generated.is_(True),
                ScheduledExpenseModel.status.in_([s.value for s in from_statuses]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete(self, order_id: UUID, statuses: Iterable[ExpenseStatus]) -> int:
        """Delete auto-generated expenses in ``statuses``."""
        result = self._session.execute(
            delete(ScheduledExpenseModel)
            .where(
                ScheduledExpenseModel.purchase_order_id == order_id,
                ScheduledExpenseModel.is_auto_generated.is_(True),
                ScheduledExpenseModel.status.in_([s.value for s in statuses]),
            )
            .execution_options(synchronize_session=False)
        )
        self._session.expire_all()
        return result.rowcount
