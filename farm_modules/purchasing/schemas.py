"""
Purchasing input schemas -- validated request payloads.

Loosely structured order payloads become ``OrderDraft`` / ``OrderItemDraft``
at the boundary.  Unknown fields, missing required fields and malformed
values are collected into one ``ValidationError`` before anything reaches
the state machine or the database.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from farm_kernel.domain.currency import CurrencyRegistry
from farm_kernel.exceptions import ValidationError
from farm_kernel.logging_config import get_logger
from farm_modules.purchasing.payment_terms import is_valid_payment_terms

logger = get_logger("modules.purchasing.schemas")

_ORDER_FIELDS = frozenset({
    "firm_id",
    "supplier_name",
    "supplier_rut",
    "supplier_phone",
    "supplier_email",
    "supplier_address",
    "order_date",
    "currency",
    "exchange_rate",
    "payment_terms",
    "premise_id",
    "delivery_date",
    "delivery_address",
    "notes",
    "items",
})

_ITEM_FIELDS = frozenset({
    "description",
    "category",
    "quantity",
    "unit",
    "unit_price",
    "tax_rate",
})


@dataclass(frozen=True)
class OrderItemDraft:
    """A validated order item as entered (amounts are computed later)."""
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    tax_rate: Decimal
    category: str | None = None


@dataclass(frozen=True)
class OrderDraft:
    """A validated order payload."""
    firm_id: UUID
    supplier_name: str
    order_date: date
    currency: str
    items: tuple[OrderItemDraft, ...]
    exchange_rate: Decimal | None = None
    payment_terms: str | None = None
    supplier_rut: str | None = None
    supplier_phone: str | None = None
    supplier_email: str | None = None
    supplier_address: str | None = None
    premise_id: UUID | None = None
    delivery_date: date | None = None
    delivery_address: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        base_currency: str,
        default_tax_rate: Decimal,
        default_order_date: date,
    ) -> "OrderDraft":
        """
        Validate a raw order payload.

        Raises:
            ValidationError: with one entry per offending field.
        """
        errors: list[dict] = []

        for key in sorted(set(payload) - _ORDER_FIELDS):
            errors.append({"field": key, "message": "unknown field"})

        firm_id = _uuid(payload.get("firm_id"), "firm_id", errors, required=True)
        supplier_name = _text(payload.get("supplier_name"), "supplier_name", errors, required=True)
        order_date = _date(payload.get("order_date"), "order_date", errors) or default_order_date
        delivery_date = _date(payload.get("delivery_date"), "delivery_date", errors)
        premise_id = _uuid(payload.get("premise_id"), "premise_id", errors)
        optional_text = {
            name: _text(payload.get(name), name, errors)
            for name in (
                "supplier_rut",
                "supplier_phone",
                "supplier_email",
                "supplier_address",
                "delivery_address",
                "notes",
            )
        }

        currency = payload.get("currency") or base_currency
        if not isinstance(currency, str):
            errors.append({"field": "currency", "message": "must be a string"})
            currency = base_currency
        elif not CurrencyRegistry.is_valid(currency):
            errors.append({"field": "currency", "message": f"unsupported currency {currency!r}"})
            currency = base_currency
        currency = currency.upper().strip()

        exchange_rate = _decimal(payload.get("exchange_rate"), "exchange_rate", errors)
        if currency != base_currency:
            # An unparseable rate was already reported by _decimal.
            if exchange_rate is None and payload.get("exchange_rate") in (None, ""):
                errors.append({
                    "field": "exchange_rate",
                    "message": f"required when currency {currency} differs from {base_currency}",
                })
            elif exchange_rate is not None and exchange_rate <= 0:
                errors.append({"field": "exchange_rate", "message": "must be greater than 0"})
        elif exchange_rate is not None:
            errors.append({
                "field": "exchange_rate",
                "message": f"not allowed when currency is the base currency {base_currency}",
            })
            exchange_rate = None

        payment_terms = payload.get("payment_terms") or None
        if payment_terms is not None and not isinstance(payment_terms, str):
            errors.append({"field": "payment_terms", "message": "must be a string"})
            payment_terms = None
        elif payment_terms is not None and not is_valid_payment_terms(payment_terms):
            errors.append({
                "field": "payment_terms",
                "message": f"unknown payment terms code {payment_terms!r}",
            })

        items = _items(payload.get("items"), default_tax_rate, errors)

        if errors:
            logger.info(
                "purchase_order_payload_rejected",
                extra={
                    "error_count": len(errors),
                    "fields": [e["field"] for e in errors],
                },
            )
            raise ValidationError(errors)

        return cls(
            firm_id=firm_id,
            supplier_name=supplier_name,
            order_date=order_date,
            currency=currency,
            items=items,
            exchange_rate=exchange_rate,
            payment_terms=payment_terms,
            premise_id=premise_id,
            delivery_date=delivery_date,
            **optional_text,
        )


# -----------------------------------------------------------------------------
# Field parsers (append to ``errors`` and return None on failure)
# -----------------------------------------------------------------------------


def _text(value: Any, name: str, errors: list[dict], required: bool = False) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors.append({"field": name, "message": "is required"})
        return None
    if not isinstance(value, str):
        errors.append({"field": name, "message": "must be a string"})
        return None
    return value.strip()


def _uuid(value: Any, name: str, errors: list[dict], required: bool = False) -> UUID | None:
    if value is None or value == "":
        if required:
            errors.append({"field": name, "message": "is required"})
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        errors.append({"field": name, "message": f"invalid UUID {value!r}"})
        return None


def _date(value: Any, name: str, errors: list[dict]) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    errors.append({"field": name, "message": f"invalid date {value!r}"})
    return None


def _decimal(value: Any, name: str, errors: list[dict]) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        errors.append({"field": name, "message": "must be a number"})
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append({"field": name, "message": f"invalid number {value!r}"})
        return None
    if not result.is_finite():
        errors.append({"field": name, "message": "must be a finite number"})
        return None
    return result


def _items(
    value: Any,
    default_tax_rate: Decimal,
    errors: list[dict],
) -> tuple[OrderItemDraft, ...]:
    if not value:
        errors.append({"field": "items", "message": "at least one item is required"})
        return ()
    if not isinstance(value, (list, tuple)):
        errors.append({"field": "items", "message": "must be a list"})
        return ()

    drafts: list[OrderItemDraft] = []
    for index, raw in enumerate(value):
        prefix = f"items[{index}]"
        if not isinstance(raw, Mapping):
            errors.append({"field": prefix, "message": "must be an object"})
            continue

        before = len(errors)
        for key in sorted(set(raw) - _ITEM_FIELDS):
            errors.append({"field": f"{prefix}.{key}", "message": "unknown field"})

        description = _text(raw.get("description"), f"{prefix}.description", errors, required=True)
        unit = _text(raw.get("unit"), f"{prefix}.unit", errors) or "unidad"
        category = _text(raw.get("category"), f"{prefix}.category", errors)

        quantity = _decimal(raw.get("quantity"), f"{prefix}.quantity", errors)
        if quantity is None:
            if raw.get("quantity") in (None, ""):
                errors.append({"field": f"{prefix}.quantity", "message": "is required"})
        elif quantity <= 0:
            errors.append({"field": f"{prefix}.quantity", "message": "must be greater than 0"})

        unit_price = _decimal(raw.get("unit_price"), f"{prefix}.unit_price", errors)
        if unit_price is None:
            if raw.get("unit_price") in (None, ""):
                errors.append({"field": f"{prefix}.unit_price", "message": "is required"})
        elif unit_price < 0:
            errors.append({"field": f"{prefix}.unit_price", "message": "must not be negative"})

        tax_rate = _decimal(raw.get("tax_rate"), f"{prefix}.tax_rate", errors)
        if tax_rate is None and raw.get("tax_rate") in (None, ""):
            tax_rate = default_tax_rate
        elif tax_rate is not None and tax_rate < 0:
            errors.append({"field": f"{prefix}.tax_rate", "message": "must not be negative"})

        if len(errors) == before:
            drafts.append(
                OrderItemDraft(
                    description=description,
                    quantity=quantity,
                    unit=unit,
                    unit_price=unit_price,
                    tax_rate=tax_rate,
                    category=category,
                )
            )

    return tuple(drafts)
