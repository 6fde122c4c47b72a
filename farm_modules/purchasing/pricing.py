"""
Module: farm_modules.purchasing.pricing
Responsibility:
    Item and order amount computation in order currency, and the mirrored
    base-currency figures when an exchange rate applies.

Architecture position:
    Modules > Purchasing -- pure calculation, zero I/O.

Invariants enforced:
    - total = subtotal + tax at item and order level.
    - Order figures are sums of item figures; nothing is re-rounded, so there
      is no drift between items and order.
    - Base-currency mirrors are rounded independently at each granularity
      (item subtotal, item tax, item total, order subtotal, order tax, order
      total), each from its order-currency figure.
    - Recomputation always starts from quantity, unit price and tax rate, so
      repeated edits never compound rounding.

Failure modes:
    - InvalidExchangeRateError on a zero, negative or non-numeric rate.
    - ValueError on an unsupported currency code.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from farm_kernel.domain.values import ExchangeRate, Money
from farm_kernel.exceptions import InvalidExchangeRateError

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ItemAmounts:
    """Computed figures of one order item."""
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    subtotal_base: Decimal | None = None
    tax_amount_base: Decimal | None = None
    total_base: Decimal | None = None


@dataclass(frozen=True)
class OrderTotals:
    """Order-level totals; ``*_base`` set only when an exchange rate applies."""
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    subtotal_base: Decimal | None = None
    tax_amount_base: Decimal | None = None
    total_amount_base: Decimal | None = None


def _exchange_rate(
    currency: str,
    base_currency: str,
    exchange_rate: Decimal | str | None,
) -> ExchangeRate | None:
    if exchange_rate is None:
        return None
    try:
        return ExchangeRate.of(currency, base_currency, exchange_rate)
    except (ValueError, InvalidOperation) as exc:
        raise InvalidExchangeRateError(str(exchange_rate), str(exc)) from exc


def to_base(
    amount: Decimal | str | int,
    exchange_rate: Decimal | str,
    base_currency: str,
    currency: str | None = None,
) -> Decimal:
    """
    Mirror one order-currency figure into the base currency.

    Rounded half-up to the base currency's precision.
    """
    rate = _exchange_rate(currency or base_currency, base_currency, exchange_rate)
    money = Money.of(amount, rate.from_currency)
    return rate.convert(money).round().amount


def compute_item_amounts(
    quantity: Decimal,
    unit_price: Decimal,
    tax_rate: Decimal,
    currency: str,
    exchange_rate: Decimal | None = None,
    base_currency: str = "UYU",
) -> ItemAmounts:
    """
    Compute subtotal, tax and total of one item.

    ``tax_rate`` is a percentage (22 means 22%).
    """
    rate = _exchange_rate(currency, base_currency, exchange_rate)

    subtotal = (Money.of(quantity, currency) * unit_price).round()
    tax = (subtotal * (Decimal(tax_rate) / _HUNDRED)).round()
    total = subtotal + tax

    if rate is None:
        return ItemAmounts(
            subtotal=subtotal.amount,
            tax_amount=tax.amount,
            total=total.amount,
        )

    return ItemAmounts(
        subtotal=subtotal.amount,
        tax_amount=tax.amount,
        total=total.amount,
        subtotal_base=rate.convert(subtotal).round().amount,
        tax_amount_base=rate.convert(tax).round().amount,
        total_base=rate.convert(total).round().amount,
    )


def compute_order_totals(
    items: Sequence[ItemAmounts],
    currency: str,
    exchange_rate: Decimal | None = None,
    base_currency: str = "UYU",
) -> OrderTotals:
    """Sum item figures into order totals and mirror them when a rate applies."""
    rate = _exchange_rate(currency, base_currency, exchange_rate)

    subtotal = Money.zero(currency)
    tax = Money.zero(currency)
    for item in items:
        subtotal = subtotal + Money.of(item.subtotal, currency)
        tax = tax + Money.of(item.tax_amount, currency)
    total = subtotal + tax

    if rate is None:
        return OrderTotals(
            subtotal=subtotal.amount,
            tax_amount=tax.amount,
            total_amount=total.amount,
        )

    return OrderTotals(
        subtotal=subtotal.amount,
        tax_amount=tax.amount,
        total_amount=total.amount,
        subtotal_base=rate.convert(subtotal).round().amount,
        tax_amount_base=rate.convert(tax).round().amount,
        total_amount_base=rate.convert(total).round().amount,
    )
