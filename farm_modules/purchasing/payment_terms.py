"""
Module: farm_modules.purchasing.payment_terms
Responsibility:
    Catalog of payment-terms codes and the parser that expands a code into
    an ordered installment schedule for a given order total and date.

Architecture position:
    Modules > Purchasing -- pure calculation, zero I/O.
    May only import farm_kernel.domain and farm_kernel.exceptions.

Invariants enforced:
    - The schedule sums exactly to the order total: every installment but
      the last is rounded half-up to the currency's precision and the last
      one absorbs the remainder.
    - Due dates are order_date + day_offset calendar days and never decrease.
    - Unknown or empty codes produce an empty schedule (no obligations).

Failure modes:
    - ValidationError on a negative total or an unsupported currency.
    - UnknownPaymentTermsError from the strict lookup ``get_payment_terms``.

Usage:
    from farm_modules.purchasing.payment_terms import parse_payment_terms

    schedule = parse_payment_terms("33_33_34", Decimal("1000.00"), date(2026, 3, 2))
    # amounts: 333.33, 333.33, 333.34 -- due +30/+60/+90
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

from farm_kernel.domain.values import Money
from farm_kernel.exceptions import UnknownPaymentTermsError, ValidationError
from farm_kernel.logging_config import get_logger
from farm_modules.purchasing.models import Installment

logger = get_logger("modules.purchasing.payment_terms")

_HUNDRED = Decimal("100")
_THIRD = _HUNDRED / Decimal("3")


@dataclass(frozen=True)
class PaymentTermsCode:
    """
    A catalog entry.

    ``shares`` is the ordered tuple of (percentage, day_offset).  Pay-on-receipt
    codes parse to a schedule for preview but do not generate obligations.
    """

    code: str
    label: str
    shares: tuple[tuple[Decimal, int], ...]
    generates_obligations: bool = True

    @property
    def installment_count(self) -> int:
        return len(self.shares)


PAYMENT_TERMS_CATALOG: dict[str, PaymentTermsCode] = {
    entry.code: entry
    for entry in (
        PaymentTermsCode(
            "contado", "Contado (pay on receipt)",
            ((_HUNDRED, 0),),
            generates_obligations=False,
        ),
        PaymentTermsCode("30_dias", "30 days", ((_HUNDRED, 30),)),
        PaymentTermsCode("60_dias", "60 days", ((_HUNDRED, 60),)),
        PaymentTermsCode("90_dias", "90 days", ((_HUNDRED, 90),)),
        PaymentTermsCode(
            "50_50", "50% at 30 days, 50% at 60 days",
            ((Decimal("50"), 30), (Decimal("50"), 60)),
        ),
        PaymentTermsCode(
            "33_33_34", "Thirds at 30, 60 and 90 days",
            ((_THIRD, 30), (_THIRD, 60), (_THIRD, 90)),
        ),
        PaymentTermsCode(
            "25_25_25_25", "Quarters at 30, 60, 90 and 120 days",
            (
                (Decimal("25"), 30),
                (Decimal("25"), 60),
                (Decimal("25"), 90),
                (Decimal("25"), 120),
            ),
        ),
        PaymentTermsCode(
            "40_60", "40% advance, 60% at 30 days",
            ((Decimal("40"), 0), (Decimal("60"), 30)),
        ),
    )
}


def get_payment_terms(code: str) -> PaymentTermsCode:
    """Strict catalog lookup. Raises UnknownPaymentTermsError."""
    entry = PAYMENT_TERMS_CATALOG.get(code or "")
    if entry is None:
        raise UnknownPaymentTermsError(code)
    return entry


def is_valid_payment_terms(code: str | None) -> bool:
    return isinstance(code, str) and code in PAYMENT_TERMS_CATALOG


def generates_obligations(code: str | None) -> bool:
    """True when the code maps to deferred installments that become expenses."""
    entry = PAYMENT_TERMS_CATALOG.get(code or "")
    return entry is not None and entry.generates_obligations


def parse_payment_terms(
    code: str | None,
    total_amount: Decimal | str | int,
    order_date: date,
    currency: str = "UYU",
) -> tuple[Installment, ...]:
    """
    Expand a payment-terms code into its installment schedule.

    Args:
        code: Catalog code (``"50_50"``, ``"33_33_34"``, ...).  Unknown or
            empty codes yield an empty schedule.
        total_amount: Order total in order currency.  Zero is allowed and
            yields zero-amount installments.
        order_date: Base date for the day offsets.
        currency: Order currency; drives rounding precision.

    Returns:
        Installments ordered by installment_number.
    """
    entry = PAYMENT_TERMS_CATALOG.get(code or "")
    if entry is None:
        if code:
            logger.debug("payment_terms_unknown", extra={"terms_code": code})
        return ()

    try:
        total = Money.of(total_amount, currency)
    except (ValueError, InvalidOperation) as exc:
        raise ValidationError.single("total_amount", str(exc)) from exc
    if not total.amount.is_finite():
        raise ValidationError.single("total_amount", "must be a finite number")
    if total.is_negative:
        raise ValidationError.single("total_amount", "must not be negative")

    installments: list[Installment] = []
    rounded_total = total.round()
    allocated = Money.zero(total.currency)
    last = entry.installment_count

    for number, (percentage, day_offset) in enumerate(entry.shares, start=1):
        if number == last:
            amount = rounded_total - allocated
        else:
            # Half-up rounding of sub-cent totals must not overdraw the schedule.
            amount = min(
                (total * (percentage / _HUNDRED)).round(),
                rounded_total - allocated,
            )
            allocated = allocated + amount
        installments.append(
            Installment(
                installment_number=number,
                percentage=percentage,
                day_offset=day_offset,
                due_date=order_date + timedelta(days=day_offset),
                amount=amount.amount,
            )
        )

    return tuple(installments)
