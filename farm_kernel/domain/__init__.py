"""
Pure domain layer.

Value objects and time abstraction with NO dependencies on the ORM, the
database or I/O.
"""

from farm_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from farm_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from farm_kernel.domain.values import Currency, ExchangeRate, Money

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "Currency",
    "Money",
    "ExchangeRate",
]
