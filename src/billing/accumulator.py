"""
Currency Accumulator

Sums rated amounts per currency. Decimal addition is exact, so totals do
not depend on the order in which units contribute.
"""

from dataclasses import dataclass
from decimal import Decimal
from threading import Lock
from typing import Any, Dict, List


@dataclass(frozen=True)
class CurrencyTotal:
    currency: str
    total_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "total_amount": self.total_amount,
        }


class CurrencyAccumulator:
    """Thread-safe sum-by-currency."""

    def __init__(self):
        self._totals: Dict[str, Decimal] = {}
        self._lock = Lock()

    def add(self, currency: str, amount: Decimal) -> None:
        with self._lock:
            if currency in self._totals:
                self._totals[currency] += amount
            else:
                self._totals[currency] = amount

    def totals(self) -> List[CurrencyTotal]:
        """Totals sorted ascending by currency code."""
        with self._lock:
            return [
                CurrencyTotal(currency=currency, total_amount=amount)
                for currency, amount in sorted(self._totals.items())
            ]
