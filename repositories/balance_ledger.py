"""
Balance ledger boundary.

The sale engine moves balances (sale tokens and the payment currency) but does
not own them. It depends only on the BalanceLedger protocol below; any
fungible-asset ledger exposing `balance_of` and `transfer` can back a sale.

InMemoryBalanceLedger is the process-local implementation used by the API's
default wiring, the scripts and the tests.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from typing import Dict, Protocol


class InsufficientBalanceError(Exception):
    """Raised when a transfer exceeds the sender's balance."""

    def __init__(self, holder: str, requested: Decimal, available: Decimal) -> None:
        self.holder = holder
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance for {holder}. Requested: {requested}, Available: {available}"
        )


class BalanceLedger(Protocol):
    def balance_of(self, holder: str) -> Decimal:
        ...

    def transfer(self, sender: str, recipient: str, amount: Decimal) -> None:
        ...


class InMemoryBalanceLedger:
    """Thread-safe dictionary-backed ledger for a single asset."""

    def __init__(self, asset: str, balances: Dict[str, Decimal] | None = None) -> None:
        self.asset = asset
        self._balances: Dict[str, Decimal] = dict(balances or {})
        self._lock = threading.Lock()

    def balance_of(self, holder: str) -> Decimal:
        with self._lock:
            return self._balances.get(holder, Decimal("0"))

    def balances(self) -> Dict[str, Decimal]:
        """Copy of every holder's balance, for persistence."""

        with self._lock:
            return dict(self._balances)

    def credit(self, holder: str, amount: Decimal) -> None:
        """Mint `amount` to `holder` (seeding balances outside the sale)."""

        if amount < 0:
            raise ValueError("amount must be >= 0")
        with self._lock:
            self._balances[holder] = self._balances.get(holder, Decimal("0")) + amount

    def transfer(self, sender: str, recipient: str, amount: Decimal) -> None:
        if amount < 0:
            raise ValueError("amount must be >= 0")
        with self._lock:
            available = self._balances.get(sender, Decimal("0"))
            if amount > available:
                raise InsufficientBalanceError(sender, amount, available)
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, Decimal("0")) + amount


__all__ = [
    "BalanceLedger",
    "InMemoryBalanceLedger",
    "InsufficientBalanceError",
]
