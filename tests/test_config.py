"""
Tests for `services/config.py`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.sale import SaleMode
from services.config import initial_payment_balances, initial_token_balance, load_sale_config

BASE_ENV = {
    "SALE_OWNER": "owner",
    "SALE_BASE_PRICE": "0.01",
    "SALE_SOFT_CAP": "100",
    "SALE_HARD_CAP": "1000",
    "SALE_MIN_PURCHASE": "1",
    "SALE_MAX_PURCHASE": "100",
    "SALE_START": "2025-01-01T00:00:00Z",
    "SALE_END": "2025-01-31T00:00:00Z",
}


def test_load_sale_config_defaults() -> None:
    """Verify defaults for the sale account, mode and supply."""

    config = load_sale_config(BASE_ENV)

    assert config.sale_account == "sale"
    assert config.mode is SaleMode.VESTING_LOCKUP
    assert config.token_supply is None
    assert config.base_price == Decimal("0.01")
    assert config.start_time == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_load_sale_config_staged_mode_with_supply() -> None:
    """Verify optional variables are honored."""

    config = load_sale_config({**BASE_ENV, "SALE_MODE": "staged_distribution", "SALE_TOKEN_SUPPLY": "5000"})

    assert config.mode is SaleMode.STAGED_DISTRIBUTION
    assert config.token_supply == Decimal("5000")


def test_missing_variable_raises_runtime_error() -> None:
    """Verify a missing required variable is reported by name."""

    env = dict(BASE_ENV)
    del env["SALE_HARD_CAP"]

    with pytest.raises(RuntimeError, match="SALE_HARD_CAP"):
        load_sale_config(env)


def test_malformed_decimal_raises_runtime_error() -> None:
    """Verify non-numeric amounts are rejected."""

    with pytest.raises(RuntimeError, match="SALE_SOFT_CAP"):
        load_sale_config({**BASE_ENV, "SALE_SOFT_CAP": "lots"})


def test_invalid_sale_raises_value_error() -> None:
    """Verify configuration rules are enforced (soft cap below hard cap)."""

    with pytest.raises(ValueError):
        load_sale_config({**BASE_ENV, "SALE_SOFT_CAP": "2000"})


def test_initial_token_balance() -> None:
    """Verify the seeded token balance defaults to zero."""

    assert initial_token_balance({}) == Decimal("0")
    assert initial_token_balance({"SALE_TOKEN_BALANCE": "1000000"}) == Decimal("1000000")


def test_initial_payment_balances() -> None:
    """Verify participant:amount pairs are parsed and repeated holders add up."""

    balances = initial_payment_balances({"SALE_PAYMENT_BALANCES": "alice:1000, bob:250.5,alice:1"})

    assert balances == {"alice": Decimal("1001"), "bob": Decimal("250.5")}
    assert initial_payment_balances({}) == {}


@pytest.mark.parametrize("raw", ["alice", ":10", "alice:lots", "alice:-5"])
def test_malformed_payment_balances_raise_runtime_error(raw: str) -> None:
    """Verify malformed entries are rejected with the variable name."""

    with pytest.raises(RuntimeError, match="SALE_PAYMENT_BALANCES"):
        initial_payment_balances({"SALE_PAYMENT_BALANCES": raw})
