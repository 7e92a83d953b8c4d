"""
Sale configuration from the environment.

Environment variables (loaded from the project's .env file if present):
- SALE_OWNER, SALE_ACCOUNT: owner identity and the account holding tokens/funds
- SALE_MODE: "vesting_lockup" (default) or "staged_distribution"
- SALE_BASE_PRICE, SALE_SOFT_CAP, SALE_HARD_CAP
- SALE_MIN_PURCHASE, SALE_MAX_PURCHASE
- SALE_START, SALE_END: ISO-8601 UTC timestamps
- SALE_TOKEN_SUPPLY (optional)
- SALE_TOKEN_BALANCE (optional): tokens seeded into the sale account
- SALE_PAYMENT_BALANCES (optional): payment funds seeded per participant,
  as "alice:1000,bob:250"

Seeds apply only when no persisted balances exist for the sale.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from domain.sale import SaleConfig, SaleMode

env_path = Path(__file__).parent.parent / ".env"


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise RuntimeError(f"Missing environment variable: {name}.")
    return value


def _decimal(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Decimal:
    raw = env.get(name) or default
    if raw is None:
        raise RuntimeError(f"Missing environment variable: {name}.")
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise RuntimeError(f"{name} must be a decimal number, got {raw!r}") from e


def _timestamp(env: Mapping[str, str], name: str) -> datetime:
    raw = _require(env, name)
    dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def load_sale_config(env: Optional[Mapping[str, str]] = None) -> SaleConfig:
    """
    Build a SaleConfig from environment variables.

    Raises:
        RuntimeError: if a required variable is missing or malformed
        ValueError: if the values do not form a valid sale
    """

    if env is None:
        load_dotenv(dotenv_path=env_path)
        env = os.environ

    token_supply = env.get("SALE_TOKEN_SUPPLY")

    return SaleConfig(
        owner=_require(env, "SALE_OWNER"),
        sale_account=env.get("SALE_ACCOUNT") or "sale",
        mode=SaleMode(env.get("SALE_MODE") or SaleMode.VESTING_LOCKUP.value),
        base_price=_decimal(env, "SALE_BASE_PRICE"),
        soft_cap=_decimal(env, "SALE_SOFT_CAP"),
        hard_cap=_decimal(env, "SALE_HARD_CAP"),
        min_purchase=_decimal(env, "SALE_MIN_PURCHASE"),
        max_purchase=_decimal(env, "SALE_MAX_PURCHASE"),
        start_time=_timestamp(env, "SALE_START"),
        end_time=_timestamp(env, "SALE_END"),
        token_supply=Decimal(token_supply) if token_supply else None,
    )


def initial_token_balance(env: Optional[Mapping[str, str]] = None) -> Decimal:
    if env is None:
        env = os.environ
    return _decimal(env, "SALE_TOKEN_BALANCE", default="0")


def initial_payment_balances(env: Optional[Mapping[str, str]] = None) -> Dict[str, Decimal]:
    """
    Parse SALE_PAYMENT_BALANCES into {participant: amount}.

    Raises:
        RuntimeError: if an entry is not "participant:amount" with a non-negative amount
    """

    if env is None:
        env = os.environ
    raw = env.get("SALE_PAYMENT_BALANCES") or ""

    balances: Dict[str, Decimal] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        holder, sep, amount = entry.partition(":")
        holder = holder.strip()
        if not sep or not holder:
            raise RuntimeError(f"SALE_PAYMENT_BALANCES entries must look like participant:amount, got {entry!r}")
        try:
            value = Decimal(amount.strip())
        except InvalidOperation as e:
            raise RuntimeError(f"SALE_PAYMENT_BALANCES amount for {holder} must be a decimal number") from e
        if value < 0:
            raise RuntimeError(f"SALE_PAYMENT_BALANCES amount for {holder} must be >= 0")
        balances[holder] = balances.get(holder, Decimal("0")) + value
    return balances


__all__ = [
    "load_sale_config",
    "initial_token_balance",
    "initial_payment_balances",
]
