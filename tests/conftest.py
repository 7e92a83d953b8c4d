"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules.
"""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.sale import SaleConfig, SaleMode  # noqa: E402
from repositories.balance_ledger import InMemoryBalanceLedger  # noqa: E402
from services.sale_engine import SaleEngine  # noqa: E402

SALE_START = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
SALE_END = SALE_START + timedelta(days=30)


class FakeClock:
    """Settable UTC clock injected into the engine."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeQuery:
    """Just enough of the Supabase query builder for the repository."""

    def __init__(self, client: "FakeSupabase", table: str) -> None:
        self._client = client
        self._table = table
        self._filters: Dict[str, Any] = {}
        self._order: str | None = None
        self._limit: int | None = None
        self._upsert: tuple[List[dict], List[str]] | None = None

    def select(self, columns: str) -> "FakeQuery":
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters[column] = value
        return self

    def order(self, column: str) -> "FakeQuery":
        self._order = column
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def upsert(self, rows, on_conflict: str) -> "FakeQuery":
        rows = rows if isinstance(rows, list) else [rows]
        self._upsert = (rows, on_conflict.split(","))
        return self

    def execute(self) -> SimpleNamespace:
        if self._client.error:
            return SimpleNamespace(data=None, error=self._client.error)

        stored = self._client.tables.setdefault(self._table, [])
        if self._upsert is not None:
            rows, keys = self._upsert
            for row in rows:
                stored[:] = [r for r in stored if any(r[k] != row[k] for k in keys)]
                stored.append(dict(row))
            return SimpleNamespace(data=rows, error=None)

        data = [r for r in stored if all(r.get(k) == v for k, v in self._filters.items())]
        if self._order:
            data.sort(key=lambda r: r[self._order])
        if self._limit is not None:
            data = data[: self._limit]
        return SimpleNamespace(data=data, error=None)


class FakeSupabase:
    """In-memory stand-in for the Supabase client; set `error` to fail every query."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[dict]] = {}
        self.error: str | None = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture
def sale_start() -> datetime:
    return SALE_START


@pytest.fixture
def make_config():
    """Factory for sale configurations; keyword arguments override the defaults."""

    def _make(mode: SaleMode = SaleMode.VESTING_LOCKUP, **overrides) -> SaleConfig:
        values = dict(
            owner="owner",
            sale_account="sale",
            mode=mode,
            base_price=Decimal("0.01"),
            soft_cap=Decimal("100"),
            hard_cap=Decimal("1000"),
            min_purchase=Decimal("1"),
            max_purchase=Decimal("100"),
            start_time=SALE_START,
            end_time=SALE_END,
        )
        values.update(overrides)
        return SaleConfig(**values)

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(SALE_START)


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def token_ledger() -> InMemoryBalanceLedger:
    return InMemoryBalanceLedger("token", {"sale": Decimal("10000000")})


@pytest.fixture
def payment_ledger() -> InMemoryBalanceLedger:
    return InMemoryBalanceLedger(
        "payment",
        {"alice": Decimal("1000"), "bob": Decimal("1000"), "carol": Decimal("1000")},
    )


@pytest.fixture
def make_engine(make_config, clock, token_ledger, payment_ledger):
    """Factory for engines sharing the fixture clock and ledgers; alice, bob and carol are whitelisted."""

    def _make(mode: SaleMode = SaleMode.VESTING_LOCKUP, **overrides) -> SaleEngine:
        engine = SaleEngine(make_config(mode, **overrides), token_ledger, payment_ledger, clock=clock)
        engine.admin.update_whitelist("owner", ["alice", "bob", "carol"], True)
        return engine

    return _make


@pytest.fixture
def vesting_engine(make_engine) -> SaleEngine:
    return make_engine()


@pytest.fixture
def staged_engine(make_engine) -> SaleEngine:
    """Staged sale with two back-to-back 10-day tiers (price 0.01 then 0.02, 1000 tokens each)."""

    engine = make_engine(SaleMode.STAGED_DISTRIBUTION)
    engine.admin.add_tier(
        "owner", Decimal("0.01"), Decimal("1000"), SALE_START, SALE_START + timedelta(days=10)
    )
    engine.admin.add_tier(
        "owner",
        Decimal("0.02"),
        Decimal("1000"),
        SALE_START + timedelta(days=10),
        SALE_START + timedelta(days=20),
    )
    return engine
