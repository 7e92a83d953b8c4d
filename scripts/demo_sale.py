"""
Run a small demo sale end to end in memory.

- Owner: owner, sale account: sale
- Whitelists alice and bob, adds a 10% discount band for purchases of 10-50
- alice refers bob; both buy; alice claims her referral bonus

Pass --save to write the resulting state to Supabase (SUPABASE_URL/SUPABASE_KEY).
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.sale import SaleConfig, SaleMode
from repositories.balance_ledger import InMemoryBalanceLedger
from services.sale_engine import SaleEngine


def build_demo_engine(now: datetime) -> SaleEngine:
    config = SaleConfig(
        owner="owner",
        sale_account="sale",
        mode=SaleMode.VESTING_LOCKUP,
        base_price=Decimal("0.01"),
        soft_cap=Decimal("100"),
        hard_cap=Decimal("1000"),
        min_purchase=Decimal("1"),
        max_purchase=Decimal("50"),
        start_time=now,
        end_time=now + timedelta(days=30),
        immediate_release_percent=Decimal("20"),
    )

    tokens = InMemoryBalanceLedger("token", {"sale": Decimal("1000000")})
    payments = InMemoryBalanceLedger("payment", {"alice": Decimal("100"), "bob": Decimal("100")})
    return SaleEngine(config, tokens, payments, clock=lambda: now)


def run_demo(save: bool = False):
    """Seed a sale, whitelist participants and run purchases."""

    now = datetime.now(timezone.utc).replace(microsecond=0)
    engine = build_demo_engine(now)

    engine.admin.update_whitelist("owner", ["alice", "bob"], True)
    engine.admin.add_band("owner", Decimal("10"), Decimal("50"), Decimal("10"))
    engine.set_referrer("bob", "alice")

    purchases = [("alice", Decimal("5")), ("bob", Decimal("20"))]
    results = [engine.buy_tokens(participant, amount) for participant, amount in purchases]
    bonus = engine.claim_referral_bonus("alice")

    print("=" * 50)
    print("DEMO SALE")
    print("=" * 50)
    for result in results:
        print(
            f"{result.participant:<8} paid {result.amount:>6} -> {result.tokens} tokens "
            f"(discount {result.discount_percent}%, immediate {result.immediate}, vested {result.vested})"
        )
    print(f"alice referral bonus:      {bonus}")
    print(f"Total raised:              {engine.total_raised()}")
    print(f"Total tokens sold:         {engine.total_tokens_sold()}")
    print(f"Current price:             {engine.get_current_token_price()}")
    print(f"Events:                    {len(engine.events)}")
    print("=" * 50)

    if save:
        from repositories.sale_state_repository import SaleStateRepository

        SaleStateRepository().save(
            engine.snapshot(),
            balances={"token": engine.token_ledger.balances(), "payment": engine.payment_ledger.balances()},
        )
        print("Saved sale state to Supabase")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    parser = argparse.ArgumentParser(description="Run an in-memory demo sale")
    parser.add_argument("--save", action="store_true", help="Save the resulting state to Supabase")
    args = parser.parse_args()

    run_demo(save=args.save)
