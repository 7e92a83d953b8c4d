"""
Check sale state - load the saved snapshot for the configured sale and print it.

Reads the SALE_* and SUPABASE_* variables from the environment / .env file.
"""

import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.sale_state_repository import SaleStateRepository
from services.config import load_sale_config


def check_sale_state():
    """Print counters and per-participant balances of the saved sale."""

    config = load_sale_config()
    state = SaleStateRepository().load(config)

    if state is None:
        print(f"No saved state for sale {config.sale_account}")
        return

    counters = state.counters
    print("=" * 50)
    print(f"SALE STATE ({config.sale_account}, {config.mode.value})")
    print("=" * 50)
    print(f"Total raised:              {counters.total_raised} / {config.hard_cap}")
    print(f"Soft cap reached:          {state.soft_cap_reached()}")
    print(f"Total tokens sold:         {counters.total_tokens_sold}")
    print(f"Active / paused:           {counters.is_active} / {counters.paused}")
    print(f"Finalized:                 {counters.is_finalized}")
    print(f"Tiers / bands:             {len(state.tiers)} / {len(state.bands)}")
    print("=" * 50)

    print("\nParticipants:")
    print("-" * 50)
    for participant, account in sorted(state.accounts.items()):
        vested = account.vesting.total_amount if account.vesting else 0
        print(
            f"{participant:<16} invested {account.total_invested:>10}  "
            f"tokens {account.tokens_purchased:>12}  vested {vested}  locked {account.locked_tokens}"
            f"{'  REFUNDED' if account.refunded else ''}"
        )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    check_sale_state()
