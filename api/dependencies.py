"""
API dependencies: the process-wide sale engine and caller identity.

The engine is built once from the SALE_* environment. Ledgers start from
SALE_TOKEN_BALANCE and SALE_PAYMENT_BALANCES. When Supabase is configured the
last saved snapshot and its ledger balances are restored, and every transition
saves the new state and balances before it commits.
"""

import logging
from functools import lru_cache
from typing import Tuple

from fastapi import Header

from domain.sale import SaleConfig, SaleState
from repositories.balance_ledger import InMemoryBalanceLedger
from repositories.client import persistence_configured
from repositories.sale_state_repository import SaleStateRepository
from services.config import initial_payment_balances, initial_token_balance, load_sale_config
from services.sale_engine import SaleEngine

logger = logging.getLogger(__name__)

TOKEN_ASSET = "token"
PAYMENT_ASSET = "payment"


def _seeded_ledgers(config: SaleConfig) -> Tuple[InMemoryBalanceLedger, InMemoryBalanceLedger]:
    tokens = InMemoryBalanceLedger(TOKEN_ASSET)
    tokens.credit(config.sale_account, initial_token_balance())
    payments = InMemoryBalanceLedger(PAYMENT_ASSET, initial_payment_balances())
    return tokens, payments


@lru_cache(maxsize=1)
def get_engine() -> SaleEngine:
    config = load_sale_config()

    if not persistence_configured():
        logger.info("Supabase not configured; sale state is kept in memory only")
        tokens, payments = _seeded_ledgers(config)
        return SaleEngine(config, tokens, payments)

    repository = SaleStateRepository()
    state = repository.load(config)
    balances = repository.load_balances(config) if state is not None else {}

    if balances:
        tokens = InMemoryBalanceLedger(TOKEN_ASSET, balances.get(TOKEN_ASSET))
        payments = InMemoryBalanceLedger(PAYMENT_ASSET, balances.get(PAYMENT_ASSET))
    else:
        if state is not None:
            logger.warning(f"No saved balances for {config.sale_account}; seeding ledgers from the environment")
        tokens, payments = _seeded_ledgers(config)

    def save(new_state: SaleState) -> None:
        repository.save(
            new_state,
            balances={TOKEN_ASSET: tokens.balances(), PAYMENT_ASSET: payments.balances()},
        )

    engine = SaleEngine(config, tokens, payments, state=state, writer=save)
    logger.info(f"Sale engine restored for {config.sale_account} (snapshot found: {state is not None})")
    return engine


def get_caller(x_participant: str = Header(..., alias="X-Participant", min_length=1)) -> str:
    """Caller identity, taken from the X-Participant header."""
    return x_participant


__all__ = ["get_engine", "get_caller"]
