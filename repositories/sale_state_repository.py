"""
Sale state repository (persistence).

This module provides *only* persistence for a SaleState snapshot. It does not
enforce sale rules; the engine validates every transition before a snapshot is
ever saved.

Layout (all rows keyed by sale_id = the sale account identity):
- sale_state: one row of global counters and flags
- sale_tiers: one row per time-window tier, keyed by tier_index
- sale_bands: one row per discount band, keyed by band_index
- sale_participants: one row per participant; vesting and distributions are
  stored as JSON sub-records
- sale_balances: one row per (asset, holder) of the in-memory ledgers, so a
  restarted process resumes with the balances that match the snapshot
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from domain.participant import Distribution, ParticipantAccount, VestingSchedule
from domain.sale import SaleConfig, SaleCounters, SaleState
from domain.tier import DiscountBand, TimeWindowTier
from domain.time import require_utc_timestamp

logger = logging.getLogger(__name__)

_STATE_TABLE: str = "sale_state"
_TIERS_TABLE: str = "sale_tiers"
_BANDS_TABLE: str = "sale_bands"
_PARTICIPANTS_TABLE: str = "sale_participants"
_BALANCES_TABLE: str = "sale_balances"


def _to_iso_utc(dt: Optional[datetime], *, name: str) -> Optional[str]:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    if dt is None:
        return None
    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_utc_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _check(response: Any, action: str) -> List[Mapping[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        logger.error(f"Failed to {action}: {error}")
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


# ============================================================================
# Row conversion
# ============================================================================

def _vesting_to_json(schedule: Optional[VestingSchedule]) -> Optional[Dict[str, Any]]:
    if schedule is None:
        return None
    return {
        "total_amount": str(schedule.total_amount),
        "released_amount": str(schedule.released_amount),
        "start_time": _to_iso_utc(schedule.start_time, name="vesting.start_time"),
        "duration_seconds": int(schedule.duration.total_seconds()),
        "cliff_seconds": int(schedule.cliff.total_seconds()),
    }


def _vesting_from_json(data: Optional[Mapping[str, Any]]) -> Optional[VestingSchedule]:
    if not data:
        return None
    return VestingSchedule(
        total_amount=Decimal(str(data["total_amount"])),
        released_amount=Decimal(str(data["released_amount"])),
        start_time=_parse_utc_datetime(data["start_time"]),
        duration=timedelta(seconds=int(data["duration_seconds"])),
        cliff=timedelta(seconds=int(data["cliff_seconds"])),
    )


def _participant_to_row(sale_id: str, account: ParticipantAccount) -> Dict[str, Any]:
    return {
        "sale_id": sale_id,
        "participant": account.participant,
        "whitelisted": account.whitelisted,
        "total_invested": str(account.total_invested),
        "tokens_purchased": str(account.tokens_purchased),
        "last_purchase_time_utc": _to_iso_utc(account.last_purchase_time, name="last_purchase_time"),
        "locked_tokens": str(account.locked_tokens),
        "lock_start_time_utc": _to_iso_utc(account.lock_start_time, name="lock_start_time"),
        "vesting": _vesting_to_json(account.vesting),
        "distributions": [
            {
                "amount": str(d.amount),
                "release_time": _to_iso_utc(d.release_time, name="release_time"),
                "claimed": d.claimed,
            }
            for d in account.distributions
        ],
        "referrer": account.referrer,
        "referral_bonus_accrued": str(account.referral_bonus_accrued),
        "refunded": account.refunded,
    }


def _row_to_participant(row: Mapping[str, Any]) -> ParticipantAccount:
    return ParticipantAccount(
        participant=str(row["participant"]),
        whitelisted=bool(row.get("whitelisted", False)),
        total_invested=Decimal(str(row.get("total_invested", "0"))),
        tokens_purchased=Decimal(str(row.get("tokens_purchased", "0"))),
        last_purchase_time=_parse_utc_datetime(row.get("last_purchase_time_utc")),
        locked_tokens=Decimal(str(row.get("locked_tokens", "0"))),
        lock_start_time=_parse_utc_datetime(row.get("lock_start_time_utc")),
        vesting=_vesting_from_json(row.get("vesting")),
        distributions=tuple(
            Distribution(
                amount=Decimal(str(d["amount"])),
                release_time=_parse_utc_datetime(d["release_time"]),
                claimed=bool(d.get("claimed", False)),
            )
            for d in (row.get("distributions") or [])
        ),
        referrer=row.get("referrer"),
        referral_bonus_accrued=Decimal(str(row.get("referral_bonus_accrued", "0"))),
        refunded=bool(row.get("refunded", False)),
    )


def _counters_to_row(sale_id: str, counters: SaleCounters) -> Dict[str, Any]:
    return {
        "sale_id": sale_id,
        "total_raised": str(counters.total_raised),
        "total_tokens_sold": str(counters.total_tokens_sold),
        "is_active": counters.is_active,
        "cooldown_enabled": counters.cooldown_enabled,
        "vesting_enabled": counters.vesting_enabled,
        "paused": counters.paused,
        "is_finalized": counters.is_finalized,
        "current_tier_index": counters.current_tier_index,
        "updated_at_utc": datetime.now(timezone.utc).isoformat(),
    }


def _row_to_counters(row: Mapping[str, Any]) -> SaleCounters:
    return SaleCounters(
        total_raised=Decimal(str(row["total_raised"])),
        total_tokens_sold=Decimal(str(row["total_tokens_sold"])),
        is_active=bool(row["is_active"]),
        cooldown_enabled=bool(row["cooldown_enabled"]),
        vesting_enabled=bool(row["vesting_enabled"]),
        paused=bool(row["paused"]),
        is_finalized=bool(row["is_finalized"]),
        current_tier_index=int(row.get("current_tier_index", 0)),
    )


# ============================================================================
# Repository
# ============================================================================

class SaleStateRepository:
    """Saves and loads SaleState snapshots through a Supabase client."""

    def __init__(self, client: Any = None) -> None:
        if client is None:
            from repositories.client import get_supabase

            client = get_supabase()
        self._client = client

    def save(self, state: SaleState, balances: Optional[Mapping[str, Mapping[str, Decimal]]] = None) -> None:
        """
        Upsert the full snapshot.

        Args:
            state: the sale state to store
            balances: optional {asset: {holder: balance}} ledger contents saved alongside
        """

        sale_id = state.config.sale_account

        _check(
            self._client.table(_STATE_TABLE)
            .upsert(_counters_to_row(sale_id, state.counters), on_conflict="sale_id")
            .execute(),
            "save sale state",
        )

        if state.tiers:
            rows = [
                {
                    "sale_id": sale_id,
                    "tier_index": index,
                    "price": str(tier.price),
                    "max_tokens": str(tier.max_tokens),
                    "tokens_sold": str(tier.tokens_sold),
                    "start_time_utc": _to_iso_utc(tier.start_time, name="start_time"),
                    "end_time_utc": _to_iso_utc(tier.end_time, name="end_time"),
                }
                for index, tier in enumerate(state.tiers)
            ]
            _check(
                self._client.table(_TIERS_TABLE).upsert(rows, on_conflict="sale_id,tier_index").execute(),
                "save sale tiers",
            )

        if state.bands:
            rows = [
                {
                    "sale_id": sale_id,
                    "band_index": index,
                    "min_purchase": str(band.min_purchase),
                    "max_purchase": str(band.max_purchase),
                    "discount_percent": str(band.discount_percent),
                }
                for index, band in enumerate(state.bands)
            ]
            _check(
                self._client.table(_BANDS_TABLE).upsert(rows, on_conflict="sale_id,band_index").execute(),
                "save sale bands",
            )

        if state.accounts:
            rows = [_participant_to_row(sale_id, account) for account in state.accounts.values()]
            _check(
                self._client.table(_PARTICIPANTS_TABLE)
                .upsert(rows, on_conflict="sale_id,participant")
                .execute(),
                "save sale participants",
            )

        if balances:
            rows = [
                {"sale_id": sale_id, "asset": asset, "holder": holder, "balance": str(amount)}
                for asset, holders in balances.items()
                for holder, amount in holders.items()
            ]
            if rows:
                _check(
                    self._client.table(_BALANCES_TABLE)
                    .upsert(rows, on_conflict="sale_id,asset,holder")
                    .execute(),
                    "save sale balances",
                )

        logger.info(f"Saved sale state for {sale_id} ({len(state.accounts)} participants)")

    def load(self, config: SaleConfig) -> Optional[SaleState]:
        """
        Load the snapshot for `config.sale_account`.

        Returns:
            SaleState, or None if nothing was saved for this sale yet
        """

        sale_id = config.sale_account

        state_rows = _check(
            self._client.table(_STATE_TABLE).select("*").eq("sale_id", sale_id).limit(1).execute(),
            "load sale state",
        )
        if not state_rows:
            return None

        tier_rows = _check(
            self._client.table(_TIERS_TABLE).select("*").eq("sale_id", sale_id).order("tier_index").execute(),
            "load sale tiers",
        )
        band_rows = _check(
            self._client.table(_BANDS_TABLE).select("*").eq("sale_id", sale_id).order("band_index").execute(),
            "load sale bands",
        )
        participant_rows = _check(
            self._client.table(_PARTICIPANTS_TABLE).select("*").eq("sale_id", sale_id).execute(),
            "load sale participants",
        )

        tiers = tuple(
            TimeWindowTier(
                price=Decimal(str(row["price"])),
                max_tokens=Decimal(str(row["max_tokens"])),
                tokens_sold=Decimal(str(row["tokens_sold"])),
                start_time=_parse_utc_datetime(row["start_time_utc"]),
                end_time=_parse_utc_datetime(row["end_time_utc"]),
            )
            for row in sorted(tier_rows, key=lambda r: int(r["tier_index"]))
        )
        bands = tuple(
            DiscountBand(
                min_purchase=Decimal(str(row["min_purchase"])),
                max_purchase=Decimal(str(row["max_purchase"])),
                discount_percent=Decimal(str(row["discount_percent"])),
            )
            for row in sorted(band_rows, key=lambda r: int(r["band_index"]))
        )
        accounts = {str(row["participant"]): _row_to_participant(row) for row in participant_rows}

        return SaleState(
            config=config,
            counters=_row_to_counters(state_rows[0]),
            tiers=tiers,
            bands=bands,
            accounts=accounts,
        )

    def load_balances(self, config: SaleConfig) -> Dict[str, Dict[str, Decimal]]:
        """Load saved ledger contents as {asset: {holder: balance}} (empty if none)."""

        sale_id = config.sale_account
        rows = _check(
            self._client.table(_BALANCES_TABLE).select("*").eq("sale_id", sale_id).execute(),
            "load sale balances",
        )

        balances: Dict[str, Dict[str, Decimal]] = {}
        for row in rows:
            balances.setdefault(str(row["asset"]), {})[str(row["holder"])] = Decimal(str(row["balance"]))
        return balances


__all__ = ["SaleStateRepository"]
