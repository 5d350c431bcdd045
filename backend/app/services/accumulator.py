"""Accumulating table of the best-known snapshot per token.

Snapshots from every source are folded into one record per address with a
ratchet rule: volume, liquidity and market cap never go down, provenance flags
are sticky, and placeholder names/symbols/logos never overwrite real ones.

The ratchet means a legitimate drop reported by a provider (liquidity pulled,
volume window rolling off) is ignored until the token is swept from the table.
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from app.schemas.token import TokenScores, TokenSnapshot
from app.services import scoring

logger = logging.getLogger(__name__)

RATCHET_FIELDS = ("volume_24h", "liquidity", "market_cap")
STICKY_FLAGS = ("has_profile", "has_boost", "has_enhanced_profile", "is_pump_fun", "is_migrated")

PLACEHOLDER_NAMES = {"", "Unknown", "Unknown Token", "New Token", "Pump.fun Token"}
PLACEHOLDER_SYMBOLS = {"", "UNKNOWN", "NEW", "PUMP", "???"}


def merge_snapshots(existing: TokenSnapshot, incoming: TokenSnapshot, now: float) -> TokenSnapshot:
    """Fold ``incoming`` into ``existing`` and return the merged record."""
    update = incoming.model_dump()

    for field in RATCHET_FIELDS:
        values = (getattr(existing, field), getattr(incoming, field))
        update[field] = max((v for v in values if math.isfinite(v)), default=0.0)
    for flag in STICKY_FLAGS:
        update[flag] = getattr(existing, flag) or getattr(incoming, flag)

    if incoming.name in PLACEHOLDER_NAMES:
        update["name"] = existing.name
    if incoming.symbol in PLACEHOLDER_SYMBOLS:
        update["symbol"] = existing.symbol
    if not incoming.logo:
        update["logo"] = existing.logo
    if incoming.pair_created_at is None:
        update["pair_created_at"] = existing.pair_created_at

    update["last_updated"] = now
    return TokenSnapshot.model_validate(update)


class TokenAccumulator:
    """Keyed snapshot table plus the scores derived from it.

    Not thread-safe on its own; ``Store`` serializes access.
    """

    def __init__(self):
        self._tokens: dict[str, TokenSnapshot] = {}
        self._scores: dict[str, TokenScores] = {}
        self.last_full_refresh: float = 0.0

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, address: str) -> bool:
        return address in self._tokens

    def get(self, address: str) -> Optional[TokenSnapshot]:
        return self._tokens.get(address)

    def scores(self, address: str) -> TokenScores:
        return self._scores.get(address) or TokenScores()

    def snapshots(self) -> list[TokenSnapshot]:
        return list(self._tokens.values())

    def merge(self, incoming: Iterable[TokenSnapshot], now: float) -> int:
        """Merge a batch of snapshots; returns how many addresses were new."""
        added = 0
        for token in incoming:
            existing = self._tokens.get(token.address)
            if existing is None:
                self._tokens[token.address] = token.model_copy(update={"last_updated": now})
                added += 1
            else:
                self._tokens[token.address] = merge_snapshots(existing, token, now)
        return added

    def rescore(self, now: float) -> None:
        scores: dict[str, TokenScores] = {}
        for address, token in self._tokens.items():
            try:
                scores[address] = scoring.score_token(token, now)
            except (ArithmeticError, ValueError) as e:
                logger.warning(f"Scoring {address} failed: {e}")
                scores[address] = TokenScores()
        self._scores = scores

    def prune(self, cutoff: float) -> int:
        """Drop snapshots not updated since ``cutoff``."""
        stale = [a for a, t in self._tokens.items() if t.last_updated < cutoff]
        for address in stale:
            del self._tokens[address]
            self._scores.pop(address, None)
        return len(stale)
