from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

COORDINATION_WINDOW_SECONDS = 300  # 5 minutes
COORDINATION_MIN_TOKENS = 3


@dataclass
class WalletActivity:
    wallet: str
    first_seen: float
    # token address -> timestamps at which this wallet traded it, oldest first
    tokens_touched: dict[str, list[float]] = field(default_factory=dict)
    total_txns: int = 0

    def trade_count(self, token_address: str) -> int:
        return len(self.tokens_touched.get(token_address, ()))

    def tokens_active_since(self, since: float) -> int:
        return sum(
            1 for timestamps in self.tokens_touched.values()
            if any(ts > since for ts in timestamps)
        )


class WalletActivityIndex:
    """Which wallets traded which tokens, and when.

    Keeps a reverse token -> wallets map so coordination checks only visit
    wallets that actually touched the token.  Not thread-safe on its own;
    ``Store`` serializes access.
    """

    def __init__(self):
        self._wallets: dict[str, WalletActivity] = {}
        self._token_wallets: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._wallets)

    def get(self, wallet: str) -> Optional[WalletActivity]:
        return self._wallets.get(wallet)

    def touch(self, wallet: str, token_address: str, timestamp: float) -> WalletActivity:
        activity = self._wallets.get(wallet)
        if activity is None:
            activity = WalletActivity(wallet=wallet, first_seen=timestamp)
            self._wallets[wallet] = activity
        activity.tokens_touched.setdefault(token_address, []).append(timestamp)
        activity.total_txns += 1
        self._token_wallets.setdefault(token_address, set()).add(wallet)
        return activity

    def count_coordinated(
        self,
        token_address: str,
        now: float,
        window: float = COORDINATION_WINDOW_SECONDS,
    ) -> int:
        """Count wallets that traded this token within ``window`` and also
        touched at least three distinct tokens inside that same window."""
        since = now - window
        coordinated = 0
        for wallet in self._token_wallets.get(token_address, ()):
            activity = self._wallets.get(wallet)
            if activity is None:
                continue
            if not any(ts > since for ts in activity.tokens_touched.get(token_address, ())):
                continue
            if activity.tokens_active_since(since) >= COORDINATION_MIN_TOKENS:
                coordinated += 1
        return coordinated

    def sweep(self, cutoff: float) -> int:
        """Drop timestamps at or before ``cutoff`` and wallets left with none.

        Returns the number of wallets removed.
        """
        removed = 0
        for wallet in list(self._wallets):
            activity = self._wallets[wallet]
            for token_address in list(activity.tokens_touched):
                kept = [ts for ts in activity.tokens_touched[token_address] if ts > cutoff]
                if kept:
                    activity.tokens_touched[token_address] = kept
                else:
                    del activity.tokens_touched[token_address]
                    self._unlink(token_address, wallet)
            if not activity.tokens_touched:
                del self._wallets[wallet]
                removed += 1
        return removed

    def _unlink(self, token_address: str, wallet: str) -> None:
        wallets = self._token_wallets.get(token_address)
        if wallets is None:
            return
        wallets.discard(wallet)
        if not wallets:
            del self._token_wallets[token_address]
