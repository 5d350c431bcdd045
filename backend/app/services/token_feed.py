"""Multi-source token feed: accumulate, score and serve paginated views.

Every refresh fans out to all source adapters at once, waits for all of them
to settle, merges whatever came back into the store's accumulator and rescores
the whole table.  Reads trigger a refresh when the table is empty or older
than ``feed_stale_seconds``; a read that arrives while a refresh is already in
flight is answered from the current (possibly stale) table.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence

from app.config import get_settings
from app.schemas.prepump import PrePumpSignal, Stage
from app.schemas.token import TokenFeedItem, TokenFeedResponse, TokenSnapshot
from app.services.birdeye import BirdeyeAdapter
from app.services.dexscreener import DexScreenerAdapter
from app.services.helius import HeliusAdapter
from app.services.prepump_engine import PrePumpEngine
from app.services.pumpfun import PumpFunAdapter
from app.services.source_adapter import SourceAdapter
from app.services.store import Store

logger = logging.getLogger(__name__)
settings = get_settings()

SORT_KEYS = {"trending", "new", "volume", "gainers", "losers", "buy_signal", "risk", "prepump"}
SORT_ALIASES = {"buySignal": "buy_signal", "buy-signal": "buy_signal", "pre_pump": "prepump"}


def default_adapters() -> list[SourceAdapter]:
    return [DexScreenerAdapter(), BirdeyeAdapter(), PumpFunAdapter(), HeliusAdapter()]


def normalize_sort(sort: str) -> str:
    sort = SORT_ALIASES.get(sort, sort)
    return sort if sort in SORT_KEYS else "trending"


def _sort_key(sort: str) -> tuple[Callable[[TokenFeedItem], object], bool]:
    """(key, reverse) for a normalized sort name."""
    if sort == "new":
        return (lambda t: t.pair_created_at or 0), True
    if sort == "volume":
        return (lambda t: t.volume_24h), True
    if sort == "gainers":
        return (lambda t: t.price_change_24h), True
    if sort == "losers":
        return (lambda t: t.price_change_24h), False
    if sort == "buy_signal":
        return (lambda t: t.buy_signal), True
    if sort == "risk":
        return (lambda t: t.risk_score), False
    if sort == "prepump":
        return (lambda t: (t.pre_pump_score or 0, t.trending_score)), True
    return (lambda t: t.trending_score), True


class TokenFeed:
    def __init__(
        self,
        store: Store,
        adapters: Optional[Sequence[SourceAdapter]] = None,
        engine: Optional[PrePumpEngine] = None,
        stale_seconds: Optional[float] = None,
    ):
        self.store = store
        self.adapters = list(adapters) if adapters is not None else default_adapters()
        self.engine = engine or PrePumpEngine(store)
        self.stale_seconds = stale_seconds if stale_seconds is not None else settings.feed_stale_seconds
        self._refreshing = False

    @property
    def sources(self) -> list[str]:
        return [a.name for a in self.adapters]

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def is_stale(self) -> bool:
        with self.store.lock:
            accumulator = self.store.accumulator
            if len(accumulator) == 0:
                return True
            return self.store.now() - accumulator.last_full_refresh > self.stale_seconds

    async def _fetch_all(self) -> list[TokenSnapshot]:
        results = await asyncio.gather(
            *(adapter.fetch() for adapter in self.adapters),
            return_exceptions=True,
        )
        tokens: list[TokenSnapshot] = []
        for adapter, result in zip(self.adapters, results):
            if isinstance(result, BaseException):
                # fetch() is not supposed to raise; keep the cycle alive anyway
                logger.error(f"{adapter.name}: fetch raised {result!r}")
                continue
            tokens.extend(result)
        return tokens

    async def refresh(self) -> bool:
        """Run one fetch-and-merge cycle.  Returns False if one was already running."""
        if self.is_refreshing:
            return False
        self._refreshing = True
        try:
            incoming = await self._fetch_all()
            store = self.store
            with store.lock:
                now = store.now()
                added = store.accumulator.merge(incoming, now)
                for token in incoming:
                    if token.bonding_curve_sol and token.address in store.ledger:
                        store.ledger.update_bonding_curve(token.address, token.bonding_curve_sol, now)
                store.accumulator.rescore(now)
                store.accumulator.last_full_refresh = now
                total = len(store.accumulator)
            logger.info(f"Feed: merged {len(incoming)} snapshots ({added} new), {total} tokens accumulated")
            return True
        finally:
            self._refreshing = False

    def _feed_item(self, token: TokenSnapshot) -> TokenFeedItem:
        scores = self.store.accumulator.scores(token.address)
        item = TokenFeedItem(**token.model_dump(), **scores.model_dump())
        signal: Optional[PrePumpSignal] = self.store.signals.get(token.address)
        if signal is not None:
            item.pre_pump_score = signal.score
            item.pre_pump_signals = signal.signals.model_dump()
            item.pre_pump_alerts = list(signal.alerts)
            item.fresh_wallet_rate = signal.metrics.fresh_wallet_rate
            item.coordinated_wallets = signal.metrics.coordinated_wallets
        return item

    async def query(self, page: int = 1, limit: int = 100, sort: str = "trending") -> TokenFeedResponse:
        started = time.monotonic()
        page = max(1, page)
        limit = max(1, limit)

        if self.is_stale() and not self.is_refreshing:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Feed refresh failed: {e}")

        with self.store.lock:
            items = [self._feed_item(t) for t in self.store.accumulator.snapshots()]

        key, reverse = _sort_key(normalize_sort(sort))
        items.sort(key=key, reverse=reverse)

        start = (page - 1) * limit
        return TokenFeedResponse(
            tokens=items[start:start + limit],
            total=len(items),
            has_more=start + limit < len(items),
            sources=self.sources,
            fetch_time_ms=int((time.monotonic() - started) * 1000),
        )

    def stages(self) -> dict[str, Stage]:
        with self.store.lock:
            return {
                t.address: "bonding" if t.is_pre_migration else "migrated"
                for t in self.store.accumulator.snapshots()
            }

    def high_signal_tokens(self, min_score: int = 50) -> list[PrePumpSignal]:
        """Recompute signals for every tracked token using each token's known stage."""
        return self.engine.get_high_signal_tokens(min_score, self.stages())
