"""Pre-pump detection: spot tokens about to move before the price does.

Six sub-signals are derived from the rolling transaction ledger and the
cross-token wallet index:

1. Fresh wallet influx   - share of recent buys coming from fresh wallets
2. Wallet velocity       - wallets cycling through several tokens at once
3. Transaction clustering - bursts of trades inside 30 seconds
4. Bonding-curve velocity - SOL/min entering the curve (pre-migration only)
5. Sell absence          - no sells for several times the usual sell gap
6. Buy-size shift        - recent buys larger than the hourly baseline

The composite score is a stage-weighted sum of the six (0-100).  A token needs
at least MIN_TRANSACTIONS recorded trades before any signal is produced.
"""
from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

from app.schemas.prepump import EngineStats, PrePumpSignal, SignalMetrics, SignalScores, Stage
from app.services.tx_ledger import average_buy_sizes

if TYPE_CHECKING:
    from app.services.store import Store

logger = logging.getLogger(__name__)

MIN_TRANSACTIONS = 5

FRESH_WALLET_WINDOW = 60
TX_CLUSTER_WINDOW = 30
SELL_GAP_BASELINE_WINDOW = 60 * 60
DEFAULT_SELL_GAP = 60.0
NO_SELL_SENTINEL = 999_999.0  # seconds since last sell when the token never sold

WEIGHTS: dict[str, dict[str, float]] = {
    "bonding": {
        "fresh_wallet_influx": 0.25,
        "wallet_velocity": 0.20,
        "tx_clustering": 0.20,
        "bonding_velocity": 0.15,
        "sell_absence": 0.10,
        "buy_size_shift": 0.10,
    },
    "migrated": {
        "fresh_wallet_influx": 0.25,
        "wallet_velocity": 0.20,
        "tx_clustering": 0.20,
        "bonding_velocity": 0.0,
        "sell_absence": 0.10,
        "buy_size_shift": 0.25,
    },
}


def fresh_wallet_score(rate: float) -> int:
    if rate > 0.30:
        return 100
    if rate > 0.20:
        return 80
    if rate > 0.15:
        return 60
    if rate > 0.10:
        return 40
    if rate > 0.05:
        return 20
    return 0


def wallet_velocity_score(coordinated: int) -> int:
    if coordinated >= 20:
        return 100
    if coordinated >= 15:
        return 80
    if coordinated >= 8:
        return 60
    if coordinated >= 5:
        return 30
    return 0


def clustering_score(txns_30s: int) -> int:
    if txns_30s >= 30:
        return 100
    if txns_30s >= 20:
        return 80
    if txns_30s >= 10:
        return 60
    if txns_30s >= 5:
        return 30
    return 0


def bonding_velocity_score(sol_per_min: float) -> int:
    if sol_per_min > 2:
        return 100
    if sol_per_min > 1:
        return 80
    if sol_per_min > 0.5:
        return 60
    if sol_per_min > 0.2:
        return 30
    return 0


def sell_absence_score(ratio: float, txns_30s: int) -> int:
    # The two top buckets need concurrent activity, silence alone is not pressure
    if ratio > 5 and txns_30s > 5:
        return 100
    if ratio > 3 and txns_30s > 3:
        return 70
    if ratio > 2:
        return 40
    return 0


def buy_size_shift_score(ratio: float) -> int:
    if ratio > 4:
        return 100
    if ratio > 3:
        return 80
    if ratio > 2:
        return 60
    if ratio > 1.5:
        return 30
    return 0


def composite_score(scores: SignalScores, stage: Stage) -> int:
    weights = WEIGHTS[stage]
    values = scores.model_dump()
    return round(sum(values[name] * weight for name, weight in weights.items()))


class PrePumpEngine:
    """Signal calculator and cache over a ``Store``."""

    def __init__(self, store: "Store"):
        self.store = store

    def compute(self, token_address: str, stage: Stage = "migrated") -> Optional[PrePumpSignal]:
        """Recompute and cache the signal for a token, or None with < 5 trades."""
        store = self.store
        with store.lock:
            entry = store.ledger.get(token_address)
            if entry is None or len(entry.transactions) < MIN_TRANSACTIONS:
                return None

            now = store.now()
            alerts: list[str] = []
            txns_60s = entry.since(now - FRESH_WALLET_WINDOW)
            txns_30s = entry.since(now - TX_CLUSTER_WINDOW)
            txns_1h = entry.since(now - SELL_GAP_BASELINE_WINDOW)
            buys_60s = [t for t in txns_60s if t.is_buy]

            # 1. fresh wallet influx
            fresh_buys = sum(1 for t in buys_60s if t.is_fresh_wallet)
            fresh_rate = fresh_buys / len(buys_60s) if buys_60s else 0.0
            fresh = fresh_wallet_score(fresh_rate)
            if fresh == 100:
                alerts.append(f"{fresh_rate:.0%} of buys in the last minute from fresh wallets")

            # 2. wallet velocity
            coordinated = store.wallets.count_coordinated(token_address, now)
            velocity = wallet_velocity_score(coordinated)
            if velocity == 100:
                alerts.append(f"{coordinated} coordinated wallets detected")

            # 3. transaction clustering
            cluster_count = len(txns_30s)
            clustering = clustering_score(cluster_count)
            if clustering == 100:
                alerts.append(f"{cluster_count} txns in 30s, heavy activity")

            # 4. bonding-curve velocity, proxied by buy volume over the last minute
            bonding = 0
            bonding_velocity = 0.0
            if stage == "bonding" and entry.bonding_curve_sol > 0:
                bonding_velocity = sum(t.amount_sol for t in buys_60s)
                bonding = bonding_velocity_score(bonding_velocity)
                if bonding == 100:
                    alerts.append(f"{bonding_velocity:.2f} SOL/min entering the curve")

            # 5. sell absence
            since_last_sell = now - entry.last_sell_time if entry.last_sell_time > 0 else NO_SELL_SENTINEL
            sells_1h = [t for t in txns_1h if not t.is_buy]
            normal_gap = DEFAULT_SELL_GAP
            if len(sells_1h) >= 2:
                gaps = [b.timestamp - a.timestamp for a, b in zip(sells_1h, sells_1h[1:])]
                normal_gap = sum(gaps) / len(gaps)
            absence_ratio = since_last_sell / normal_gap if normal_gap > 0 else since_last_sell
            absence = sell_absence_score(absence_ratio, cluster_count)
            if absence == 100:
                alerts.append(f"No sells for {int(since_last_sell)}s, holders locked")

            # 6. buy-size shift
            avg_5m, avg_1h = average_buy_sizes(entry.transactions, now)
            size_ratio = avg_5m / avg_1h if avg_1h > 0 else 1.0
            size_shift = buy_size_shift_score(size_ratio)
            if size_shift == 100:
                alerts.append(f"Avg buy size {size_ratio:.1f}x baseline, bigger players")

            scores = SignalScores(
                fresh_wallet_influx=fresh,
                wallet_velocity=velocity,
                tx_clustering=clustering,
                bonding_velocity=bonding,
                sell_absence=absence,
                buy_size_shift=size_shift,
            )
            signal = PrePumpSignal(
                token_address=token_address,
                score=composite_score(scores, stage),
                signals=scores,
                metrics=SignalMetrics(
                    fresh_wallets_last_60s=fresh_buys,
                    total_txns_last_60s=len(txns_60s),
                    fresh_wallet_rate=fresh_rate,
                    avg_buy_size_last_5m=avg_5m,
                    avg_buy_size_baseline=avg_1h,
                    time_since_last_sell=since_last_sell,
                    normal_sell_gap=normal_gap,
                    bonding_curve_sol=entry.bonding_curve_sol,
                    bonding_curve_velocity=bonding_velocity,
                    coordinated_wallets=coordinated,
                ),
                stage=stage,
                timestamp=now,
                alerts=alerts,
            )
            store.signals[token_address] = signal

        if signal.score >= 50:
            logger.info(
                "prepump: %s scored %d (%s)", token_address[:8], signal.score, "; ".join(alerts) or "no alerts",
            )
        return signal

    def get_signal(self, token_address: str) -> Optional[PrePumpSignal]:
        """Cached signal for a token; never recomputes."""
        with self.store.lock:
            return self.store.signals.get(token_address)

    def get_high_signal_tokens(
        self,
        min_score: int = 50,
        stages: Optional[dict[str, Stage]] = None,
    ) -> list[PrePumpSignal]:
        """Recompute every tracked token and return those scoring >= min_score."""
        stages = stages or {}
        with self.store.lock:
            addresses = self.store.ledger.addresses()
            signals = []
            for address in addresses:
                signal = self.compute(address, stages.get(address, "migrated"))
                if signal is not None and signal.score >= min_score:
                    signals.append(signal)
        signals.sort(key=lambda s: s.score, reverse=True)
        return signals

    def stats(self) -> EngineStats:
        with self.store.lock:
            return EngineStats(
                wallets_tracked=len(self.store.wallets),
                tokens_tracked=len(self.store.ledger),
                signals_cached=len(self.store.signals),
            )
