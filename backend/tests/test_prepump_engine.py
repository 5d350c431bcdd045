"""Tests for pre-pump signal computation.

All tests drive a Store with a virtual clock so windows (60s, 5m, 24h) can be
stepped through without sleeping.
"""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.schemas.prepump import SignalScores
from app.services.prepump_engine import (
    NO_SELL_SENTINEL,
    PrePumpEngine,
    composite_score,
    fresh_wallet_score,
    wallet_velocity_score,
)
from app.services.store import Store

T0 = 1_700_000_000.0
TOKEN = "Target1111111111111111111111111111111111111"


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return Store(clock=clock, retention_seconds=7200, max_tx_history=500)


@pytest.fixture
def engine(store):
    return PrePumpEngine(store)


class TestThreshold:
    def test_no_signal_below_five_trades(self, store, engine):
        for i in range(4):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - i)
        assert engine.compute(TOKEN) is None
        assert engine.get_signal(TOKEN) is None

    def test_unknown_token_has_no_signal(self, engine):
        assert engine.compute("Nobody") is None

    def test_fifth_trade_produces_signal(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - i)
        signal = engine.compute(TOKEN)
        assert signal is not None
        assert 0 <= signal.score <= 100
        assert engine.get_signal(TOKEN) == signal


class TestFreshWallets:
    def test_four_of_six_buys_from_fresh_wallets(self, store, engine):
        # two wallets with history older than a day on this token
        for wallet in ("old1", "old2"):
            store.record_transaction(TOKEN, wallet, "buy", 0.5, timestamp=T0 - 25 * 3600)

        for i, wallet in enumerate(["new1", "new2", "old1", "new3", "old2", "new4"]):
            store.record_transaction(TOKEN, wallet, "buy", 0.5, timestamp=T0 - 50 + i * 5)

        signal = engine.compute(TOKEN)
        assert signal.metrics.fresh_wallets_last_60s == 4
        assert signal.metrics.total_txns_last_60s == 6
        assert signal.metrics.fresh_wallet_rate == pytest.approx(0.667, abs=1e-3)
        assert signal.signals.fresh_wallet_influx == 100
        assert any("fresh wallets" in alert for alert in signal.alerts)

    def test_fresh_rate_buckets(self):
        assert fresh_wallet_score(0.31) == 100
        assert fresh_wallet_score(0.25) == 80
        assert fresh_wallet_score(0.16) == 60
        assert fresh_wallet_score(0.11) == 40
        assert fresh_wallet_score(0.06) == 20
        assert fresh_wallet_score(0.05) == 0


class TestCoordinatedWallets:
    def test_nine_coordinated_wallets(self, store, engine):
        for i in range(9):
            wallet = f"coord{i}"
            store.record_transaction(TOKEN, wallet, "buy", 1.0, timestamp=T0 - 120)
            store.record_transaction("OtherA", wallet, "buy", 1.0, timestamp=T0 - 100)
            store.record_transaction("OtherB", wallet, "buy", 1.0, timestamp=T0 - 80)
        # a wallet that only ever touched this token does not count
        store.record_transaction(TOKEN, "loner", "buy", 1.0, timestamp=T0 - 60)

        signal = engine.compute(TOKEN)
        assert signal.metrics.coordinated_wallets == 9
        assert signal.signals.wallet_velocity == 60

    def test_activity_outside_window_is_not_coordination(self, store, engine):
        for i in range(6):
            wallet = f"slow{i}"
            store.record_transaction("OtherA", wallet, "buy", 1.0, timestamp=T0 - 900)
            store.record_transaction("OtherB", wallet, "buy", 1.0, timestamp=T0 - 800)
            store.record_transaction(TOKEN, wallet, "buy", 1.0, timestamp=T0 - 10)
        signal = engine.compute(TOKEN)
        assert signal.metrics.coordinated_wallets == 0
        assert signal.signals.wallet_velocity == 0

    def test_velocity_buckets(self):
        assert wallet_velocity_score(4) == 0
        assert wallet_velocity_score(5) == 30
        assert wallet_velocity_score(8) == 60
        assert wallet_velocity_score(15) == 80
        assert wallet_velocity_score(20) == 100


class TestStageWeights:
    def test_weights_sum_to_full_score(self):
        maxed = SignalScores(**{name: 100 for name in SignalScores.model_fields})
        assert composite_score(maxed, "bonding") == 100
        assert composite_score(maxed, "migrated") == 100

    def test_bonding_velocity_only_counts_before_migration(self):
        scores = SignalScores(bonding_velocity=100)
        assert composite_score(scores, "bonding") == 15
        assert composite_score(scores, "migrated") == 0

    def test_buy_size_shift_weighs_more_after_migration(self):
        scores = SignalScores(buy_size_shift=100)
        assert composite_score(scores, "bonding") == 10
        assert composite_score(scores, "migrated") == 25

    def test_bonding_velocity_from_recent_buy_volume(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - 30 + i)
        assert store.update_bonding_curve(TOKEN, 40.0)

        bonding = engine.compute(TOKEN, "bonding")
        assert bonding.metrics.bonding_curve_velocity == pytest.approx(5.0)
        assert bonding.metrics.bonding_curve_sol == 40.0
        assert bonding.signals.bonding_velocity == 100
        assert bonding.stage == "bonding"

        migrated = engine.compute(TOKEN, "migrated")
        assert migrated.signals.bonding_velocity == 0

    def test_bonding_update_ignored_for_untracked_token(self, store):
        assert store.update_bonding_curve("Untracked", 10.0) is False
        assert "Untracked" not in store.ledger


class TestSellAbsence:
    def test_never_sold_uses_sentinel(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - i)
        signal = engine.compute(TOKEN)
        assert signal.metrics.time_since_last_sell == NO_SELL_SENTINEL
        # five trades in 30s is not enough concurrent activity for the top bucket
        assert signal.signals.sell_absence == 70

    def test_recent_sell_means_no_absence(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - 10 + i)
        store.record_transaction(TOKEN, "seller", "sell", 1.0, timestamp=T0)
        signal = engine.compute(TOKEN)
        assert signal.metrics.time_since_last_sell == 0
        assert signal.signals.sell_absence == 0


class TestHighSignalTokens:
    def test_filters_and_sorts_descending(self, store, engine):
        # busy token: 30 buys in the last 30s from fresh wallets
        for i in range(30):
            store.record_transaction("Hot111", f"hot{i}", "buy", 1.0, timestamp=T0 - i)
        # quiet token: five spread-out trades, one recent sell
        for i in range(5):
            store.record_transaction("Calm111", "calm", "buy", 1.0, timestamp=T0 - 3000 + i * 600)
        store.record_transaction("Calm111", "calm", "sell", 1.0, timestamp=T0)

        everything = engine.get_high_signal_tokens(min_score=0)
        assert [s.token_address for s in everything] == ["Hot111", "Calm111"]
        assert everything[0].score >= everything[1].score

        hot_only = engine.get_high_signal_tokens(min_score=everything[0].score)
        assert [s.token_address for s in hot_only] == ["Hot111"]

    def test_stats(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0)
        engine.compute(TOKEN)
        stats = engine.stats()
        assert stats.wallets_tracked == 5
        assert stats.tokens_tracked == 1
        assert stats.signals_cached == 1


class TestClustering:
    @pytest.mark.parametrize("count,expected", [
        (4, 0), (5, 30), (9, 30), (10, 60), (19, 60), (20, 80), (29, 80), (30, 100),
    ])
    def test_trades_in_last_30s(self, store, engine, count, expected):
        # older activity makes up the five-trade minimum without landing in the window
        for i in range(5):
            store.record_transaction(TOKEN, f"old{i}", "buy", 1.0, timestamp=T0 - 600 + i)
        for i in range(count):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - 29 + i * 0.9)

        signal = engine.compute(TOKEN)
        assert signal.signals.tx_clustering == expected
        assert any("txns in 30s" in alert for alert in signal.alerts) == (expected == 100)

    def test_heavy_activity_alert(self, store, engine):
        for i in range(30):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - i * 0.5)
        assert "30 txns in 30s, heavy activity" in engine.compute(TOKEN).alerts


class TestBuySizeShift:
    @staticmethod
    def record_baseline(store, count=20, size=1.0):
        # inside the hour but older than five minutes
        for i in range(count):
            store.record_transaction(TOKEN, f"base{i}", "buy", size, timestamp=T0 - 1800 + i)

    @pytest.mark.parametrize("recent_size,expected", [
        (20.0, 100),  # 5m/1h = 4.17
        (10.0, 80),  # 3.57
        (4.0, 60),  # 2.5
        (2.0, 30),  # 1.67
        (1.5, 0),  # 1.36
    ])
    def test_recent_buys_against_hour_baseline(self, store, engine, recent_size, expected):
        self.record_baseline(store)
        for i in range(5):
            store.record_transaction(TOKEN, f"big{i}", "buy", recent_size, timestamp=T0 - 100 + i)

        signal = engine.compute(TOKEN)
        assert signal.metrics.avg_buy_size_last_5m == pytest.approx(recent_size)
        assert signal.metrics.avg_buy_size_baseline == pytest.approx((20 + 5 * recent_size) / 25)
        assert signal.signals.buy_size_shift == expected

    def test_bigger_players_alert(self, store, engine):
        self.record_baseline(store)
        for i in range(5):
            store.record_transaction(TOKEN, f"big{i}", "buy", 20.0, timestamp=T0 - 100 + i)
        alerts = engine.compute(TOKEN).alerts
        assert "Avg buy size 4.2x baseline, bigger players" in alerts

    def test_only_recent_buys_means_no_shift(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 3.0, timestamp=T0 - 60 + i)
        signal = engine.compute(TOKEN)
        assert signal.metrics.avg_buy_size_baseline == signal.metrics.avg_buy_size_last_5m == 3.0
        assert signal.signals.buy_size_shift == 0

    def test_no_buys_in_the_hour_falls_back_to_five_minute_figure(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 3.0, timestamp=T0 - 4000 + i)
        signal = engine.compute(TOKEN)
        assert signal.metrics.avg_buy_size_last_5m == 0
        assert signal.metrics.avg_buy_size_baseline == 0
        assert signal.signals.buy_size_shift == 0


class TestSellGapBaseline:
    @staticmethod
    def record(store, sells, recent_buys):
        for i, ts in enumerate(sells):
            store.record_transaction(TOKEN, f"seller{i}", "sell", 1.0, timestamp=ts)
        for i in range(recent_buys):
            store.record_transaction(TOKEN, f"buyer{i}", "buy", 1.0, timestamp=T0 - 20 + i)

    @pytest.mark.parametrize("recent_buys,expected", [(6, 100), (4, 70), (3, 40)])
    def test_long_quiet_spell_needs_activity_for_top_buckets(self, store, engine, recent_buys, expected):
        # 20s between sells, last one 260s ago: ratio 13
        self.record(store, [T0 - 300, T0 - 280, T0 - 260], recent_buys)

        signal = engine.compute(TOKEN)
        assert signal.metrics.normal_sell_gap == pytest.approx(20)
        assert signal.metrics.time_since_last_sell == pytest.approx(260)
        assert signal.signals.sell_absence == expected
        assert ("No sells for 260s, holders locked" in signal.alerts) == (expected == 100)

    def test_mean_gap_over_uneven_sells(self, store, engine):
        # gaps of 20s and 40s average to 30s; 50s since the last is ratio 1.67
        self.record(store, [T0 - 110, T0 - 90, T0 - 50], 6)
        signal = engine.compute(TOKEN)
        assert signal.metrics.normal_sell_gap == pytest.approx(30)
        assert signal.signals.sell_absence == 0

    def test_ratio_between_three_and_five(self, store, engine):
        # gap 20s, 90s quiet: ratio 4.5
        self.record(store, [T0 - 130, T0 - 110, T0 - 90], 6)
        assert engine.compute(TOKEN).signals.sell_absence == 70

    def test_sells_older_than_an_hour_leave_default_gap(self, store, engine):
        self.record(store, [T0 - 4000, T0 - 3900, T0 - 260], 6)
        signal = engine.compute(TOKEN)
        # one sell inside the hour: 260 / 60 = 4.33
        assert signal.metrics.normal_sell_gap == 60
        assert signal.signals.sell_absence == 70


class TestAlerts:
    def test_twenty_coordinated_wallets(self, store, engine):
        for i in range(20):
            wallet = f"coord{i}"
            store.record_transaction(TOKEN, wallet, "buy", 1.0, timestamp=T0 - 200)
            store.record_transaction("OtherA", wallet, "buy", 1.0, timestamp=T0 - 150)
            store.record_transaction("OtherB", wallet, "buy", 1.0, timestamp=T0 - 100)

        signal = engine.compute(TOKEN)
        assert signal.signals.wallet_velocity == 100
        assert "20 coordinated wallets detected" in signal.alerts

    @pytest.mark.parametrize("sol_per_minute,expected", [
        (2.5, 100), (1.5, 80), (0.75, 60), (0.3, 30), (0.1, 0),
    ])
    def test_bonding_velocity_buckets(self, store, engine, sol_per_minute, expected):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", sol_per_minute / 5, timestamp=T0 - 40 + i)
        store.update_bonding_curve(TOKEN, 20.0)

        signal = engine.compute(TOKEN, "bonding")
        assert signal.signals.bonding_velocity == expected

    def test_bonding_curve_alert(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - 30 + i)
        store.update_bonding_curve(TOKEN, 40.0)
        assert "5.00 SOL/min entering the curve" in engine.compute(TOKEN, "bonding").alerts

    def test_bonding_curve_needs_known_balance(self, store, engine):
        for i in range(5):
            store.record_transaction(TOKEN, f"w{i}", "buy", 1.0, timestamp=T0 - 30 + i)
        signal = engine.compute(TOKEN, "bonding")
        assert signal.signals.bonding_velocity == 0
        assert signal.metrics.bonding_curve_velocity == 0
