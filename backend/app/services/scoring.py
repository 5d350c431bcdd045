"""Ranking scores derived from a single TokenSnapshot.

All functions are pure.  buy/sell/risk/momentum return integers clamped to
0-100; trending is an unbounded weighted sum used only for relative ordering.
Tokens with an unknown creation time get no age bonus or penalty.
"""
from __future__ import annotations

import time
from typing import Optional

from app.schemas.token import TokenScores, TokenSnapshot


def _clamp(score: float) -> int:
    return max(0, min(100, round(score)))


def _age_hours(token: TokenSnapshot, now: Optional[float]) -> Optional[float]:
    if token.pair_created_at is None:
        return None
    now = time.time() if now is None else now
    return max(0.0, now - token.pair_created_at) / 3600


def buy_signal(token: TokenSnapshot, now: Optional[float] = None) -> int:
    score = 50

    volume_to_mcap = token.volume_1h / token.market_cap if token.market_cap > 0 else 0
    if volume_to_mcap > 0.1:
        score += 15
    elif volume_to_mcap > 0.05:
        score += 10
    elif volume_to_mcap > 0.02:
        score += 5

    txns_5m = token.txns_5m.total
    buy_ratio_5m = token.txns_5m.buys / txns_5m if txns_5m > 0 else 0.5
    if buy_ratio_5m > 0.7:
        score += 15
    elif buy_ratio_5m > 0.6:
        score += 8
    elif buy_ratio_5m < 0.3:
        score -= 15

    if 5 < token.price_change_5m < 50:
        score += 10
    if 10 < token.price_change_1h < 100:
        score += 8
    # Dip recovery
    if token.price_change_1h > 0 and token.price_change_24h < -20:
        score += 12

    if 10_000 <= token.liquidity <= 200_000:
        score += 10
    elif token.liquidity >= 5_000:
        score += 5
    elif token.liquidity < 2_000:
        score -= 15

    age = _age_hours(token, now)
    if age is not None:
        if age < 1 and txns_5m > 10:
            score += 15
        elif age < 6:
            score += 10

    if token.is_pre_migration and token.bonding_curve_progress:
        if token.bonding_curve_progress > 80:
            score += 20
        elif token.bonding_curve_progress > 60:
            score += 10

    return _clamp(score)


def sell_signal(token: TokenSnapshot, now: Optional[float] = None) -> int:
    score = 20

    if token.price_change_5m < -20:
        score += 30
    elif token.price_change_5m < -10:
        score += 15
    elif token.price_change_1h < -30:
        score += 25

    txns_5m = token.txns_5m.total
    sell_ratio = token.txns_5m.sells / txns_5m if txns_5m > 0 else 0.5
    if sell_ratio > 0.75:
        score += 25
    elif sell_ratio > 0.65:
        score += 15

    if token.liquidity < 1_000:
        score += 20
    elif token.liquidity < 3_000:
        score += 10

    # Mean reversion after an extreme pump
    if token.price_change_1h > 200:
        score += 20
    elif token.price_change_1h > 100:
        score += 10

    return _clamp(score)


def risk_score(token: TokenSnapshot, now: Optional[float] = None) -> int:
    risk = 20

    if token.liquidity < 1_000:
        risk += 35
    elif token.liquidity < 5_000:
        risk += 25
    elif token.liquidity < 10_000:
        risk += 15

    age = _age_hours(token, now)
    if age is not None:
        if age < 0.5:
            risk += 25
        elif age < 2:
            risk += 18
        elif age < 6:
            risk += 10

    txns = token.txns_24h.total
    sell_ratio = token.txns_24h.sells / txns if txns > 0 else 0.5
    if sell_ratio > 0.65:
        risk += 15

    if token.market_cap > 0 and token.liquidity > 0:
        mcap_to_liq = token.market_cap / token.liquidity
        if mcap_to_liq > 50:
            risk += 20
        elif mcap_to_liq > 20:
            risk += 10

    if token.is_pre_migration:
        risk += 10

    return _clamp(risk)


def momentum_score(token: TokenSnapshot, now: Optional[float] = None) -> int:
    score = 50

    if token.price_change_5m > 15:
        score += 20
    elif token.price_change_5m > 5:
        score += 12
    elif token.price_change_5m < -10:
        score -= 15

    if token.price_change_1h > 30:
        score += 15
    elif token.price_change_1h > 10:
        score += 8
    elif token.price_change_1h < -20:
        score -= 12

    avg_hourly_volume = token.volume_24h / 24
    if token.volume_1h > avg_hourly_volume * 3:
        score += 20
    elif token.volume_1h > avg_hourly_volume * 2:
        score += 12
    elif token.volume_1h < avg_hourly_volume * 0.3:
        score -= 15

    txns_5m = token.txns_5m.total
    if txns_5m > 50:
        score += 15
    elif txns_5m > 20:
        score += 10

    return _clamp(score)


def trending_score(token: TokenSnapshot, now: Optional[float] = None) -> int:
    score = 0.0

    score += min(token.volume_5m / 500, 50) * 3
    score += min(token.volume_1h / 5_000, 50) * 2
    score += min(token.volume_24h / 50_000, 50)

    txns_5m = token.txns_5m.total
    score += min(txns_5m * 3, 60)
    score += min(token.txns_1h.total / 2, 30)

    score += min(abs(token.price_change_5m) * 2, 40)
    score += min(abs(token.price_change_1h), 30)

    age = _age_hours(token, now)
    if age is not None:
        if age < 0.5:
            score += 60
        elif age < 1:
            score += 40
        elif age < 3:
            score += 25
        elif age < 12:
            score += 10

    buy_ratio = token.txns_5m.buys / txns_5m if txns_5m > 0 else 0.5
    if buy_ratio > 0.65:
        score += 20

    return round(score)


def score_token(token: TokenSnapshot, now: Optional[float] = None) -> TokenScores:
    now = time.time() if now is None else now
    return TokenScores(
        trending_score=trending_score(token, now),
        buy_signal=buy_signal(token, now),
        sell_signal=sell_signal(token, now),
        risk_score=risk_score(token, now),
        momentum_score=momentum_score(token, now),
    )
