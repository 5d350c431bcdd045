from __future__ import annotations
from typing import Dict, List, Optional
from pydantic import BaseModel


class TxnCounts(BaseModel):
    buys: int = 0
    sells: int = 0

    @property
    def total(self) -> int:
        return self.buys + self.sells


class TokenSnapshot(BaseModel):
    """One provider's view of a token, normalized across sources."""

    address: str
    symbol: str = "UNKNOWN"
    name: str = "Unknown Token"
    logo: str = ""

    price: float = 0.0
    price_change_24h: float = 0.0
    price_change_6h: float = 0.0
    price_change_1h: float = 0.0
    price_change_5m: float = 0.0
    volume_24h: float = 0.0
    volume_6h: float = 0.0
    volume_1h: float = 0.0
    volume_5m: float = 0.0
    liquidity: float = 0.0
    market_cap: float = 0.0
    fdv: float = 0.0

    txns_24h: TxnCounts = TxnCounts()
    txns_6h: TxnCounts = TxnCounts()
    txns_1h: TxnCounts = TxnCounts()
    txns_5m: TxnCounts = TxnCounts()

    pair_address: str = ""
    dex_id: str = "unknown"
    pair_created_at: Optional[float] = None  # unix seconds, None when unknown
    holders: Optional[int] = None

    has_profile: bool = False
    has_boost: bool = False
    has_enhanced_profile: bool = False
    is_pump_fun: bool = False
    is_migrated: bool = False
    boost_amount: float = 0.0
    bonding_curve_progress: Optional[float] = None
    bonding_curve_sol: Optional[float] = None

    volume_to_mcap_ratio: float = 0.0
    buy_pressure: float = 50.0
    liquidity_score: float = 50.0
    volatility_24h: float = 0.0

    source: str = ""
    last_updated: float = 0.0

    @property
    def is_pre_migration(self) -> bool:
        return self.is_pump_fun and not self.is_migrated


class TokenScores(BaseModel):
    trending_score: int = 0
    buy_signal: int = 0
    sell_signal: int = 0
    risk_score: int = 0
    momentum_score: int = 0


class TokenFeedItem(TokenSnapshot, TokenScores):
    """A snapshot joined with its derived scores and any cached pre-pump signal."""

    pre_pump_score: Optional[int] = None
    pre_pump_signals: Optional[Dict[str, int]] = None
    pre_pump_alerts: Optional[List[str]] = None
    fresh_wallet_rate: Optional[float] = None
    coordinated_wallets: Optional[int] = None


class TokenFeedResponse(BaseModel):
    tokens: List[TokenFeedItem]
    total: int
    has_more: bool
    sources: List[str]
    fetch_time_ms: int
