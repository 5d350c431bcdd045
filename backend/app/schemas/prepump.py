from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

Stage = Literal["bonding", "migrated"]
Direction = Literal["buy", "sell"]

# Epoch values above this are milliseconds (1e12 s is ~33,000 years out)
MILLISECOND_EPOCH_THRESHOLD = 1e12


class SignalScores(BaseModel):
    fresh_wallet_influx: int = 0
    wallet_velocity: int = 0
    tx_clustering: int = 0
    bonding_velocity: int = 0
    sell_absence: int = 0
    buy_size_shift: int = 0


class SignalMetrics(BaseModel):
    fresh_wallets_last_60s: int = 0
    total_txns_last_60s: int = 0
    fresh_wallet_rate: float = 0.0
    avg_buy_size_last_5m: float = 0.0
    avg_buy_size_baseline: float = 0.0
    time_since_last_sell: float = 0.0  # seconds
    normal_sell_gap: float = 0.0  # seconds
    bonding_curve_sol: float = 0.0
    bonding_curve_velocity: float = 0.0  # SOL/min proxy
    coordinated_wallets: int = 0


class PrePumpSignal(BaseModel):
    token_address: str
    score: int
    signals: SignalScores
    metrics: SignalMetrics
    stage: Stage
    timestamp: float
    alerts: List[str] = []


class TxEvent(BaseModel):
    """A trade observed by the ingestion layer."""

    token_address: str = Field(min_length=1)
    wallet: str = Field(min_length=1)
    direction: Direction
    amount_sol: float = Field(ge=0, allow_inf_nan=False)
    signature: str = ""
    timestamp: Optional[float] = Field(default=None, allow_inf_nan=False)

    @field_validator("timestamp")
    @classmethod
    def epoch_seconds(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v > MILLISECOND_EPOCH_THRESHOLD:
            return v / 1000
        return v


class BondingCurveUpdate(BaseModel):
    token_address: str = Field(min_length=1)
    sol_balance: float = Field(ge=0)


class EngineStats(BaseModel):
    wallets_tracked: int
    tokens_tracked: int
    signals_cached: int


class PrePumpListResponse(BaseModel):
    signals: List[PrePumpSignal]
    count: int
    stats: EngineStats
    min_score: int
