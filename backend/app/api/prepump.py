"""Pre-pump signal endpoints.

Signals only exist for tokens that have seen at least five trades through the
webhook feed, so an unknown token is a 404 rather than an empty signal.
"""
from __future__ import annotations
from typing import Optional, Union
from fastapi import APIRouter, Depends, HTTPException, Query
from app.dependencies import get_engine, get_feed
from app.schemas.prepump import EngineStats, PrePumpListResponse, PrePumpSignal
from app.services.prepump_engine import PrePumpEngine
from app.services.token_feed import TokenFeed

router = APIRouter(prefix="/api/tokens/prepump", tags=["prepump"])


@router.get("", response_model=Union[PrePumpSignal, PrePumpListResponse])
async def prepump_signals(
    min_score: int = Query(50, ge=0, le=100),
    limit: int = Query(20, ge=1, le=200),
    token: Optional[str] = Query(None, min_length=1),
    feed: TokenFeed = Depends(get_feed),
    engine: PrePumpEngine = Depends(get_engine),
):
    """High-signal tokens, or a freshly computed signal for ``token``."""
    if token:
        signal = engine.compute(token, feed.stages().get(token, "migrated"))
        if signal is None:
            raise HTTPException(status_code=404, detail="No data for this token yet")
        return signal

    signals = feed.high_signal_tokens(min_score)
    return PrePumpListResponse(
        signals=signals[:limit],
        count=len(signals),
        stats=engine.stats(),
        min_score=min_score,
    )


@router.get("/stats", response_model=EngineStats)
async def prepump_stats(engine: PrePumpEngine = Depends(get_engine)):
    return engine.stats()
