from __future__ import annotations
from fastapi import APIRouter, Depends, Query
from app.dependencies import get_feed
from app.schemas.token import TokenFeedResponse
from app.services.token_feed import TokenFeed

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.get("/feed", response_model=TokenFeedResponse)
async def token_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    sort: str = Query("trending"),
    feed: TokenFeed = Depends(get_feed),
):
    # Unknown sort keys fall back to trending inside the feed
    return await feed.query(page=page, limit=limit, sort=sort)
