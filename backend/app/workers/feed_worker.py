from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.services.token_feed import TokenFeed

logger = logging.getLogger(__name__)


async def run_feed_worker(feed: "TokenFeed", interval: float):
    """Background worker that keeps the accumulated feed warm so reads rarely
    pay for a provider fan-out themselves."""
    logger.info(f"Feed worker started (every {interval}s, sources: {', '.join(feed.sources)})")
    cycle = 0

    while True:
        try:
            if not await feed.refresh():
                logger.debug("Feed worker: refresh already in flight, skipping cycle %d", cycle)
            cycle += 1
        except asyncio.CancelledError:
            logger.info("Feed worker cancelled")
            break
        except Exception as e:
            logger.error(f"Feed worker error: {e}")

        await asyncio.sleep(interval)
