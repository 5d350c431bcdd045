from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.services.store import Store

logger = logging.getLogger(__name__)


async def run_sweep_worker(store: "Store", interval: float = 60):
    """Background worker that evicts stale wallets, ledgers, signals and
    snapshots from the store every ``interval`` seconds."""
    logger.info("Sweep worker started (every %ss)", interval)

    while True:
        await asyncio.sleep(interval)
        try:
            store.sweep()
        except asyncio.CancelledError:
            logger.info("Sweep worker cancelled")
            break
        except Exception as e:
            logger.error(f"Sweep worker error: {e}")
