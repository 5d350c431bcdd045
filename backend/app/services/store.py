"""Single owner of all in-memory feed and pre-pump state.

One ``Store`` is built at startup and handed to every component.  Every
mutation (snapshot merge, trade record, bonding update, signal compute, sweep)
runs under ``Store.lock`` and never awaits while holding it, so readers never
observe a half-applied update.  Nothing here survives a restart.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Literal, Optional

from app.config import get_settings
from app.schemas.prepump import PrePumpSignal
from app.services.accumulator import TokenAccumulator
from app.services.tx_ledger import TransactionLedger, TxRecord
from app.services.wallet_index import WalletActivityIndex

logger = logging.getLogger(__name__)
settings = get_settings()


class Store:
    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        retention_seconds: Optional[float] = None,
        max_tx_history: Optional[int] = None,
    ):
        self.clock = clock
        self.retention_seconds = retention_seconds or settings.retention_seconds
        self.lock = threading.RLock()

        self.accumulator = TokenAccumulator()
        self.wallets = WalletActivityIndex()
        self.ledger = TransactionLedger(self.wallets, max_tx_history or settings.max_tx_history)
        self.signals: dict[str, PrePumpSignal] = {}

        self._sweeper: Optional[asyncio.Task] = None

    def now(self) -> float:
        return self.clock()

    # ── transaction feed ───────────────────────────────────────────

    def record_transaction(
        self,
        token_address: str,
        wallet: str,
        direction: Literal["buy", "sell"],
        amount_sol: float,
        signature: str = "",
        timestamp: Optional[float] = None,
    ) -> TxRecord:
        with self.lock:
            ts = timestamp if timestamp is not None else self.now()
            return self.ledger.record(token_address, wallet, direction, amount_sol, ts, signature)

    def update_bonding_curve(self, token_address: str, sol_balance: float) -> bool:
        with self.lock:
            return self.ledger.update_bonding_curve(token_address, sol_balance, self.now())

    # ── retention ──────────────────────────────────────────────────

    def sweep(self, now: Optional[float] = None) -> dict[str, int]:
        """Evict everything whose latest activity is older than the retention window."""
        with self.lock:
            now = self.now() if now is None else now
            cutoff = now - self.retention_seconds

            wallets_removed = self.wallets.sweep(cutoff)
            emptied = self.ledger.sweep(cutoff)
            for token_address in emptied:
                self.signals.pop(token_address, None)
            snapshots_removed = self.accumulator.prune(cutoff)

            result = {
                "wallets_removed": wallets_removed,
                "ledgers_removed": len(emptied),
                "snapshots_removed": snapshots_removed,
                "wallets_tracked": len(self.wallets),
                "tokens_tracked": len(self.ledger),
            }
        logger.info(
            "Sweep: %d wallets, %d tokens tracked (removed %d wallets, %d ledgers, %d snapshots)",
            result["wallets_tracked"], result["tokens_tracked"],
            wallets_removed, len(emptied), snapshots_removed,
        )
        return result

    def start_sweeper(self, interval: Optional[float] = None) -> asyncio.Task:
        """Start the periodic sweep on the running loop (idempotent)."""
        from app.workers.sweep_worker import run_sweep_worker

        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(
                run_sweep_worker(self, interval or settings.sweep_interval_seconds)
            )
        return self._sweeper

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
