"""Per-token rolling history of observed trades.

Every recorded trade also touches the wallet index, which is what lets the
ledger tell a fresh wallet (first seen in the last 24h, or trading this token
for the first time) from a returning one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Literal, Optional

from app.services.wallet_index import WalletActivityIndex

logger = logging.getLogger(__name__)

FRESH_WALLET_WINDOW = 60  # rolling counts window
BUY_SIZE_WINDOW_5M = 5 * 60
BUY_SIZE_WINDOW_1H = 60 * 60
WALLET_NEW_THRESHOLD = 24 * 60 * 60
MAX_TX_HISTORY = 500


@dataclass
class TxRecord:
    token_address: str
    wallet: str
    direction: Literal["buy", "sell"]
    amount_sol: float
    timestamp: float
    signature: str = ""
    is_fresh_wallet: bool = False

    @property
    def is_buy(self) -> bool:
        return self.direction == "buy"


def _avg_amount(txs: Iterable[TxRecord]) -> Optional[float]:
    amounts = [t.amount_sol for t in txs]
    return sum(amounts) / len(amounts) if amounts else None


def average_buy_sizes(transactions: list[TxRecord], now: float) -> tuple[float, float]:
    """(5 minute, 1 hour) average buy size; the hour falls back to the 5 minute figure."""
    avg_5m = _avg_amount(
        t for t in transactions if t.is_buy and t.timestamp > now - BUY_SIZE_WINDOW_5M
    ) or 0.0
    avg_1h = _avg_amount(
        t for t in transactions if t.is_buy and t.timestamp > now - BUY_SIZE_WINDOW_1H
    )
    return avg_5m, avg_1h if avg_1h is not None else avg_5m


@dataclass
class TokenLedgerEntry:
    token_address: str
    transactions: list[TxRecord] = field(default_factory=list)
    last_sell_time: float = 0.0
    buy_count_60s: int = 0
    sell_count_60s: int = 0
    fresh_wallet_buys_60s: int = 0
    avg_buy_size_5m: float = 0.0
    avg_buy_size_1h: float = 0.0
    bonding_curve_sol: float = 0.0
    last_bonding_update: float = 0.0

    @property
    def last_activity(self) -> float:
        return self.transactions[-1].timestamp if self.transactions else 0.0

    def since(self, cutoff: float) -> list[TxRecord]:
        return [t for t in self.transactions if t.timestamp > cutoff]

    def update_rolling(self, now: float) -> None:
        recent = self.since(now - FRESH_WALLET_WINDOW)
        self.buy_count_60s = sum(1 for t in recent if t.is_buy)
        self.sell_count_60s = len(recent) - self.buy_count_60s
        self.fresh_wallet_buys_60s = sum(1 for t in recent if t.is_buy and t.is_fresh_wallet)
        self.avg_buy_size_5m, self.avg_buy_size_1h = average_buy_sizes(self.transactions, now)


class TransactionLedger:
    """Bounded per-token trade history.  ``Store`` serializes access."""

    def __init__(self, wallets: WalletActivityIndex, max_history: int = MAX_TX_HISTORY):
        self.wallets = wallets
        self.max_history = max_history
        self._entries: dict[str, TokenLedgerEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token_address: str) -> bool:
        return token_address in self._entries

    def get(self, token_address: str) -> Optional[TokenLedgerEntry]:
        return self._entries.get(token_address)

    def addresses(self) -> list[str]:
        return list(self._entries)

    def record(
        self,
        token_address: str,
        wallet: str,
        direction: Literal["buy", "sell"],
        amount_sol: float,
        timestamp: float,
        signature: str = "",
    ) -> TxRecord:
        activity = self.wallets.touch(wallet, token_address, timestamp)
        is_new_wallet = activity.first_seen > timestamp - WALLET_NEW_THRESHOLD
        first_time_on_token = activity.trade_count(token_address) <= 1

        entry = self._entries.get(token_address)
        if entry is None:
            entry = TokenLedgerEntry(token_address=token_address)
            self._entries[token_address] = entry

        tx = TxRecord(
            token_address=token_address,
            wallet=wallet,
            direction=direction,
            amount_sol=amount_sol,
            timestamp=timestamp,
            signature=signature,
            is_fresh_wallet=is_new_wallet or first_time_on_token,
        )
        entry.transactions.append(tx)
        if direction == "sell":
            entry.last_sell_time = max(entry.last_sell_time, timestamp)

        if len(entry.transactions) > self.max_history:
            del entry.transactions[:-self.max_history]

        entry.update_rolling(timestamp)
        return tx

    def update_bonding_curve(self, token_address: str, sol_balance: float, now: float) -> bool:
        """Store the latest curve balance for a tracked token.

        The SOL/min delta between updates is not kept; the signal calculator
        uses recent buy volume as its velocity proxy instead.
        """
        entry = self._entries.get(token_address)
        if entry is None:
            return False
        entry.bonding_curve_sol = sol_balance
        entry.last_bonding_update = now
        return True

    def sweep(self, cutoff: float) -> list[str]:
        """Trim trades at or before ``cutoff``; returns addresses of emptied ledgers."""
        emptied = []
        for token_address in list(self._entries):
            entry = self._entries[token_address]
            entry.transactions = entry.since(cutoff)
            if not entry.transactions:
                del self._entries[token_address]
                emptied.append(token_address)
        return emptied
