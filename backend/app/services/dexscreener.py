from __future__ import annotations
import asyncio
import logging
import httpx
from typing import Any, Optional

from app.config import get_settings
from app.schemas.token import TokenSnapshot, TxnCounts
from app.services.source_adapter import ParseError, SourceAdapter, as_dict, num

logger = logging.getLogger(__name__)
settings = get_settings()

DEXSCREENER_API = "https://api.dexscreener.com"
DEXSCREENER_LOGO = "https://dd.dexscreener.com/ds-data/tokens/solana/{address}.png"

# (path, kind): boosts and profiles only carry addresses, searches carry full pairs
DISCOVERY_ENDPOINTS = [
    ("/token-boosts/latest/v1", "boost"),
    ("/token-boosts/top/v1", "boost"),
    ("/token-profiles/latest/v1", "profile"),
    ("/latest/dex/search?q=solana", "search"),
    ("/latest/dex/search?q=pump", "search"),
    ("/latest/dex/search?q=sol", "search"),
]
BATCH_SIZE = 30  # /tokens/v1 accepts at most 30 addresses


def _txns(txns: dict, window: str) -> TxnCounts:
    bucket = as_dict(txns.get(window))
    return TxnCounts(buys=int(num(bucket.get("buys"))), sells=int(num(bucket.get("sells"))))


def _liquidity_score(liquidity: float, market_cap: float) -> float:
    if market_cap <= 0:
        return 50
    ratio = liquidity / market_cap
    if ratio > 0.3:
        return 90
    if ratio > 0.15:
        return 75
    if ratio > 0.05:
        return 60
    if ratio > 0.02:
        return 40
    return 20


def parse_pair(
    pair: Any,
    boost_amount: Optional[float] = None,
    has_profile: bool = False,
) -> TokenSnapshot:
    """Normalize a DexScreener pair object into a TokenSnapshot."""
    if not isinstance(pair, dict):
        raise ParseError("pair is not an object")
    base = as_dict(pair.get("baseToken"))
    address = base.get("address")
    if not address or not isinstance(address, str):
        raise ParseError("pair has no base token address")

    dex_id = pair.get("dexId") or "unknown"
    url = pair.get("url") or ""
    is_pump_fun = dex_id == "pumpfun" or "pump.fun" in url

    volume = as_dict(pair.get("volume"))
    price_change = as_dict(pair.get("priceChange"))
    txns = as_dict(pair.get("txns"))
    info = as_dict(pair.get("info"))

    volume_24h = num(volume.get("h24"))
    market_cap = num(pair.get("marketCap")) or num(pair.get("fdv"))
    liquidity = num(as_dict(pair.get("liquidity")).get("usd"))

    txns_24h = _txns(txns, "h24")
    created_ms = num(pair.get("pairCreatedAt"))

    return TokenSnapshot(
        address=address,
        symbol=base.get("symbol") or "UNKNOWN",
        name=base.get("name") or "Unknown Token",
        logo=info.get("imageUrl") or DEXSCREENER_LOGO.format(address=address),
        price=num(pair.get("priceUsd")),
        price_change_24h=num(price_change.get("h24")),
        price_change_6h=num(price_change.get("h6")),
        price_change_1h=num(price_change.get("h1")),
        price_change_5m=num(price_change.get("m5")),
        volume_24h=volume_24h,
        volume_6h=num(volume.get("h6")),
        volume_1h=num(volume.get("h1")),
        volume_5m=num(volume.get("m5")),
        liquidity=liquidity,
        market_cap=market_cap,
        fdv=num(pair.get("fdv")),
        txns_24h=txns_24h,
        txns_6h=_txns(txns, "h6"),
        txns_1h=_txns(txns, "h1"),
        txns_5m=_txns(txns, "m5"),
        pair_address=pair.get("pairAddress") or "",
        dex_id=dex_id,
        pair_created_at=created_ms / 1000 if created_ms > 0 else None,
        has_profile=has_profile or bool(info.get("imageUrl")),
        has_boost=boost_amount is not None,
        has_enhanced_profile=bool(info.get("websites")) or bool(info.get("socials")),
        is_pump_fun=is_pump_fun,
        is_migrated=is_pump_fun and dex_id != "pumpfun",
        boost_amount=boost_amount or 0,
        volume_to_mcap_ratio=volume_24h / market_cap * 100 if market_cap > 0 else 0,
        buy_pressure=txns_24h.buys / txns_24h.total * 100 if txns_24h.total > 0 else 50,
        liquidity_score=_liquidity_score(liquidity, market_cap),
        volatility_24h=abs(num(price_change.get("h24"))),
        source="dexscreener",
    )


class DexScreenerAdapter(SourceAdapter):
    """DexScreener public API (free, no auth required).

    Pulls boosts, profiles and a few broad searches concurrently, then resolves
    boosted/profiled addresses that came without pair data in batches of 30.
    """

    name = "dexscreener"

    def __init__(self, **kwargs):
        kwargs.setdefault("min_interval", settings.dexscreener_min_interval)
        super().__init__(**kwargs)

    async def _get(self, client: httpx.AsyncClient, path: str) -> Any:
        resp = await client.get(f"{DEXSCREENER_API}{path}")
        resp.raise_for_status()
        return resp.json()

    async def _fetch(self, client: httpx.AsyncClient) -> list[TokenSnapshot]:
        results = await asyncio.gather(
            *(self._get(client, path) for path, _ in DISCOVERY_ENDPOINTS),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if len(failures) == len(results):
            raise failures[0]
        for (path, _), result in zip(DISCOVERY_ENDPOINTS, results):
            if isinstance(result, BaseException):
                logger.warning(f"DexScreener {path} failed: {result}")

        boosts: dict[str, float] = {}
        profiles: set[str] = set()
        to_resolve: list[str] = []
        seen: set[str] = set()
        search_pairs: list[dict] = []

        for (_, kind), data in zip(DISCOVERY_ENDPOINTS, results):
            if isinstance(data, BaseException):
                continue
            if kind in ("boost", "profile") and isinstance(data, list):
                for item in data:
                    if not isinstance(item, dict) or item.get("chainId") != "solana":
                        continue
                    address = item.get("tokenAddress")
                    if not address:
                        continue
                    if kind == "boost":
                        boosts[address] = max(boosts.get(address, 0), num(item.get("amount"), 1) or 1)
                    else:
                        profiles.add(address)
                    if address not in seen:
                        seen.add(address)
                        to_resolve.append(address)
            elif kind == "search" and isinstance(data, dict):
                search_pairs.extend(p for p in data.get("pairs") or [] if isinstance(p, dict))

        tokens: dict[str, TokenSnapshot] = {}
        for pair in search_pairs:
            if pair.get("chainId") != "solana":
                continue
            address = as_dict(pair.get("baseToken")).get("address")
            if not address or address in tokens:
                continue
            try:
                tokens[address] = parse_pair(pair, boosts.get(address), address in profiles)
            except ParseError:
                continue

        pending = [a for a in to_resolve if a not in tokens]
        for i in range(0, len(pending), BATCH_SIZE):
            chunk = pending[i:i + BATCH_SIZE]
            try:
                pairs = await self._get(client, f"/tokens/v1/solana/{','.join(chunk)}")
            except Exception as e:
                logger.debug(f"DexScreener batch resolve failed for {len(chunk)} tokens: {e}")
                continue
            if not isinstance(pairs, list):
                continue
            for pair in pairs:
                address = as_dict(as_dict(pair).get("baseToken")).get("address")
                if not address or address in tokens:
                    continue
                try:
                    tokens[address] = parse_pair(pair, boosts.get(address), address in profiles)
                except ParseError:
                    continue

        logger.info(f"DexScreener: normalized {len(tokens)} Solana tokens")
        return list(tokens.values())
