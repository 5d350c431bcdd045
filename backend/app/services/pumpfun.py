from __future__ import annotations
import httpx
from typing import Any
from app.config import get_settings
from app.schemas.token import TokenSnapshot
from app.services.source_adapter import ParseError, SourceAdapter, num

settings = get_settings()

PUMPFUN_API = "https://frontend-api.pump.fun"
GRADUATION_SOL = 85  # virtual SOL reserves at which a curve completes
SOL_USD_ESTIMATE = 150  # rough liquidity estimate from curve reserves
DEFAULT_SUPPLY = 1_000_000_000


def parse_pumpfun_coin(coin: Any) -> TokenSnapshot:
    """Normalize a pump.fun coin (still on its bonding curve) into a TokenSnapshot."""
    if not isinstance(coin, dict):
        raise ParseError("coin is not an object")
    address = coin.get("mint") or coin.get("address")
    if not address or not isinstance(address, str):
        raise ParseError("coin has no mint")

    reserves = num(coin.get("virtual_sol_reserves"))
    # Some payloads report lamports
    if reserves > 1_000_000:
        reserves = reserves / 1e9
    usd_market_cap = num(coin.get("usd_market_cap"))
    supply = num(coin.get("total_supply")) or DEFAULT_SUPPLY
    created_ms = num(coin.get("created_timestamp"))

    return TokenSnapshot(
        address=address,
        symbol=coin.get("symbol") or "PUMP",
        name=coin.get("name") or "Pump.fun Token",
        logo=coin.get("image_uri") or coin.get("uri") or "",
        price=usd_market_cap / supply if usd_market_cap else 0,
        volume_24h=num(coin.get("volume_24h")),
        liquidity=reserves * SOL_USD_ESTIMATE,
        market_cap=usd_market_cap,
        fdv=usd_market_cap,
        pair_address=coin.get("bonding_curve") or "",
        dex_id="pumpfun",
        pair_created_at=created_ms / 1000 if created_ms > 0 else None,
        is_pump_fun=True,
        is_migrated=bool(coin.get("complete")),
        bonding_curve_progress=min(100.0, reserves / GRADUATION_SOL * 100) if coin.get("bonding_curve") else 0.0,
        bonding_curve_sol=reserves if reserves > 0 else None,
        source="pumpfun",
    )


class PumpFunAdapter(SourceAdapter):
    """Newest pump.fun launches (pre-migration bonding-curve tokens)."""

    name = "pumpfun"

    def __init__(self, **kwargs):
        kwargs.setdefault("min_interval", settings.pumpfun_min_interval)
        super().__init__(**kwargs)

    async def _fetch(self, client: httpx.AsyncClient) -> list[TokenSnapshot]:
        resp = await client.get(
            f"{PUMPFUN_API}/coins",
            params={
                "limit": 100,
                "sort": "created_timestamp",
                "order": "desc",
                "includeNsfw": "false",
            },
        )
        resp.raise_for_status()
        return self._parse_all(resp.json(), parse_pumpfun_coin)
