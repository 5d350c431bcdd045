from __future__ import annotations
import httpx
from typing import Any
from app.config import get_settings
from app.schemas.token import TokenSnapshot
from app.services.source_adapter import ParseError, SourceAdapter, as_dict, num

settings = get_settings()

BIRDEYE_BASE = "https://public-api.birdeye.so"


def parse_birdeye_token(token: Any) -> TokenSnapshot:
    """Normalize an item of /defi/tokenlist into a TokenSnapshot."""
    if not isinstance(token, dict):
        raise ParseError("token is not an object")
    address = token.get("address")
    if not address or not isinstance(address, str):
        raise ParseError("token has no address")

    holders = token.get("holder")
    return TokenSnapshot(
        address=address,
        symbol=token.get("symbol") or "UNKNOWN",
        name=token.get("name") or "Unknown",
        logo=token.get("logoURI") or "",
        price=num(token.get("price")),
        price_change_24h=num(token.get("priceChange24hPercent")),
        price_change_1h=num(token.get("priceChange1hPercent")),
        volume_24h=num(token.get("v24hUSD")),
        volume_1h=num(token.get("v1hUSD")),
        liquidity=num(token.get("liquidity")),
        market_cap=num(token.get("mc")),
        fdv=num(token.get("fdv")),
        holders=int(num(holders)) if holders is not None else None,
        dex_id="birdeye",
        source="birdeye",
    )


class BirdeyeAdapter(SourceAdapter):
    """Birdeye token list sorted by 24h volume. Needs an API key."""

    name = "birdeye"

    def __init__(self, api_key: str | None = None, **kwargs):
        kwargs.setdefault("min_interval", settings.birdeye_min_interval)
        super().__init__(**kwargs)
        self.api_key = settings.birdeye_api_key if api_key is None else api_key
        self.headers = {
            "X-API-KEY": self.api_key,
            "x-chain": "solana",
        }

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _fetch(self, client: httpx.AsyncClient) -> list[TokenSnapshot]:
        resp = await client.get(
            f"{BIRDEYE_BASE}/defi/tokenlist",
            headers=self.headers,
            params={
                "sort_by": "v24hUSD",
                "sort_type": "desc",
                "offset": 0,
                "limit": 100,
            },
        )
        resp.raise_for_status()
        data = resp.json()
        tokens = as_dict(as_dict(data).get("data")).get("tokens", [])
        return self._parse_all(tokens, parse_birdeye_token)
