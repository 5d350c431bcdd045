from __future__ import annotations
import httpx
from typing import Any
from app.config import get_settings
from app.schemas.token import TokenSnapshot
from app.services.source_adapter import ParseError, SourceAdapter, as_dict

settings = get_settings()

HELIUS_RPC = "https://mainnet.helius-rpc.com/"


def parse_helius_asset(asset: Any) -> TokenSnapshot:
    """Normalize a DAS asset into a metadata-only TokenSnapshot.

    DAS carries no market data, so every metric stays at its default.
    """
    if not isinstance(asset, dict):
        raise ParseError("asset is not an object")
    address = asset.get("id")
    if not address or not isinstance(address, str):
        raise ParseError("asset has no id")

    content = as_dict(asset.get("content"))
    metadata = as_dict(content.get("metadata"))
    links = as_dict(content.get("links"))
    files = content.get("files") or []
    first_file = as_dict(files[0]) if isinstance(files, list) and files else {}

    return TokenSnapshot(
        address=address,
        symbol=metadata.get("symbol") or "NEW",
        name=metadata.get("name") or "New Token",
        logo=links.get("image") or first_file.get("uri") or "",
        dex_id="helius",
        source="helius",
    )


class HeliusAdapter(SourceAdapter):
    """Helius DAS searchAssets: newest fungible tokens. Needs an API key."""

    name = "helius"

    def __init__(self, api_key: str | None = None, **kwargs):
        kwargs.setdefault("min_interval", settings.helius_min_interval)
        super().__init__(**kwargs)
        self.api_key = settings.helius_api_key if api_key is None else api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _fetch(self, client: httpx.AsyncClient) -> list[TokenSnapshot]:
        resp = await client.post(
            HELIUS_RPC,
            params={"api-key": self.api_key},
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "searchAssets",
                "params": {
                    "tokenType": "fungible",
                    "displayOptions": {"showFungible": True},
                    "sortBy": {"sortBy": "created", "sortDirection": "desc"},
                    "limit": 100,
                },
            },
        )
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            raise Exception(f"Helius RPC error: {data['error']}")
        items = as_dict(data.get("result")).get("items", [])
        return self._parse_all(items, parse_helius_asset)
