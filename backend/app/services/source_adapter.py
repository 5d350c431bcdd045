"""Base class shared by every market-data source adapter.

Adapters never raise out of ``fetch()``: network errors, timeouts, non-2xx
responses and malformed payloads all degrade to an empty contribution and
count as a failure on the adapter's own ``SourceGate``.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Callable, Optional

import httpx

from app.config import get_settings
from app.schemas.token import TokenSnapshot
from app.services.source_gate import SourceGate

logger = logging.getLogger(__name__)
settings = get_settings()


class ParseError(ValueError):
    """Raised by a normalizer when a provider record cannot become a snapshot."""


def num(value: Any, default: float = 0.0) -> float:
    """Coerce a provider number (possibly None, str or garbage) to a finite float."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return result if math.isfinite(result) else default


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


class SourceAdapter:
    """One external market-data provider.

    Subclasses set ``name`` and implement ``_fetch(client)``; they may raise
    freely, ``fetch()`` takes care of gating, timeouts and failure accounting.
    """

    name = "source"

    def __init__(
        self,
        min_interval: float = 0.2,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout if timeout is not None else settings.source_timeout_seconds
        self._transport = transport
        self.gate = SourceGate(
            self.name,
            min_interval,
            backoff_step=settings.source_backoff_step_seconds,
            max_backoff=settings.source_max_backoff_seconds,
            clock=clock,
        )

    @property
    def enabled(self) -> bool:
        """Adapters that need an API key report False when none is configured."""
        return True

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _fetch(self, client: httpx.AsyncClient) -> list[TokenSnapshot]:
        raise NotImplementedError

    async def fetch(self) -> list[TokenSnapshot]:
        if not self.enabled or not self.gate.can_call():
            return []

        try:
            async with self._client() as client:
                tokens = await asyncio.wait_for(self._fetch(client), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self.gate.record(False)
            logger.warning(f"{self.name}: fetch timed out after {self.timeout}s")
            return []
        except httpx.HTTPStatusError as e:
            self.gate.record(False)
            logger.warning(f"{self.name}: fetch failed HTTP {e.response.status_code}")
            return []
        except Exception as e:
            self.gate.record(False)
            logger.warning(f"{self.name}: fetch failed: {e}")
            return []

        self.gate.record(True)
        logger.debug("%s: fetched %d tokens", self.name, len(tokens))
        return tokens

    def _parse_all(self, items: Any, parser: Callable[[Any], TokenSnapshot]) -> list[TokenSnapshot]:
        """Run a normalizer over a payload list, skipping records it rejects."""
        if not isinstance(items, list):
            raise ParseError(f"{self.name}: expected a list, got {type(items).__name__}")

        tokens = []
        skipped = 0
        for item in items:
            try:
                tokens.append(parser(item))
            except ParseError:
                skipped += 1
        if skipped:
            logger.debug("%s: skipped %d malformed records", self.name, skipped)
        return tokens
