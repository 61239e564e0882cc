"""Token price quotes for price-trade automation."""

from __future__ import annotations

import logging
from typing import Any

import config
from trading.errors import ConfigurationError, NoPriceAvailable
from utils.addressing import normalize_address
from utils.http_client import ResilientHttpClient

logger = logging.getLogger(__name__)


class PriceSource:
    async def current_price(self, token_address: str) -> float:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class StaticPriceSource(PriceSource):
    """In-memory quote table."""

    def __init__(self, prices: dict[str, float] | None = None) -> None:
        self._prices: dict[str, float] = {}
        for token, price in (prices or {}).items():
            self.set_price(token, price)

    def set_price(self, token_address: str, price: float) -> None:
        self._prices[normalize_address(token_address)] = float(price)

    def clear_price(self, token_address: str) -> None:
        self._prices.pop(normalize_address(token_address), None)

    async def current_price(self, token_address: str) -> float:
        key = normalize_address(token_address)
        if key not in self._prices:
            raise NoPriceAvailable(key)
        return self._prices[key]


class DexScreenerPriceSource(PriceSource):
    def __init__(self, http: ResilientHttpClient | None = None) -> None:
        self._http = http or ResilientHttpClient(
            timeout_seconds=float(config.DEX_TIMEOUT),
            headers={"Accept": "application/json, text/plain, */*"},
            source_limits={"dexscreener": 8},
        )

    async def close(self) -> None:
        await self._http.close()

    @staticmethod
    def _best_pair(pairs: list[Any], token_address: str) -> dict[str, Any] | None:
        best_pair = None
        best_liq = -1.0
        for pair in pairs:
            if not isinstance(pair, dict):
                continue
            if str(pair.get("chainId", "")).lower() != config.PRICE_CHAIN_ID:
                continue
            base = normalize_address(str((pair.get("baseToken") or {}).get("address") or ""))
            if base != token_address:
                continue
            try:
                liq = float((pair.get("liquidity") or {}).get("usd") or 0)
            except (TypeError, ValueError):
                liq = 0.0
            if liq > best_liq:
                best_liq = liq
                best_pair = pair
        return best_pair

    async def current_price(self, token_address: str) -> float:
        key = normalize_address(token_address)
        url = f"{config.DEXSCREENER_API}/tokens/{key}"
        result = await self._http.get_json(url, source="dexscreener", max_attempts=config.DEX_RETRIES)
        if not result.ok:
            if result.status == 429:
                logger.warning("RATE_LIMIT source=dexscreener status=429 url=%s", url)
            raise NoPriceAvailable(key, result.error)
        data = result.data if isinstance(result.data, dict) else {}
        pair = self._best_pair(data.get("pairs") or [], key)
        if pair is None:
            raise NoPriceAvailable(key, "no_matching_pair")
        try:
            price = float(pair.get("priceUsd") or 0)
        except (TypeError, ValueError):
            price = 0.0
        if price <= 0:
            raise NoPriceAvailable(key, "price_missing")
        return price


def build_price_source(kind: str | None = None) -> PriceSource:
    mode = str(kind or config.PRICE_SOURCE).strip().lower()
    if mode == "dexscreener":
        return DexScreenerPriceSource()
    if mode == "static":
        return StaticPriceSource(config.STATIC_PRICES)
    raise ConfigurationError(f"unknown PRICE_SOURCE: {mode!r}")
