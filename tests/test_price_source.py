from __future__ import annotations

import unittest

from monitor.price_source import DexScreenerPriceSource, StaticPriceSource, build_price_source
from tests.fakes import TOKEN, ConfigPatchMixin, make_address
from trading.errors import ConfigurationError, NoPriceAvailable
from utils.http_client import HttpResult

OTHER = make_address(9)


class FakeHttp:
    def __init__(self, result: HttpResult) -> None:
        self.result = result
        self.calls: list[str] = []
        self.closed = False

    async def get_json(self, url: str, **kwargs) -> HttpResult:
        self.calls.append(url)
        return self.result

    async def close(self) -> None:
        self.closed = True


def _pair(chain: str, base: str, liquidity: float, price: str) -> dict:
    return {"chainId": chain, "baseToken": {"address": base}, "liquidity": {"usd": liquidity}, "priceUsd": price}


class StaticPriceSourceTests(unittest.IsolatedAsyncioTestCase):
    async def test_known_and_unknown_tokens(self) -> None:
        source = StaticPriceSource({TOKEN: 140})
        self.assertEqual(await source.current_price(TOKEN), 140.0)
        with self.assertRaises(NoPriceAvailable) as ctx:
            await source.current_price(OTHER)
        self.assertEqual(ctx.exception.token_address, OTHER)

    async def test_set_and_clear_price(self) -> None:
        source = StaticPriceSource()
        source.set_price(TOKEN, 1.5)
        self.assertEqual(await source.current_price(TOKEN), 1.5)
        source.clear_price(TOKEN)
        with self.assertRaises(NoPriceAvailable):
            await source.current_price(TOKEN)


class DexScreenerPriceSourceTests(ConfigPatchMixin, unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.patch_cfg(PRICE_CHAIN_ID="solana", DEXSCREENER_API="https://dex.example/latest/dex")

    async def test_picks_highest_liquidity_matching_pair(self) -> None:
        http = FakeHttp(
            HttpResult(
                ok=True,
                status=200,
                data={
                    "pairs": [
                        _pair("solana", TOKEN, 1_000, "1.10"),
                        _pair("solana", TOKEN, 50_000, "1.25"),
                        _pair("base", TOKEN, 900_000, "9.99"),
                        _pair("solana", OTHER, 900_000, "0.01"),
                    ]
                },
            )
        )
        source = DexScreenerPriceSource(http=http)
        self.assertEqual(await source.current_price(TOKEN), 1.25)
        self.assertEqual(http.calls, [f"https://dex.example/latest/dex/tokens/{TOKEN}"])

    async def test_no_matching_pair(self) -> None:
        source = DexScreenerPriceSource(http=FakeHttp(HttpResult(ok=True, status=200, data={"pairs": None})))
        with self.assertRaises(NoPriceAvailable):
            await source.current_price(TOKEN)

    async def test_http_failure(self) -> None:
        source = DexScreenerPriceSource(http=FakeHttp(HttpResult(ok=False, status=429, data=None, error="http_status_429")))
        with self.assertLogs("monitor.price_source", level="WARNING"):
            with self.assertRaises(NoPriceAvailable):
                await source.current_price(TOKEN)

    async def test_close_closes_http(self) -> None:
        http = FakeHttp(HttpResult(ok=True, status=200, data={}))
        await DexScreenerPriceSource(http=http).close()
        self.assertTrue(http.closed)


class BuildPriceSourceTests(ConfigPatchMixin, unittest.TestCase):
    def test_static_mode_uses_configured_prices(self) -> None:
        self.patch_cfg(STATIC_PRICES={TOKEN: 3.0})
        self.assertIsInstance(build_price_source("static"), StaticPriceSource)

    def test_unknown_mode(self) -> None:
        with self.assertRaises(ConfigurationError):
            build_price_source("oracle")


if __name__ == "__main__":
    unittest.main()
