from __future__ import annotations

import unittest

from monitor.cache_store import MemoryCacheStore
from monitor.controller import DCAController, PriceTradeController, ProtectionController
from monitor.price_source import StaticPriceSource
from monitor.service import AutomationService
from tests.fakes import TOKEN, ConfigPatchMixin, FakeClock, FakeGateway, make_address
from trading.account_codec import AccountKind, DCAState, ProtectionState
from trading.errors import ConfigurationError

A = make_address(1)
B = make_address(2)

ALL_ON = {AccountKind.PROTECTION: True, AccountKind.DCA: True, AccountKind.PRICE_TRADE: True}


class AutomationServiceTests(ConfigPatchMixin, unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.patch_cfg(PROTECTION_ACCOUNTS=[A], DCA_ACCOUNTS=[B], PRICE_TRADE_ACCOUNTS=[])
        self.gateway = FakeGateway()
        self.cache = MemoryCacheStore()
        self.prices = StaticPriceSource({TOKEN: 1.0})

    def test_builds_enabled_controllers_from_config_lists(self) -> None:
        service = AutomationService(self.gateway, self.cache, price_source=self.prices, enabled=ALL_ON)
        self.assertIsInstance(service.controller("protection"), ProtectionController)
        self.assertIsInstance(service.controller(AccountKind.DCA), DCAController)
        self.assertIsInstance(service.controller("price_trade"), PriceTradeController)
        self.assertIsNone(service.controller("lending"))
        self.assertEqual(service.controller("protection").get_monitored_accounts(), [A])
        self.assertEqual(service.controller("dca").get_monitored_accounts(), [B])

    def test_disabled_kinds_are_not_built(self) -> None:
        service = AutomationService(self.gateway, self.cache, enabled={AccountKind.DCA: True})
        self.assertEqual(list(service.controllers), [AccountKind.DCA])
        self.assertIsNone(service.price_source)

    def test_all_disabled_is_fatal(self) -> None:
        with self.assertRaises(ConfigurationError):
            AutomationService(self.gateway, self.cache, enabled={AccountKind.DCA: False})

    async def test_start_rolls_back_when_a_controller_has_no_accounts(self) -> None:
        service = AutomationService(self.gateway, self.cache, price_source=self.prices, enabled=ALL_ON)
        with self.assertRaises(ConfigurationError):
            await service.start()
        for controller in service.controllers.values():
            self.assertFalse(controller.is_currently_monitoring())

    async def test_start_and_close(self) -> None:
        self.gateway.set_protection(A, ProtectionState(95, 70, 90, True))
        self.gateway.set_dca(B, DCAState(60, TOKEN, 5, False))
        service = AutomationService(
            self.gateway,
            self.cache,
            enabled={AccountKind.PROTECTION: True, AccountKind.DCA: True},
            clock=FakeClock(),
            interval_seconds=3600,
        )
        await service.start()
        self.assertTrue(all(c.is_currently_monitoring() for c in service.controllers.values()))
        await service.close()
        self.assertFalse(any(c.is_currently_monitoring() for c in service.controllers.values()))
        self.assertTrue(self.gateway.closed)


if __name__ == "__main__":
    unittest.main()
