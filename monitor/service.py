"""Wires the per-kind controllers around one shared gateway, cache and price source."""

from __future__ import annotations

import logging
from typing import Any

import config
from monitor.cache_store import CacheStore, JsonFileCacheStore
from monitor.controller import AutomationController, DCAController, PriceTradeController, ProtectionController
from monitor.price_source import PriceSource, build_price_source
from trading.account_codec import AccountKind
from trading.chain_gateway import ChainGateway, SolanaChainGateway
from trading.errors import ConfigurationError

logger = logging.getLogger(__name__)


class AutomationService:
    def __init__(
        self,
        gateway: ChainGateway,
        cache: CacheStore,
        *,
        price_source: PriceSource | None = None,
        alerter: Any = None,
        enabled: dict[AccountKind, bool] | None = None,
        **controller_kwargs: Any,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.price_source = price_source
        self.alerter = alerter
        toggles = enabled or {
            AccountKind.PROTECTION: config.PROTECTION_ENABLED,
            AccountKind.DCA: config.DCA_ENABLED,
            AccountKind.PRICE_TRADE: config.PRICE_TRADE_ENABLED,
        }
        self.controllers: dict[AccountKind, AutomationController] = {}
        if toggles.get(AccountKind.PROTECTION):
            self.controllers[AccountKind.PROTECTION] = ProtectionController(
                gateway, cache, alerter=alerter, **controller_kwargs
            )
        if toggles.get(AccountKind.DCA):
            self.controllers[AccountKind.DCA] = DCAController(gateway, cache, alerter=alerter, **controller_kwargs)
        if toggles.get(AccountKind.PRICE_TRADE):
            if self.price_source is None:
                self.price_source = build_price_source()
            self.controllers[AccountKind.PRICE_TRADE] = PriceTradeController(
                gateway,
                cache,
                price_source=self.price_source,
                alerter=alerter,
                **controller_kwargs,
            )
        if not self.controllers:
            raise ConfigurationError("all controllers are disabled")

    @classmethod
    def from_config(cls, alerter: Any = None) -> "AutomationService":
        return cls(SolanaChainGateway.from_config(), JsonFileCacheStore(), alerter=alerter)

    def controller(self, kind: str | AccountKind) -> AutomationController | None:
        try:
            return self.controllers.get(AccountKind(kind))
        except ValueError:
            return None

    async def start(self) -> None:
        started: list[AutomationController] = []
        try:
            for controller in self.controllers.values():
                await controller.start()
                started.append(controller)
        except ConfigurationError:
            for controller in started:
                await controller.stop()
            raise
        logger.info("SERVICE_START controllers=%s", ",".join(k.value for k in self.controllers))

    async def stop(self) -> None:
        for controller in self.controllers.values():
            await controller.stop()

    async def close(self) -> None:
        await self.stop()
        if self.price_source is not None:
            await self.price_source.close()
        await self.gateway.close()
        logger.info("SERVICE_STOP")
