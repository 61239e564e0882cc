"""Check loop for automation accounts: read, decode, evaluate, dispatch, persist.

One controller instance owns one account kind. A ticker task runs a cycle on a
fixed interval; ``force_check`` runs one on demand. Cycles never overlap: they
are serialized by ``_cycle_lock``.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable

import config
from monitor.cache_store import CacheSnapshot, CacheStore
from monitor.price_source import PriceSource
from monitor.registry import MonitoredAccount, MonitorRegistry
from trading.account_codec import AccountKind, AccountState, DCAState, PriceTradeState, ProtectionState, decode_account
from trading.automation import AutomationProgramClient, client_for
from trading.chain_gateway import ChainGateway
from trading.errors import AutomationError, ConfigurationError
from trading.triggers import TriggerDecision, evaluate_dca, evaluate_price_trade, evaluate_protection
from utils.addressing import is_valid_pubkey, normalize_address, short_address
from utils.log_contracts import check_decision_event, format_event_fields

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CheckOutcome:
    address: str
    decision: str
    reason: str
    snapshot: CacheSnapshot | None = None
    signature: str = ""
    error_code: str = ""


class AutomationController(ABC):
    kind: AccountKind = AccountKind.PROTECTION
    cache_key: str = ""

    def __init__(
        self,
        gateway: ChainGateway,
        cache: CacheStore,
        *,
        addresses: Iterable[str] | None = None,
        alerter: Any = None,
        clock: Callable[[], int] | None = None,
        interval_seconds: float | None = None,
        concurrency: int | None = None,
    ) -> None:
        if gateway is None:
            raise ConfigurationError(f"{self.kind.value} controller requires a chain gateway")
        self.gateway = gateway
        self.cache = cache
        self.alerter = alerter
        self.registry = MonitorRegistry(self.kind)
        self._clock = clock or _wall_clock_ms
        self.interval_seconds = float(interval_seconds or config.CHECK_INTERVAL_SECONDS)
        self.concurrency = max(1, int(concurrency or config.CHECK_CONCURRENCY))
        for address in self._configured_addresses() if addresses is None else addresses:
            key = normalize_address(address)
            if not is_valid_pubkey(key):
                raise ConfigurationError(f"{self.kind.value} account address is invalid: {address!r}")
            self.registry.add(key)

        self._snapshots: dict[str, CacheSnapshot] = {}
        self._clients: dict[str, AutomationProgramClient] = {}
        self.last_decisions: dict[str, dict[str, Any]] = {}
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._cache_loaded = False

    def _configured_addresses(self) -> list[str]:
        return []

    @property
    def is_checking(self) -> bool:
        return self._cycle_lock.locked()

    def is_currently_monitoring(self) -> bool:
        task = self._task
        return task is not None and not task.done()

    async def _load_cache(self) -> None:
        if self._cache_loaded:
            return
        self._cache_loaded = True
        try:
            cached = await asyncio.to_thread(self.cache.get, self.cache_key)
        except AutomationError as exc:
            logger.warning("CACHE_LOAD_FAILED kind=%s code=%s err=%s", self.kind.value, exc.code, exc)
            return
        if not cached:
            return
        rows = [snap for snap in cached if snap.kind in ("", self.kind.value)]
        added = self.registry.load_from_cache(rows)
        for snap in rows:
            key = normalize_address(snap.account_address)
            if key in self.registry and key not in self._snapshots:
                self._snapshots[key] = snap
        logger.info("CACHE_LOADED kind=%s rows=%s added=%s", self.kind.value, len(rows), added)

    async def start(self) -> None:
        if self.is_currently_monitoring():
            return
        await self._load_cache()
        if len(self.registry) == 0:
            raise ConfigurationError(f"no {self.kind.value} accounts configured")
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name=f"{self.kind.value}_monitor")
        logger.info(
            "MONITOR_START kind=%s accounts=%s interval=%ss",
            self.kind.value,
            len(self.registry),
            self.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop ticking. An in-flight cycle is allowed to finish."""
        self._stop_event.set()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            await task
        logger.info("MONITOR_STOP kind=%s", self.kind.value)

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_check_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("CHECK_CYCLE_FAILED kind=%s", self.kind.value)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def force_check(self) -> list[CacheSnapshot]:
        """Run a cycle now, waiting for any in-flight cycle to complete first."""
        delay = max(0.01, float(config.FORCE_CHECK_RETRY_DELAY_SECONDS))
        max_wait = max(0.0, float(config.FORCE_CHECK_MAX_WAIT_SECONDS))
        waited = 0.0
        while self._cycle_lock.locked() and waited < max_wait:
            logger.debug("FORCE_CHECK_WAIT kind=%s waited=%.2fs", self.kind.value, waited)
            await asyncio.sleep(delay)
            waited += delay
        return await self.run_check_cycle()

    async def run_check_cycle(self) -> list[CacheSnapshot]:
        async with self._cycle_lock:
            await self._load_cache()
            return await self._run_cycle_locked()

    async def _run_cycle_locked(self) -> list[CacheSnapshot]:
        addresses = self.registry.list()
        cycle_id = uuid.uuid4().hex[:12]
        started = time.perf_counter()
        sem = asyncio.Semaphore(self.concurrency)

        outcomes = await asyncio.gather(*[self._check_guarded(address, sem, cycle_id) for address in addresses])

        triggered = failed = 0
        for outcome in outcomes:
            if outcome.decision == "error":
                failed += 1
            elif outcome.decision == "trigger":
                triggered += 1
            if outcome.address not in self.registry:
                # Removed mid-cycle.
                self.last_decisions.pop(outcome.address, None)
                continue
            if outcome.decision == "error" or outcome.snapshot is None:
                continue
            self._snapshots[outcome.address] = outcome.snapshot
            self.registry.update_timing(
                outcome.address,
                checked_at=outcome.snapshot.last_checked,
                triggered_at=outcome.snapshot.last_triggered if outcome.decision == "trigger" else None,
            )

        batch = [self._snapshot_for(address) for address in self.registry.list()]
        await self._persist(batch)
        logger.info(
            "CHECK_CYCLE kind=%s accounts=%s triggered=%s failed=%s duration_ms=%s",
            self.kind.value,
            len(addresses),
            triggered,
            failed,
            int((time.perf_counter() - started) * 1000),
        )
        return batch

    def _snapshot_for(self, address: str) -> CacheSnapshot:
        snap = self._snapshots.get(address)
        if snap is not None:
            return replace(snap)
        return CacheSnapshot(account_address=address, kind=self.kind.value)

    async def _persist(self, batch: list[CacheSnapshot]) -> None:
        try:
            await asyncio.to_thread(self.cache.set, self.cache_key, batch)
        except AutomationError as exc:
            logger.warning("CACHE_WRITE_FAILED kind=%s code=%s err=%s", self.kind.value, exc.code, exc)
        except Exception:
            logger.exception("CACHE_WRITE_FAILED kind=%s", self.kind.value)

    async def _check_guarded(self, address: str, sem: asyncio.Semaphore, cycle_id: str) -> CheckOutcome:
        async with sem:
            now_ms = int(self._clock())
            try:
                outcome = await self._check_address(address, now_ms)
            except AutomationError as exc:
                outcome = CheckOutcome(address, "error", exc.code, error_code=exc.code)
                logger.warning(
                    "CHECK_SKIP kind=%s address=%s code=%s err=%s",
                    self.kind.value,
                    address,
                    exc.code,
                    exc,
                )
                if exc.code == "E_SUBMISSION":
                    await self._alert_failure(address, exc)
            except Exception as exc:
                outcome = CheckOutcome(address, "error", "unexpected", error_code="E_UNEXPECTED")
                logger.exception("CHECK_SKIP kind=%s address=%s code=E_UNEXPECTED err=%s", self.kind.value, address, exc)

        row = check_decision_event(
            kind=self.kind.value,
            address=address,
            decision=outcome.decision,
            reason=outcome.error_code or outcome.reason,
            ts_ms=now_ms,
            cycle_id=cycle_id,
            signature=outcome.signature,
        )
        self.last_decisions[address] = row
        logger.debug("CHECK_DECISION %s trace_id=%s", format_event_fields(row), row["trace_id"])
        return outcome

    def _client(self, address: str) -> AutomationProgramClient:
        client = self._clients.get(address)
        if client is None:
            client = client_for(self.kind, self.gateway, address)
            self._clients[address] = client
        return client

    async def _check_address(self, address: str, now_ms: int) -> CheckOutcome:
        raw = await self.gateway.get_account_bytes(address)
        state = decode_account(self.kind, raw)
        account = self.registry.get(address) or MonitoredAccount(address=address, kind=self.kind)
        decision, extra = await self._evaluate(account, state, now_ms)

        snap = self._snapshot_for(address).with_state(state)
        snap.last_checked = now_ms
        for key, value in extra.items():
            setattr(snap, key, value)
        if not decision.should_trigger or decision.action is None:
            return CheckOutcome(address, "skip", decision.reason, snapshot=snap)

        client = self._client(address)
        signature = await client.execute(decision.action)
        snap.last_triggered = now_ms
        snap.last_signature = signature
        snap = await self._after_trigger(client, snap)
        logger.info(
            "TRIGGER_FIRED kind=%s address=%s action=%s tx=%s",
            self.kind.value,
            address,
            decision.action.kind.value,
            signature,
        )
        await self._alert_trigger(address, decision, signature, snap)
        return CheckOutcome(address, "trigger", decision.reason, snapshot=snap, signature=signature)

    @abstractmethod
    async def _evaluate(
        self,
        account: MonitoredAccount,
        state: AccountState,
        now_ms: int,
    ) -> tuple[TriggerDecision, dict[str, Any]]:
        raise NotImplementedError

    async def _after_trigger(self, client: AutomationProgramClient, snap: CacheSnapshot) -> CacheSnapshot:
        return snap

    async def _alert_trigger(self, address: str, decision: TriggerDecision, signature: str, snap: CacheSnapshot) -> None:
        if self.alerter is None:
            return
        try:
            await self.alerter.notify_trigger(self.kind.value, address, decision.action.kind.value, signature, snap)
        except Exception as exc:
            logger.warning("ALERT_FAILED kind=%s address=%s err=%s", self.kind.value, short_address(address), exc)

    async def _alert_failure(self, address: str, error: AutomationError) -> None:
        if self.alerter is None:
            return
        try:
            await self.alerter.notify_failure(self.kind.value, address, error)
        except Exception as exc:
            logger.warning("ALERT_FAILED kind=%s address=%s err=%s", self.kind.value, short_address(address), exc)

    def add_account_to_monitor(self, address: str) -> bool:
        key = normalize_address(address)
        if not is_valid_pubkey(key):
            return False
        added = self.registry.add(key)
        if added:
            logger.info("ACCOUNT_ADDED kind=%s address=%s", self.kind.value, key)
        return added

    def remove_account_from_monitor(self, address: str) -> bool:
        key = normalize_address(address)
        removed = self.registry.remove(key)
        if removed:
            self._snapshots.pop(key, None)
            self._clients.pop(key, None)
            self.last_decisions.pop(key, None)
            logger.info("ACCOUNT_REMOVED kind=%s address=%s", self.kind.value, key)
        return removed

    def get_account_status(self, address: str) -> CacheSnapshot | None:
        key = normalize_address(address)
        if key not in self.registry:
            return None
        snap = self._snapshots.get(key)
        return replace(snap) if snap is not None else None

    def get_monitored_accounts(self) -> list[str]:
        return self.registry.list()


class ProtectionController(AutomationController):
    kind = AccountKind.PROTECTION
    cache_key = config.PROTECTION_CACHE_KEY

    def _configured_addresses(self) -> list[str]:
        return list(config.PROTECTION_ACCOUNTS)

    async def _evaluate(self, account, state: ProtectionState, now_ms):
        return evaluate_protection(state, now_ms), {}

    async def _after_trigger(self, client: AutomationProgramClient, snap: CacheSnapshot) -> CacheSnapshot:
        """Re-read so the snapshot carries the post-repay health factor."""
        try:
            refreshed = decode_account(self.kind, await self.gateway.get_account_bytes(client.account_address))
        except AutomationError as exc:
            logger.warning(
                "POST_TRIGGER_READ_FAILED kind=%s address=%s code=%s",
                self.kind.value,
                client.account_address,
                exc.code,
            )
            return snap
        logger.info(
            "HEALTH_FACTOR_UPDATED address=%s before=%s after=%s",
            client.account_address,
            snap.health_factor,
            refreshed.health_factor,
        )
        return snap.with_state(refreshed)


class DCAController(AutomationController):
    kind = AccountKind.DCA
    cache_key = config.DCA_CACHE_KEY

    def _configured_addresses(self) -> list[str]:
        return list(config.DCA_ACCOUNTS)

    async def _evaluate(self, account, state: DCAState, now_ms):
        return evaluate_dca(state, account.last_triggered_at, now_ms), {}


class PriceTradeController(AutomationController):
    kind = AccountKind.PRICE_TRADE
    cache_key = config.PRICE_TRADE_CACHE_KEY

    def __init__(self, gateway: ChainGateway, cache: CacheStore, *, price_source: PriceSource, **kwargs: Any) -> None:
        if price_source is None:
            raise ConfigurationError("price_trade controller requires a price source")
        super().__init__(gateway, cache, **kwargs)
        self.price_source = price_source
        self.price_scale = float(config.PRICE_TRADE_PRICE_SCALE)

    def _configured_addresses(self) -> list[str]:
        return list(config.PRICE_TRADE_ACCOUNTS)

    async def _evaluate(self, account, state: PriceTradeState, now_ms):
        if not state.enabled or state.target_price <= 0:
            # Nothing to compare against; avoid a quote round trip.
            return evaluate_price_trade(state, 0.0), {}
        quote = await self.price_source.current_price(state.token_address)
        scaled = float(quote) * self.price_scale
        return evaluate_price_trade(state, scaled), {"last_price": scaled}
