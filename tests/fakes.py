"""In-memory collaborators for controller and client tests."""

from __future__ import annotations

import asyncio
from typing import Callable

import config
from trading.account_codec import (
    DCAState,
    PriceTradeState,
    ProtectionState,
    encode_dca,
    encode_price_trade,
    encode_protection,
)
from trading.chain_gateway import ChainGateway
from trading.errors import AccountNotFound, AutomationError, SubmissionError
from utils.addressing import pubkey_from_bytes


def make_address(seed: int) -> str:
    return pubkey_from_bytes(bytes([seed % 256]) * 32)


PAYER = make_address(200)
TOKEN = make_address(77)


class ConfigPatchMixin:
    def setUp(self) -> None:
        super().setUp()
        self._cfg_old: dict[str, object] = {}

    def patch_cfg(self, **kwargs: object) -> None:
        for key, value in kwargs.items():
            if key not in self._cfg_old:
                self._cfg_old[key] = getattr(config, key, None)
            setattr(config, key, value)

    def tearDown(self) -> None:
        for key, value in self._cfg_old.items():
            setattr(config, key, value)
        super().tearDown()


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeGateway(ChainGateway):
    def __init__(self) -> None:
        self.accounts: dict[str, bytes | AutomationError] = {}
        self.submitted: list[tuple[str, list, bytes]] = []
        self.extra_signers: list[tuple] = []
        self.reads: list[str] = []
        self.fail_submit: AutomationError | None = None
        self.on_submit: Callable[[str, bytes], None] | None = None
        self.read_gate: asyncio.Event | None = None
        self.closed = False

    @property
    def payer(self) -> str:
        return PAYER

    def set_protection(self, address: str, state: ProtectionState) -> None:
        self.accounts[address] = encode_protection(state)

    def set_dca(self, address: str, state: DCAState) -> None:
        self.accounts[address] = encode_dca(state)

    def set_price_trade(self, address: str, state: PriceTradeState) -> None:
        self.accounts[address] = encode_price_trade(state)

    async def get_account_bytes(self, address: str) -> bytes:
        self.reads.append(address)
        if self.read_gate is not None:
            await self.read_gate.wait()
        value = self.accounts.get(address)
        if value is None:
            raise AccountNotFound(address)
        if isinstance(value, AutomationError):
            raise value
        return value

    async def submit_instruction(self, program_id, accounts, data, extra_signers=()) -> str:
        if self.fail_submit is not None:
            raise self.fail_submit
        self.submitted.append((program_id, list(accounts), bytes(data)))
        self.extra_signers.append(tuple(extra_signers))
        account = accounts[0].pubkey if accounts else ""
        if self.on_submit is not None:
            self.on_submit(account, bytes(data))
        return f"sig-{len(self.submitted)}"

    async def close(self) -> None:
        self.closed = True


def failing_submit() -> SubmissionError:
    return SubmissionError("tx_failed sig=none err=custom program error: 0x1")
