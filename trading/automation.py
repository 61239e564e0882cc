"""Program clients for the SIFTTT automation program (protection, DCA, price trade)."""

from __future__ import annotations

import logging

from solders.keypair import Keypair

import config
from trading.account_codec import (
    AccountKind,
    DCAState,
    InstructionKind,
    InstructionSpec,
    PriceTradeState,
    ProtectionState,
    decode_account,
    encode_instruction,
)
from trading.chain_gateway import AccountMetaSpec, ChainGateway
from trading.errors import ConfigurationError
from trading.params import DCAParams, PriceTradeParams, ProtectionParams
from utils.addressing import is_valid_pubkey, normalize_address, short_address

logger = logging.getLogger(__name__)


class AutomationProgramClient:
    kind: AccountKind = AccountKind.PROTECTION

    def __init__(
        self,
        gateway: ChainGateway,
        account_address: str,
        *,
        program_id: str | None = None,
    ) -> None:
        account = normalize_address(account_address)
        if not is_valid_pubkey(account):
            raise ConfigurationError(f"{self.kind.value} account address is invalid: {account_address!r}")
        program = normalize_address(program_id or config.SIFTTT_PROGRAM_ID)
        if not is_valid_pubkey(program):
            raise ConfigurationError(f"SIFTTT_PROGRAM_ID is invalid: {program!r}")
        self.gateway = gateway
        self.account_address = account
        self.program_id = program

    @property
    def signer(self) -> str:
        return self.gateway.payer

    def _default_accounts(self) -> list[AccountMetaSpec]:
        return [
            AccountMetaSpec(self.account_address, is_signer=False, is_writable=True),
            AccountMetaSpec(self.signer, is_signer=True, is_writable=False),
        ]

    async def _submit(
        self,
        instruction: InstructionKind,
        *fields: object,
        accounts: list[AccountMetaSpec] | None = None,
        extra_signers: tuple[Keypair, ...] = (),
    ) -> str:
        data = encode_instruction(instruction, *fields)
        metas = accounts if accounts is not None else self._default_accounts()
        signature = await self.gateway.submit_instruction(self.program_id, metas, data, extra_signers)
        logger.info(
            "IX_SUBMITTED kind=%s ix=%s account=%s tx=%s",
            self.kind.value,
            instruction.value,
            short_address(self.account_address),
            signature,
        )
        return signature

    async def execute(self, action: InstructionSpec) -> str:
        """Submit a trigger action against this account with the default account metas."""
        return await self._submit(action.kind, *action.fields)

    async def get_state(self):
        raw = await self.gateway.get_account_bytes(self.account_address)
        return decode_account(self.kind, raw)


class ProtectionClient(AutomationProgramClient):
    kind = AccountKind.PROTECTION

    async def initialize(self, new_account: Keypair) -> str:
        """Create the automation account. ``new_account`` becomes its address and co-signs."""
        accounts = [
            AccountMetaSpec(str(new_account.pubkey()), is_signer=True, is_writable=True),
            AccountMetaSpec(self.signer, is_signer=True, is_writable=True),
            AccountMetaSpec(config.SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        return await self._submit(InstructionKind.INITIALIZE, accounts=accounts, extra_signers=(new_account,))

    async def set_automation(self, params: ProtectionParams) -> str:
        return await self._submit(
            InstructionKind.SET_AUTOMATION,
            params.trigger_health_factor,
            params.target_health_factor,
        )

    async def borrow(self) -> str:
        return await self._submit(InstructionKind.BORROW)

    async def repay(self) -> str:
        return await self._submit(InstructionKind.REPAY)

    async def auto_repay(self) -> str:
        return await self._submit(InstructionKind.AUTO_REPAY)

    async def get_state(self) -> ProtectionState:
        return await super().get_state()


class DCAClient(AutomationProgramClient):
    kind = AccountKind.DCA

    async def set_dca(self, params: DCAParams) -> str:
        return await self._submit(
            InstructionKind.SET_DCA,
            params.interval_seconds,
            params.token_address,
            params.token_amount,
        )

    async def mock_buy(self, token_address: str, token_amount: int) -> str:
        return await self._submit(InstructionKind.MOCK_BUY, normalize_address(token_address), int(token_amount))

    async def get_state(self) -> DCAState:
        return await super().get_state()


class PriceTradeClient(AutomationProgramClient):
    kind = AccountKind.PRICE_TRADE

    async def set_price_trading(self, params: PriceTradeParams) -> str:
        return await self._submit(
            InstructionKind.SET_PRICE_TRADING,
            params.target_price,
            params.token_address,
            params.token_amount,
        )

    async def execute_price_trade(self, current_price: int) -> str:
        return await self._submit(InstructionKind.EXECUTE_PRICE_TRADE, int(current_price))

    async def get_state(self) -> PriceTradeState:
        return await super().get_state()


CLIENT_CLASSES: dict[AccountKind, type[AutomationProgramClient]] = {
    AccountKind.PROTECTION: ProtectionClient,
    AccountKind.DCA: DCAClient,
    AccountKind.PRICE_TRADE: PriceTradeClient,
}


def client_for(kind: AccountKind, gateway: ChainGateway, account_address: str) -> AutomationProgramClient:
    return CLIENT_CLASSES[AccountKind(kind)](gateway, account_address)
