"""Solana chain gateway: raw account reads and signed instruction submission."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Sequence

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

import config
from trading.errors import AccountNotFound, ChainReadError, ConfigurationError, SubmissionError
from utils.addressing import normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountMetaSpec:
    pubkey: str
    is_signer: bool
    is_writable: bool


def load_keypair(secret: str) -> Keypair:
    """Load a signer from a base58 secret or a solana-keygen JSON byte array."""
    raw = str(secret or "").strip()
    if not raw:
        raise ConfigurationError("SOLANA_PRIVATE_KEY/WALLET_PRIVATE_KEY is empty")
    try:
        if raw.startswith("["):
            key_bytes = bytes(json.loads(raw))
            return Keypair.from_bytes(key_bytes)
        return Keypair.from_base58_string(raw)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"signing key could not be decoded: {exc}") from exc


class ChainGateway:
    """Interface consumed by the control loop and the program clients."""

    @property
    def payer(self) -> str:
        raise NotImplementedError

    async def get_account_bytes(self, address: str) -> bytes:
        raise NotImplementedError

    async def submit_instruction(
        self,
        program_id: str,
        accounts: Sequence[AccountMetaSpec],
        data: bytes,
        extra_signers: Iterable[Keypair] = (),
    ) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class SolanaChainGateway(ChainGateway):
    def __init__(
        self,
        keypair: Keypair,
        *,
        rpc_urls: Sequence[str] | None = None,
        commitment: str | None = None,
        timeout_seconds: float | None = None,
        read_retry_delays: Sequence[float] | None = None,
    ) -> None:
        urls = [u for u in (rpc_urls or [config.SOLANA_RPC_URL, config.RPC_SECONDARY]) if u]
        if not urls:
            raise ConfigurationError("SOLANA_RPC_URL/RPC_SECONDARY are not configured")
        self._keypair = keypair
        self._urls = urls
        self._url_index = 0
        self._commitment = Commitment(commitment or config.RPC_COMMITMENT)
        self._timeout = float(timeout_seconds or config.RPC_TIMEOUT_SECONDS)
        self._read_retry_delays = list(read_retry_delays if read_retry_delays is not None else config.RPC_READ_RETRY_DELAYS)
        self._clients: dict[str, AsyncClient] = {}

    @classmethod
    def from_config(cls) -> "SolanaChainGateway":
        return cls(load_keypair(config.SOLANA_PRIVATE_KEY))

    @property
    def payer(self) -> str:
        return str(self._keypair.pubkey())

    def _client(self) -> AsyncClient:
        url = self._urls[self._url_index]
        client = self._clients.get(url)
        if client is None:
            client = AsyncClient(url, commitment=self._commitment, timeout=self._timeout)
            self._clients[url] = client
        return client

    def _rotate_provider(self) -> None:
        if len(self._urls) <= 1:
            return
        self._url_index = (self._url_index + 1) % len(self._urls)
        logger.info("RPC_ROTATE provider_index=%s", self._url_index)

    async def _read_with_backoff(self, call: Callable[[AsyncClient], Awaitable[Any]], op_name: str) -> Any:
        delays = self._read_retry_delays or [0.0]
        last_error: Exception | None = None
        for attempt, delay in enumerate(delays, start=1):
            try:
                return await call(self._client())
            except Exception as exc:  # pragma: no cover - network/runtime dependent
                last_error = exc
                if attempt < len(delays):
                    logger.debug("RPC_RETRY op=%s attempt=%s/%s err=%s", op_name, attempt, len(delays), exc)
                    self._rotate_provider()
                    await asyncio.sleep(delay)
        raise ChainReadError(f"{op_name} failed after retries: {last_error}")

    async def get_account_bytes(self, address: str) -> bytes:
        key = normalize_address(address)
        try:
            pubkey = Pubkey.from_string(key)
        except ValueError as exc:
            raise AccountNotFound(key) from exc
        resp = await self._read_with_backoff(
            lambda client: client.get_account_info(pubkey, commitment=self._commitment),
            f"getAccountInfo[{key}]",
        )
        if resp is None or resp.value is None:
            raise AccountNotFound(key)
        return bytes(resp.value.data)

    async def submit_instruction(
        self,
        program_id: str,
        accounts: Sequence[AccountMetaSpec],
        data: bytes,
        extra_signers: Iterable[Keypair] = (),
    ) -> str:
        """Sign, send and wait for confirmation. Never retried here: a resend could double-execute."""
        try:
            ix = Instruction(
                Pubkey.from_string(program_id),
                bytes(data),
                [
                    AccountMeta(Pubkey.from_string(meta.pubkey), is_signer=meta.is_signer, is_writable=meta.is_writable)
                    for meta in accounts
                ],
            )
        except ValueError as exc:
            raise SubmissionError(f"invalid instruction accounts: {exc}") from exc

        signers = [self._keypair, *extra_signers]
        client = self._client()
        try:
            blockhash_resp = await client.get_latest_blockhash(commitment=self._commitment)
            blockhash = blockhash_resp.value.blockhash
            last_valid_height = blockhash_resp.value.last_valid_block_height
            msg = MessageV0.try_compile(self._keypair.pubkey(), [ix], [], blockhash)
            tx = VersionedTransaction(msg, signers)
            # Default opts: preflight on, at the client commitment.
            sig_resp = await client.send_raw_transaction(bytes(tx))
            signature = sig_resp.value
            confirm_resp = await asyncio.wait_for(
                client.confirm_transaction(
                    signature,
                    commitment=self._commitment,
                    last_valid_block_height=last_valid_height,
                ),
                timeout=float(config.TX_CONFIRM_TIMEOUT_SECONDS),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise SubmissionError(f"tx_send_failed program={program_id} err={exc}") from exc

        statuses = list(getattr(confirm_resp, "value", None) or [])
        status = statuses[0] if statuses else None
        if status is not None and getattr(status, "err", None) is not None:
            raise SubmissionError(f"tx_failed sig={signature} err={status.err}")
        return str(signature)

    async def close(self) -> None:
        clients = list(self._clients.values())
        self._clients = {}
        for client in clients:
            try:
                await client.close()
            except Exception as exc:  # pragma: no cover - shutdown path
                logger.debug("RPC client close failed: %s", exc)
