"""Byte layouts for SIFTTT automation accounts and instruction payloads.

Account layouts are a contract with the on-chain program and must stay
bit-exact. All integers are little-endian u64; public keys are raw 32 bytes.

    protection   [0:8) header  [8:16) health  [16:24) trigger  [24:32) target  [32] enabled
    dca          [40:48) interval  [48:80) token  [80:88) amount  [88] enabled
    price trade  [89:97) target price  [97:129) token  [129:137) amount  [137] enabled

Instruction payloads are ``discriminator(8) ++ fields`` with no length prefix.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import config
from trading.errors import DecodeError, InvalidParameters
from utils.addressing import pubkey_bytes, pubkey_from_bytes

U64_MAX = (1 << 64) - 1
_U64 = struct.Struct("<Q")


class AccountKind(str, Enum):
    PROTECTION = "protection"
    DCA = "dca"
    PRICE_TRADE = "price_trade"


@dataclass(frozen=True)
class ProtectionState:
    health_factor: int
    trigger_health_factor: int
    target_health_factor: int
    automation_enabled: bool


@dataclass(frozen=True)
class DCAState:
    interval_seconds: int
    token_address: str
    token_amount: int
    enabled: bool


@dataclass(frozen=True)
class PriceTradeState:
    target_price: int
    token_address: str
    token_amount: int
    enabled: bool


AccountState = ProtectionState | DCAState | PriceTradeState

PROTECTION_HEADER_SIZE = 8
PROTECTION_MIN_SIZE = 33
DCA_MIN_SIZE = 89
PRICE_TRADE_MIN_SIZE = 138

MIN_ACCOUNT_SIZE: dict[AccountKind, int] = {
    AccountKind.PROTECTION: PROTECTION_MIN_SIZE,
    AccountKind.DCA: DCA_MIN_SIZE,
    AccountKind.PRICE_TRADE: PRICE_TRADE_MIN_SIZE,
}


def _require_size(data: bytes, kind: AccountKind) -> None:
    need = MIN_ACCOUNT_SIZE[kind]
    if len(data) < need:
        raise DecodeError(f"{kind.value} account too short: have={len(data)} need={need}")


def _read_u64(data: bytes, offset: int) -> int:
    return int(_U64.unpack_from(data, offset)[0])


def _read_pubkey(data: bytes, offset: int) -> str:
    try:
        return pubkey_from_bytes(data[offset : offset + 32])
    except ValueError as exc:
        raise DecodeError(f"invalid pubkey at offset={offset}: {exc}") from exc


def decode_protection(data: bytes) -> ProtectionState:
    raw = bytes(data)
    _require_size(raw, AccountKind.PROTECTION)
    return ProtectionState(
        health_factor=_read_u64(raw, 8),
        trigger_health_factor=_read_u64(raw, 16),
        target_health_factor=_read_u64(raw, 24),
        automation_enabled=raw[32] != 0,
    )


def decode_dca(data: bytes) -> DCAState:
    raw = bytes(data)
    _require_size(raw, AccountKind.DCA)
    return DCAState(
        interval_seconds=_read_u64(raw, 40),
        token_address=_read_pubkey(raw, 48),
        token_amount=_read_u64(raw, 80),
        enabled=raw[88] != 0,
    )


def decode_price_trade(data: bytes) -> PriceTradeState:
    raw = bytes(data)
    _require_size(raw, AccountKind.PRICE_TRADE)
    return PriceTradeState(
        target_price=_read_u64(raw, 89),
        token_address=_read_pubkey(raw, 97),
        token_amount=_read_u64(raw, 129),
        enabled=raw[137] != 0,
    )


_DECODERS = {
    AccountKind.PROTECTION: decode_protection,
    AccountKind.DCA: decode_dca,
    AccountKind.PRICE_TRADE: decode_price_trade,
}


def decode_account(kind: AccountKind, data: bytes) -> AccountState:
    return _DECODERS[AccountKind(kind)](data)


def _pack_u64(value: int, name: str) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameters(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise InvalidParameters(f"{name} out of u64 range: {value}")
    return _U64.pack(value)


def _buffer(size: int, base: bytes | None) -> bytearray:
    buf = bytearray(base or b"")
    if len(buf) < size:
        buf.extend(b"\x00" * (size - len(buf)))
    return buf


def encode_protection(state: ProtectionState, header: bytes = b"\x00" * PROTECTION_HEADER_SIZE) -> bytes:
    if len(header) != PROTECTION_HEADER_SIZE:
        raise InvalidParameters(f"protection header must be {PROTECTION_HEADER_SIZE} bytes")
    return (
        bytes(header)
        + _pack_u64(state.health_factor, "health_factor")
        + _pack_u64(state.trigger_health_factor, "trigger_health_factor")
        + _pack_u64(state.target_health_factor, "target_health_factor")
        + (b"\x01" if state.automation_enabled else b"\x00")
    )


def encode_dca(state: DCAState, base: bytes | None = None) -> bytes:
    """Write DCA fields into ``base`` (or a zeroed buffer) at their fixed offsets."""
    buf = _buffer(DCA_MIN_SIZE, base)
    buf[40:48] = _pack_u64(state.interval_seconds, "interval_seconds")
    buf[48:80] = pubkey_bytes(state.token_address)
    buf[80:88] = _pack_u64(state.token_amount, "token_amount")
    buf[88] = 1 if state.enabled else 0
    return bytes(buf)


def encode_price_trade(state: PriceTradeState, base: bytes | None = None) -> bytes:
    buf = _buffer(PRICE_TRADE_MIN_SIZE, base)
    buf[89:97] = _pack_u64(state.target_price, "target_price")
    buf[97:129] = pubkey_bytes(state.token_address)
    buf[129:137] = _pack_u64(state.token_amount, "token_amount")
    buf[137] = 1 if state.enabled else 0
    return bytes(buf)


class InstructionKind(str, Enum):
    INITIALIZE = "initialize"
    SET_AUTOMATION = "set_automation"
    BORROW = "borrow"
    REPAY = "repay"
    AUTO_REPAY = "auto_repay"
    SET_DCA = "set_dca"
    MOCK_BUY = "mock_buy"
    SET_PRICE_TRADING = "set_price_trading"
    EXECUTE_PRICE_TRADE = "execute_price_trade"


_INSTRUCTION_FIELDS: dict[InstructionKind, tuple[tuple[str, str], ...]] = {
    InstructionKind.INITIALIZE: (),
    InstructionKind.SET_AUTOMATION: (("trigger_health_factor", "u64"), ("target_health_factor", "u64")),
    InstructionKind.BORROW: (),
    InstructionKind.REPAY: (),
    InstructionKind.AUTO_REPAY: (),
    InstructionKind.SET_DCA: (("interval_seconds", "u64"), ("token_address", "pubkey"), ("token_amount", "u64")),
    InstructionKind.MOCK_BUY: (("token_address", "pubkey"), ("token_amount", "u64")),
    InstructionKind.SET_PRICE_TRADING: (("target_price", "u64"), ("token_address", "pubkey"), ("token_amount", "u64")),
    InstructionKind.EXECUTE_PRICE_TRADE: (("current_price", "u64"),),
}


def discriminator(kind: InstructionKind) -> bytes:
    tag = bytes(getattr(config, f"DISCRIMINATOR_{InstructionKind(kind).name}"))
    if len(tag) != 8:
        raise InvalidParameters(f"discriminator for {kind.value} must be 8 bytes")
    return tag


def encode_instruction(kind: InstructionKind, *values: Any) -> bytes:
    kind = InstructionKind(kind)
    layout = _INSTRUCTION_FIELDS[kind]
    if len(values) != len(layout):
        raise InvalidParameters(f"{kind.value} takes {len(layout)} fields, got {len(values)}")
    parts = [discriminator(kind)]
    for (name, field_type), value in zip(layout, values):
        if field_type == "u64":
            parts.append(_pack_u64(value, name))
        else:
            try:
                parts.append(pubkey_bytes(value))
            except ValueError as exc:
                raise InvalidParameters(f"{name} is not a valid public key: {value!r}") from exc
    return b"".join(parts)


@dataclass(frozen=True)
class InstructionSpec:
    kind: InstructionKind
    fields: tuple[Any, ...] = field(default_factory=tuple)

    def encode(self) -> bytes:
        return encode_instruction(self.kind, *self.fields)
