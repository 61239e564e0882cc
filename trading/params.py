"""Validated instruction parameters.

Parameters arrive from an operator command, the CLI, or an upstream extractor
as loose mappings. They are validated once here; everything downstream takes
the typed struct.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from trading.account_codec import U64_MAX
from trading.errors import InvalidParameters
from utils.addressing import is_valid_pubkey, normalize_address


def _pick(raw: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in raw and raw[name] is not None:
            return raw[name]
    raise InvalidParameters(f"missing parameter: {names[0]}")


def _as_u64(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidParameters(f"{name} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidParameters(f"{name} must be a whole number, got {value}")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise InvalidParameters(f"{name} must be an integer, got {value!r}") from exc
    if not isinstance(value, int):
        raise InvalidParameters(f"{name} must be an integer")
    if value < 0 or value > U64_MAX:
        raise InvalidParameters(f"{name} out of u64 range: {value}")
    return value


def _as_pubkey(value: Any, name: str) -> str:
    address = normalize_address(value if isinstance(value, str) else "")
    if not is_valid_pubkey(address):
        raise InvalidParameters(f"{name} is not a valid public key: {value!r}")
    return address


@dataclass(frozen=True)
class ProtectionParams:
    trigger_health_factor: int
    target_health_factor: int

    def __post_init__(self) -> None:
        trigger = _as_u64(self.trigger_health_factor, "trigger_health_factor")
        target = _as_u64(self.target_health_factor, "target_health_factor")
        if target <= trigger:
            raise InvalidParameters(
                f"target_health_factor must be greater than trigger_health_factor ({target} <= {trigger})"
            )
        object.__setattr__(self, "trigger_health_factor", trigger)
        object.__setattr__(self, "target_health_factor", target)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ProtectionParams":
        return cls(
            trigger_health_factor=_pick(raw, "trigger_health_factor", "triggerHealthFactor"),
            target_health_factor=_pick(raw, "target_health_factor", "targetHealthFactor"),
        )


@dataclass(frozen=True)
class DCAParams:
    interval_seconds: int
    token_address: str
    token_amount: int

    def __post_init__(self) -> None:
        interval = _as_u64(self.interval_seconds, "interval_seconds")
        amount = _as_u64(self.token_amount, "token_amount")
        if interval <= 0:
            raise InvalidParameters("interval_seconds must be positive")
        if amount <= 0:
            raise InvalidParameters("token_amount must be positive")
        object.__setattr__(self, "interval_seconds", interval)
        object.__setattr__(self, "token_amount", amount)
        object.__setattr__(self, "token_address", _as_pubkey(self.token_address, "token_address"))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "DCAParams":
        return cls(
            interval_seconds=_pick(raw, "interval_seconds", "interval"),
            token_address=_pick(raw, "token_address", "tokenAddress"),
            token_amount=_pick(raw, "token_amount", "tokenAmount"),
        )


@dataclass(frozen=True)
class PriceTradeParams:
    target_price: int
    token_address: str
    token_amount: int

    def __post_init__(self) -> None:
        target = _as_u64(self.target_price, "target_price")
        amount = _as_u64(self.token_amount, "token_amount")
        if target <= 0:
            raise InvalidParameters("target_price must be positive")
        if amount <= 0:
            raise InvalidParameters("token_amount must be positive")
        object.__setattr__(self, "target_price", target)
        object.__setattr__(self, "token_amount", amount)
        object.__setattr__(self, "token_address", _as_pubkey(self.token_address, "token_address"))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PriceTradeParams":
        return cls(
            target_price=_pick(raw, "target_price", "targetPrice"),
            token_address=_pick(raw, "token_address", "tokenAddress"),
            token_amount=_pick(raw, "token_amount", "tokenAmount"),
        )
