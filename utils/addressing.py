"""Address normalization helpers."""

from __future__ import annotations

from solders.pubkey import Pubkey


def normalize_address(value: str | None) -> str:
    """Normalize base58 account keys for internal maps/dedup (base58 is case-sensitive)."""
    return str(value or "").strip()


def is_valid_pubkey(value: str | None) -> bool:
    address = normalize_address(value)
    if not address:
        return False
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True


def pubkey_bytes(value: str | Pubkey) -> bytes:
    if isinstance(value, Pubkey):
        return bytes(value)
    return bytes(Pubkey.from_string(normalize_address(value)))


def pubkey_from_bytes(raw: bytes) -> str:
    return str(Pubkey.from_bytes(bytes(raw)))


def short_address(value: str | None, keep: int = 4) -> str:
    address = normalize_address(value)
    if len(address) <= keep * 2 + 3:
        return address
    return f"{address[:keep]}...{address[-keep:]}"
