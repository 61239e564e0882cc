"""Application configuration."""

import os
from pathlib import Path
from typing import Dict, List, Set

from dotenv import load_dotenv


def _load_dotenv_safe(dotenv_path: str | None = None, *, override: bool = False) -> None:
    """Load dotenv using UTF-8-SIG so BOM-prefixed files don't break first key parsing."""
    try:
        load_dotenv(dotenv_path=dotenv_path, override=override, encoding="utf-8-sig")
    except TypeError:
        # Older python-dotenv versions may not expose the `encoding` argument.
        load_dotenv(dotenv_path=dotenv_path, override=override)


# Load base environment first, then optional per-instance override env file.
_load_dotenv_safe()
_BOT_ENV_FILE = os.getenv("BOT_ENV_FILE", "").strip()
if _BOT_ENV_FILE:
    _bot_env_path = Path(_BOT_ENV_FILE).expanduser()
    if not _bot_env_path.is_absolute():
        _bot_env_path = (Path.cwd() / _bot_env_path).resolve()
    if not _bot_env_path.exists():
        raise FileNotFoundError(f"BOT_ENV_FILE does not exist: {_bot_env_path}")
    if not _bot_env_path.is_file():
        raise IsADirectoryError(f"BOT_ENV_FILE is not a file: {_bot_env_path}")
    try:
        _load_dotenv_safe(str(_bot_env_path), override=True)
    except (OSError, UnicodeError, ValueError) as exc:
        raise RuntimeError(f"Failed to load BOT_ENV_FILE '{_bot_env_path}': {exc}") from exc


def _parse_csv(raw: str) -> List[str]:
    out: List[str] = []
    for chunk in str(raw or "").split(","):
        item = chunk.strip()
        if item and item not in out:
            out.append(item)
    return out


def _parse_int_set(raw: str) -> Set[int]:
    return {int(x.strip()) for x in str(raw or "").split(",") if x.strip().lstrip("-").isdigit()}


def _parse_price_map(raw: str) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for chunk in str(raw or "").split(","):
        item = chunk.strip()
        if not item or ":" not in item:
            continue
        mint_part, price_part = item.rsplit(":", 1)
        mint = mint_part.strip()
        if not mint:
            continue
        try:
            out[mint] = max(0.0, float(price_part.strip()))
        except ValueError:
            continue
    return out


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _discriminator(name: str, default: bytes) -> bytes:
    raw = os.getenv(name, "").strip().lower().replace("0x", "")
    if not raw:
        return default
    try:
        value = bytes.fromhex(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be 16 hex chars, got {raw!r}") from exc
    if len(value) != 8:
        raise ValueError(f"{name} must be exactly 8 bytes, got {len(value)}")
    return value


# Chain
SOLANA_RPC_URL = (
    os.getenv("SOLANA_RPC_URL", "").strip()
    or os.getenv("RPC_PRIMARY", "").strip()
    or "https://api.mainnet-beta.solana.com"
)
RPC_SECONDARY = os.getenv("RPC_SECONDARY", "").strip()
RPC_TIMEOUT_SECONDS = max(3, int(os.getenv("RPC_TIMEOUT_SECONDS", "10")))
RPC_COMMITMENT = os.getenv("RPC_COMMITMENT", "confirmed").strip().lower() or "confirmed"
RPC_READ_RETRY_DELAYS = [1.0, 2.0, 4.0]
TX_CONFIRM_TIMEOUT_SECONDS = max(10, int(os.getenv("TX_CONFIRM_TIMEOUT_SECONDS", "60")))

SIFTTT_PROGRAM_ID = os.getenv("SIFTTT_PROGRAM_ID", "BU5JMEZ6mwqjSBMWTrh2NF96SMHdjz5JU3nk526LjPdA").strip()
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

# Signing key: base58 secret (64 bytes) or a JSON byte array as written by solana-keygen.
SOLANA_PRIVATE_KEY = (
    os.getenv("SOLANA_PRIVATE_KEY", "").strip()
    or os.getenv("WALLET_PRIVATE_KEY", "").strip()
)

# Monitored accounts. Every kind falls back to the shared SIFTTT_ACCOUNT record.
SIFTTT_ACCOUNT = os.getenv("SIFTTT_ACCOUNT", "").strip()
PROTECTION_ACCOUNTS = _parse_csv(os.getenv("PROTECTION_ACCOUNTS", SIFTTT_ACCOUNT))
DCA_ACCOUNTS = _parse_csv(os.getenv("DCA_ACCOUNTS", SIFTTT_ACCOUNT))
PRICE_TRADE_ACCOUNTS = _parse_csv(os.getenv("PRICE_TRADE_ACCOUNTS", SIFTTT_ACCOUNT))
PROTECTION_ENABLED = _env_bool("PROTECTION_ENABLED", "true")
DCA_ENABLED = _env_bool("DCA_ENABLED", "true")
PRICE_TRADE_ENABLED = _env_bool("PRICE_TRADE_ENABLED", "true")

# Control loop
CHECK_INTERVAL_SECONDS = max(5, int(os.getenv("CHECK_INTERVAL_SECONDS", "60")))
FORCE_CHECK_RETRY_DELAY_SECONDS = max(0.05, float(os.getenv("FORCE_CHECK_RETRY_DELAY_SECONDS", "0.5")))
FORCE_CHECK_MAX_WAIT_SECONDS = max(1.0, float(os.getenv("FORCE_CHECK_MAX_WAIT_SECONDS", "120")))
CHECK_CONCURRENCY = max(1, int(os.getenv("CHECK_CONCURRENCY", "4")))

# Cache
STATE_DIR = os.getenv("STATE_DIR", "data")
AUTOMATION_CACHE_FILE = os.getenv("AUTOMATION_CACHE_FILE", os.path.join(STATE_DIR, "automation_cache.json"))
CACHE_LOCK_TIMEOUT_SECONDS = max(0.05, float(os.getenv("CACHE_LOCK_TIMEOUT_SECONDS", "2.0")))
PROTECTION_CACHE_KEY = "protection_accounts"
DCA_CACHE_KEY = "dca_accounts"
PRICE_TRADE_CACHE_KEY = "price_trade_accounts"

# Price source
PRICE_SOURCE = os.getenv("PRICE_SOURCE", "dexscreener").strip().lower()
STATIC_PRICES = _parse_price_map(os.getenv("STATIC_PRICES", ""))
PRICE_CHAIN_ID = os.getenv("PRICE_CHAIN_ID", "solana").strip().lower()
PRICE_TRADE_PRICE_SCALE = max(1e-12, float(os.getenv("PRICE_TRADE_PRICE_SCALE", "1")))
DEXSCREENER_API = os.getenv("DEXSCREENER_API", "https://api.dexscreener.com/latest/dex")
DEX_TIMEOUT = int(os.getenv("DEX_TIMEOUT", "15"))
DEX_RETRIES = int(os.getenv("DEX_RETRIES", "3"))

HTTP_CONNECTOR_LIMIT = max(1, int(os.getenv("HTTP_CONNECTOR_LIMIT", "30")))
HTTP_DEFAULT_CONCURRENCY = max(1, int(os.getenv("HTTP_DEFAULT_CONCURRENCY", "8")))
HTTP_RETRY_ATTEMPTS = max(1, int(os.getenv("HTTP_RETRY_ATTEMPTS", "3")))
HTTP_BACKOFF_BASE_SECONDS = max(0.05, float(os.getenv("HTTP_BACKOFF_BASE_SECONDS", "0.50")))
HTTP_BACKOFF_MAX_SECONDS = max(0.10, float(os.getenv("HTTP_BACKOFF_MAX_SECONDS", "8.00")))
HTTP_JITTER_SECONDS = max(0.0, float(os.getenv("HTTP_JITTER_SECONDS", "0.25")))

# Instruction discriminators (8-byte tags). Protection tags are the Anchor
# method tags of the deployed program; DCA and price-trade tags are fixed bytes.
DISCRIMINATOR_INITIALIZE = _discriminator(
    "DISCRIMINATOR_INITIALIZE", bytes([175, 175, 109, 31, 13, 152, 155, 237])
)
DISCRIMINATOR_SET_AUTOMATION = _discriminator(
    "DISCRIMINATOR_SET_AUTOMATION", bytes([194, 143, 232, 225, 123, 107, 171, 62])
)
DISCRIMINATOR_BORROW = _discriminator("DISCRIMINATOR_BORROW", bytes([228, 253, 131, 202, 207, 116, 89, 18]))
DISCRIMINATOR_REPAY = _discriminator("DISCRIMINATOR_REPAY", bytes([234, 103, 67, 82, 208, 234, 219, 166]))
DISCRIMINATOR_AUTO_REPAY = _discriminator(
    "DISCRIMINATOR_AUTO_REPAY", bytes([112, 104, 176, 118, 250, 61, 48, 164])
)
DISCRIMINATOR_SET_DCA = _discriminator("DISCRIMINATOR_SET_DCA", bytes([102] * 8))
DISCRIMINATOR_MOCK_BUY = _discriminator("DISCRIMINATOR_MOCK_BUY", bytes([103] * 8))
DISCRIMINATOR_SET_PRICE_TRADING = _discriminator("DISCRIMINATOR_SET_PRICE_TRADING", bytes([104] * 8))
DISCRIMINATOR_EXECUTE_PRICE_TRADE = _discriminator("DISCRIMINATOR_EXECUTE_PRICE_TRADE", bytes([105] * 8))

# Operator surface
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
ADMIN_IDS = _parse_int_set(os.getenv("ADMIN_IDS", ""))
ALERT_CHAT_IDS = _parse_int_set(os.getenv("ALERT_CHAT_IDS", ",".join(str(x) for x in sorted(ADMIN_IDS))))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
APP_LOG_FILE = os.getenv("APP_LOG_FILE", os.path.join(LOG_DIR, "app.log"))
