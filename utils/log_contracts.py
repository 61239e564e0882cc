"""Stable structured rows for per-address check decisions."""

from __future__ import annotations

import hashlib
import re
import time
from typing import Any

LOG_SCHEMA_VERSION = "2026-10-01.v1"

SCHEMA_CHECK_DECISION = "check_decision.v1"

DECISIONS = ("trigger", "skip", "error")

_TRIGGER_REASON_CODES: dict[str, str] = {
    "health_factor_low": "TRIGGER_AUTO_REPAY",
    "interval_elapsed": "TRIGGER_MOCK_BUY",
    "price_at_or_below_target": "TRIGGER_EXECUTE_PRICE_TRADE",
}

_ERROR_CODE_OVERRIDES: dict[str, str] = {
    "E_DECODE": "ERR_DECODE",
    "E_ACCOUNT_NOT_FOUND": "ERR_ACCOUNT_NOT_FOUND",
    "E_CHAIN_READ": "ERR_CHAIN_READ",
    "E_SUBMISSION": "ERR_SUBMISSION",
    "E_NO_PRICE": "ERR_NO_PRICE",
    "E_CONFIG": "ERR_CONFIG",
    "E_INVALID_PARAMS": "ERR_INVALID_PARAMS",
}

REASON_CODE_TAXONOMY: dict[str, dict[str, str]] = {
    "TRIGGER_AUTO_REPAY": {"severity": "INFO", "category": "trigger", "title": "Health factor at or below trigger"},
    "TRIGGER_MOCK_BUY": {"severity": "INFO", "category": "trigger", "title": "DCA interval elapsed"},
    "TRIGGER_EXECUTE_PRICE_TRADE": {"severity": "INFO", "category": "trigger", "title": "Price at or below target"},
    "SKIP_AUTOMATION_DISABLED": {"severity": "INFO", "category": "skip", "title": "Protection automation disabled"},
    "SKIP_TRIGGER_NOT_CONFIGURED": {"severity": "INFO", "category": "skip", "title": "Trigger health factor is zero"},
    "SKIP_HEALTH_FACTOR_OK": {"severity": "INFO", "category": "skip", "title": "Health factor above trigger"},
    "SKIP_DCA_DISABLED": {"severity": "INFO", "category": "skip", "title": "DCA disabled"},
    "SKIP_INTERVAL_NOT_CONFIGURED": {"severity": "INFO", "category": "skip", "title": "DCA interval is zero"},
    "SKIP_INTERVAL_PENDING": {"severity": "INFO", "category": "skip", "title": "DCA interval not yet elapsed"},
    "SKIP_PRICE_TRADING_DISABLED": {"severity": "INFO", "category": "skip", "title": "Price trading disabled"},
    "SKIP_TARGET_NOT_CONFIGURED": {"severity": "INFO", "category": "skip", "title": "Target price is zero"},
    "SKIP_PRICE_INVALID": {"severity": "WARN", "category": "skip", "title": "Quote is not a finite price"},
    "SKIP_PRICE_ABOVE_TARGET": {"severity": "INFO", "category": "skip", "title": "Price above target"},
    "ERR_DECODE": {"severity": "WARN", "category": "error", "title": "Account bytes could not be decoded"},
    "ERR_ACCOUNT_NOT_FOUND": {"severity": "WARN", "category": "error", "title": "Account not found"},
    "ERR_CHAIN_READ": {"severity": "WARN", "category": "error", "title": "RPC read failed after retries"},
    "ERR_SUBMISSION": {"severity": "ERROR", "category": "error", "title": "Instruction submission failed"},
    "ERR_NO_PRICE": {"severity": "WARN", "category": "error", "title": "No price quote available"},
    "ERR_UNEXPECTED": {"severity": "ERROR", "category": "error", "title": "Unexpected failure"},
}


def _normalize_reason_text(value: Any) -> str:
    text = str(value or "").strip().lower()
    text = re.sub(r"[^a-z0-9]+", "_", text)
    return re.sub(r"_+", "_", text).strip("_")


def _sanitize_code_token(value: str) -> str:
    text = re.sub(r"[^A-Z0-9]+", "_", str(value or "").strip().upper())
    text = re.sub(r"_+", "_", text).strip("_")
    return text or "UNKNOWN"


def reason_code_for_decision(*, decision: str, reason: Any) -> str:
    raw = str(reason or "").strip()
    if decision == "error":
        upper = raw.upper()
        if upper in _ERROR_CODE_OVERRIDES:
            return _ERROR_CODE_OVERRIDES[upper]
        token = _sanitize_code_token(upper[2:] if upper.startswith("E_") else upper)
        return f"ERR_{token}"
    normalized = _normalize_reason_text(raw)
    if decision == "trigger":
        return _TRIGGER_REASON_CODES.get(normalized, f"TRIGGER_{_sanitize_code_token(normalized)}")
    return f"SKIP_{_sanitize_code_token(normalized)}"


def reason_code_meta(code: str) -> dict[str, str]:
    key = _sanitize_code_token(code)
    if key in REASON_CODE_TAXONOMY:
        return dict(REASON_CODE_TAXONOMY[key])
    category = key.split("_", 1)[0].lower() if "_" in key else "unknown"
    return {"severity": "INFO", "category": category, "title": key.replace("_", " ").title()}


def _digest_seed(*parts: Any) -> str:
    seed = "|".join(str(p or "").strip() for p in parts)
    return hashlib.sha1(seed.encode("utf-8", errors="ignore")).hexdigest()


def check_decision_event(
    *,
    kind: str,
    address: str,
    decision: str,
    reason: Any,
    ts_ms: int | None = None,
    cycle_id: str = "",
    **extra: Any,
) -> dict[str, Any]:
    if decision not in DECISIONS:
        raise ValueError(f"unknown decision: {decision!r}")
    ts = int(ts_ms if ts_ms is not None else time.time() * 1000)
    reason_text = str(reason or "")
    code = reason_code_for_decision(decision=decision, reason=reason_text)
    meta = reason_code_meta(code)
    row: dict[str, Any] = dict(extra)
    row.update(
        {
            "schema": SCHEMA_CHECK_DECISION,
            "schema_version": LOG_SCHEMA_VERSION,
            "ts": ts,
            "kind": str(kind),
            "address": str(address or "").strip(),
            "decision": decision,
            "reason": reason_text,
            "reason_code": code,
            "reason_severity": meta["severity"],
            "reason_category": meta["category"],
            "cycle_id": str(cycle_id or ""),
            "trace_id": f"chk_{_digest_seed(kind, address, cycle_id, ts)[:20]}",
        }
    )
    return row


def format_event_fields(row: dict[str, Any], keys: tuple[str, ...] = ("kind", "address", "decision", "reason_code")) -> str:
    """Render selected row fields as ``key=value`` pairs for a log line."""
    return " ".join(f"{key}={row.get(key, '')}" for key in keys)
