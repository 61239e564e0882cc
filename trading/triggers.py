"""Trigger predicates for automation accounts.

Pure functions: no I/O and no mutation. The control loop owns the decision
to record that a trigger fired.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from trading.account_codec import DCAState, InstructionKind, InstructionSpec, PriceTradeState, ProtectionState


@dataclass(frozen=True)
class TriggerDecision:
    should_trigger: bool
    action: InstructionSpec | None = None
    reason: str = ""


def evaluate_protection(state: ProtectionState, now_ms: int) -> TriggerDecision:  # noqa: ARG001
    if not state.automation_enabled:
        return TriggerDecision(False, reason="automation_disabled")
    if state.trigger_health_factor <= 0:
        return TriggerDecision(False, reason="trigger_not_configured")
    if state.health_factor > state.trigger_health_factor:
        return TriggerDecision(False, reason="health_factor_ok")
    return TriggerDecision(True, InstructionSpec(InstructionKind.AUTO_REPAY), reason="health_factor_low")


def evaluate_dca(state: DCAState, last_triggered_at_ms: int | None, now_ms: int) -> TriggerDecision:
    if not state.enabled:
        return TriggerDecision(False, reason="dca_disabled")
    if state.interval_seconds <= 0:
        return TriggerDecision(False, reason="interval_not_configured")
    # First-ever check counts as an elapsed interval.
    if last_triggered_at_ms is not None and (now_ms - last_triggered_at_ms) < state.interval_seconds * 1000:
        return TriggerDecision(False, reason="interval_pending")
    action = InstructionSpec(InstructionKind.MOCK_BUY, (state.token_address, state.token_amount))
    return TriggerDecision(True, action, reason="interval_elapsed")


def evaluate_price_trade(state: PriceTradeState, current_price: float) -> TriggerDecision:
    """Buy-the-dip only: fire when the scaled quote is at or below the target."""
    if not state.enabled:
        return TriggerDecision(False, reason="price_trading_disabled")
    if state.target_price <= 0:
        return TriggerDecision(False, reason="target_not_configured")
    if not math.isfinite(current_price) or current_price < 0:
        return TriggerDecision(False, reason="price_invalid")
    if current_price > state.target_price:
        return TriggerDecision(False, reason="price_above_target")
    action = InstructionSpec(InstructionKind.EXECUTE_PRICE_TRADE, (int(math.floor(current_price)),))
    return TriggerDecision(True, action, reason="price_at_or_below_target")
