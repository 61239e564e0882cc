from __future__ import annotations

import unittest

from tests.fakes import make_address
from utils import log_contracts

A = make_address(1)


class LogContractsTests(unittest.TestCase):
    def test_trigger_row_maps_reason_to_action_code(self) -> None:
        row = log_contracts.check_decision_event(
            kind="protection",
            address=A,
            decision="trigger",
            reason="health_factor_low",
            ts_ms=1_700_000_000_000,
            cycle_id="c1",
        )
        self.assertEqual(row["schema"], log_contracts.SCHEMA_CHECK_DECISION)
        self.assertEqual(row["schema_version"], log_contracts.LOG_SCHEMA_VERSION)
        self.assertEqual(row["ts"], 1_700_000_000_000)
        self.assertEqual(row["reason_code"], "TRIGGER_AUTO_REPAY")
        self.assertEqual(row["reason_category"], "trigger")
        self.assertTrue(row["trace_id"].startswith("chk_"))

    def test_skip_and_error_codes(self) -> None:
        skip = log_contracts.check_decision_event(kind="dca", address=A, decision="skip", reason="interval_pending")
        self.assertEqual(skip["reason_code"], "SKIP_INTERVAL_PENDING")
        err = log_contracts.check_decision_event(kind="dca", address=A, decision="error", reason="E_ACCOUNT_NOT_FOUND")
        self.assertEqual(err["reason_code"], "ERR_ACCOUNT_NOT_FOUND")
        self.assertEqual(err["reason_severity"], "WARN")
        unknown = log_contracts.check_decision_event(kind="dca", address=A, decision="error", reason="E_SOMETHING_NEW")
        self.assertEqual(unknown["reason_code"], "ERR_SOMETHING_NEW")
        self.assertEqual(unknown["reason_category"], "err")

    def test_trace_id_is_stable_for_same_inputs(self) -> None:
        kwargs = dict(kind="price_trade", address=A, decision="skip", reason="price_above_target", ts_ms=5, cycle_id="x")
        self.assertEqual(
            log_contracts.check_decision_event(**kwargs)["trace_id"],
            log_contracts.check_decision_event(**kwargs)["trace_id"],
        )

    def test_unknown_decision_rejected(self) -> None:
        with self.assertRaises(ValueError):
            log_contracts.check_decision_event(kind="dca", address=A, decision="maybe", reason="")

    def test_format_event_fields(self) -> None:
        row = log_contracts.check_decision_event(kind="dca", address=A, decision="skip", reason="dca_disabled")
        self.assertEqual(
            log_contracts.format_event_fields(row),
            f"kind=dca address={A} decision=skip reason_code=SKIP_DCA_DISABLED",
        )


if __name__ == "__main__":
    unittest.main()
