from __future__ import annotations

import unittest
from unittest.mock import AsyncMock

from monitor.alerter import TriggerAlerter
from monitor.cache_store import CacheSnapshot
from tests.fakes import make_address
from trading.errors import SubmissionError

A = make_address(1)


class TriggerAlerterTests(unittest.IsolatedAsyncioTestCase):
    async def test_trigger_alert_reaches_every_chat(self) -> None:
        bot = AsyncMock()
        alerter = TriggerAlerter(bot, chat_ids=[2, 1])
        snap = CacheSnapshot(
            account_address=A,
            kind="protection",
            health_factor=95,
            trigger_health_factor=70,
            target_health_factor=90,
        )
        sent = await alerter.notify_trigger("protection", A, "auto_repay", "sig-1", snap)
        self.assertEqual(sent, 2)
        self.assertEqual([c.kwargs["chat_id"] for c in bot.send_message.await_args_list], [1, 2])
        text = bot.send_message.await_args_list[0].kwargs["text"]
        self.assertIn(A, text)
        self.assertIn("auto_repay", text)
        self.assertIn("Health factor: <b>95</b>", text)
        self.assertEqual(bot.send_message.await_args_list[0].kwargs["parse_mode"], "HTML")

    async def test_send_failures_are_counted_not_raised(self) -> None:
        bot = AsyncMock()
        bot.send_message.side_effect = [None, RuntimeError("blocked")]
        alerter = TriggerAlerter(bot, chat_ids=[1, 2])
        with self.assertLogs("monitor.alerter", level="WARNING"):
            sent = await alerter.notify_failure("dca", A, SubmissionError("tx <failed>"))
        self.assertEqual(sent, 1)
        text = bot.send_message.await_args_list[0].kwargs["text"]
        self.assertIn("tx &lt;failed&gt;", text)

    async def test_no_chats_sends_nothing(self) -> None:
        bot = AsyncMock()
        self.assertEqual(await TriggerAlerter(bot, chat_ids=[]).notify_trigger("dca", A, "mock_buy", "s"), 0)
        bot.send_message.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()
