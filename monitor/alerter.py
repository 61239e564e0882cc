"""Telegram delivery of trigger and submission-failure alerts."""

from __future__ import annotations

import asyncio
import logging
from html import escape
from typing import Any, Iterable

import config
from bot import messages
from monitor.cache_store import CacheSnapshot

logger = logging.getLogger(__name__)


def _snapshot_lines(snap: CacheSnapshot | None) -> str:
    if snap is None:
        return ""
    lines = []
    if snap.health_factor is not None:
        lines.append(f"Health factor: <b>{snap.health_factor}</b> (trigger {snap.trigger_health_factor}, target {snap.target_health_factor})")
    if snap.interval_seconds is not None:
        lines.append(f"Interval: {snap.interval_seconds}s, amount {snap.token_amount}")
    if snap.target_price is not None:
        lines.append(f"Target price: {snap.target_price}, last price {snap.last_price}")
    return ("\n" + "\n".join(lines)) if lines else ""


class TriggerAlerter:
    def __init__(self, bot: Any, chat_ids: Iterable[int] | None = None, max_concurrency: int = 10) -> None:
        self.bot = bot
        self.chat_ids = sorted(int(c) for c in (config.ALERT_CHAT_IDS if chat_ids is None else chat_ids))
        self.max_concurrency = max(1, int(max_concurrency))

    async def _broadcast(self, text: str) -> int:
        if self.bot is None or not self.chat_ids:
            return 0
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _send(chat_id: int) -> bool:
            async with semaphore:
                try:
                    await self.bot.send_message(
                        chat_id=chat_id,
                        text=text,
                        parse_mode="HTML",
                        disable_web_page_preview=True,
                    )
                    return True
                except Exception as exc:
                    logger.warning("Alert send failed for chat_id=%s: %s", chat_id, exc)
                    return False

        results = await asyncio.gather(*[_send(c) for c in self.chat_ids])
        sent = sum(1 for ok in results if ok)
        logger.info("ALERT_DISPATCH chats=%s sent=%s failed=%s", len(self.chat_ids), sent, len(results) - sent)
        return sent

    async def notify_trigger(
        self,
        kind: str,
        address: str,
        action: str,
        signature: str,
        snapshot: CacheSnapshot | None = None,
    ) -> int:
        text = messages.TRIGGER_ALERT.format(
            kind=escape(kind),
            address=escape(address),
            action=escape(action),
            signature=escape(signature),
        )
        return await self._broadcast(text + _snapshot_lines(snapshot))

    async def notify_failure(self, kind: str, address: str, error: Exception) -> int:
        text = messages.FAILURE_ALERT.format(
            kind=escape(kind),
            address=escape(address),
            error=escape(str(error))[:500],
        )
        return await self._broadcast(text)
