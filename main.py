"""Entry point for the SIFTTT automation keeper."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler

import config
from telegram.ext import Application, CommandHandler

from bot.handlers import (
    SERVICE_KEY,
    accounts_command,
    check_command,
    help_command,
    monitoring_command,
    status_command,
    unwatch_command,
    watch_command,
)
from monitor.alerter import TriggerAlerter
from monitor.service import AutomationService


def configure_logging() -> None:
    os.makedirs(config.LOG_DIR, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = RotatingFileHandler(config.APP_LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Avoid leaking bot token in verbose transport logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.INFO)


logger = logging.getLogger(__name__)


async def post_init(application: Application) -> None:
    alerter = TriggerAlerter(application.bot) if config.ALERT_CHAT_IDS else None
    service = AutomationService.from_config(alerter=alerter)
    await service.start()
    application.bot_data[SERVICE_KEY] = service


async def post_shutdown(application: Application) -> None:
    service: AutomationService | None = application.bot_data.get(SERVICE_KEY)
    if service is not None:
        await service.close()


def build_application() -> Application:
    app = Application.builder().token(config.TELEGRAM_BOT_TOKEN).post_init(post_init).post_shutdown(post_shutdown).build()
    app.add_handler(CommandHandler(["start", "help"], help_command))
    app.add_handler(CommandHandler("watch", watch_command))
    app.add_handler(CommandHandler("unwatch", unwatch_command))
    app.add_handler(CommandHandler("accounts", accounts_command))
    app.add_handler(CommandHandler("status", status_command))
    app.add_handler(CommandHandler("check", check_command))
    app.add_handler(CommandHandler("monitoring", monitoring_command))
    return app


async def run_headless() -> None:
    """Run the controllers without a Telegram front end until SIGINT/SIGTERM."""
    service = AutomationService.from_config()
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - windows
            pass
    await service.start()
    logger.info("HEADLESS_RUN controllers=%s", ",".join(k.value for k in service.controllers))
    try:
        await stop_event.wait()
    finally:
        await service.close()


def main() -> None:
    configure_logging()

    if not config.TELEGRAM_BOT_TOKEN:
        logger.info("TELEGRAM_BOT_TOKEN is not set; running headless")
        try:
            asyncio.run(run_headless())
        except KeyboardInterrupt:
            pass
        return

    build_application().run_polling()


if __name__ == "__main__":
    main()
