"""Telegram handlers for the operator control surface."""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape

import config

from telegram import Update
from telegram.ext import ContextTypes

from bot import messages
from monitor.cache_store import CacheSnapshot
from monitor.service import AutomationService
from trading.account_codec import AccountKind
from utils.addressing import is_valid_pubkey, normalize_address

SERVICE_KEY = "automation_service"

_KIND_NAMES = ", ".join(f"<code>{k.value}</code>" for k in AccountKind)


def _is_admin(user_id: int | None) -> bool:
    return bool(user_id and user_id in config.ADMIN_IDS)


def _service(context: ContextTypes.DEFAULT_TYPE) -> AutomationService | None:
    return context.application.bot_data.get(SERVICE_KEY)


def _format_ts(ts_ms: int | None) -> str:
    if ts_ms is None:
        return "never"
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_snapshot(snap: CacheSnapshot) -> str:
    lines = [messages.STATUS_HEADER.format(kind=escape(snap.kind), address=escape(snap.account_address))]
    if snap.health_factor is not None:
        lines.append(f"Health factor: <b>{snap.health_factor}</b>")
        lines.append(f"Trigger / target: {snap.trigger_health_factor} / {snap.target_health_factor}")
        lines.append(f"Automation: {'on' if snap.automation_enabled else 'off'}")
    if snap.interval_seconds is not None:
        lines.append(f"Interval: {snap.interval_seconds}s")
    if snap.target_price is not None:
        lines.append(f"Target price: {snap.target_price}")
        if snap.last_price is not None:
            lines.append(f"Last price: {snap.last_price}")
    if snap.token_address:
        lines.append(f"Token: <code>{escape(snap.token_address)}</code> amount {snap.token_amount}")
        lines.append(f"Enabled: {'yes' if snap.enabled else 'no'}")
    lines.append(f"Last checked: {_format_ts(snap.last_checked)}")
    lines.append(f"Last triggered: {_format_ts(snap.last_triggered)}")
    if snap.last_signature:
        lines.append(f"Last tx: <code>{escape(snap.last_signature)}</code>")
    return "\n".join(lines)


async def _authorized(update: Update) -> bool:
    tg_user = update.effective_user
    target = update.message
    if not tg_user or not target:
        return False
    if not _is_admin(tg_user.id):
        await target.reply_text(messages.NOT_AUTHORIZED)
        return False
    return True


async def _resolve_controller(update: Update, context: ContextTypes.DEFAULT_TYPE, kind_arg: str):
    service = _service(context)
    try:
        kind = AccountKind(kind_arg.strip().lower())
    except ValueError:
        await update.message.reply_text(
            messages.UNKNOWN_KIND.format(kind=escape(kind_arg), kinds=_KIND_NAMES),
            parse_mode="HTML",
        )
        return None
    controller = service.controller(kind) if service is not None else None
    if controller is None:
        await update.message.reply_text(messages.KIND_DISABLED.format(kind=kind.value), parse_mode="HTML")
    return controller


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update):
        return
    await update.message.reply_text(messages.HELP_MESSAGE, parse_mode="HTML")


async def _watch_args(update: Update, context: ContextTypes.DEFAULT_TYPE, usage: str):
    args = list(context.args or [])
    if len(args) < 2:
        await update.message.reply_text(usage, parse_mode="HTML")
        return None, ""
    controller = await _resolve_controller(update, context, args[0])
    if controller is None:
        return None, ""
    address = normalize_address(args[1])
    if not is_valid_pubkey(address):
        await update.message.reply_text(messages.INVALID_ADDRESS.format(address=escape(address)), parse_mode="HTML")
        return None, ""
    return controller, address


async def watch_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update):
        return
    controller, address = await _watch_args(update, context, messages.USAGE_WATCH)
    if controller is None:
        return
    template = messages.WATCH_ADDED if controller.add_account_to_monitor(address) else messages.WATCH_EXISTS
    await update.message.reply_text(template.format(address=address, kind=controller.kind.value), parse_mode="HTML")


async def unwatch_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update):
        return
    controller, address = await _watch_args(update, context, messages.USAGE_UNWATCH)
    if controller is None:
        return
    removed = controller.remove_account_from_monitor(address)
    template = messages.UNWATCH_REMOVED if removed else messages.UNWATCH_MISSING
    await update.message.reply_text(template.format(address=address, kind=controller.kind.value), parse_mode="HTML")


def _selected_controllers(service: AutomationService | None, kind_arg: str | None) -> list:
    if service is None:
        return []
    if not kind_arg:
        return list(service.controllers.values())
    controller = service.controller(kind_arg.strip().lower())
    return [controller] if controller is not None else []


async def accounts_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update):
        return
    args = list(context.args or [])
    controllers = _selected_controllers(_service(context), args[0] if args else None)
    if args and not controllers:
        await update.message.reply_text(
            messages.UNKNOWN_KIND.format(kind=escape(args[0]), kinds=_KIND_NAMES),
            parse_mode="HTML",
        )
        return
    lines = [messages.ACCOUNTS_HEADER]
    for controller in controllers:
        addresses = controller.get_monitored_accounts()
        lines.append(f"\n<b>{controller.kind.value}</b> ({len(addresses)})")
        if not addresses:
            lines.append(messages.ACCOUNTS_EMPTY)
        lines.extend(f"<code>{escape(address)}</code>" for address in addresses)
    await update.message.reply_text("\n".join(lines), parse_mode="HTML")


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update):
        return
    args = list(context.args or [])
    if not args:
        await update.message.reply_text(messages.USAGE_STATUS, parse_mode="HTML")
        return
    address = normalize_address(args[0])
    blocks = []
    for controller in _selected_controllers(_service(context), None):
        snap = controller.get_account_status(address)
        if snap is not None:
            blocks.append(format_snapshot(snap))
    if not blocks:
        await update.message.reply_text(messages.STATUS_NOT_FOUND.format(address=escape(address)), parse_mode="HTML")
        return
    await update.message.reply_text("\n\n".join(blocks), parse_mode="HTML")


async def check_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update):
        return
    args = list(context.args or [])
    controllers = _selected_controllers(_service(context), args[0] if args else None)
    if args and not controllers:
        await update.message.reply_text(
            messages.UNKNOWN_KIND.format(kind=escape(args[0]), kinds=_KIND_NAMES),
            parse_mode="HTML",
        )
        return
    lines = []
    for controller in controllers:
        batch = await controller.force_check()
        lines.append(messages.CHECK_DONE.format(kind=controller.kind.value, count=len(batch)))
    await update.message.reply_text("\n".join(lines) or messages.ACCOUNTS_EMPTY, parse_mode="HTML")


async def monitoring_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update):
        return
    lines = []
    for controller in _selected_controllers(_service(context), None):
        running = controller.is_currently_monitoring()
        lines.append(
            messages.MONITORING_LINE.format(
                icon="🟢" if running else "🔴",
                kind=controller.kind.value,
                state="running" if running else "stopped",
                count=len(controller.get_monitored_accounts()),
                busy=", checking now" if controller.is_checking else "",
            )
        )
    await update.message.reply_text("\n".join(lines) or messages.ACCOUNTS_EMPTY, parse_mode="HTML")
