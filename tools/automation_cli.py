"""One-shot operator commands for SIFTTT automation accounts."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict
from typing import Any

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from solders.keypair import Keypair  # noqa: E402

import config  # noqa: E402
from monitor.cache_store import JsonFileCacheStore  # noqa: E402
from monitor.service import AutomationService  # noqa: E402
from trading.account_codec import AccountKind  # noqa: E402
from trading.automation import DCAClient, PriceTradeClient, ProtectionClient, client_for  # noqa: E402
from trading.chain_gateway import ChainGateway, SolanaChainGateway  # noqa: E402
from trading.errors import AutomationError  # noqa: E402
from trading.params import DCAParams, PriceTradeParams, ProtectionParams  # noqa: E402

KIND_CHOICES = [k.value for k in AccountKind]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send SIFTTT automation instructions and inspect account state.")
    parser.add_argument("--account", default=config.SIFTTT_ACCOUNT, help="Automation account (default: SIFTTT_ACCOUNT)")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("initialize", help="Create a new protection automation account")
    init.add_argument("--keypair-out", default="", help="Write the new account keypair (JSON byte array) here")

    set_automation = sub.add_parser("set-automation", help="Configure protection trigger/target health factors")
    set_automation.add_argument("--trigger", required=True, type=int, help="Trigger health factor")
    set_automation.add_argument("--target", required=True, type=int, help="Target health factor")

    for name in ("borrow", "repay", "auto-repay"):
        sub.add_parser(name, help=f"Send {name.replace('-', '_')}")

    set_dca = sub.add_parser("set-dca", help="Configure a DCA schedule")
    set_dca.add_argument("--interval", required=True, type=int, help="Interval in seconds")
    set_dca.add_argument("--token", required=True, help="Token mint")
    set_dca.add_argument("--amount", required=True, type=int, help="Token amount (raw units)")

    mock_buy = sub.add_parser("mock-buy", help="Execute one DCA buy")
    mock_buy.add_argument("--token", required=True, help="Token mint")
    mock_buy.add_argument("--amount", required=True, type=int, help="Token amount (raw units)")

    set_price = sub.add_parser("set-price-trading", help="Configure a price-triggered buy")
    set_price.add_argument("--target-price", required=True, type=int, help="Target price (scaled integer)")
    set_price.add_argument("--token", required=True, help="Token mint")
    set_price.add_argument("--amount", required=True, type=int, help="Token amount (raw units)")

    execute = sub.add_parser("execute-price-trade", help="Execute a price trade at the given price")
    execute.add_argument("--price", required=True, type=int, help="Current price (scaled integer)")

    state = sub.add_parser("state", help="Decode and print the account state")
    state.add_argument("kind", choices=KIND_CHOICES)

    check = sub.add_parser("check", help="Run a forced check cycle and print snapshots")
    check.add_argument("--once", action="store_true", required=True, help="Run exactly one cycle")
    check.add_argument("kind", nargs="?", choices=KIND_CHOICES, default=None)
    return parser


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


async def run_command(args: argparse.Namespace, gateway: ChainGateway) -> int:
    command = args.command
    if command == "check":
        return await _run_check(args, gateway)
    if command == "state":
        state = await client_for(AccountKind(args.kind), gateway, args.account).get_state()
        _print({"kind": args.kind, "account": args.account, "state": asdict(state)})
        return 0

    if command == "initialize":
        new_account = Keypair()
        if args.keypair_out:
            with open(args.keypair_out, "w", encoding="utf-8") as f:
                json.dump(list(bytes(new_account)), f)
        signature = await ProtectionClient(gateway, str(new_account.pubkey())).initialize(new_account)
        _print({"command": command, "account": str(new_account.pubkey()), "tx": signature})
        return 0

    if command in ("set-automation", "borrow", "repay", "auto-repay"):
        client = ProtectionClient(gateway, args.account)
        if command == "set-automation":
            params = ProtectionParams(trigger_health_factor=args.trigger, target_health_factor=args.target)
            signature = await client.set_automation(params)
        elif command == "borrow":
            signature = await client.borrow()
        elif command == "repay":
            signature = await client.repay()
        else:
            signature = await client.auto_repay()
    elif command == "set-dca":
        params = DCAParams(interval_seconds=args.interval, token_address=args.token, token_amount=args.amount)
        signature = await DCAClient(gateway, args.account).set_dca(params)
    elif command == "mock-buy":
        signature = await DCAClient(gateway, args.account).mock_buy(args.token, args.amount)
    elif command == "set-price-trading":
        params = PriceTradeParams(target_price=args.target_price, token_address=args.token, token_amount=args.amount)
        signature = await PriceTradeClient(gateway, args.account).set_price_trading(params)
    elif command == "execute-price-trade":
        signature = await PriceTradeClient(gateway, args.account).execute_price_trade(args.price)
    else:  # pragma: no cover - argparse rejects unknown commands
        raise SystemExit(f"unknown command: {command}")

    _print({"command": command, "account": args.account, "tx": signature})
    return 0


async def _run_check(args: argparse.Namespace, gateway: ChainGateway) -> int:
    enabled = {kind: (args.kind is None or kind.value == args.kind) for kind in AccountKind}
    service = AutomationService(gateway, JsonFileCacheStore(), enabled=enabled)
    out: dict[str, list[dict[str, Any]]] = {}
    try:
        for kind, controller in service.controllers.items():
            batch = await controller.force_check()
            out[kind.value] = [snap.to_dict() for snap in batch]
    finally:
        if service.price_source is not None:
            await service.price_source.close()
    _print(out)
    return 0


async def _main_async(args: argparse.Namespace) -> int:
    gateway = SolanaChainGateway.from_config()
    try:
        return await run_command(args, gateway)
    finally:
        await gateway.close()


def main() -> int:
    args = build_parser().parse_args()
    try:
        return asyncio.run(_main_async(args))
    except AutomationError as exc:
        print(f"ERROR code={exc.code} {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
