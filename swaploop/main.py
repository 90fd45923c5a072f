from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from swaploop.commands import (
    SwapCommands,
    format_loop_started,
    format_outcome,
    format_round_result,
)
from swaploop.composition import build_context
from swaploop.config import load_config
from swaploop.core.exceptions import PreconditionFailed, ProviderMisconfigured
from swaploop.core.logs import configure_logging
from swaploop.engine.audit import print_session_summary

console = Console()


def _balances_table(balances) -> Table:
    table = Table(title="Wallet Balances")
    table.add_column("Asset")
    table.add_column("Balance", justify="right")
    for symbol, value in balances.items():
        table.add_row(symbol.upper(), f"{value:.6f}")
    return table


def _context(args: argparse.Namespace):
    cfg = load_config(args.config)
    live = True if args.live else None
    context = build_context(cfg, live=live, audit_dir=Path(args.audit_dir) if args.audit_dir else None)
    if getattr(args, "interval", None) is not None:
        context.session.settings = context.settings.with_overrides(swap_interval_sec=args.interval)
    return context


async def cmd_balances(args: argparse.Namespace) -> int:
    async with _context(args) as context:
        balances = await SwapCommands(context).balances()
        console.print(_balances_table(balances))
    return 0


async def cmd_swap(args: argparse.Namespace) -> int:
    async with _context(args) as context:
        outcome = await SwapCommands(context).ultra_swap(args.input, args.output, args.amount)
        console.print(format_outcome(outcome))
        return 0 if outcome.succeeded else 1


async def cmd_swap_now(args: argparse.Namespace) -> int:
    async with _context(args) as context:
        result = await SwapCommands(context).swap_now()
        console.print(format_round_result(result))
        return 0 if result.record is not None else 1


async def cmd_loop(args: argparse.Namespace) -> int:
    async with _context(args) as context:
        commands = SwapCommands(context)
        direction = await commands.start_loop()
        console.print(format_loop_started(direction))
        try:
            await commands.wait_loop()
        finally:
            records = [record.to_dict() for record in context.session.records]
            if records:
                print_session_summary(records, console)
            if context.session.session_path:
                console.print(f"Session log: {context.session.session_path}")
    return 0


COMMANDS = {
    "balances": cmd_balances,
    "swap": cmd_swap,
    "swap-now": cmd_swap_now,
    "loop": cmd_loop,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="swaploop CLI")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    parser.add_argument("--live", action="store_true", help="Talk to live upstreams (default: offline mock API)")
    parser.add_argument("--audit-dir", type=str, default=None, help="Directory for swap audit artifacts")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("balances", help="Show wallet balances")

    swap = sub.add_parser("swap", help="Run one swap through the fallback tiers")
    swap.add_argument("input", type=str, help="Input asset symbol or mint")
    swap.add_argument("output", type=str, help="Output asset symbol or mint")
    swap.add_argument("amount", type=float, help="Amount of the input asset in UI units")

    sub.add_parser("swap-now", help="Run one round of the current session phase")

    loop = sub.add_parser("loop", help="Run the alternating buy/sell loop until stopped")
    loop.add_argument("--interval", type=float, default=None, help="Seconds between rounds")
    return parser


def main(argv: Optional[list] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, console=console)
    try:
        code = asyncio.run(COMMANDS[args.command](args))
    except (PreconditionFailed, ProviderMisconfigured) as exc:
        console.print(f"[red]{exc}[/red]")
        code = 2
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
