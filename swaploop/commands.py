from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from swaploop.composition import SwapContext
from swaploop.core.exceptions import PreconditionFailed, ProviderMisconfigured
from swaploop.engine.notify import with_explorer_link
from swaploop.engine.session import ROUND_COMMITTED, ROUND_SKIPPED, RoundResult
from swaploop.engine.swap_types import SwapOutcome

logger = logging.getLogger(__name__)


def format_balances(balances: Dict[str, float], native_symbol: str = "sol") -> str:
    lines = ["💰 Current balances:"]
    for symbol, value in balances.items():
        digits = 6 if symbol == native_symbol else 4
        lines.append(f"{symbol.upper()}: {value:.{digits}f}")
    return "\n".join(lines)


def format_outcome(outcome: SwapOutcome) -> str:
    if outcome.succeeded:
        route = f" via {outcome.route_description}" if outcome.route_description else ""
        fallback = " (fallback)" if outcome.used_fallback else ""
        message = f"✅ Swap successful{fallback} on {outcome.tier}{route}"
        return with_explorer_link(message, outcome.transaction_id)
    lines = [f"❌ Swap failed: {outcome.error}"]
    for tier, error in outcome.tier_errors:
        lines.append(f"  {tier}: {error}")
    return "\n".join(lines)


def format_round_result(result: RoundResult) -> str:
    if result.status == ROUND_COMMITTED and result.record is not None:
        record = result.record
        message = (
            f"✅ Round {record.round} ({record.direction}) complete: "
            f"in {record.amount_in:.6f}, out {record.amount_out:.6f}, loss {record.loss:.6f}"
        )
        if record.amount_out_source != "observed":
            message += " (quoted amount, balance change not observed)"
        return with_explorer_link(message, record.transaction_id)
    if result.status == ROUND_SKIPPED:
        return f"⏭️ Swap skipped: {result.reason}"
    return f"❌ {result.reason}"


def format_loop_started(direction: str) -> str:
    return f"🔄 Swap loop started. First swap: {direction}"


def format_loop_stopped(stopped: bool) -> str:
    return "🛑 Swap loop stopping after the current round." if stopped else "No swap loop is running."


class SwapCommands:
    """Chat-facing command surface over one ``SwapContext``."""

    def __init__(self, context: SwapContext) -> None:
        self.context = context
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def loop_running(self) -> bool:
        return self.context.session.running

    async def balances(self) -> Dict[str, float]:
        snapshot = await self.context.oracle.refresh()
        return snapshot.ui(self.context.registry)

    async def ultra_swap(self, input_symbol: str, output_symbol: str, amount: float) -> SwapOutcome:
        if self.loop_running:
            raise PreconditionFailed("Swap loop is running; stop it before swapping manually")
        registry = self.context.registry
        try:
            input_asset = registry.resolve(input_symbol)
            output_asset = registry.resolve(output_symbol)
        except ProviderMisconfigured as exc:
            raise PreconditionFailed(str(exc)) from exc
        if input_asset.mint == output_asset.mint:
            raise PreconditionFailed("input and output assets must differ")
        return await self.context.orchestrator.swap(input_asset, output_asset, input_asset.to_raw(amount))

    async def swap_now(self) -> RoundResult:
        return await self.context.session.run_manual_round()

    async def start_loop(self) -> str:
        session = self.context.session
        await session.start()
        input_asset, output_asset = session.direction()
        self._loop_task = asyncio.create_task(session.run())
        self._loop_task.add_done_callback(self._loop_finished)
        return f"{input_asset.symbol} → {output_asset.symbol}"

    def stop_loop(self) -> bool:
        return self.context.session.stop()

    async def wait_loop(self) -> None:
        if self._loop_task is not None:
            await self._loop_task

    def _loop_finished(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("swap loop task cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("swap loop crashed: %s", exc, exc_info=exc)


__all__ = [
    "SwapCommands",
    "format_balances",
    "format_loop_started",
    "format_loop_stopped",
    "format_outcome",
    "format_round_result",
]
