from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from swaploop.config import PHASE_BUY, PHASE_SELL, SwapSettings
from swaploop.core.backoff import Sleep
from swaploop.core.exceptions import LoopStartRejected, PreconditionFailed
from swaploop.engine.assets import Asset, AssetRegistry
from swaploop.engine.audit import AuditLog
from swaploop.engine.balances import BalanceOracle, BalanceSnapshot
from swaploop.engine.notify import LogNotifier, Notifier
from swaploop.engine.orchestrator import SwapOrchestrator
from swaploop.engine.swap_types import SwapOutcome

logger = logging.getLogger(__name__)

ROUND_COMMITTED = "committed"
ROUND_SKIPPED = "skipped"
ROUND_FAILED = "failed"
ROUND_STOPPED = "stopped"

SOURCE_OBSERVED = "observed"
SOURCE_QUOTE = "quote"


@dataclass
class RoundState:
    phase: str = PHASE_BUY
    tracked_output_delta: int = 0
    last_observed_output_amount: int = 0
    last_output_asset: Optional[str] = None
    round_number: int = 0

    def flip(self) -> None:
        self.phase = PHASE_SELL if self.phase == PHASE_BUY else PHASE_BUY


@dataclass(frozen=True)
class RoundRecord:
    round: int
    direction: str
    amount_in: float
    amount_out: float
    loss: float
    transaction_id: Optional[str]
    tier: Optional[str]
    amount_out_source: str = SOURCE_OBSERVED

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RoundResult:
    status: str
    reason: str = ""
    record: Optional[RoundRecord] = None
    outcome: Optional[SwapOutcome] = None


class SessionLoopController:
    """Alternating buy/sell session driven one round at a time.

    A buy spends the base asset on the traded asset and remembers the observed
    delta; the following sell returns exactly that delta. Round-local problems
    skip or retry the round, while low gas, a failed precondition and repeated
    swap failure stop the loop. The session log is written every time the loop
    goes idle.
    """

    def __init__(
        self,
        orchestrator: SwapOrchestrator,
        oracle: BalanceOracle,
        registry: AssetRegistry,
        settings: SwapSettings,
        audit: AuditLog,
        notifier: Optional[Notifier] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.oracle = oracle
        self.registry = registry
        self.settings = settings
        self.audit = audit
        self.notifier = notifier or LogNotifier()
        self.base_asset = registry.get(settings.base_asset)
        self.traded_asset = registry.get(settings.traded_asset)
        self.state = RoundState(phase=settings.initial_phase)
        self.records: List[RoundRecord] = []
        self.running = False
        self.stop_reason = ""
        self.session_path: Optional[Path] = None
        self._sleep = sleep
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        self._started_at: Optional[str] = None

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def direction(self, phase: Optional[str] = None) -> Tuple[Asset, Asset]:
        if (phase or self.state.phase) == PHASE_BUY:
            return self.base_asset, self.traded_asset
        return self.traded_asset, self.base_asset

    async def start(self) -> None:
        if self.running:
            raise LoopStartRejected("Swap loop is already running")
        snapshot = await self.oracle.refresh()
        native = self.registry.native
        problems: List[str] = []
        native_ui = native.to_ui(snapshot.native)
        if native_ui < self.settings.min_native_reserve:
            problems.append(f"{native.symbol}: {native_ui:.6f} (Minimum: {self.settings.min_native_reserve:.6f})")
        if self.settings.initial_phase == PHASE_BUY:
            base_ui = self.base_asset.to_ui(snapshot.raw(self.base_asset))
            if base_ui < self.settings.initial_amount:
                problems.append(
                    f"{self.base_asset.symbol}: {base_ui:.2f} (Minimum: {self.settings.initial_amount:.2f})"
                )
        if problems:
            raise LoopStartRejected("Insufficient balance: " + "; ".join(problems))

        self.state = RoundState(phase=self.settings.initial_phase)
        self.records = []
        self.stop_reason = ""
        self.session_path = None
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        self._started_at = datetime.now(timezone.utc).isoformat()
        self.running = True
        input_asset, output_asset = self.direction()
        await self.notifier.notify(
            f"Swap loop started. Starting with: {input_asset.symbol} → {output_asset.symbol}"
        )

    def stop(self, reason: str = "stopped by request") -> bool:
        if not self.running:
            return False
        self._stop_requested = True
        self.stop_reason = reason
        self._stop_event.set()
        return True

    async def run(self) -> Optional[Path]:
        if not self.running:
            raise LoopStartRejected("Swap loop has not been started")
        try:
            while not self._stop_requested:
                result = await self._run_round(self.settings.round_max_retries, in_loop=True)
                if result.status in (ROUND_STOPPED, ROUND_FAILED):
                    self.stop_reason = result.reason
                    break
        finally:
            self.running = False
            self.session_path = self._persist_session()
        await self.notifier.notify(
            f"Session log saved: {self.session_path} ({len(self.records)} rounds)"
            + (f". Stopped: {self.stop_reason}" if self.stop_reason else "")
        )
        return self.session_path

    async def run_manual_round(self) -> RoundResult:
        if self.running:
            raise PreconditionFailed("Swap loop is running; stop it before swapping manually")
        return await self._run_round(0, in_loop=False)

    async def _run_round(self, max_retries: int, in_loop: bool) -> RoundResult:
        self.state.round_number += 1
        round_number = self.state.round_number
        snapshot = await self.oracle.refresh()

        native = self.registry.native
        native_ui = native.to_ui(snapshot.native)
        if native_ui < self.settings.min_native_reserve:
            reason = (
                f"Insufficient balance: {native.symbol} {native_ui:.6f} "
                f"(Minimum: {self.settings.min_native_reserve:.6f})"
            )
            logger.warning("round %s: %s", round_number, reason)
            await self.notifier.notify(reason)
            return RoundResult(status=ROUND_STOPPED, reason=reason)

        input_asset, output_asset = self.direction()
        amount, skip_reason = self._round_amount(snapshot, input_asset)
        if skip_reason:
            logger.info("skipping round %s %s: %s", round_number, self.state.phase, skip_reason)
            await self.notifier.notify(f"Skipping round {round_number} ({self.state.phase}): {skip_reason}")
            if in_loop:
                self.state.flip()
                await self._pause(self.settings.skip_delay_sec)
            return RoundResult(status=ROUND_SKIPPED, reason=skip_reason)

        await self.notifier.notify(
            f"Round {round_number}: {input_asset.symbol} → {output_asset.symbol} ({input_asset.to_ui(amount):.6f})"
        )
        pre_output = snapshot.raw(output_asset)
        outcome: Optional[SwapOutcome] = None
        for attempt in range(max_retries + 1):
            try:
                outcome = await self.orchestrator.swap(input_asset, output_asset, amount)
            except PreconditionFailed as exc:
                reason = f"Swap failed: {exc}"
                logger.error("round %s: %s", round_number, reason)
                return RoundResult(status=ROUND_STOPPED, reason=reason)
            if outcome.succeeded:
                break
            if attempt < max_retries:
                await self.notifier.notify(
                    f"Round {round_number} failed, retrying ({attempt + 1}/{max_retries})...\nError: {outcome.error}"
                )
                await self._pause(self.settings.round_retry_delay_sec)
                if self._stop_requested:
                    logger.info("round %s: stop requested during retry pause", round_number)
                    return RoundResult(status=ROUND_STOPPED, reason=self.stop_reason, outcome=outcome)

        if outcome is None or not outcome.succeeded:
            error = outcome.error if outcome is not None else "no swap attempted"
            if max_retries:
                reason = f"Swap loop stopped due to repeated failures: {error}"
            else:
                reason = f"Swap failed: {error}"
            await self.notifier.notify(reason)
            return RoundResult(status=ROUND_FAILED, reason=reason, outcome=outcome)

        record = await self._commit(round_number, input_asset, output_asset, amount, pre_output, outcome)
        if in_loop:
            await self._pause(self.settings.swap_interval_sec)
        return RoundResult(status=ROUND_COMMITTED, record=record, outcome=outcome)

    def _round_amount(self, snapshot: BalanceSnapshot, input_asset: Asset) -> Tuple[int, str]:
        available = snapshot.raw(input_asset)
        if self.state.phase == PHASE_BUY:
            if self.state.last_observed_output_amount > 0 and self.state.last_output_asset == input_asset.symbol:
                reinvest = self.state.last_observed_output_amount
            else:
                reinvest = available
            amount = min(reinvest, input_asset.to_raw(self.settings.max_buy), available)
            minimum = input_asset.to_raw(self.settings.min_swap_amount)
            if amount <= 0 or amount < minimum:
                return 0, (
                    f"{input_asset.symbol} amount {input_asset.to_ui(amount):.6f} is below the minimum "
                    f"{self.settings.min_swap_amount}"
                )
            return amount, ""

        delta = self.state.tracked_output_delta
        if delta <= 0:
            return 0, f"No tracked {input_asset.symbol} to sell (run buy first or invalid delta: {input_asset.to_ui(delta):.6f})"
        if available < delta:
            return 0, (
                f"Insufficient {input_asset.symbol} balance: {input_asset.to_ui(available):.6f} "
                f"< {input_asset.to_ui(delta):.6f}"
            )
        return delta, ""

    async def _commit(
        self,
        round_number: int,
        input_asset: Asset,
        output_asset: Asset,
        amount: int,
        pre_output: int,
        outcome: SwapOutcome,
    ) -> RoundRecord:
        quoted = int(outcome.output_amount or 0)
        post_output = await self._wait_for_balance_increase(output_asset, pre_output)
        delta = post_output - pre_output if post_output is not None else 0
        if delta > 0:
            amount_out, source = delta, SOURCE_OBSERVED
        else:
            amount_out, source = quoted, SOURCE_QUOTE
            logger.warning(
                "%s balance did not increase after %s swap %s; using quoted amount %s",
                output_asset.symbol,
                self.state.phase,
                outcome.transaction_id,
                output_asset.to_ui(quoted),
            )

        if self.state.phase == PHASE_BUY:
            self.state.tracked_output_delta = max(0, amount_out)
        else:
            self.state.tracked_output_delta = 0
        self.state.last_observed_output_amount = max(0, amount_out)
        self.state.last_output_asset = output_asset.symbol

        amount_in_ui = input_asset.to_ui(amount)
        amount_out_ui = output_asset.to_ui(amount_out)
        record = RoundRecord(
            round=round_number,
            direction=self.state.phase,
            amount_in=amount_in_ui,
            amount_out=amount_out_ui,
            loss=round(amount_in_ui - amount_out_ui, output_asset.decimals),
            transaction_id=outcome.transaction_id,
            tier=outcome.tier,
            amount_out_source=source,
        )
        self.records.append(record)
        self.state.flip()
        method = " (fallback)" if outcome.used_fallback else ""
        await self.notifier.notify(
            f"Round {round_number} committed{method}: {amount_in_ui:.6f} {input_asset.symbol} → "
            f"{amount_out_ui:.6f} {output_asset.symbol} ({source})",
            signature=outcome.transaction_id,
        )
        return record

    async def _wait_for_balance_increase(self, asset: Asset, pre_balance: int) -> Optional[int]:
        for attempt in range(1, self.settings.balance_poll_attempts + 1):
            await self._plain_sleep(self.settings.balance_poll_delay_sec)
            snapshot = await self.oracle.refresh()
            current = snapshot.raw(asset)
            logger.debug("balance poll %s for %s: %s", attempt, asset.symbol, current)
            # A failed read reports 0, so only an increase counts as settled.
            if current > pre_balance:
                return current
        return None

    async def _plain_sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        await (self._sleep or asyncio.sleep)(seconds)

    async def _pause(self, seconds: float) -> None:
        if self._stop_requested or seconds <= 0:
            return
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _persist_session(self) -> Optional[Path]:
        summary = {
            "started_at": self._started_at,
            "ended_at": datetime.now(timezone.utc).isoformat(),
            "rounds": len(self.records),
            "stop_reason": self.stop_reason,
            "base_asset": self.base_asset.symbol,
            "traded_asset": self.traded_asset.symbol,
        }
        try:
            return self.audit.write_session([record.to_dict() for record in self.records], summary)
        except OSError as exc:
            logger.error("could not write session log: %s", exc)
            return None


__all__ = [
    "ROUND_COMMITTED",
    "ROUND_FAILED",
    "ROUND_SKIPPED",
    "ROUND_STOPPED",
    "RoundRecord",
    "RoundResult",
    "RoundState",
    "SOURCE_OBSERVED",
    "SOURCE_QUOTE",
    "SessionLoopController",
]
