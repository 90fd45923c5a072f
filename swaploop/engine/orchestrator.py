from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from swaploop.core.exceptions import InsufficientBalance, PreconditionFailed
from swaploop.engine.assets import Asset, AssetRegistry
from swaploop.engine.audit import AuditLog
from swaploop.engine.balances import BalanceOracle
from swaploop.engine.execution import ExecutionEngine
from swaploop.engine.notify import LogNotifier, Notifier
from swaploop.engine.swap_types import (
    ALL_ROUTES_FAILED,
    STATUS_FAILED,
    STATUS_SUCCESS,
    SwapOutcome,
    SwapRequest,
    TierResult,
)
from swaploop.engine.tiers import RouteTier
from swaploop.engine.wallet import Wallet

logger = logging.getLogger(__name__)


class SwapOrchestrator:
    """Runs one swap through preflight, account readiness and the ordered tiers.

    Only one swap runs at a time. Preconditions raise; everything after them
    ends in exactly one persisted ``SwapOutcome``.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        oracle: BalanceOracle,
        wallet: Wallet,
        engine: ExecutionEngine,
        tiers: Sequence[RouteTier],
        audit: AuditLog,
        notifier: Optional[Notifier] = None,
        preflight_native_reserve: float = 0.005,
    ) -> None:
        if not tiers:
            raise ValueError("at least one route tier is required")
        self.registry = registry
        self.oracle = oracle
        self.wallet = wallet
        self.engine = engine
        self.tiers: List[RouteTier] = list(tiers)
        self.audit = audit
        self.notifier = notifier or LogNotifier()
        self.preflight_native_reserve = preflight_native_reserve
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def swap(self, input_asset: Asset, output_asset: Asset, amount: int) -> SwapOutcome:
        request = SwapRequest.new(input_asset, output_asset, amount)
        async with self._lock:
            return await self._run(request)

    async def _run(self, request: SwapRequest) -> SwapOutcome:
        logger.info(
            "swap %s: %s %s -> %s",
            request.correlation_id,
            request.input_asset.to_ui(request.amount),
            request.input_asset.symbol,
            request.output_asset.symbol,
        )
        try:
            await self._preflight(request)
            await self.wallet.prepare_accounts(
                [request.input_asset, request.output_asset], self.engine.build_and_send
            )
        except PreconditionFailed as exc:
            self._record_rejection(request, str(exc))
            await self.notifier.notify(f"Swap rejected: {exc}")
            raise

        tier_errors: List[Tuple[str, str]] = []
        total_attempts = 0
        for index, tier in enumerate(self.tiers):
            if index > 0:
                await self.notifier.notify(f"{self.tiers[index - 1].name} failed, trying {tier.name}...")
            result = await tier.attempt(request)
            total_attempts += result.attempts
            if result.success:
                return await self._succeed(request, result, index, total_attempts, tier_errors)
            tier_errors.append((tier.name, result.error or "unknown error"))

        outcome = SwapOutcome(
            status=STATUS_FAILED,
            correlation_id=request.correlation_id,
            attempts=total_attempts,
            error=ALL_ROUTES_FAILED,
            tier_errors=tuple(tier_errors),
        )
        self._record_outcome(request, outcome)
        details = "; ".join(f"{tier}: {error}" for tier, error in tier_errors)
        await self.notifier.notify(f"{ALL_ROUTES_FAILED} ({details})")
        return outcome

    async def _preflight(self, request: SwapRequest) -> None:
        if request.amount <= 0:
            raise PreconditionFailed(f"swap amount must be positive, got {request.amount}")
        snapshot = await self.oracle.get_balances()
        native = self.registry.native
        native_ui = native.to_ui(snapshot.native)
        if native_ui < self.preflight_native_reserve:
            raise InsufficientBalance(
                f"Insufficient {native.symbol}: {native_ui} (need {self.preflight_native_reserve})",
                available=native_ui,
                required=self.preflight_native_reserve,
            )
        available = snapshot.raw(request.input_asset)
        if available < request.amount:
            asset = request.input_asset
            raise InsufficientBalance(
                f"Insufficient {asset.symbol}: {asset.to_ui(available):.6f} (need {asset.to_ui(request.amount)})",
                available=asset.to_ui(available),
                required=asset.to_ui(request.amount),
            )

    async def _succeed(
        self,
        request: SwapRequest,
        result: TierResult,
        index: int,
        total_attempts: int,
        tier_errors: List[Tuple[str, str]],
    ) -> SwapOutcome:
        self.oracle.invalidate()
        outcome = SwapOutcome(
            status=STATUS_SUCCESS,
            correlation_id=request.correlation_id,
            attempts=total_attempts,
            transaction_id=result.transaction_id,
            output_amount=result.output_amount,
            route_description=result.quote.route if result.quote is not None else None,
            tier=result.tier,
            used_fallback=index > 0,
            tier_errors=tuple(tier_errors),
        )
        self._record_outcome(request, outcome)
        out_ui = request.output_asset.to_ui(result.output_amount or 0)
        await self.notifier.notify(
            f"Swap success via {result.tier}: {request.input_asset.to_ui(request.amount)} "
            f"{request.input_asset.symbol} → {out_ui} {request.output_asset.symbol}",
            signature=result.transaction_id,
        )
        return outcome

    def _record_outcome(self, request: SwapRequest, outcome: SwapOutcome) -> None:
        # The outcome is returned even when it cannot be persisted.
        try:
            self.audit.record_outcome(request, outcome)
        except OSError as exc:
            logger.error("could not write outcome record for %s: %s", request.correlation_id, exc)

    def _record_rejection(self, request: SwapRequest, reason: str) -> None:
        try:
            self.audit.record_rejection(request, reason)
        except OSError as exc:
            logger.error("could not write preflight record for %s: %s", request.correlation_id, exc)


__all__ = ["SwapOrchestrator"]
