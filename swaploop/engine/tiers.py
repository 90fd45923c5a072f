from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from swaploop.core.backoff import BackoffPolicy, Sleep
from swaploop.core.exceptions import SimulationFailed
from swaploop.data.ledger.client import LedgerRpcError
from swaploop.engine.audit import AuditLog
from swaploop.engine.routes import RouteProvider
from swaploop.engine.swap_types import Quote, SwapRequest, TierResult

logger = logging.getLogger(__name__)


def _error_text(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__


def _error_logs(exc: BaseException) -> List[str]:
    if isinstance(exc, (SimulationFailed, LedgerRpcError)):
        return list(exc.logs)
    return []


class RouteTier:
    """One fallback tier: quote + execute against a route provider under a retry policy.

    ``attempt`` never raises. Every try is written to the audit log and a
    failure comes back as an unsuccessful ``TierResult`` carrying the last
    provider error.
    """

    def __init__(
        self,
        provider: RouteProvider,
        policy: Optional[BackoffPolicy] = None,
        audit: Optional[AuditLog] = None,
        sleep: Optional[Sleep] = None,
        name: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.policy = policy or BackoffPolicy.single()
        self.audit = audit
        self.name = name or provider.name
        self._sleep = sleep or asyncio.sleep

    async def attempt(self, request: SwapRequest) -> TierResult:
        max_attempts = max(1, self.policy.max_attempts)
        last_error = ""
        for attempt in range(1, max_attempts + 1):
            quote: Optional[Quote] = None
            try:
                quote = await self.provider.get_quote(request)
                receipt = await self.provider.execute(quote)
            except Exception as exc:
                last_error = _error_text(exc)
                logger.warning("%s attempt %s/%s failed: %s", self.name, attempt, max_attempts, last_error)
                self._record(request, quote, {"status": "failed", "error": last_error, "logs": _error_logs(exc)})
                if attempt < max_attempts:
                    await self._sleep(self.policy.delay(attempt))
                continue
            self._record(
                request,
                quote,
                {
                    "status": "success",
                    "transaction_id": receipt.transaction_id,
                    "output_amount": receipt.output_amount,
                },
            )
            return TierResult(
                tier=self.name,
                success=True,
                attempts=attempt,
                transaction_id=receipt.transaction_id,
                output_amount=receipt.output_amount,
                quote=quote,
            )
        return TierResult(tier=self.name, success=False, attempts=max_attempts, error=last_error)

    def _record(self, request: SwapRequest, quote: Optional[Quote], entry: Dict[str, Any]) -> None:
        if self.audit is None:
            return
        payload = dict(entry)
        payload["quote"] = quote.describe() if quote is not None else None
        try:
            self.audit.record_attempt(request, self.name, payload)
        except OSError as exc:
            logger.error("could not write %s attempt record for %s: %s", self.name, request.correlation_id, exc)


__all__ = ["RouteTier"]
