from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from swaploop.core.backoff import BackoffPolicy, Sleep, retry_async
from swaploop.core.exceptions import UpstreamRateLimited
from swaploop.engine.assets import Asset, AssetRegistry
from swaploop.engine.wallet import Wallet

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class BalanceSnapshot:
    """Raw balances of every tracked asset plus native lamports at one instant."""

    amounts: Dict[str, int] = field(default_factory=dict)
    native: int = 0
    captured_at: float = 0.0

    def raw(self, asset: Asset | str) -> int:
        symbol = asset.symbol if isinstance(asset, Asset) else asset
        return self.amounts.get(symbol.upper(), 0)

    def ui(self, registry: AssetRegistry) -> Dict[str, float]:
        values = {asset.symbol.lower(): asset.to_ui(self.raw(asset)) for asset in registry.tracked}
        values[registry.native.symbol.lower()] = registry.native.to_ui(self.native)
        return values


class BalanceOracle:
    """Cached balance reads with a short freshness window.

    ``get_balances`` never raises: an asset whose read keeps failing is
    reported as 0 and the failure is logged.
    """

    def __init__(
        self,
        wallet: Wallet,
        registry: AssetRegistry,
        ttl_sec: float = 5.0,
        rate_limit_policy: Optional[BackoffPolicy] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.wallet = wallet
        self.registry = registry
        self.ttl_sec = ttl_sec
        self.rate_limit_policy = rate_limit_policy or BackoffPolicy.exponential(4, 0.5)
        self._clock = clock or time.monotonic
        self._sleep = sleep
        self._snapshot: Optional[BalanceSnapshot] = None
        self._fetched_at: Optional[float] = None
        self.fetch_count = 0

    @property
    def snapshot(self) -> Optional[BalanceSnapshot]:
        return self._snapshot

    def is_fresh(self) -> bool:
        if self._snapshot is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.ttl_sec

    async def get_balances(self) -> BalanceSnapshot:
        if self.is_fresh():
            return self._snapshot
        amounts: Dict[str, int] = {}
        for asset in self.registry.tracked:
            amounts[asset.symbol] = await self._fetch_asset(asset)
        native = await self._fetch_native()
        now = self._clock()
        self._snapshot = BalanceSnapshot(amounts=amounts, native=native, captured_at=now)
        self._fetched_at = now
        self.fetch_count += 1
        return self._snapshot

    def invalidate(self) -> None:
        self._fetched_at = None

    async def refresh(self) -> BalanceSnapshot:
        self.invalidate()
        return await self.get_balances()

    async def _fetch_asset(self, asset: Asset) -> int:
        async def _read() -> int:
            account = await self.wallet.resolve_token_account(asset)
            if account is None:
                return 0
            return await self.wallet.ledger.get_token_account_balance(account)

        return await self._with_rate_limit_retry(asset.symbol, _read)

    async def _fetch_native(self) -> int:
        async def _read() -> int:
            return await self.wallet.ledger.get_balance(self.wallet.address)

        return await self._with_rate_limit_retry(self.registry.native.symbol, _read)

    async def _with_rate_limit_retry(self, label: str, operation) -> int:
        def _log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            logger.warning("%s balance rate limited, retry %s in %.2fs", label, attempt, delay)

        try:
            return await retry_async(
                self.rate_limit_policy,
                operation,
                retry_on=(UpstreamRateLimited,),
                on_retry=_log_retry,
                sleep=self._sleep,
            )
        except UpstreamRateLimited as exc:
            logger.error("%s balance unavailable after rate limiting, reporting 0: %s", label, exc)
            return 0
        except Exception as exc:
            logger.error("%s balance read failed, reporting 0: %s", label, exc)
            return 0


__all__ = ["BalanceOracle", "BalanceSnapshot"]
