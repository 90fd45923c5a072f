from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from solders.keypair import Keypair

from swaploop.config import SwapSettings, env_flag, get_config
from swaploop.core.backoff import BackoffPolicy, Sleep
from swaploop.core.exceptions import ProviderMisconfigured
from swaploop.core.http import ResilientHttpClient
from swaploop.data.jupiter.provider import JupiterProvider, JupiterSettings
from swaploop.data.ledger.client import LedgerClient, LedgerSettings
from swaploop.data.meteora.provider import MeteoraProvider, MeteoraSettings
from swaploop.engine.assets import AssetRegistry
from swaploop.engine.audit import AuditLog
from swaploop.engine.balances import BalanceOracle
from swaploop.engine.execution import ExecutionEngine
from swaploop.engine.notify import LogNotifier, Notifier
from swaploop.engine.orchestrator import SwapOrchestrator
from swaploop.engine.routes import AggregatorRoute, DirectPoolRoute, UltraRoute
from swaploop.engine.session import SessionLoopController
from swaploop.engine.tiers import RouteTier
from swaploop.engine.wallet import Wallet, WalletSettings, load_keypair

logger = logging.getLogger(__name__)


@dataclass
class SwapContext:
    """Everything one process needs to swap, owned in one place instead of module globals."""

    settings: SwapSettings
    registry: AssetRegistry
    ledger: LedgerClient
    jupiter: JupiterProvider
    meteora: MeteoraProvider
    wallet: Wallet
    oracle: BalanceOracle
    engine: ExecutionEngine
    orchestrator: SwapOrchestrator
    session: SessionLoopController
    audit: AuditLog
    notifier: Notifier
    live: bool
    http: httpx.AsyncClient
    config: Dict[str, Any] = field(default_factory=dict)

    async def __aenter__(self) -> "SwapContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()


def _offline_transport() -> httpx.AsyncBaseTransport:
    from mock_api.server import app

    return httpx.ASGITransport(app=app)


def _resolve_keypair(cfg: Dict[str, Any], live: bool) -> Keypair:
    try:
        return load_keypair(WalletSettings.from_env(cfg))
    except ProviderMisconfigured:
        if live:
            raise
        logger.info("no keypair configured; using an ephemeral offline keypair")
        return Keypair()


def build_tiers(
    settings: SwapSettings,
    jupiter: JupiterProvider,
    meteora: MeteoraProvider,
    registry: AssetRegistry,
    engine: ExecutionEngine,
    wallet: Wallet,
    audit: AuditLog,
    jupiter_settings: JupiterSettings,
    sleep: Optional[Sleep] = None,
) -> List[RouteTier]:
    tiers = [
        RouteTier(
            UltraRoute(jupiter, engine, wallet),
            policy=BackoffPolicy.exponential(3, 1.0),
            audit=audit,
            sleep=sleep,
        ),
        RouteTier(
            AggregatorRoute(
                jupiter,
                engine,
                wallet,
                slippage_bps=settings.slippage_bps,
                quote_attempts=jupiter_settings.quote_attempts,
                quote_poll_sec=jupiter_settings.quote_poll_sec,
                sleep=sleep,
            ),
            audit=audit,
            sleep=sleep,
        ),
    ]
    if settings.use_dlmm_fallback:
        tiers.append(
            RouteTier(
                DirectPoolRoute(
                    meteora,
                    engine,
                    wallet,
                    registry,
                    min_native_reserve=settings.min_native_reserve,
                    slippage_bps=settings.pool_slippage_bps,
                ),
                audit=audit,
                sleep=sleep,
            )
        )
    return tiers


def build_context(
    cfg: Optional[Dict[str, Any]] = None,
    live: Optional[bool] = None,
    settings: Optional[SwapSettings] = None,
    keypair: Optional[Keypair] = None,
    notifier: Optional[Notifier] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    audit_dir: Optional[Path] = None,
    sleep: Optional[Sleep] = None,
) -> SwapContext:
    """Wire the engine from configuration.

    Offline (the default) routes every upstream call through the in-process
    mock API; ``SWAPLOOP_LIVE=1`` or ``live=True`` talks to the real services.
    """
    cfg = cfg if cfg is not None else get_config()
    is_live = env_flag("SWAPLOOP_LIVE", False) if live is None else live
    signer = keypair or _resolve_keypair(cfg, is_live)
    settings = settings or SwapSettings.from_config(cfg)
    registry = AssetRegistry.from_config(cfg)

    ledger_settings = LedgerSettings.from_env(cfg)
    jupiter_settings = JupiterSettings.from_env(cfg)
    meteora_settings = MeteoraSettings.from_env(cfg)

    if transport is None and not is_live:
        transport = _offline_transport()
    http = httpx.AsyncClient(transport=transport, timeout=10.0)
    rps = 5.0 if is_live else 100.0

    ledger = LedgerClient(
        ledger_settings,
        http_client=ResilientHttpClient(
            "ledger", rps=rps, max_retries=ledger_settings.max_retries, async_client=http, sleep=sleep
        ),
    )
    jupiter = JupiterProvider(
        jupiter_settings,
        http_client=ResilientHttpClient(
            "jupiter", rps=rps, max_retries=jupiter_settings.max_retries, async_client=http, sleep=sleep
        ),
    )
    meteora = MeteoraProvider(
        meteora_settings,
        http_client=ResilientHttpClient(
            "meteora", rps=rps, max_retries=meteora_settings.max_retries, async_client=http, sleep=sleep
        ),
    )

    wallet = Wallet(signer, ledger, sleep=sleep)
    oracle = BalanceOracle(wallet, registry, ttl_sec=settings.balance_cache_ttl_sec, sleep=sleep)
    engine = ExecutionEngine(
        wallet,
        ledger,
        confirm_timeout_sec=ledger_settings.confirm_timeout_sec,
        confirm_poll_sec=ledger_settings.confirm_poll_sec,
        sleep=sleep,
    )
    audit = AuditLog(audit_dir or Path(settings.audit_dir))
    notifier = notifier or LogNotifier()
    tiers = build_tiers(settings, jupiter, meteora, registry, engine, wallet, audit, jupiter_settings, sleep=sleep)
    orchestrator = SwapOrchestrator(
        registry,
        oracle,
        wallet,
        engine,
        tiers,
        audit,
        notifier=notifier,
        preflight_native_reserve=settings.preflight_native_reserve,
    )
    session = SessionLoopController(orchestrator, oracle, registry, settings, audit, notifier=notifier, sleep=sleep)
    logger.info(
        "swaploop ready (%s): wallet %s, tiers %s",
        "live" if is_live else "offline",
        wallet.address,
        ", ".join(tier.name for tier in tiers),
    )
    return SwapContext(
        settings=settings,
        registry=registry,
        ledger=ledger,
        jupiter=jupiter,
        meteora=meteora,
        wallet=wallet,
        oracle=oracle,
        engine=engine,
        orchestrator=orchestrator,
        session=session,
        audit=audit,
        notifier=notifier,
        live=is_live,
        http=http,
        config=cfg,
    )


__all__ = ["SwapContext", "build_context", "build_tiers"]
