from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

from swaploop.core.exceptions import ProviderMisconfigured

_CONFIG_CACHE: Dict[str, Any] | None = None

PHASE_BUY = "buy"
PHASE_SELL = "sell"


def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def load_config(path: str | Path | None = None) -> Dict[str, Any]:
    root = repo_root()
    env_path = root / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = Path(path) if path else Path(os.getenv("SWAPLOOP_CONFIG", root / "config" / "default.yaml"))
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    return data


def get_config(refresh: bool = False) -> Dict[str, Any]:
    global _CONFIG_CACHE
    if refresh or _CONFIG_CACHE is None:
        _CONFIG_CACHE = load_config()
    return _CONFIG_CACHE


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ProviderMisconfigured(f"{name} must be numeric, got {raw!r}") from exc


def phase_from_direction(direction: str) -> str:
    value = (direction or "").strip().lower()
    if value in {"backward", PHASE_SELL}:
        return PHASE_SELL
    if value in {"", "forward", PHASE_BUY}:
        return PHASE_BUY
    raise ProviderMisconfigured(f"Unknown INITIAL_DIRECTION: {direction}")


@dataclass(frozen=True)
class SwapSettings:
    base_asset: str = "USDC"
    traded_asset: str = "GIDDY"
    min_native_reserve: float = 0.02
    preflight_native_reserve: float = 0.005
    min_swap_amount: float = 0.01
    max_buy: float = 10.0
    initial_amount: float = 10.0
    slippage_bps: int = 100
    pool_slippage_bps: int = 50
    swap_interval_sec: float = 300.0
    skip_delay_sec: float = 10.0
    round_retry_delay_sec: float = 5.0
    round_max_retries: int = 3
    balance_poll_attempts: int = 5
    balance_poll_delay_sec: float = 4.0
    balance_cache_ttl_sec: float = 5.0
    initial_phase: str = PHASE_BUY
    use_dlmm_fallback: bool = False
    audit_dir: str = "swaps"

    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None = None) -> "SwapSettings":
        section = dict((cfg or {}).get("swap", {}) or {})
        defaults = cls()
        settings = cls(
            base_asset=str(section.get("base_asset", defaults.base_asset)),
            traded_asset=str(section.get("traded_asset", defaults.traded_asset)),
            min_native_reserve=float(section.get("min_native_reserve", defaults.min_native_reserve)),
            preflight_native_reserve=float(
                section.get("preflight_native_reserve", defaults.preflight_native_reserve)
            ),
            min_swap_amount=_env_float("MIN_SWAP_AMOUNT", section.get("min_swap_amount", defaults.min_swap_amount)),
            max_buy=_env_float("MAX_BUY_USDC", section.get("max_buy", defaults.max_buy)),
            initial_amount=_env_float("INITIAL_AMOUNT", section.get("initial_amount", defaults.initial_amount)),
            slippage_bps=int(_env_float("SLIPPAGE_BPS", section.get("slippage_bps", defaults.slippage_bps))),
            pool_slippage_bps=int(section.get("pool_slippage_bps", defaults.pool_slippage_bps)),
            swap_interval_sec=_env_float(
                "SWAP_INTERVAL", section.get("swap_interval_sec", defaults.swap_interval_sec)
            ),
            skip_delay_sec=float(section.get("skip_delay_sec", defaults.skip_delay_sec)),
            round_retry_delay_sec=float(section.get("round_retry_delay_sec", defaults.round_retry_delay_sec)),
            round_max_retries=int(section.get("round_max_retries", defaults.round_max_retries)),
            balance_poll_attempts=int(section.get("balance_poll_attempts", defaults.balance_poll_attempts)),
            balance_poll_delay_sec=float(section.get("balance_poll_delay_sec", defaults.balance_poll_delay_sec)),
            balance_cache_ttl_sec=float(section.get("balance_cache_ttl_sec", defaults.balance_cache_ttl_sec)),
            initial_phase=phase_from_direction(
                os.getenv("INITIAL_DIRECTION", "") or str(section.get("initial_direction", "forward"))
            ),
            use_dlmm_fallback=env_flag("USE_DLMM_FALLBACK", bool(section.get("use_dlmm_fallback", False))),
            audit_dir=str(section.get("audit_dir", defaults.audit_dir)),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.max_buy < self.min_swap_amount:
            raise ProviderMisconfigured(
                f"max_buy ({self.max_buy}) is below min_swap_amount ({self.min_swap_amount}); "
                "every buy round would be skipped"
            )
        for name in ("slippage_bps", "pool_slippage_bps"):
            value = getattr(self, name)
            if value < 0 or value > 10_000:
                raise ProviderMisconfigured(f"{name} must be between 0 and 10000")
        for name in ("min_native_reserve", "preflight_native_reserve", "min_swap_amount"):
            if getattr(self, name) < 0:
                raise ProviderMisconfigured(f"{name} must not be negative")
        if self.initial_phase not in {PHASE_BUY, PHASE_SELL}:
            raise ProviderMisconfigured(f"Unknown initial phase: {self.initial_phase}")

    def with_overrides(self, **changes: Any) -> "SwapSettings":
        updated = replace(self, **changes)
        updated.validate()
        return updated


__all__ = [
    "PHASE_BUY",
    "PHASE_SELL",
    "SwapSettings",
    "env_flag",
    "get_config",
    "load_config",
    "phase_from_direction",
    "repo_root",
]
