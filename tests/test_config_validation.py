import pytest

from swaploop.config import PHASE_BUY, PHASE_SELL, SwapSettings, env_flag, phase_from_direction
from swaploop.core.exceptions import ProviderMisconfigured


def _cfg(**swap):
    return {"swap": dict(swap)}


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for name in ("MIN_SWAP_AMOUNT", "MAX_BUY_USDC", "INITIAL_AMOUNT", "SLIPPAGE_BPS", "SWAP_INTERVAL",
                 "INITIAL_DIRECTION", "USE_DLMM_FALLBACK"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_from_empty_config() -> None:
    settings = SwapSettings.from_config({})
    assert settings.base_asset == "USDC"
    assert settings.traded_asset == "GIDDY"
    assert settings.initial_phase == PHASE_BUY
    assert settings.min_native_reserve == 0.02
    assert not settings.use_dlmm_fallback


def test_env_overrides_yaml(monkeypatch) -> None:
    monkeypatch.setenv("MAX_BUY_USDC", "25")
    monkeypatch.setenv("SWAP_INTERVAL", "60")
    monkeypatch.setenv("INITIAL_DIRECTION", "backward")
    monkeypatch.setenv("USE_DLMM_FALLBACK", "true")
    settings = SwapSettings.from_config(_cfg(max_buy=10, swap_interval_sec=300))
    assert settings.max_buy == 25.0
    assert settings.swap_interval_sec == 60.0
    assert settings.initial_phase == PHASE_SELL
    assert settings.use_dlmm_fallback


def test_non_numeric_env_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("SLIPPAGE_BPS", "lots")
    with pytest.raises(ProviderMisconfigured, match="SLIPPAGE_BPS"):
        SwapSettings.from_config({})


def test_max_buy_below_minimum_is_rejected() -> None:
    with pytest.raises(ProviderMisconfigured, match="max_buy"):
        SwapSettings.from_config(_cfg(max_buy=0.5, min_swap_amount=1))


def test_slippage_out_of_range_is_rejected() -> None:
    with pytest.raises(ProviderMisconfigured, match="slippage_bps"):
        SwapSettings().with_overrides(slippage_bps=20_000)


def test_negative_reserve_is_rejected() -> None:
    with pytest.raises(ProviderMisconfigured, match="min_native_reserve"):
        SwapSettings().with_overrides(min_native_reserve=-1.0)


@pytest.mark.parametrize(
    "direction,phase",
    [("forward", PHASE_BUY), ("", PHASE_BUY), ("BACKWARD", PHASE_SELL), ("sell", PHASE_SELL)],
)
def test_phase_from_direction(direction, phase) -> None:
    assert phase_from_direction(direction) == phase


def test_unknown_direction_is_rejected() -> None:
    with pytest.raises(ProviderMisconfigured):
        phase_from_direction("sideways")


def test_env_flag(monkeypatch) -> None:
    monkeypatch.delenv("SWAPLOOP_TEST_FLAG", raising=False)
    assert env_flag("SWAPLOOP_TEST_FLAG", True) is True
    monkeypatch.setenv("SWAPLOOP_TEST_FLAG", "yes")
    assert env_flag("SWAPLOOP_TEST_FLAG") is True
    monkeypatch.setenv("SWAPLOOP_TEST_FLAG", "0")
    assert env_flag("SWAPLOOP_TEST_FLAG", True) is False
