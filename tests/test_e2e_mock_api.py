import json
from pathlib import Path

import pytest
from solders.keypair import Keypair

from conftest import SleepRecorder
from mock_api.server import GIDDY_MINT, USDC_MINT, app, reset_state
from swaploop.commands import SwapCommands, format_outcome
from swaploop.composition import build_context
from swaploop.config import PHASE_SELL, SwapSettings, load_config
from swaploop.core.exceptions import PreconditionFailed
from swaploop.engine.notify import RecordingNotifier
from swaploop.engine.session import ROUND_COMMITTED, SOURCE_OBSERVED
from swaploop.engine.swap_types import ALL_ROUTES_FAILED


def _context(tmp_path: Path, sleeper: SleepRecorder, **settings):
    notifier = RecordingNotifier()
    context = build_context(
        load_config(),
        live=False,
        settings=SwapSettings(**settings),
        keypair=Keypair(),
        notifier=notifier,
        audit_dir=tmp_path,
        sleep=sleeper,
    )
    return context, notifier


@pytest.mark.asyncio
async def test_ultra_swap_settles_on_mock_chain(tmp_path: Path):
    chain = reset_state()
    sleeper = SleepRecorder()
    context, _ = _context(tmp_path, sleeper)
    async with context:
        commands = SwapCommands(context)
        outcome = await commands.ultra_swap("USDC", "GIDDY", 10)
        balances = await commands.balances()

    assert outcome.succeeded
    assert outcome.tier == "ultra"
    assert not outcome.used_fallback
    assert outcome.output_amount == 9_980_000
    assert chain.balances == {USDC_MINT: 10_000_000, GIDDY_MINT: 9_980_000}
    assert balances["usdc"] == pytest.approx(10.0)
    assert balances["giddy"] == pytest.approx(9.98)
    assert "solscan.io/tx/" in format_outcome(outcome)

    metrics = app.state.metrics
    assert metrics["ultra_order"] == 1
    assert metrics["ultra_execute"] == 1
    assert metrics["swap_quote"] == 0

    saved = json.loads((tmp_path / outcome.correlation_id / "outcome.json").read_text(encoding="utf-8"))
    assert saved["outcome"]["status"] == "success"
    assert (tmp_path / outcome.correlation_id / "ultra_1.json").exists()


@pytest.mark.asyncio
async def test_falls_back_to_aggregator_when_orders_fail(tmp_path: Path):
    chain = reset_state(failures={"order"})
    sleeper = SleepRecorder()
    context, notifier = _context(tmp_path, sleeper)
    async with context:
        outcome = await SwapCommands(context).ultra_swap("USDC", "GIDDY", 5)

    assert outcome.succeeded
    assert outcome.tier == "aggregator"
    assert outcome.used_fallback
    assert chain.balances[GIDDY_MINT] == 4_990_000
    assert app.state.metrics["ultra_order"] == 3
    assert app.state.metrics["swap_build"] == 1
    assert [delay for delay in sleeper.delays if delay >= 1.0][:2] == [2.0, 4.0]
    assert "ultra failed, trying aggregator..." in notifier.messages
    assert len(list((tmp_path / outcome.correlation_id).glob("ultra_*.json"))) == 3


@pytest.mark.asyncio
async def test_direct_pool_is_the_last_resort(tmp_path: Path):
    chain = reset_state(failures={"order", "quote"})
    sleeper = SleepRecorder()
    context, _ = _context(tmp_path, sleeper, use_dlmm_fallback=True)
    async with context:
        outcome = await SwapCommands(context).ultra_swap("USDC", "GIDDY", 10)

    assert outcome.succeeded
    assert outcome.tier == "direct_pool"
    assert app.state.metrics["pool_pair"] == 1
    assert app.state.metrics["pool_build"] == 1
    assert chain.balances[GIDDY_MINT] == 9_980_000


@pytest.mark.asyncio
async def test_all_routes_failing_leaves_balances_untouched(tmp_path: Path):
    chain = reset_state(failures={"order", "quote"})
    sleeper = SleepRecorder()
    context, notifier = _context(tmp_path, sleeper)
    async with context:
        outcome = await SwapCommands(context).ultra_swap("USDC", "GIDDY", 10)

    assert not outcome.succeeded
    assert outcome.error == ALL_ROUTES_FAILED
    assert [tier for tier, _ in outcome.tier_errors] == ["ultra", "aggregator"]
    assert chain.balances == {USDC_MINT: 20_000_000, GIDDY_MINT: 0}
    assert app.state.metrics["ultra_execute"] == 0
    assert any(message.startswith(ALL_ROUTES_FAILED) for message in notifier.messages)


@pytest.mark.asyncio
async def test_swap_now_runs_one_buy_round(tmp_path: Path):
    reset_state()
    sleeper = SleepRecorder()
    context, _ = _context(tmp_path, sleeper)
    async with context:
        result = await SwapCommands(context).swap_now()
        phase = context.session.state.phase
        tracked = context.session.state.tracked_output_delta

    assert result.status == ROUND_COMMITTED
    assert result.record.amount_in == 10.0
    assert result.record.amount_out == pytest.approx(9.98)
    assert result.record.amount_out_source == SOURCE_OBSERVED
    assert tracked == 9_980_000
    assert phase == PHASE_SELL
    assert 4.0 in sleeper.delays


@pytest.mark.asyncio
async def test_loop_buys_sells_and_stops_on_low_gas(tmp_path: Path):
    reset_state(native=20_005_000)
    sleeper = SleepRecorder()
    context, notifier = _context(tmp_path, sleeper)
    async with context:
        commands = SwapCommands(context)
        direction = await commands.start_loop()
        await commands.wait_loop()
        session = context.session

    assert direction == "USDC → GIDDY"
    assert [record.direction for record in session.records] == ["buy", "sell"]
    assert "SOL" in session.stop_reason
    assert session.session_path is not None and session.session_path.exists()
    assert any("Session log saved" in message for message in notifier.messages)


@pytest.mark.asyncio
async def test_unknown_asset_is_a_precondition_failure(tmp_path: Path):
    reset_state()
    context, _ = _context(tmp_path, SleepRecorder())
    async with context:
        with pytest.raises(PreconditionFailed, match="Unknown asset: DOGE"):
            await SwapCommands(context).ultra_swap("USDC", "DOGE", 1)
    assert app.state.metrics["ultra_order"] == 0
