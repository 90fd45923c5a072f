import httpx
import pytest

from swaploop.core.exceptions import QuoteUnavailable
from swaploop.core.fixtures import load_fixture, load_model
from swaploop.core.http import ResilientHttpClient
from swaploop.data.meteora.provider import MeteoraProvider, MeteoraSettings, PoolQuote, quote_exact_in
from swaploop.data.meteora.request_factory import MeteoraRequestError, MeteoraRequestFactory
from swaploop.data.meteora.schemas import DlmmPairResponse

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
GIDDY = "8kQzvMELBQGSiFmrXqLuDSpYVLKkNoXE4bUQCC14wj3Z"
POOL = "8pJonw6WVjQkDndb6HGuCMdxb4sXiDfeFumxconoKB5"


def _pair(**overrides) -> DlmmPairResponse:
    pair = load_model(DlmmPairResponse, "meteora", "pair.json")
    return pair.model_copy(update=overrides)


def test_fee_bps_from_percentage():
    assert _pair().fee_bps == 20
    assert _pair(base_fee_percentage="0.25").fee_bps == 25
    assert _pair(base_fee_percentage="n/a").fee_bps == 0


def test_quote_y_to_x_deducts_fee():
    quote = quote_exact_in(_pair(), USDC, 10_000_000, slippage_bps=50)
    assert quote.from_token_is_x is False
    assert quote.amount_out == 9_980_000
    assert quote.min_amount_out == quote.amount_out * 9_950 // 10_000


def test_quote_x_to_y_is_capped_by_reserve():
    quote = quote_exact_in(_pair(), GIDDY, 10_000_000, slippage_bps=0)
    assert quote.from_token_is_x is True
    assert quote.amount_out == 5_000_000
    assert quote.min_amount_out == 5_000_000


def test_quote_scales_by_decimals():
    pair = _pair(current_price=2.0, base_fee_percentage="0")
    quote = quote_exact_in(pair, GIDDY, 1_000, slippage_bps=0, decimals_x=6, decimals_y=9)
    assert quote.amount_out == 2_000_000


def test_quote_uses_exact_price_arithmetic():
    # 0.29 * 100 is 28.999... in binary floating point.
    pair = _pair(current_price=0.29, base_fee_percentage="0")
    quote = quote_exact_in(pair, GIDDY, 100, slippage_bps=0)
    assert quote.amount_out == 29
    assert isinstance(quote.amount_out, int)


def test_quote_rejects_foreign_mint_and_dead_pool():
    with pytest.raises(QuoteUnavailable):
        quote_exact_in(_pair(), "So11111111111111111111111111111111111111112", 1_000, 50)
    with pytest.raises(QuoteUnavailable):
        quote_exact_in(_pair(current_price=0.0), USDC, 1_000, 50)


def test_swap_request_contract():
    factory = MeteoraRequestFactory(builder_base_url="http://builder.local")
    spec = factory.build_swap_request(POOL, "USER", USDC, 10_000_000, 9_930_100, "ataIn", "ataOut")
    assert spec.method == "POST"
    assert spec.url() == "http://builder.local/swap"
    assert spec.json["amountIn"] == "10000000"
    assert spec.json["minAmountOut"] == "9930100"
    with pytest.raises(MeteoraRequestError):
        factory.build_swap_request(POOL, "USER", USDC, 0, 0, "ataIn", "ataOut")


@pytest.mark.asyncio
async def test_provider_reads_pair_and_builds_swap():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            assert request.url.path == f"/pair/{POOL}"
            return httpx.Response(200, json=load_fixture("meteora", "pair.json"))
        return httpx.Response(200, json=load_fixture("meteora", "swap_build.json"))

    settings = MeteoraSettings(
        api_base_url="https://dlmm.example.com",
        builder_base_url="http://builder.local",
        pool_address=POOL,
        max_retries=0,
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
        provider = MeteoraProvider(
            settings, http_client=ResilientHttpClient("meteora", async_client=async_client, max_retries=0)
        )
        pair = await provider.get_pair()
        build = await provider.build_swap_tx(
            "USER", USDC, PoolQuote(10_000_000, 9_980_000, 9_930_100, False), "ataIn", "ataOut"
        )
    assert pair.mint_x == GIDDY
    assert build.min_amount_out == "9930100"
