import httpx
import pytest

from swaploop.core.exceptions import UpstreamBadResponse
from swaploop.core.fixtures import load_fixture
from swaploop.core.http import ResilientHttpClient
from swaploop.data.jupiter.provider import JupiterProvider, JupiterSettings, MockJupiterProvider

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
GIDDY = "8kQzvMELBQGSiFmrXqLuDSpYVLKkNoXE4bUQCC14wj3Z"

SETTINGS = JupiterSettings(
    api_key="",
    ultra_base_url="https://api.jup.ag",
    swap_base_url="https://api.jup.ag",
    quote_attempts=5,
    quote_poll_sec=0.5,
    max_retries=0,
)


@pytest.mark.asyncio
async def test_mock_jupiter_provider_success():
    provider = MockJupiterProvider()
    quote = await provider.get_quote(USDC, GIDDY, 10_000_000, 100)
    assert quote.input_mint == USDC
    swap = await provider.build_swap_tx(quote.model_dump(by_alias=True), "USER123")
    assert swap.swap_transaction
    order = await provider.get_order(USDC, GIDDY, 10_000_000, "USER123")
    assert order.transaction
    assert provider.calls == ["quote", "swap", "order"]


@pytest.mark.asyncio
async def test_mock_jupiter_provider_errors():
    quote_provider = MockJupiterProvider(error_mode="quote")
    with pytest.raises(UpstreamBadResponse):
        await quote_provider.get_quote(USDC, GIDDY, 1, 10)

    swap_provider = MockJupiterProvider(error_mode="swap")
    quote = await swap_provider.get_quote(USDC, GIDDY, 1, 10)
    with pytest.raises(UpstreamBadResponse):
        await swap_provider.build_swap_tx(quote.model_dump(by_alias=True), "USER123")


@pytest.mark.asyncio
async def test_execute_failure_is_a_payload_not_an_exception():
    provider = MockJupiterProvider(error_mode="execute")
    result = await provider.execute_order("c2lnbmVk", "req-1")
    assert result.status == "Failed"
    assert result.code == -1005


@pytest.mark.asyncio
async def test_live_provider_parses_order():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/ultra/v1/order"
        assert request.url.params["taker"] == "USER123"
        return httpx.Response(200, json=load_fixture("jupiter", "order_ok.json"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as async_client:
        provider = JupiterProvider(
            SETTINGS, http_client=ResilientHttpClient("jupiter", async_client=async_client, max_retries=0)
        )
        order = await provider.get_order(USDC, GIDDY, 10_000_000, "USER123")
    assert order.request_id.startswith("019a")
    assert order.router == "iris"


@pytest.mark.asyncio
async def test_live_provider_error_payload():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=load_fixture("jupiter", "quote_error.json")))
    async with httpx.AsyncClient(transport=transport) as async_client:
        provider = JupiterProvider(
            SETTINGS, http_client=ResilientHttpClient("jupiter", async_client=async_client, max_retries=0)
        )
        with pytest.raises(UpstreamBadResponse, match="Could not find any route"):
            await provider.get_quote(USDC, GIDDY, 10_000_000, 100)
