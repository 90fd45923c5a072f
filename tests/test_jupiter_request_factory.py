import pytest

from swaploop.data.jupiter.request_factory import JupiterRequestError, JupiterRequestFactory

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
GIDDY = "8kQzvMELBQGSiFmrXqLuDSpYVLKkNoXE4bUQCC14wj3Z"


def test_order_request_contract():
    factory = JupiterRequestFactory(api_key="test-key", ultra_base_url="https://api.jup.ag")
    spec = factory.build_order_request(USDC, GIDDY, amount=10_000_000, taker="USER123")
    assert spec.method == "GET"
    assert spec.path == "/ultra/v1/order"
    assert spec.query == {"inputMint": USDC, "outputMint": GIDDY, "amount": 10_000_000, "taker": "USER123"}
    assert spec.headers == {"X-API-KEY": "test-key"}


def test_execute_request_contract():
    factory = JupiterRequestFactory()
    spec = factory.build_execute_request("c2lnbmVk", "req-1")
    assert spec.method == "POST"
    assert spec.path == "/ultra/v1/execute"
    assert spec.json == {"signedTransaction": "c2lnbmVk", "requestId": "req-1"}
    assert "X-API-KEY" not in spec.headers


def test_quote_request_contract():
    factory = JupiterRequestFactory(api_key="test-key", swap_base_url="https://api.jup.ag")
    spec = factory.build_quote_request(USDC, GIDDY, amount=1000, slippage_bps=50)
    assert spec.method == "GET"
    assert spec.path == "/swap/v1/quote"
    assert spec.query["amount"] == 1000
    assert spec.query["slippageBps"] == 50
    assert spec.query["swapMode"] == "ExactIn"


def test_swap_request_contract():
    factory = JupiterRequestFactory(api_key="test-key")
    quote = {"inputMint": USDC, "outputMint": GIDDY, "inAmount": "1", "outAmount": "2"}
    spec = factory.build_swap_request(quote, user_pubkey="USER123")
    assert spec.method == "POST"
    assert spec.path == "/swap/v1/swap"
    assert spec.json["quoteResponse"] == quote
    assert spec.json["wrapAndUnwrapSol"] is True
    assert spec.json["dynamicComputeUnitLimit"] is True
    assert spec.json["prioritizationFeeLamports"] == "auto"


def test_request_spec_fingerprint():
    factory = JupiterRequestFactory(api_key="test-key", ultra_base_url="https://api.jup.ag")
    order = factory.build_order_request(USDC, GIDDY, amount=1, taker="USER")
    assert (
        order.fingerprint(required_headers=["X-API-KEY"])
        == "GET https://api.jup.ag/ultra/v1/order q=amount,inputMint,outputMint,taker h=x-api-key"
    )


@pytest.mark.parametrize(
    "input_mint,output_mint,amount",
    [("", GIDDY, 1), (USDC, USDC, 1), (USDC, GIDDY, 0)],
)
def test_invalid_pairs_rejected(input_mint, output_mint, amount):
    factory = JupiterRequestFactory()
    with pytest.raises(JupiterRequestError):
        factory.build_quote_request(input_mint, output_mint, amount=amount, slippage_bps=50)


def test_slippage_bounds():
    factory = JupiterRequestFactory()
    with pytest.raises(JupiterRequestError):
        factory.build_quote_request(USDC, GIDDY, amount=1, slippage_bps=10_001)
