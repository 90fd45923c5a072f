import json
from typing import Dict

import httpx
import pytest

from swaploop.core.exceptions import UpstreamBadResponse, UpstreamRateLimited
from swaploop.core.fixtures import load_fixture
from swaploop.core.http import ResilientHttpClient
from swaploop.data.ledger.client import LedgerClient, LedgerRpcError, LedgerSettings

SETTINGS = LedgerSettings(
    rpc_url="https://rpc.example.com",
    api_key="",
    commitment="confirmed",
    confirm_timeout_sec=1.0,
    confirm_poll_sec=0.1,
    max_retries=0,
)


def _client(routes: Dict[str, str], seen=None) -> LedgerClient:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.read())
        if seen is not None:
            seen.append(body)
        payload = load_fixture("ledger", routes[body["method"]])
        payload["id"] = body["id"]
        return httpx.Response(200, json=payload)

    async_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LedgerClient(SETTINGS, http_client=ResilientHttpClient("ledger", async_client=async_client, max_retries=0))


@pytest.mark.asyncio
async def test_balance_reads() -> None:
    client = _client(
        {
            "getBalance": "balance.json",
            "getTokenAccountsByOwner": "token_accounts.json",
            "getTokenAccountBalance": "token_balance.json",
            "getLatestBlockhash": "blockhash.json",
        }
    )
    assert await client.get_balance("owner") == 50_000_000
    assert await client.get_token_accounts_by_owner("owner", "mint") == ["7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"]
    assert await client.get_token_account_balance("7xKX") == 20_000_000
    assert await client.get_latest_blockhash() == "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N"


@pytest.mark.asyncio
async def test_rate_limit_error_object_maps_to_rate_limited() -> None:
    client = _client({"getBalance": "rate_limited.json"})
    with pytest.raises(UpstreamRateLimited) as excinfo:
        await client.get_balance("owner")
    assert excinfo.value.status_code == 429


@pytest.mark.asyncio
async def test_send_rejection_keeps_program_logs() -> None:
    client = _client({"sendTransaction": "send_rejected.json"})
    with pytest.raises(LedgerRpcError) as excinfo:
        await client.send_transaction("AQID")
    assert excinfo.value.code == -32002
    assert excinfo.value.logs == ["Program log: Error: ExceededAmountSlippageTolerance"]
    assert "0x1771" in str(excinfo.value)


@pytest.mark.asyncio
async def test_simulation_and_statuses() -> None:
    client = _client(
        {"simulateTransaction": "simulate_failed.json", "getSignatureStatuses": "signature_statuses.json"}
    )
    simulation = await client.simulate_transaction("AQID")
    assert simulation.err == {"InstructionError": [0, {"Custom": 6001}]}
    assert simulation.units_consumed == 21000
    statuses = await client.get_signature_statuses(["sig"])
    assert statuses[0].confirmation_status == "confirmed"


@pytest.mark.asyncio
async def test_invalid_result_shape_is_bad_response() -> None:
    client = _client({"getBalance": "blockhash.json"})
    with pytest.raises(UpstreamBadResponse):
        await client.get_balance("owner")


@pytest.mark.asyncio
async def test_rpc_call_passes_through_params() -> None:
    seen = []
    client = _client({"getBalance": "balance.json"}, seen=seen)
    result = await client.rpc_call("getBalance", ["owner"])
    assert result["value"] == 50_000_000
    assert seen[0]["params"] == ["owner"]
    assert seen[0]["jsonrpc"] == "2.0"
