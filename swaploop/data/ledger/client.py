from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import ValidationError

from swaploop.core.exceptions import UpstreamBadResponse, UpstreamRateLimited
from swaploop.core.http import ResilientHttpClient
from swaploop.core.request_spec import JsonRpcSpec
from swaploop.data.ledger.request_factory import LedgerRequestFactory
from swaploop.data.ledger.schemas import (
    AccountInfoResult,
    BalanceResult,
    LatestBlockhashResult,
    RpcEnvelope,
    SignatureStatus,
    SignatureStatusesResult,
    SimulationResult,
    SimulationValue,
    TokenAccountBalanceResult,
    TokenAccountsResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Node-side throttling codes that should be treated like HTTP 429.
RATE_LIMIT_CODES = {429, -32005}


class LedgerRpcError(UpstreamBadResponse):
    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data

    @property
    def logs(self) -> List[str]:
        if isinstance(self.data, dict):
            return list(self.data.get("logs") or [])
        return []


@dataclass(frozen=True)
class LedgerSettings:
    rpc_url: str
    api_key: str
    commitment: str
    confirm_timeout_sec: float
    confirm_poll_sec: float
    max_retries: int

    @classmethod
    def from_env(cls, cfg: Optional[Dict[str, Any]] = None) -> "LedgerSettings":
        section = dict((cfg or {}).get("ledger", {}) or {})
        rpc_url = os.getenv("SOLANA_RPC_URL", "").strip() or str(
            section.get("rpc_url", "https://api.mainnet-beta.solana.com")
        )
        return cls(
            rpc_url=rpc_url,
            api_key=os.getenv("SOLANA_RPC_API_KEY", "").strip(),
            commitment=str(section.get("commitment", "confirmed")),
            confirm_timeout_sec=float(section.get("confirm_timeout_sec", 60.0)),
            confirm_poll_sec=float(section.get("confirm_poll_sec", 0.5)),
            max_retries=int(section.get("max_retries", 0)),
        )


def _validate_model(payload: Any, model: Type[T], context: str) -> T:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Ledger {context} response invalid") from exc


def _raise_rpc_error(method: str, envelope: RpcEnvelope) -> None:
    error = envelope.error
    if error is None:
        return
    message = f"Ledger {method} failed: {error.message}"
    if error.code in RATE_LIMIT_CODES or "429" in error.message or "too many requests" in error.message.lower():
        raise UpstreamRateLimited(message, status_code=429)
    raise LedgerRpcError(message, code=error.code, data=error.data)


class LedgerClient:
    """Typed JSON-RPC access to the ledger node.

    Every call goes through ``rpc_call`` which unwraps the envelope and maps
    error objects onto the upstream exception taxonomy.
    """

    def __init__(self, settings: LedgerSettings, http_client: Optional[ResilientHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = LedgerRequestFactory(
            rpc_url=settings.rpc_url,
            commitment=settings.commitment,
            api_key=settings.api_key,
        )
        self._client = http_client or ResilientHttpClient("ledger", max_retries=settings.max_retries)
        self._owns_client = http_client is None

    async def __aenter__(self) -> "LedgerClient":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def rpc_call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        return await self._call(self.request_factory.build_rpc_request(method, params=params), method)

    async def _call(self, spec: JsonRpcSpec, context: str) -> Any:
        payload = await self._client.request(spec)
        envelope = _validate_model(payload, RpcEnvelope, context)
        _raise_rpc_error(context, envelope)
        return envelope.result

    async def get_balance(self, owner: str) -> int:
        result = await self._call(self.request_factory.get_balance(owner), "getBalance")
        return _validate_model(result, BalanceResult, "getBalance").value

    async def get_token_accounts_by_owner(self, owner: str, mint: str) -> List[str]:
        result = await self._call(
            self.request_factory.get_token_accounts_by_owner(owner, mint), "getTokenAccountsByOwner"
        )
        accounts = _validate_model(result, TokenAccountsResult, "getTokenAccountsByOwner")
        return [item.pubkey for item in accounts.value]

    async def get_token_account_balance(self, account: str) -> int:
        result = await self._call(
            self.request_factory.get_token_account_balance(account), "getTokenAccountBalance"
        )
        balance = _validate_model(result, TokenAccountBalanceResult, "getTokenAccountBalance")
        try:
            return int(balance.value.amount)
        except ValueError as exc:
            raise UpstreamBadResponse("Ledger getTokenAccountBalance amount is not an integer") from exc

    async def get_account_info(self, address: str) -> Optional[Dict[str, Any]]:
        result = await self._call(self.request_factory.get_account_info(address), "getAccountInfo")
        return _validate_model(result, AccountInfoResult, "getAccountInfo").value

    async def get_latest_blockhash(self) -> str:
        result = await self._call(self.request_factory.get_latest_blockhash(), "getLatestBlockhash")
        return _validate_model(result, LatestBlockhashResult, "getLatestBlockhash").value.blockhash

    async def send_transaction(self, transaction_b64: str) -> str:
        result = await self._call(self.request_factory.send_transaction(transaction_b64), "sendTransaction")
        if not isinstance(result, str) or not result:
            raise UpstreamBadResponse("Ledger sendTransaction returned no signature")
        return result

    async def simulate_transaction(self, transaction_b64: str) -> SimulationValue:
        result = await self._call(
            self.request_factory.simulate_transaction(transaction_b64), "simulateTransaction"
        )
        return _validate_model(result, SimulationResult, "simulateTransaction").value

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[SignatureStatus]]:
        result = await self._call(
            self.request_factory.get_signature_statuses(signatures), "getSignatureStatuses"
        )
        return _validate_model(result, SignatureStatusesResult, "getSignatureStatuses").value


__all__ = ["LedgerClient", "LedgerRpcError", "LedgerSettings", "RATE_LIMIT_CODES"]
