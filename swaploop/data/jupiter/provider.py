from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from pydantic import ValidationError

from swaploop.core.exceptions import UpstreamBadResponse
from swaploop.core.fixtures import load_fixture
from swaploop.core.http import ResilientHttpClient
from swaploop.data.jupiter.request_factory import JupiterRequestFactory
from swaploop.data.jupiter.schemas import (
    JupiterQuoteResponse,
    JupiterSwapResponse,
    UltraExecuteResponse,
    UltraOrderResponse,
)


@dataclass(frozen=True)
class JupiterSettings:
    api_key: str
    ultra_base_url: str
    swap_base_url: str
    quote_attempts: int
    quote_poll_sec: float
    max_retries: int

    @classmethod
    def from_env(cls, cfg: Optional[Dict[str, Any]] = None) -> "JupiterSettings":
        section = dict((cfg or {}).get("jupiter", {}) or {})
        ultra_base_url = os.getenv("JUPITER_ULTRA_BASE_URL", "").strip() or str(
            section.get("ultra_base_url", "https://lite-api.jup.ag")
        )
        swap_base_url = os.getenv("JUPITER_SWAP_BASE_URL", "").strip() or str(
            section.get("swap_base_url", "https://lite-api.jup.ag")
        )
        return cls(
            api_key=os.getenv("JUPITER_API_KEY", "").strip(),
            ultra_base_url=ultra_base_url.rstrip("/"),
            swap_base_url=swap_base_url.rstrip("/"),
            quote_attempts=int(section.get("quote_attempts", 5)),
            quote_poll_sec=float(section.get("quote_poll_sec", 0.5)),
            max_retries=int(section.get("max_retries", 1)),
        )


class AggregatorClient(Protocol):
    async def get_order(self, input_mint: str, output_mint: str, amount: int, taker: str) -> UltraOrderResponse:
        ...

    async def execute_order(self, signed_transaction: str, request_id: str) -> UltraExecuteResponse:
        ...

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> JupiterQuoteResponse:
        ...

    async def build_swap_tx(self, quote_response: Dict[str, Any], user_pubkey: str) -> JupiterSwapResponse:
        ...


def _parse_jupiter_response(payload: Any, model, context: str):
    if isinstance(payload, dict) and payload.get("error") and context != "execute":
        message = payload.get("error") or f"Jupiter {context} response error"
        raise UpstreamBadResponse(f"Jupiter {context} error: {message}")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Jupiter {context} response invalid") from exc


class JupiterProvider:
    def __init__(self, settings: JupiterSettings, http_client: Optional[ResilientHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = JupiterRequestFactory(
            api_key=settings.api_key,
            ultra_base_url=settings.ultra_base_url,
            swap_base_url=settings.swap_base_url,
        )
        self._client = http_client or ResilientHttpClient("jupiter", max_retries=settings.max_retries)
        self._owns_client = http_client is None

    async def __aenter__(self) -> "JupiterProvider":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_order(self, input_mint: str, output_mint: str, amount: int, taker: str) -> UltraOrderResponse:
        spec = self.request_factory.build_order_request(input_mint, output_mint, amount, taker)
        payload = await self._client.request(spec)
        return _parse_jupiter_response(payload, UltraOrderResponse, "order")

    async def execute_order(self, signed_transaction: str, request_id: str) -> UltraExecuteResponse:
        spec = self.request_factory.build_execute_request(signed_transaction, request_id)
        payload = await self._client.request(spec)
        return _parse_jupiter_response(payload, UltraExecuteResponse, "execute")

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> JupiterQuoteResponse:
        spec = self.request_factory.build_quote_request(input_mint, output_mint, amount, slippage_bps)
        payload = await self._client.request(spec)
        return _parse_jupiter_response(payload, JupiterQuoteResponse, "quote")

    async def build_swap_tx(self, quote_response: Dict[str, Any], user_pubkey: str) -> JupiterSwapResponse:
        spec = self.request_factory.build_swap_request(quote_response, user_pubkey)
        payload = await self._client.request(spec)
        return _parse_jupiter_response(payload, JupiterSwapResponse, "swap")


class MockJupiterProvider:
    """Serves canned fixture payloads; ``error_mode`` swaps in the failing variant of one call."""

    def __init__(self, fixture_dir: Optional[Path] = None, error_mode: Optional[str] = None) -> None:
        self.fixture_dir = fixture_dir
        self.error_mode = error_mode
        self.calls: list[str] = []
        self.request_factory = JupiterRequestFactory(api_key="offline")

    async def get_order(self, input_mint: str, output_mint: str, amount: int, taker: str) -> UltraOrderResponse:
        self.calls.append("order")
        name = "order_error.json" if self.error_mode == "order" else "order_ok.json"
        return _parse_jupiter_response(self._load(name), UltraOrderResponse, "order")

    async def execute_order(self, signed_transaction: str, request_id: str) -> UltraExecuteResponse:
        self.calls.append("execute")
        name = "execute_failed.json" if self.error_mode == "execute" else "execute_ok.json"
        return _parse_jupiter_response(self._load(name), UltraExecuteResponse, "execute")

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> JupiterQuoteResponse:
        self.calls.append("quote")
        if self.error_mode == "quote":
            name = "quote_error.json"
        elif self.error_mode == "empty_quote":
            name = "quote_empty.json"
        else:
            name = "quote_ok.json"
        return _parse_jupiter_response(self._load(name), JupiterQuoteResponse, "quote")

    async def build_swap_tx(self, quote_response: Dict[str, Any], user_pubkey: str) -> JupiterSwapResponse:
        self.calls.append("swap")
        name = "swap_error.json" if self.error_mode == "swap" else "swap_ok.json"
        return _parse_jupiter_response(self._load(name), JupiterSwapResponse, "swap")

    async def aclose(self) -> None:
        return None

    def _load(self, name: str) -> Dict[str, Any]:
        return load_fixture("jupiter", name, base_dir=self.fixture_dir)


__all__ = [
    "AggregatorClient",
    "JupiterProvider",
    "JupiterSettings",
    "MockJupiterProvider",
]
