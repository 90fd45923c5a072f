from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, Optional

from pydantic import ValidationError

from swaploop.core.exceptions import QuoteUnavailable, UpstreamBadResponse
from swaploop.core.http import ResilientHttpClient
from swaploop.data.meteora.request_factory import MeteoraRequestFactory
from swaploop.data.meteora.schemas import DlmmPairResponse, DlmmSwapBuildResponse

DEFAULT_POOL_ADDRESS = "8pJonw6WVjQkDndb6HGuCMdxb4sXiDfeFumxconoKB5"


@dataclass(frozen=True)
class MeteoraSettings:
    api_base_url: str
    builder_base_url: str
    pool_address: str
    max_retries: int

    @classmethod
    def from_env(cls, cfg: Optional[Dict[str, Any]] = None) -> "MeteoraSettings":
        section = dict((cfg or {}).get("meteora", {}) or {})
        return cls(
            api_base_url=(
                os.getenv("METEORA_API_BASE_URL", "").strip()
                or str(section.get("api_base_url", "https://dlmm-api.meteora.ag"))
            ).rstrip("/"),
            builder_base_url=(
                os.getenv("METEORA_BUILDER_URL", "").strip()
                or str(section.get("builder_base_url", "http://127.0.0.1:8787"))
            ).rstrip("/"),
            pool_address=os.getenv("DLMM_POOL_ADDRESS", "").strip()
            or str(section.get("pool_address", DEFAULT_POOL_ADDRESS)),
            max_retries=int(section.get("max_retries", 2)),
        )


@dataclass(frozen=True)
class PoolQuote:
    amount_in: int
    amount_out: int
    min_amount_out: int
    from_token_is_x: bool


def _parse_meteora_response(payload: Any, model, context: str):
    if isinstance(payload, dict) and payload.get("error"):
        raise UpstreamBadResponse(f"Meteora {context} error: {payload.get('error')}")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamBadResponse(f"Meteora {context} response invalid") from exc


def quote_exact_in(
    pair: DlmmPairResponse,
    input_mint: str,
    amount_in: int,
    slippage_bps: int,
    decimals_x: int = 6,
    decimals_y: int = 6,
) -> PoolQuote:
    """Quote an exact-in swap against the pool's active price.

    ``current_price`` is Y per X in UI units. The fee is taken from the input
    in whole basis points, the price is applied with ``Decimal`` and the output
    is capped by the reserve on the output side.
    """
    if input_mint == pair.mint_x:
        from_token_is_x = True
    elif input_mint == pair.mint_y:
        from_token_is_x = False
    else:
        raise QuoteUnavailable(f"Pool {pair.address} does not trade {input_mint}")
    if pair.current_price <= 0:
        raise QuoteUnavailable(f"Pool {pair.address} has no active price")

    raw_price = Decimal(str(pair.current_price)).scaleb(decimals_y - decimals_x)
    net_in = Decimal(int(amount_in) * (10_000 - pair.fee_bps) // 10_000)
    if from_token_is_x:
        amount_out = int((net_in * raw_price).to_integral_value(rounding=ROUND_FLOOR))
        reserve = pair.reserve_y_amount
    else:
        amount_out = int((net_in / raw_price).to_integral_value(rounding=ROUND_FLOOR))
        reserve = pair.reserve_x_amount
    if reserve > 0:
        amount_out = min(amount_out, reserve)
    if amount_out <= 0:
        raise QuoteUnavailable(f"Pool {pair.address} quote is empty")
    min_amount_out = (amount_out * (10_000 - slippage_bps)) // 10_000
    return PoolQuote(
        amount_in=int(amount_in),
        amount_out=int(amount_out),
        min_amount_out=int(min_amount_out),
        from_token_is_x=from_token_is_x,
    )


class MeteoraProvider:
    def __init__(self, settings: MeteoraSettings, http_client: Optional[ResilientHttpClient] = None) -> None:
        self.settings = settings
        self.request_factory = MeteoraRequestFactory(
            api_base_url=settings.api_base_url,
            builder_base_url=settings.builder_base_url,
        )
        self._client = http_client or ResilientHttpClient("meteora", max_retries=settings.max_retries)
        self._owns_client = http_client is None

    async def __aenter__(self) -> "MeteoraProvider":
        await self._client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client:
            await self._client.__aexit__(exc_type, exc, tb)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_pair(self, pool_address: Optional[str] = None) -> DlmmPairResponse:
        spec = self.request_factory.build_pair_request(pool_address or self.settings.pool_address)
        payload = await self._client.request(spec)
        return _parse_meteora_response(payload, DlmmPairResponse, "pair")

    async def build_swap_tx(
        self,
        user: str,
        input_mint: str,
        quote: PoolQuote,
        user_token_in: str,
        user_token_out: str,
    ) -> DlmmSwapBuildResponse:
        spec = self.request_factory.build_swap_request(
            pool_address=self.settings.pool_address,
            user=user,
            input_mint=input_mint,
            amount_in=quote.amount_in,
            min_amount_out=quote.min_amount_out,
            user_token_in=user_token_in,
            user_token_out=user_token_out,
        )
        payload = await self._client.request(spec)
        return _parse_meteora_response(payload, DlmmSwapBuildResponse, "swap")


__all__ = [
    "DEFAULT_POOL_ADDRESS",
    "MeteoraProvider",
    "MeteoraSettings",
    "PoolQuote",
    "quote_exact_in",
]
