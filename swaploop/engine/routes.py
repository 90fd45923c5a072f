from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from swaploop.core.backoff import Sleep
from swaploop.core.exceptions import InsufficientBalance, QuoteUnavailable, TransactionFailed, UpstreamError
from swaploop.data.jupiter.provider import AggregatorClient
from swaploop.data.meteora.provider import MeteoraProvider, PoolQuote, quote_exact_in
from swaploop.engine.assets import AssetRegistry
from swaploop.engine.execution import ExecutionEngine, ExecutionReceipt, ProviderSubmission
from swaploop.engine.swap_types import Quote, SwapRequest
from swaploop.engine.wallet import Wallet

logger = logging.getLogger(__name__)

NO_ALTERNATE_QUOTE = "No quote available from alternate routes"


class RouteProvider(Protocol):
    name: str

    async def get_quote(self, request: SwapRequest) -> Quote:
        ...

    async def execute(self, quote: Quote) -> ExecutionReceipt:
        ...


class UltraRoute:
    """Order/execute aggregator: the provider builds and lands the transaction."""

    name = "ultra"

    def __init__(self, client: AggregatorClient, engine: ExecutionEngine, wallet: Wallet) -> None:
        self.client = client
        self.engine = engine
        self.wallet = wallet

    async def get_quote(self, request: SwapRequest) -> Quote:
        order = await self.client.get_order(
            request.input_asset.mint,
            request.output_asset.mint,
            request.amount,
            self.wallet.address,
        )
        if not order.transaction:
            raise QuoteUnavailable(order.error_message or "Ultra order returned no transaction")
        out_amount = int(order.out_amount)
        if out_amount <= 0:
            raise QuoteUnavailable("Ultra order quoted no output")
        logger.info(
            "ultra quote: %s %s -> ~%s %s via %s",
            request.input_asset.to_ui(request.amount),
            request.input_asset.symbol,
            request.output_asset.to_ui(out_amount),
            request.output_asset.symbol,
            order.router or "Unknown",
        )
        return Quote(
            provider=self.name,
            input_mint=request.input_asset.mint,
            output_mint=request.output_asset.mint,
            in_amount=int(order.in_amount),
            out_amount=out_amount,
            route=order.router or "Direct",
            min_out_amount=int(order.other_amount_threshold) if order.other_amount_threshold else None,
            payload={"transaction": order.transaction, "requestId": order.request_id},
        )

    async def execute(self, quote: Quote) -> ExecutionReceipt:
        request_id = quote.payload["requestId"]

        async def _submit(signed: str) -> ProviderSubmission:
            result = await self.client.execute_order(signed, request_id)
            if result.status != "Success":
                detail = result.error or result.status
                raise TransactionFailed(
                    f"Ultra execute failed: {detail} (code {result.code})", signature=result.signature or ""
                )
            output = int(result.output_amount_result) if result.output_amount_result else None
            return ProviderSubmission(signature=result.signature or "", output_amount=output)

        return await self.engine.execute(quote.payload["transaction"], quote.out_amount, submitter=_submit)


class AggregatorRoute:
    """Quote + swap-build aggregator; the transaction lands through the ledger."""

    name = "aggregator"

    def __init__(
        self,
        client: AggregatorClient,
        engine: ExecutionEngine,
        wallet: Wallet,
        slippage_bps: int = 100,
        quote_attempts: int = 5,
        quote_poll_sec: float = 0.5,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.client = client
        self.engine = engine
        self.wallet = wallet
        self.slippage_bps = slippage_bps
        self.quote_attempts = max(1, quote_attempts)
        self.quote_poll_sec = quote_poll_sec
        self._sleep = sleep or asyncio.sleep

    async def get_quote(self, request: SwapRequest) -> Quote:
        response = None
        for attempt in range(1, self.quote_attempts + 1):
            try:
                candidate = await self.client.get_quote(
                    request.input_asset.mint,
                    request.output_asset.mint,
                    request.amount,
                    self.slippage_bps,
                )
                if int(candidate.out_amount) > 0:
                    response = candidate
                    break
            except UpstreamError as exc:
                logger.warning("alternate quote attempt %s/%s failed: %s", attempt, self.quote_attempts, exc)
            if attempt < self.quote_attempts:
                await self._sleep(self.quote_poll_sec)
        if response is None:
            raise QuoteUnavailable(NO_ALTERNATE_QUOTE)

        route = response.route_labels()
        logger.info(
            "alternate quote: %s %s -> ~%s %s via %s",
            request.input_asset.to_ui(request.amount),
            request.input_asset.symbol,
            request.output_asset.to_ui(int(response.out_amount)),
            request.output_asset.symbol,
            route,
        )
        return Quote(
            provider=self.name,
            input_mint=response.input_mint,
            output_mint=response.output_mint,
            in_amount=int(response.in_amount),
            out_amount=int(response.out_amount),
            route=route,
            min_out_amount=int(response.other_amount_threshold) if response.other_amount_threshold else None,
            payload=response.model_dump(by_alias=True, exclude_none=True),
        )

    async def execute(self, quote: Quote) -> ExecutionReceipt:
        swap = await self.client.build_swap_tx(quote.payload, self.wallet.address)
        return await self.engine.execute(swap.swap_transaction, quote.out_amount)


class DirectPoolRoute:
    """Single configured liquidity pool; quoted locally and simulated before send."""

    name = "direct_pool"

    def __init__(
        self,
        provider: MeteoraProvider,
        engine: ExecutionEngine,
        wallet: Wallet,
        registry: AssetRegistry,
        min_native_reserve: float = 0.02,
        slippage_bps: int = 50,
    ) -> None:
        self.provider = provider
        self.engine = engine
        self.wallet = wallet
        self.registry = registry
        self.min_native_reserve = min_native_reserve
        self.slippage_bps = slippage_bps

    async def get_quote(self, request: SwapRequest) -> Quote:
        native = await self.wallet.ledger.get_balance(self.wallet.address)
        required = self.registry.native.to_raw(self.min_native_reserve)
        if native < required:
            available = self.registry.native.to_ui(native)
            raise InsufficientBalance(
                f"Insufficient SOL balance: {available} SOL (min {self.min_native_reserve} SOL)",
                available=available,
                required=self.min_native_reserve,
            )
        token_in = await self.wallet.ensure_token_account(request.input_asset, self.engine.build_and_send)
        token_out = await self.wallet.ensure_token_account(request.output_asset, self.engine.build_and_send)

        pair = await self.provider.get_pair()
        pool_quote = quote_exact_in(
            pair,
            request.input_asset.mint,
            request.amount,
            self.slippage_bps,
            decimals_x=self._decimals(pair.mint_x),
            decimals_y=self._decimals(pair.mint_y),
        )
        return Quote(
            provider=self.name,
            input_mint=request.input_asset.mint,
            output_mint=request.output_asset.mint,
            in_amount=pool_quote.amount_in,
            out_amount=pool_quote.amount_out,
            min_out_amount=pool_quote.min_amount_out,
            route="Direct DLMM",
            payload={
                "pool": pair.address,
                "fromTokenIsX": pool_quote.from_token_is_x,
                "userTokenIn": token_in,
                "userTokenOut": token_out,
            },
        )

    async def execute(self, quote: Quote) -> ExecutionReceipt:
        pool_quote = PoolQuote(
            amount_in=quote.in_amount,
            amount_out=quote.out_amount,
            min_amount_out=quote.min_out_amount or 0,
            from_token_is_x=bool(quote.payload["fromTokenIsX"]),
        )
        build = await self.provider.build_swap_tx(
            user=self.wallet.address,
            input_mint=quote.input_mint,
            quote=pool_quote,
            user_token_in=quote.payload["userTokenIn"],
            user_token_out=quote.payload["userTokenOut"],
        )
        return await self.engine.execute(build.transaction, quote.out_amount, simulate_first=True)

    def _decimals(self, mint: str) -> int:
        asset = self.registry.by_mint(mint)
        return asset.decimals if asset is not None else 6


__all__ = [
    "AggregatorRoute",
    "DirectPoolRoute",
    "NO_ALTERNATE_QUOTE",
    "RouteProvider",
    "UltraRoute",
]
