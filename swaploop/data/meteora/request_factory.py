from __future__ import annotations

from dataclasses import dataclass

from swaploop.core.request_spec import RequestSpec


class MeteoraRequestError(ValueError):
    pass


@dataclass(frozen=True)
class MeteoraRequestFactory:
    api_base_url: str = "https://dlmm-api.meteora.ag"
    builder_base_url: str = "http://127.0.0.1:8787"
    builder_path: str = "/swap"

    def build_pair_request(self, pool_address: str) -> RequestSpec:
        if not pool_address:
            raise MeteoraRequestError("pool_address is required")
        return RequestSpec(method="GET", base_url=self.api_base_url, path=f"/pair/{pool_address}")

    def build_swap_request(
        self,
        pool_address: str,
        user: str,
        input_mint: str,
        amount_in: int,
        min_amount_out: int,
        user_token_in: str,
        user_token_out: str,
    ) -> RequestSpec:
        if not pool_address or not user:
            raise MeteoraRequestError("pool_address and user are required")
        if amount_in <= 0:
            raise MeteoraRequestError("amount_in must be positive")
        if min_amount_out < 0:
            raise MeteoraRequestError("min_amount_out must not be negative")
        return RequestSpec(
            method="POST",
            base_url=self.builder_base_url,
            path=self.builder_path,
            headers={"Content-Type": "application/json"},
            json={
                "pool": pool_address,
                "user": user,
                "inputMint": input_mint,
                "amountIn": str(int(amount_in)),
                "minAmountOut": str(int(min_amount_out)),
                "userTokenIn": user_token_in,
                "userTokenOut": user_token_out,
            },
        )


__all__ = ["MeteoraRequestError", "MeteoraRequestFactory"]
