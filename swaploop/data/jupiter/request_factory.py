from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from swaploop.core.request_spec import RequestSpec


class JupiterRequestError(ValueError):
    pass


def _require_pair(input_mint: str, output_mint: str, amount: int) -> None:
    if not input_mint or not output_mint:
        raise JupiterRequestError("input_mint and output_mint are required")
    if input_mint == output_mint:
        raise JupiterRequestError("input_mint and output_mint must differ")
    if amount <= 0:
        raise JupiterRequestError("amount must be positive")


@dataclass(frozen=True)
class JupiterRequestFactory:
    api_key: str = ""
    ultra_base_url: str = "https://lite-api.jup.ag"
    swap_base_url: str = "https://lite-api.jup.ag"
    order_path: str = "/ultra/v1/order"
    execute_path: str = "/ultra/v1/execute"
    quote_path: str = "/swap/v1/quote"
    swap_path: str = "/swap/v1/swap"

    def _headers(self) -> Dict[str, str]:
        if self.api_key:
            return {"X-API-KEY": self.api_key}
        return {}

    def build_order_request(self, input_mint: str, output_mint: str, amount: int, taker: str) -> RequestSpec:
        _require_pair(input_mint, output_mint, amount)
        if not taker:
            raise JupiterRequestError("taker is required")
        return RequestSpec(
            method="GET",
            base_url=self.ultra_base_url,
            path=self.order_path,
            query={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": int(amount),
                "taker": taker,
            },
            headers=self._headers(),
        )

    def build_execute_request(self, signed_transaction: str, request_id: str) -> RequestSpec:
        if not signed_transaction:
            raise JupiterRequestError("signed_transaction is required")
        if not request_id:
            raise JupiterRequestError("request_id is required")
        return RequestSpec(
            method="POST",
            base_url=self.ultra_base_url,
            path=self.execute_path,
            headers={"Content-Type": "application/json", **self._headers()},
            json={"signedTransaction": signed_transaction, "requestId": request_id},
        )

    def build_quote_request(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        swap_mode: Optional[str] = "ExactIn",
        only_direct_routes: Optional[bool] = None,
        max_accounts: Optional[int] = None,
    ) -> RequestSpec:
        _require_pair(input_mint, output_mint, amount)
        if slippage_bps < 0 or slippage_bps > 10_000:
            raise JupiterRequestError("slippage_bps must be between 0 and 10000")

        query: Dict[str, Any] = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": int(amount),
            "slippageBps": int(slippage_bps),
        }
        if swap_mode:
            query["swapMode"] = swap_mode
        if only_direct_routes is not None:
            query["onlyDirectRoutes"] = only_direct_routes
        if max_accounts is not None:
            query["maxAccounts"] = int(max_accounts)

        return RequestSpec(
            method="GET",
            base_url=self.swap_base_url,
            path=self.quote_path,
            query=query,
            headers=self._headers(),
        )

    def build_swap_request(
        self,
        quote_response: Dict[str, Any],
        user_pubkey: str,
        wrap_and_unwrap_sol: bool = True,
        dynamic_compute_unit_limit: bool = True,
        prioritization_fee_lamports: Union[int, str, None] = "auto",
    ) -> RequestSpec:
        if not isinstance(quote_response, dict):
            raise JupiterRequestError("quote_response must be a dict")
        if not user_pubkey:
            raise JupiterRequestError("user_pubkey is required")

        payload: Dict[str, Any] = {
            "quoteResponse": quote_response,
            "userPublicKey": user_pubkey,
            "wrapAndUnwrapSol": bool(wrap_and_unwrap_sol),
            "dynamicComputeUnitLimit": bool(dynamic_compute_unit_limit),
        }
        if prioritization_fee_lamports == "auto":
            payload["prioritizationFeeLamports"] = "auto"
        elif prioritization_fee_lamports is not None:
            payload["prioritizationFeeLamports"] = int(prioritization_fee_lamports)

        return RequestSpec(
            method="POST",
            base_url=self.swap_base_url,
            path=self.swap_path,
            headers={"Content-Type": "application/json", **self._headers()},
            json=payload,
        )


__all__ = ["JupiterRequestError", "JupiterRequestFactory"]
