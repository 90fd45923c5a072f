from __future__ import annotations

from typing import Any, Dict, List, Optional

from swaploop.core.request_spec import JsonRpcSpec


class LedgerRequestFactory:
    def __init__(self, rpc_url: str, commitment: str = "confirmed", api_key: str = "") -> None:
        self.rpc_url = rpc_url.rstrip("/")
        self.commitment = commitment
        self.api_key = (api_key or "").strip()
        self._next_id = 0

    def build_rpc_request(self, method: str, params: Optional[List[Any]] = None) -> JsonRpcSpec:
        self._next_id += 1
        query: Dict[str, Any] = {}
        if self.api_key:
            query["api-key"] = self.api_key
        return JsonRpcSpec(
            base_url=self.rpc_url,
            rpc_method=method,
            params=params or [],
            request_id=self._next_id,
            query=query,
        )

    def get_balance(self, owner: str) -> JsonRpcSpec:
        return self.build_rpc_request("getBalance", [owner, {"commitment": self.commitment}])

    def get_token_accounts_by_owner(self, owner: str, mint: str) -> JsonRpcSpec:
        return self.build_rpc_request(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": self.commitment}],
        )

    def get_token_account_balance(self, account: str) -> JsonRpcSpec:
        return self.build_rpc_request("getTokenAccountBalance", [account, {"commitment": self.commitment}])

    def get_account_info(self, address: str) -> JsonRpcSpec:
        return self.build_rpc_request(
            "getAccountInfo", [address, {"encoding": "base64", "commitment": self.commitment}]
        )

    def get_latest_blockhash(self) -> JsonRpcSpec:
        return self.build_rpc_request("getLatestBlockhash", [{"commitment": self.commitment}])

    def send_transaction(self, transaction_b64: str, skip_preflight: bool = False) -> JsonRpcSpec:
        return self.build_rpc_request(
            "sendTransaction",
            [
                transaction_b64,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": self.commitment,
                },
            ],
        )

    def simulate_transaction(self, transaction_b64: str) -> JsonRpcSpec:
        return self.build_rpc_request(
            "simulateTransaction",
            [
                transaction_b64,
                {
                    "encoding": "base64",
                    "commitment": self.commitment,
                    "sigVerify": False,
                    "replaceRecentBlockhash": True,
                },
            ],
        )

    def get_signature_statuses(self, signatures: List[str]) -> JsonRpcSpec:
        return self.build_rpc_request(
            "getSignatureStatuses", [list(signatures), {"searchTransactionHistory": False}]
        )


__all__ = ["LedgerRequestFactory"]
