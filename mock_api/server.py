from __future__ import annotations

import base64
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
from spl.token.instructions import get_associated_token_address

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
GIDDY_MINT = "8kQzvMELBQGSiFmrXqLuDSpYVLKkNoXE4bUQCC14wj3Z"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
POOL_ADDRESS = "8pJonw6WVjQkDndb6HGuCMdxb4sXiDfeFumxconoKB5"

MINTS: Dict[str, Dict[str, Any]] = {
    USDC_MINT: {"symbol": "USDC", "decimals": 6, "program": TOKEN_PROGRAM_ID},
    GIDDY_MINT: {"symbol": "GIDDY", "decimals": 6, "program": TOKEN_2022_PROGRAM_ID},
}

# 1:1 pool with a 0.2% fee: 10 USDC in, 9.98 GIDDY out.
FEE_BPS = 20
TX_FEE_LAMPORTS = 5_000


@dataclass
class PendingSwap:
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int


@dataclass
class MockChain:
    native: int = 50_000_000
    balances: Dict[str, int] = field(default_factory=lambda: {USDC_MINT: 20_000_000, GIDDY_MINT: 0})
    settle_balances: bool = True
    failures: Set[str] = field(default_factory=set)
    accounts: Dict[str, str] = field(default_factory=dict)
    pending: Dict[str, PendingSwap] = field(default_factory=dict)
    statuses: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def token_account(self, owner: str, mint: str) -> str:
        program = MINTS.get(mint, {}).get("program", TOKEN_PROGRAM_ID)
        address = str(
            get_associated_token_address(
                Pubkey.from_string(owner), Pubkey.from_string(mint), Pubkey.from_string(program)
            )
        )
        self.accounts[address] = mint
        return address

    def settle(self, key: str, signature: str) -> Optional[PendingSwap]:
        swap = self.pending.pop(key, None)
        self.statuses[signature] = {"slot": 1, "confirmations": None, "err": None, "confirmationStatus": "confirmed"}
        self.native -= TX_FEE_LAMPORTS
        if swap is None or not self.settle_balances:
            return swap
        self.balances[swap.input_mint] = self.balances.get(swap.input_mint, 0) - swap.in_amount
        self.balances[swap.output_mint] = self.balances.get(swap.output_mint, 0) + swap.out_amount
        return swap


def _fresh_metrics() -> Dict[str, int]:
    return {
        "ultra_order": 0,
        "ultra_execute": 0,
        "swap_quote": 0,
        "swap_build": 0,
        "pool_pair": 0,
        "pool_build": 0,
        "rpc": 0,
    }


app = FastAPI()
app.state.chain = MockChain()
app.state.metrics = _fresh_metrics()


def reset_state(
    native: int = 50_000_000,
    balances: Optional[Dict[str, int]] = None,
    failures: Iterable[str] = (),
    settle_balances: bool = True,
) -> MockChain:
    chain = MockChain(native=native, settle_balances=settle_balances, failures=set(failures))
    if balances is not None:
        chain.balances = dict(balances)
    app.state.chain = chain
    app.state.metrics = _fresh_metrics()
    return chain


def reset_metrics() -> None:
    app.state.metrics = _fresh_metrics()


def _chain() -> MockChain:
    return app.state.chain


def _quote_out(amount: int) -> int:
    return math.floor(amount * (10_000 - FEE_BPS) / 10_000)


def _require_mints(input_mint: str, output_mint: str, amount: int) -> None:
    if input_mint not in MINTS or output_mint not in MINTS:
        raise HTTPException(status_code=400, detail="Unknown mint")
    if input_mint == output_mint:
        raise HTTPException(status_code=400, detail="inputMint and outputMint must differ")
    if amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")


def _unsigned_transaction(payer: str) -> Tuple[str, str]:
    owner = Pubkey.from_string(payer)
    blockhash = Hash.new_unique()
    instruction = transfer(TransferParams(from_pubkey=owner, to_pubkey=owner, lamports=0))
    message = MessageV0.try_compile(owner, [instruction], [], blockhash)
    transaction = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(transaction)).decode("ascii"), str(blockhash)


def _decode(transaction_b64: str) -> VersionedTransaction:
    try:
        return VersionedTransaction.from_bytes(base64.b64decode(transaction_b64))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Malformed transaction") from exc


class ExecuteRequest(BaseModel):
    signed_transaction: str = Field(alias="signedTransaction")
    request_id: str = Field(alias="requestId")

    model_config = ConfigDict(populate_by_name=True)


class SwapBuildRequest(BaseModel):
    quote_response: Dict[str, Any] = Field(alias="quoteResponse")
    user_public_key: str = Field(alias="userPublicKey")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class PoolSwapRequest(BaseModel):
    pool: str
    user: str
    input_mint: str = Field(alias="inputMint")
    amount_in: str = Field(alias="amountIn")
    min_amount_out: str = Field(alias="minAmountOut")
    user_token_in: str = Field(alias="userTokenIn")
    user_token_out: str = Field(alias="userTokenOut")

    model_config = ConfigDict(populate_by_name=True)


@app.get("/ultra/v1/order")
async def ultra_order(inputMint: str, outputMint: str, amount: int, taker: str) -> Dict[str, Any]:
    app.state.metrics["ultra_order"] += 1
    _require_mints(inputMint, outputMint, amount)
    request_id = uuid.uuid4().hex
    out_amount = _quote_out(amount)
    order: Dict[str, Any] = {
        "requestId": request_id,
        "inputMint": inputMint,
        "outputMint": outputMint,
        "inAmount": str(amount),
        "outAmount": str(out_amount),
        "otherAmountThreshold": str(out_amount * 99 // 100),
        "slippageBps": 100,
        "router": "iris",
        "swapType": "aggregator",
    }
    if "order" in _chain().failures:
        order.update({"outAmount": "0", "transaction": None, "errorMessage": "Insufficient liquidity"})
        return order
    transaction, _ = _unsigned_transaction(taker)
    _chain().pending[request_id] = PendingSwap(inputMint, outputMint, amount, out_amount)
    order["transaction"] = transaction
    return order


@app.post("/ultra/v1/execute")
async def ultra_execute(request: ExecuteRequest) -> Dict[str, Any]:
    app.state.metrics["ultra_execute"] += 1
    chain = _chain()
    transaction = _decode(request.signed_transaction)
    signature = str(transaction.signatures[0])
    if request.request_id not in chain.pending:
        return {"status": "Failed", "code": -2, "error": "Unknown requestId", "signature": signature}
    if "execute" in chain.failures:
        chain.pending.pop(request.request_id, None)
        return {"status": "Failed", "code": -1005, "error": "Transaction expired", "signature": signature}
    swap = chain.settle(request.request_id, signature)
    return {
        "status": "Success",
        "signature": signature,
        "slot": "1",
        "inputAmountResult": str(swap.in_amount),
        "outputAmountResult": str(swap.out_amount),
    }


@app.get("/swap/v1/quote")
async def swap_quote(inputMint: str, outputMint: str, amount: int, slippageBps: int = 100) -> Dict[str, Any]:
    app.state.metrics["swap_quote"] += 1
    _require_mints(inputMint, outputMint, amount)
    if "quote" in _chain().failures:
        return {"error": "Could not find any route", "errorCode": "COULD_NOT_FIND_ANY_ROUTE"}
    out_amount = _quote_out(amount)
    return {
        "inputMint": inputMint,
        "outputMint": outputMint,
        "inAmount": str(amount),
        "outAmount": str(out_amount),
        "otherAmountThreshold": str(out_amount * (10_000 - slippageBps) // 10_000),
        "swapMode": "ExactIn",
        "slippageBps": slippageBps,
        "priceImpactPct": "0",
        "routePlan": [
            {
                "swapInfo": {
                    "ammKey": POOL_ADDRESS,
                    "label": "Meteora DLMM",
                    "inputMint": inputMint,
                    "outputMint": outputMint,
                    "inAmount": str(amount),
                    "outAmount": str(out_amount),
                    "feeAmount": str(amount - out_amount),
                    "feeMint": inputMint,
                },
                "percent": 100,
            }
        ],
        "contextSlot": 1,
    }


@app.post("/swap/v1/swap")
async def swap_build(request: SwapBuildRequest) -> Dict[str, Any]:
    app.state.metrics["swap_build"] += 1
    if "swap" in _chain().failures:
        return {"error": "Failed to build swap transaction"}
    quote = request.quote_response
    transaction, blockhash = _unsigned_transaction(request.user_public_key)
    _chain().pending[blockhash] = PendingSwap(
        quote["inputMint"], quote["outputMint"], int(quote["inAmount"]), int(quote["outAmount"])
    )
    return {"swapTransaction": transaction, "lastValidBlockHeight": 100, "prioritizationFeeLamports": 5000}


@app.get("/pair/{pool}")
async def pool_pair(pool: str) -> Dict[str, Any]:
    app.state.metrics["pool_pair"] += 1
    if pool != POOL_ADDRESS:
        raise HTTPException(status_code=404, detail="Pair not found")
    return {
        "address": POOL_ADDRESS,
        "name": "GIDDY-USDC",
        "mint_x": GIDDY_MINT,
        "mint_y": USDC_MINT,
        "reserve_x_amount": 5_000_000_000,
        "reserve_y_amount": 5_000_000_000,
        "bin_step": 10,
        "base_fee_percentage": "0.2",
        "current_price": 1.0,
    }


@app.post("/swap")
async def pool_build(request: PoolSwapRequest) -> Dict[str, Any]:
    app.state.metrics["pool_build"] += 1
    if "pool" in _chain().failures:
        return {"error": "Pool swap builder unavailable"}
    other = GIDDY_MINT if request.input_mint == USDC_MINT else USDC_MINT
    amount_in = int(request.amount_in)
    transaction, blockhash = _unsigned_transaction(request.user)
    _chain().pending[blockhash] = PendingSwap(request.input_mint, other, amount_in, _quote_out(amount_in))
    return {"transaction": transaction, "minAmountOut": request.min_amount_out}


def _rpc_result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _rpc_error(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def _context(value: Any) -> Dict[str, Any]:
    return {"context": {"slot": 1}, "value": value}


@app.post("/")
async def ledger_rpc(request: Request) -> Dict[str, Any]:
    app.state.metrics["rpc"] += 1
    body = await request.json()
    request_id = body.get("id")
    method = body.get("method")
    params: List[Any] = body.get("params") or []
    chain = _chain()

    if "rpc_rate_limit" in chain.failures:
        return _rpc_error(request_id, 429, "Too many requests for a specific RPC call")

    if method == "getBalance":
        return _rpc_result(request_id, _context(chain.native))
    if method == "getTokenAccountsByOwner":
        owner, filters = params[0], params[1]
        address = chain.token_account(owner, filters["mint"])
        return _rpc_result(request_id, _context([{"pubkey": address, "account": {}}]))
    if method == "getTokenAccountBalance":
        mint = chain.accounts.get(params[0])
        if mint is None:
            return _rpc_error(request_id, -32602, "Invalid param: could not find account")
        amount = chain.balances.get(mint, 0)
        decimals = MINTS[mint]["decimals"]
        return _rpc_result(
            request_id,
            _context(
                {
                    "amount": str(amount),
                    "decimals": decimals,
                    "uiAmount": amount / 10**decimals,
                    "uiAmountString": str(amount / 10**decimals),
                }
            ),
        )
    if method == "getAccountInfo":
        return _rpc_result(
            request_id,
            _context({"lamports": 2_039_280, "owner": TOKEN_PROGRAM_ID, "data": ["", "base64"], "executable": False}),
        )
    if method == "getLatestBlockhash":
        return _rpc_result(request_id, _context({"blockhash": str(Hash.new_unique()), "lastValidBlockHeight": 100}))
    if method == "simulateTransaction":
        if "simulate" in chain.failures:
            return _rpc_result(
                request_id,
                _context(
                    {
                        "err": {"InstructionError": [0, {"Custom": 6001}]},
                        "logs": ["Program log: Error: ExceededAmountSlippageTolerance"],
                        "unitsConsumed": 21_000,
                    }
                ),
            )
        return _rpc_result(request_id, _context({"err": None, "logs": [], "unitsConsumed": 21_000}))
    if method == "sendTransaction":
        transaction = _decode(params[0])
        if "send" in chain.failures:
            return _rpc_error(
                request_id,
                -32002,
                "Transaction simulation failed: Error processing Instruction 0: custom program error: 0x1771",
                {"logs": ["Program log: Error: ExceededAmountSlippageTolerance"]},
            )
        signature = str(transaction.signatures[0])
        chain.settle(str(transaction.message.recent_blockhash), signature)
        return _rpc_result(request_id, signature)
    if method == "getSignatureStatuses":
        return _rpc_result(request_id, _context([chain.statuses.get(sig) for sig in params[0]]))
    return _rpc_error(request_id, -32601, f"Method not found: {method}")


__all__ = ["GIDDY_MINT", "MockChain", "POOL_ADDRESS", "USDC_MINT", "app", "reset_metrics", "reset_state"]
