from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RpcErrorBody(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None

    model_config = ConfigDict(extra="allow")


class RpcEnvelope(BaseModel):
    jsonrpc: str
    id: Optional[int] = None
    result: Optional[Any] = None
    error: Optional[RpcErrorBody] = None

    model_config = ConfigDict(extra="allow")


class RpcContext(BaseModel):
    slot: int = 0

    model_config = ConfigDict(extra="allow")


class BalanceResult(BaseModel):
    context: RpcContext = Field(default_factory=RpcContext)
    value: int


class TokenAmount(BaseModel):
    amount: str
    decimals: int
    ui_amount: Optional[float] = Field(default=None, alias="uiAmount")
    ui_amount_string: Optional[str] = Field(default=None, alias="uiAmountString")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class TokenAccountBalanceResult(BaseModel):
    context: RpcContext = Field(default_factory=RpcContext)
    value: TokenAmount


class KeyedAccount(BaseModel):
    pubkey: str
    account: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class TokenAccountsResult(BaseModel):
    context: RpcContext = Field(default_factory=RpcContext)
    value: List[KeyedAccount] = Field(default_factory=list)


class AccountInfoResult(BaseModel):
    context: RpcContext = Field(default_factory=RpcContext)
    value: Optional[Dict[str, Any]] = None


class BlockhashValue(BaseModel):
    blockhash: str
    last_valid_block_height: int = Field(alias="lastValidBlockHeight")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class LatestBlockhashResult(BaseModel):
    context: RpcContext = Field(default_factory=RpcContext)
    value: BlockhashValue


class SimulationValue(BaseModel):
    err: Optional[Any] = None
    logs: Optional[List[str]] = None
    units_consumed: Optional[int] = Field(default=None, alias="unitsConsumed")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SimulationResult(BaseModel):
    context: RpcContext = Field(default_factory=RpcContext)
    value: SimulationValue


class SignatureStatus(BaseModel):
    slot: Optional[int] = None
    confirmations: Optional[int] = None
    err: Optional[Any] = None
    confirmation_status: Optional[str] = Field(default=None, alias="confirmationStatus")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SignatureStatusesResult(BaseModel):
    context: RpcContext = Field(default_factory=RpcContext)
    value: List[Optional[SignatureStatus]] = Field(default_factory=list)


__all__ = [
    "AccountInfoResult",
    "BalanceResult",
    "BlockhashValue",
    "KeyedAccount",
    "LatestBlockhashResult",
    "RpcEnvelope",
    "RpcErrorBody",
    "SignatureStatus",
    "SignatureStatusesResult",
    "SimulationResult",
    "SimulationValue",
    "TokenAccountBalanceResult",
    "TokenAccountsResult",
    "TokenAmount",
]
