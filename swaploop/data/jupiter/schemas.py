from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JupiterSwapInfo(BaseModel):
    amm_key: Optional[str] = Field(default=None, alias="ammKey")
    label: Optional[str] = None
    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    fee_amount: Optional[str] = Field(default=None, alias="feeAmount")
    fee_mint: Optional[str] = Field(default=None, alias="feeMint")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class JupiterRoutePlan(BaseModel):
    swap_info: JupiterSwapInfo = Field(alias="swapInfo")
    percent: int = 100

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class JupiterQuoteResponse(BaseModel):
    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    other_amount_threshold: Optional[str] = Field(default=None, alias="otherAmountThreshold")
    swap_mode: str = Field(default="ExactIn", alias="swapMode")
    slippage_bps: int = Field(default=0, alias="slippageBps")
    price_impact_pct: Optional[str] = Field(default=None, alias="priceImpactPct")
    route_plan: List[JupiterRoutePlan] = Field(default_factory=list, alias="routePlan")
    context_slot: Optional[int] = Field(default=None, alias="contextSlot")
    time_taken: Optional[float] = Field(default=None, alias="timeTaken")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def route_labels(self) -> str:
        labels = [step.swap_info.label or "Unknown" for step in self.route_plan]
        return " → ".join(labels) if labels else "Direct"


class JupiterSwapResponse(BaseModel):
    swap_transaction: str = Field(alias="swapTransaction")
    last_valid_block_height: Optional[int] = Field(default=None, alias="lastValidBlockHeight")
    prioritization_fee_lamports: Optional[int] = Field(default=None, alias="prioritizationFeeLamports")
    compute_unit_limit: Optional[int] = Field(default=None, alias="computeUnitLimit")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class UltraOrderResponse(BaseModel):
    request_id: str = Field(alias="requestId")
    input_mint: Optional[str] = Field(default=None, alias="inputMint")
    output_mint: Optional[str] = Field(default=None, alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    other_amount_threshold: Optional[str] = Field(default=None, alias="otherAmountThreshold")
    slippage_bps: Optional[int] = Field(default=None, alias="slippageBps")
    router: Optional[str] = None
    swap_type: Optional[str] = Field(default=None, alias="swapType")
    transaction: Optional[str] = None
    error_message: Optional[str] = Field(default=None, alias="errorMessage")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class UltraExecuteResponse(BaseModel):
    status: str
    signature: Optional[str] = None
    code: Optional[int] = None
    error: Optional[str] = None
    slot: Optional[str] = None
    input_amount_result: Optional[str] = Field(default=None, alias="inputAmountResult")
    output_amount_result: Optional[str] = Field(default=None, alias="outputAmountResult")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


__all__ = [
    "JupiterQuoteResponse",
    "JupiterRoutePlan",
    "JupiterSwapInfo",
    "JupiterSwapResponse",
    "UltraExecuteResponse",
    "UltraOrderResponse",
]
