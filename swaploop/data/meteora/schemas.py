from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DlmmPairResponse(BaseModel):
    address: str
    name: Optional[str] = None
    mint_x: str
    mint_y: str
    reserve_x: Optional[str] = None
    reserve_y: Optional[str] = None
    reserve_x_amount: int = 0
    reserve_y_amount: int = 0
    bin_step: int = 0
    base_fee_percentage: str = "0"
    current_price: float

    model_config = ConfigDict(extra="allow")

    @property
    def fee_bps(self) -> int:
        try:
            return int((Decimal(self.base_fee_percentage) * 100).to_integral_value(rounding=ROUND_HALF_UP))
        except InvalidOperation:
            return 0


class DlmmSwapBuildResponse(BaseModel):
    transaction: str
    min_amount_out: Optional[str] = Field(default=None, alias="minAmountOut")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


__all__ = ["DlmmPairResponse", "DlmmSwapBuildResponse"]
