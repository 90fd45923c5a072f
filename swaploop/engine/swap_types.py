from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from swaploop.engine.assets import Asset

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

ALL_ROUTES_FAILED = "All alternate routes failed"


def new_correlation_id(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"{stamp}-{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class SwapRequest:
    input_asset: Asset
    output_asset: Asset
    amount: int
    correlation_id: str

    @classmethod
    def new(cls, input_asset: Asset, output_asset: Asset, amount: int) -> "SwapRequest":
        return cls(
            input_asset=input_asset,
            output_asset=output_asset,
            amount=int(amount),
            correlation_id=new_correlation_id(),
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "input": self.input_asset.symbol,
            "input_mint": self.input_asset.mint,
            "output": self.output_asset.symbol,
            "output_mint": self.output_asset.mint,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class Quote:
    """Provider-neutral quote; amounts are raw integers in the smallest unit."""

    provider: str
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    route: str
    payload: Dict[str, Any] = field(default_factory=dict)
    min_out_amount: Optional[int] = None

    def describe(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "input_mint": self.input_mint,
            "output_mint": self.output_mint,
            "in_amount": self.in_amount,
            "out_amount": self.out_amount,
            "min_out_amount": self.min_out_amount,
            "route": self.route,
        }


@dataclass(frozen=True)
class TierResult:
    tier: str
    success: bool
    attempts: int
    transaction_id: Optional[str] = None
    output_amount: Optional[int] = None
    quote: Optional[Quote] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SwapOutcome:
    status: str
    correlation_id: str
    attempts: int = 0
    transaction_id: Optional[str] = None
    output_amount: Optional[int] = None
    route_description: Optional[str] = None
    tier: Optional[str] = None
    used_fallback: bool = False
    error: Optional[str] = None
    tier_errors: Tuple[Tuple[str, str], ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["tier_errors"] = [{"tier": tier, "error": error} for tier, error in self.tier_errors]
        return data


__all__ = [
    "ALL_ROUTES_FAILED",
    "Quote",
    "STATUS_FAILED",
    "STATUS_SUCCESS",
    "SwapOutcome",
    "SwapRequest",
    "TierResult",
    "new_correlation_id",
]
