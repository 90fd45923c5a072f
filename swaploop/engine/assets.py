from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from swaploop.core.exceptions import ProviderMisconfigured

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000


@dataclass(frozen=True)
class Asset:
    symbol: str
    mint: str
    decimals: int
    token_program: str = TOKEN_PROGRAM_ID

    @property
    def scale(self) -> int:
        return 10**self.decimals

    def to_ui(self, raw: int) -> float:
        return raw / self.scale

    def to_raw(self, ui: float) -> int:
        return int(round(ui * self.scale))

    def __str__(self) -> str:
        return self.symbol


NATIVE_SOL = Asset(symbol="SOL", mint=WRAPPED_SOL_MINT, decimals=9, token_program=TOKEN_PROGRAM_ID)


class AssetRegistry:
    """Immutable set of tracked SPL assets plus the native currency."""

    def __init__(self, assets: Iterable[Asset], native: Asset = NATIVE_SOL) -> None:
        self._by_symbol: Dict[str, Asset] = {}
        self._by_mint: Dict[str, Asset] = {}
        for asset in assets:
            self._by_symbol[asset.symbol.upper()] = asset
            self._by_mint[asset.mint] = asset
        self.native = native

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "AssetRegistry":
        section = cfg.get("assets") or {}
        if not section:
            raise ProviderMisconfigured("config has no assets section")
        assets: List[Asset] = []
        for symbol, spec in section.items():
            if not spec or not spec.get("mint"):
                raise ProviderMisconfigured(f"asset {symbol} is missing a mint")
            assets.append(
                Asset(
                    symbol=str(symbol).upper(),
                    mint=str(spec["mint"]),
                    decimals=int(spec.get("decimals", 6)),
                    token_program=str(spec.get("token_program", TOKEN_PROGRAM_ID)),
                )
            )
        native_cfg = cfg.get("native") or {}
        native = Asset(
            symbol=str(native_cfg.get("symbol", NATIVE_SOL.symbol)),
            mint=WRAPPED_SOL_MINT,
            decimals=int(native_cfg.get("decimals", NATIVE_SOL.decimals)),
        )
        return cls(assets, native=native)

    @property
    def tracked(self) -> List[Asset]:
        return list(self._by_symbol.values())

    def get(self, symbol: str) -> Asset:
        try:
            return self._by_symbol[symbol.upper()]
        except KeyError as exc:
            raise ProviderMisconfigured(f"Unknown asset: {symbol}") from exc

    def by_mint(self, mint: str) -> Optional[Asset]:
        return self._by_mint.get(mint)

    def resolve(self, value: str | Asset) -> Asset:
        if isinstance(value, Asset):
            return value
        asset = self.by_mint(value)
        if asset is not None:
            return asset
        return self.get(value)


__all__ = [
    "Asset",
    "AssetRegistry",
    "LAMPORTS_PER_SOL",
    "NATIVE_SOL",
    "TOKEN_2022_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "WRAPPED_SOL_MINT",
]
