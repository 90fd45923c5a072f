from swaploop.engine.assets import Asset, AssetRegistry
from swaploop.engine.balances import BalanceOracle, BalanceSnapshot
from swaploop.engine.execution import ExecutionEngine, ExecutionReceipt
from swaploop.engine.orchestrator import SwapOrchestrator
from swaploop.engine.session import RoundRecord, RoundResult, RoundState, SessionLoopController
from swaploop.engine.swap_types import Quote, SwapOutcome, SwapRequest
from swaploop.engine.tiers import RouteTier
from swaploop.engine.wallet import Wallet

__all__ = [
    "Asset",
    "AssetRegistry",
    "BalanceOracle",
    "BalanceSnapshot",
    "ExecutionEngine",
    "ExecutionReceipt",
    "Quote",
    "RouteTier",
    "RoundRecord",
    "RoundResult",
    "RoundState",
    "SessionLoopController",
    "SwapOrchestrator",
    "SwapOutcome",
    "SwapRequest",
    "Wallet",
]
