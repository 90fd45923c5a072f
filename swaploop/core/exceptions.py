from __future__ import annotations

from typing import List, Optional


class ProviderMisconfigured(RuntimeError):
    pass


class CircuitBreakerOpen(RuntimeError):
    pass


class UpstreamError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamRateLimited(UpstreamError):
    pass


class UpstreamBadResponse(UpstreamError):
    pass


class SwapError(RuntimeError):
    pass


class PreconditionFailed(SwapError):
    """A hard precondition of a swap or loop was not met. Never retried at tier level."""


class InsufficientBalance(PreconditionFailed):
    def __init__(self, message: str, available: float = 0.0, required: float = 0.0) -> None:
        super().__init__(message)
        self.available = available
        self.required = required


class AccountPreparationFailed(PreconditionFailed):
    pass


class LoopStartRejected(PreconditionFailed):
    pass


class QuoteUnavailable(SwapError):
    pass


class SimulationFailed(SwapError):
    def __init__(self, message: str, logs: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.logs = list(logs or [])


class TransactionFailed(SwapError):
    def __init__(self, message: str, signature: str = "") -> None:
        super().__init__(message)
        self.signature = signature


class ConfirmationTimeout(SwapError):
    def __init__(self, message: str, signature: str = "") -> None:
        super().__init__(message)
        self.signature = signature
