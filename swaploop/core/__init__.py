from swaploop.core.backoff import BackoffPolicy, retry_async
from swaploop.core.exceptions import (
    AccountPreparationFailed,
    CircuitBreakerOpen,
    ConfirmationTimeout,
    InsufficientBalance,
    LoopStartRejected,
    PreconditionFailed,
    ProviderMisconfigured,
    QuoteUnavailable,
    SimulationFailed,
    SwapError,
    TransactionFailed,
    UpstreamBadResponse,
    UpstreamError,
    UpstreamRateLimited,
)
from swaploop.core.http import ResilientHttpClient
from swaploop.core.request_spec import JsonRpcSpec, RequestSpec, canonicalize_headers, canonicalize_query

__all__ = [
    "AccountPreparationFailed",
    "BackoffPolicy",
    "CircuitBreakerOpen",
    "ConfirmationTimeout",
    "InsufficientBalance",
    "JsonRpcSpec",
    "LoopStartRejected",
    "PreconditionFailed",
    "ProviderMisconfigured",
    "QuoteUnavailable",
    "RequestSpec",
    "ResilientHttpClient",
    "SimulationFailed",
    "SwapError",
    "TransactionFailed",
    "UpstreamBadResponse",
    "UpstreamError",
    "UpstreamRateLimited",
    "canonicalize_headers",
    "canonicalize_query",
    "retry_async",
]
