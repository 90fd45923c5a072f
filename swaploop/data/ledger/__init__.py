from swaploop.core.request_spec import JsonRpcSpec
from swaploop.data.ledger.client import LedgerClient, LedgerRpcError, LedgerSettings
from swaploop.data.ledger.request_factory import LedgerRequestFactory

__all__ = [
    "JsonRpcSpec",
    "LedgerClient",
    "LedgerRequestFactory",
    "LedgerRpcError",
    "LedgerSettings",
]
