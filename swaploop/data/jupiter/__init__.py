from swaploop.core.request_spec import RequestSpec
from swaploop.data.jupiter.provider import (
    AggregatorClient,
    JupiterProvider,
    JupiterSettings,
    MockJupiterProvider,
)
from swaploop.data.jupiter.request_factory import JupiterRequestError, JupiterRequestFactory

__all__ = [
    "AggregatorClient",
    "JupiterProvider",
    "JupiterRequestError",
    "JupiterRequestFactory",
    "JupiterSettings",
    "MockJupiterProvider",
    "RequestSpec",
]
