from swaploop.data.meteora.provider import (
    DEFAULT_POOL_ADDRESS,
    MeteoraProvider,
    MeteoraSettings,
    PoolQuote,
    quote_exact_in,
)
from swaploop.data.meteora.request_factory import MeteoraRequestError, MeteoraRequestFactory

__all__ = [
    "DEFAULT_POOL_ADDRESS",
    "MeteoraProvider",
    "MeteoraRequestError",
    "MeteoraRequestFactory",
    "MeteoraSettings",
    "PoolQuote",
    "quote_exact_in",
]
