from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from swaploop.core.backoff import Sleep
from swaploop.core.exceptions import CircuitBreakerOpen, UpstreamBadResponse, UpstreamRateLimited
from swaploop.core.request_spec import JsonRpcSpec, RequestSpec


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: Optional[float] = None) -> None:
        self.rate_per_sec = max(rate_per_sec, 0.1)
        self.capacity = capacity or self.rate_per_sec
        self.tokens = self.capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, amount: float = 1.0) -> None:
        while True:
            async with self._lock:
                now = time.monotonic()
                elapsed = now - self.last_refill
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.last_refill = now
                if self.tokens >= amount:
                    self.tokens -= amount
                    return
                wait_time = (amount - self.tokens) / self.rate_per_sec
            await asyncio.sleep(wait_time)


class CircuitBreaker:
    def __init__(self, failure_threshold: int = 5, cooldown_sec: float = 30.0) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_sec = max(1.0, cooldown_sec)
        self.failures = 0
        self.open_until = 0.0

    def allow(self) -> bool:
        if self.open_until and time.monotonic() < self.open_until:
            return False
        return True

    def record_success(self) -> None:
        self.failures = 0
        self.open_until = 0.0

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.failure_threshold:
            self.open_until = time.monotonic() + self.cooldown_sec
            self.failures = 0


class ResilientHttpClient:
    """Rate-limited, circuit-broken httpx client shared by every upstream adapter.

    429 and 5xx responses are retried with exponential backoff (``Retry-After``
    wins when present); other 4xx responses fail immediately.
    """

    def __init__(
        self,
        name: str,
        timeout: float = 10.0,
        rps: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        async_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_base = max(0.1, backoff_base)
        self.backoff_max = max(backoff_max, self.backoff_base)
        self._client = async_client
        self._owns_client = async_client is None
        self._rate_limiter = TokenBucket(rate_per_sec=rps)
        self._circuit_breaker = CircuitBreaker()
        self._sleep = sleep or asyncio.sleep

    async def __aenter__(self) -> "ResilientHttpClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, spec: RequestSpec | JsonRpcSpec) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        if not self._circuit_breaker.allow():
            raise CircuitBreakerOpen(f"{self.name} circuit breaker is open")

        request_spec = spec.to_request_spec() if isinstance(spec, JsonRpcSpec) else spec
        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.request(
                    request_spec.method,
                    request_spec.url(),
                    params=request_spec.normalized_query() or None,
                    headers=request_spec.headers,
                    json=request_spec.json,
                )
                if resp.status_code == 429:
                    self._circuit_breaker.record_failure()
                    last_error = UpstreamRateLimited(f"{self.name} rate limited", status_code=resp.status_code)
                    if attempt < self.max_retries:
                        await self._sleep_backoff(attempt, resp.headers.get("Retry-After"))
                    continue
                if resp.status_code >= 500:
                    self._circuit_breaker.record_failure()
                    last_error = UpstreamBadResponse(
                        f"{self.name} upstream error: HTTP {resp.status_code} {resp.text[:200]}",
                        status_code=resp.status_code,
                    )
                    if attempt < self.max_retries:
                        await self._sleep_backoff(attempt, resp.headers.get("Retry-After"))
                    continue
                if resp.status_code >= 400:
                    raise UpstreamBadResponse(
                        f"{self.name} request rejected: HTTP {resp.status_code} {resp.text[:200]}",
                        status_code=resp.status_code,
                    )
                try:
                    payload = resp.json()
                except ValueError as exc:
                    raise UpstreamBadResponse(f"{self.name} returned invalid JSON") from exc
                self._circuit_breaker.record_success()
                return payload
            except httpx.HTTPError as exc:
                self._circuit_breaker.record_failure()
                last_error = exc
                if attempt >= self.max_retries:
                    break
                await self._sleep_backoff(attempt)

        if last_error:
            raise last_error
        raise RuntimeError(f"{self.name} request failed without a response")

    async def _sleep_backoff(self, attempt: int, retry_after: Optional[str] = None) -> None:
        if retry_after:
            try:
                delay = float(retry_after)
                await self._sleep(delay)
                return
            except ValueError:
                pass
        delay = min(self.backoff_max, self.backoff_base * (2**attempt))
        await self._sleep(delay)


__all__ = ["CircuitBreaker", "ResilientHttpClient", "TokenBucket"]
