from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlencode


def _normalize_base(base_url: str) -> str:
    return base_url.rstrip("/")


def _normalize_path(path: str) -> str:
    if not path:
        return "/"
    if not path.startswith("/"):
        return f"/{path}"
    return path


def canonicalize_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


def canonicalize_query(query: Dict[str, Any]) -> Dict[str, str]:
    normalized: Dict[str, str] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            normalized[key] = str(value).lower()
            continue
        normalized[key] = str(value)
    return normalized


@dataclass(frozen=True)
class RequestSpec:
    method: str
    base_url: str
    path: str
    query: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    json: Optional[Any] = None

    def url(self) -> str:
        return f"{_normalize_base(self.base_url)}{_normalize_path(self.path)}"

    def normalized_query(self) -> Dict[str, str]:
        return canonicalize_query(self.query)

    def build_url(self, include_query: bool = True) -> str:
        url = self.url()
        if include_query and self.query:
            query = urlencode(sorted(self.normalized_query().items()))
            if query:
                url = f"{url}?{query}"
        return url

    def fingerprint(self, required_headers: Optional[Iterable[str]] = None) -> str:
        header_keys = required_headers or self.headers.keys()
        header_keys_sorted = ",".join(sorted(key.lower() for key in header_keys))
        query_keys_sorted = ",".join(sorted(self.normalized_query().keys()))
        return f"{self.method} {self.url()} q={query_keys_sorted} h={header_keys_sorted}"

    def describe(self) -> Dict[str, Any]:
        """Audit-safe summary: method, URL and query keys, never header values."""
        return {
            "method": self.method,
            "url": self.url(),
            "query": self.normalized_query(),
        }


@dataclass(frozen=True)
class JsonRpcSpec:
    base_url: str
    rpc_method: str
    params: List[Any]
    request_id: int = 1
    path: str = "/"
    query: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})

    @property
    def body(self) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": self.request_id,
            "method": self.rpc_method,
            "params": self.params,
        }

    def to_request_spec(self) -> RequestSpec:
        return RequestSpec(
            method="POST",
            base_url=self.base_url,
            path=self.path,
            query=self.query,
            headers=self.headers,
            json=self.body,
        )

    def canonical_payload(self) -> str:
        return json.dumps(self.body, separators=(",", ":"), sort_keys=True)


__all__ = [
    "JsonRpcSpec",
    "RequestSpec",
    "canonicalize_headers",
    "canonicalize_query",
]
