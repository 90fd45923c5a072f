from __future__ import annotations

import json
import logging
from collections import Counter, defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from swaploop.config import repo_root
from swaploop.engine.swap_types import SwapOutcome, SwapRequest

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_json(path: Path, obj: Dict[str, Any], exclusive: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = "x" if exclusive else "w"
    with path.open(mode, encoding="utf-8") as handle:
        handle.write(json.dumps(obj, indent=2, sort_keys=True, default=str))


class AuditLog:
    """Append-only JSON artifacts for swap attempts, outcomes and sessions.

    Layout under ``base_dir``::

        <correlation_id>/<tier>_<n>.json    one per tier attempt
        <correlation_id>/outcome.json       one per swap request
        swap_session_<ts>.json              one per finished session
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        base = Path(base_dir) if base_dir else repo_root() / "swaps"
        if not base.is_absolute():
            base = repo_root() / base
        self.base_dir = base
        self._attempts: Dict[str, Counter] = defaultdict(Counter)

    def request_dir(self, correlation_id: str) -> Path:
        return self.base_dir / correlation_id

    def record_attempt(self, request: SwapRequest, tier: str, entry: Dict[str, Any]) -> Path:
        counter = self._attempts[request.correlation_id]
        counter[tier] += 1
        path = self.request_dir(request.correlation_id) / f"{tier}_{counter[tier]}.json"
        payload = {
            "timestamp": _utc_now_iso(),
            "tier": tier,
            "attempt": counter[tier],
            "request": request.describe(),
            **entry,
        }
        write_json(path, payload, exclusive=True)
        return path

    def record_outcome(self, request: SwapRequest, outcome: SwapOutcome) -> Path:
        self._attempts.pop(request.correlation_id, None)
        path = self.request_dir(request.correlation_id) / "outcome.json"
        payload = {"timestamp": _utc_now_iso(), "request": request.describe(), "outcome": outcome.to_dict()}
        write_json(path, payload, exclusive=True)
        logger.info("swap %s recorded: %s", request.correlation_id, outcome.status)
        return path

    def record_rejection(self, request: SwapRequest, reason: str) -> Path:
        path = self.request_dir(request.correlation_id) / "preflight.json"
        write_json(
            path,
            {"timestamp": _utc_now_iso(), "request": request.describe(), "status": "rejected", "error": reason},
            exclusive=True,
        )
        return path

    def write_session(self, records: Sequence[Dict[str, Any]], summary: Dict[str, Any]) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        path = self.base_dir / f"swap_session_{stamp}.json"
        write_json(path, {"timestamp": _utc_now_iso(), "summary": summary, "rounds": list(records)}, exclusive=True)
        logger.info("session log written to %s", path)
        return path


def session_table(records: List[Dict[str, Any]], title: str = "Swap Session Summary") -> Table:
    table = Table(title=title)
    table.add_column("Round", justify="right")
    table.add_column("Direction")
    table.add_column("In", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("Loss", justify="right")
    table.add_column("Source")
    table.add_column("Tier")
    table.add_column("Tx")
    for record in records:
        table.add_row(
            str(record.get("round")),
            str(record.get("direction")),
            f"{record.get('amount_in', 0):.6f}",
            f"{record.get('amount_out', 0):.6f}",
            f"{record.get('loss', 0):.6f}",
            str(record.get("amount_out_source", "")),
            str(record.get("tier") or ""),
            str(record.get("transaction_id") or "")[:12],
        )
    return table


def print_session_summary(records: List[Dict[str, Any]], console: Optional[Console] = None) -> None:
    (console or Console()).print(session_table(records))


__all__ = ["AuditLog", "print_session_summary", "session_table", "write_json"]
