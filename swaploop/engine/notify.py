from __future__ import annotations

import logging
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)

EXPLORER_TX_URL = "https://solscan.io/tx/{signature}"


def with_explorer_link(message: str, signature: Optional[str] = None) -> str:
    if not signature:
        return message
    return f"{message}\n🔗 {EXPLORER_TX_URL.format(signature=signature)}"


class Notifier(Protocol):
    async def notify(self, message: str, signature: Optional[str] = None) -> None:
        ...


class LogNotifier:
    async def notify(self, message: str, signature: Optional[str] = None) -> None:
        logger.info(with_explorer_link(message, signature))


class RecordingNotifier:
    """Keeps every message in memory; handy for a chat driver that batches replies."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    async def notify(self, message: str, signature: Optional[str] = None) -> None:
        self.messages.append(with_explorer_link(message, signature))


__all__ = ["LogNotifier", "Notifier", "RecordingNotifier", "with_explorer_link"]
