from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_CONFIGURED = False


def configure_logging(level: Optional[str] = None, console: Optional[Console] = None) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _CONFIGURED = True


__all__ = ["configure_logging"]
