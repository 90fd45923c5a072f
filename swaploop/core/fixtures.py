from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel

from swaploop.config import repo_root

T = TypeVar("T", bound=BaseModel)


def fixture_dir(provider: str, base_dir: Optional[Path] = None) -> Path:
    base = Path(base_dir) if base_dir else repo_root() / "tests" / "fixtures"
    return base / provider


def load_fixture(provider: str, name: str, base_dir: Optional[Path] = None) -> Any:
    path = fixture_dir(provider, base_dir) / name
    return json.loads(path.read_text(encoding="utf-8"))


def load_model(model: Type[T], provider: str, name: str, base_dir: Optional[Path] = None) -> T:
    return model.model_validate(load_fixture(provider, name, base_dir))


__all__ = ["fixture_dir", "load_fixture", "load_model"]
