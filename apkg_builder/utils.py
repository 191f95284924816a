from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Any


def now_seconds() -> int:
    return int(time.time())


def ensure_dir(path: str | Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def load_json(path: str | Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def dump_json(data: Any) -> str:
    """Compact, key-order-preserving JSON as stored in the col row."""
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def sha1_hex(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8"), usedforsecurity=False).hexdigest()


def resolve_source_path(path: str | Path, base_dir: str | Path | None) -> Path:
    p = Path(path)
    if p.is_absolute() or base_dir is None:
        return p
    return Path(base_dir) / p
