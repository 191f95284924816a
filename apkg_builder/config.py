from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .sql import DEFAULT_CSS
from .utils import load_json

# Modification stamp written unless overridden; 2020-01-01T00:00:00Z.
DEFAULT_MOD_TIME = 1_577_836_800


@dataclass(frozen=True)
class BuilderConfig:
    media_dir: str | None = None  # base for relative media paths
    mod_time: int = DEFAULT_MOD_TIME  # every stamp except the collection's crt
    default_css: str = DEFAULT_CSS
    field_font: str = "Arial"
    field_size: int = 20
    new_per_day: int = 20


def load_config(config_path: str | Path) -> BuilderConfig:
    data = load_json(config_path)
    if not isinstance(data, dict):
        raise ValueError(f"config {config_path} must be a JSON object")
    defaults = BuilderConfig()
    media_dir = data.get("media_dir")
    if media_dir is not None:
        # Relative to the config file, not the caller's cwd.
        media_dir = str(Path(config_path).parent / media_dir)
    return BuilderConfig(
        media_dir=media_dir,
        mod_time=int(data.get("mod_time", defaults.mod_time)),
        default_css=data.get("default_css", defaults.default_css),
        field_font=data.get("field_font", defaults.field_font),
        field_size=int(data.get("field_size", defaults.field_size)),
        new_per_day=int(data.get("new_per_day", defaults.new_per_day)),
    )
