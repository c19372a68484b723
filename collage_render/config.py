"""Render configuration: defaults plus optional JSON overrides."""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from collage_render.errors import CollageRenderError

# ---------------------------------------------------------------------------
# Project root resolution (package lives in <root>/collage_render/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_FONTS_MANIFEST = os.path.join(PROJECT_ROOT, "fonts", "manifest.json")


@dataclass(frozen=True)
class RenderConfig:
    max_dim: int = 256
    jpeg_quality: int = 92  # 0.92 on the editor's canvas encoder
    reference_width: float = 400.0  # preview width that font sizes are authored against
    background_color: str = "#ffffff"
    fonts_manifest: str = field(default=DEFAULT_FONTS_MANIFEST)
    font_preload_limit: int = 6
    font_ready_timeout: float = 3.0
    fetch_timeout: float = 10.0

    @classmethod
    def from_dict(cls, data: dict | None) -> "RenderConfig":
        """Build a config from a mapping, keeping defaults for unknown/missing keys."""
        if not isinstance(data, dict):
            return cls()
        defaults = cls()
        values = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            default_value = getattr(defaults, f.name)
            try:
                values[f.name] = type(default_value)(data[f.name])
            except (TypeError, ValueError):
                continue
        if "fonts_manifest" in values and not os.path.isabs(values["fonts_manifest"]):
            values["fonts_manifest"] = os.path.join(PROJECT_ROOT, values["fonts_manifest"])
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path) -> "RenderConfig":
        """Load a JSON config file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise CollageRenderError(f"Cannot read render config {path}: {exc}") from exc
        return cls.from_dict(data)
