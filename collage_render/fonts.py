"""Font manifest, face loading, glyph coverage and best-effort preloading."""

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field

from fontTools.ttLib import TTFont, TTLibError
from PIL import ImageFont

from collage_render.config import DEFAULT_FONTS_MANIFEST, RenderConfig
from collage_render.errors import FontLoadError
from collage_render.models import clamp

logger = logging.getLogger(__name__)

AnyFont = ImageFont.FreeTypeFont | ImageFont.ImageFont

FACES = ("regular", "bold", "italic", "bold_italic")
BOLD_THRESHOLD = 600
MAX_FONT_PX = 1024


@dataclass(frozen=True)
class FontFamily:
    name: str
    files: dict[str, str] = field(default_factory=dict)

    def file_for(self, face: str) -> str | None:
        """Path for *face*, degrading bold_italic -> bold/italic -> regular."""
        order = {
            "bold_italic": ("bold_italic", "bold", "italic", "regular"),
            "bold": ("bold", "regular"),
            "italic": ("italic", "regular"),
            "regular": ("regular",),
        }[face]
        for candidate in order:
            if self.files.get(candidate):
                return self.files[candidate]
        return None


def face_name(weight: int | None, style: str | None) -> str:
    bold = (weight or 400) >= BOLD_THRESHOLD
    italic = (style or "normal").lower() in ("italic", "oblique")
    if bold and italic:
        return "bold_italic"
    if bold:
        return "bold"
    if italic:
        return "italic"
    return "regular"


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------

def _resolve_font_path(relative_path: str, base_dir: str) -> str:
    """Resolve a manifest path against the manifest directory.

    Bare file names that are not shipped next to the manifest are returned as-is
    so Pillow can look them up in the system font directories.
    """
    if os.path.isabs(relative_path):
        return relative_path
    local = os.path.join(base_dir, relative_path)
    return local if os.path.isfile(local) else relative_path


def load_manifest(manifest_path: str | None = None) -> tuple[dict[str, FontFamily], str | None]:
    """Load the font manifest.

    Returns ({lowercase family or alias: FontFamily}, default family name).
    A missing or malformed manifest yields an empty table.
    """
    path = manifest_path or DEFAULT_FONTS_MANIFEST
    try:
        with open(path, "r", encoding="utf-8") as f:
            manifest = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Font manifest unavailable (%s): %s", path, exc)
        return {}, None

    base_dir = os.path.dirname(os.path.abspath(path))
    table: dict[str, FontFamily] = {}
    for name, entry in (manifest.get("families") or {}).items():
        if not isinstance(entry, dict):
            continue
        files = {
            face: _resolve_font_path(entry[face], base_dir)
            for face in FACES
            if isinstance(entry.get(face), str)
        }
        family = FontFamily(name=name, files=files)
        table[name.lower()] = family
        for alias in entry.get("aliases") or ():
            table[str(alias).lower()] = family
    return table, manifest.get("default")


# ---------------------------------------------------------------------------
# Face loading
# ---------------------------------------------------------------------------

def _set_weight_axis(font: ImageFont.FreeTypeFont, weight: int) -> None:
    """Select *weight* on a variable font's weight axis, when it has one."""
    try:
        axes = font.get_variation_axes()
    except (OSError, AttributeError):
        return
    for idx, axis in enumerate(axes):
        # Pillow may return axis names as bytes (b'Weight')
        axis_name = axis.get("name", b"")
        if isinstance(axis_name, bytes):
            axis_name = axis_name.decode("utf-8", errors="ignore")
        if axis_name.lower() == "weight":
            lo = axis.get("minimum", 100)
            hi = axis.get("maximum", 900)
            values = [float(a.get("default", a.get("minimum", 0))) for a in axes]
            values[idx] = float(max(lo, min(hi, weight)))
            try:
                font.set_variation_by_axes(values)
            except OSError as exc:
                logger.debug("Cannot set weight axis on %s: %s", font.path, exc)
            return


def load_font_file(font_path: str, size: int, weight: int = 400) -> ImageFont.FreeTypeFont:
    """Load a TrueType/OpenType face, selecting the weight on variable fonts.

    Raises:
        FontLoadError: If the file cannot be found or parsed.
    """
    try:
        font = ImageFont.truetype(font_path, size)
    except OSError as exc:
        raise FontLoadError(f"Cannot load font {font_path}: {exc}") from exc
    if "variable" in os.path.basename(font_path).lower():
        _set_weight_axis(font, weight)
    return font


def default_font(size: int) -> AnyFont:
    """Pillow's built-in scalable face."""
    return ImageFont.load_default(size=size)


def _cmap_for(font_path: str) -> frozenset[int] | None:
    try:
        with TTFont(font_path, lazy=True, fontNumber=0) as tt:
            cmap = tt.getBestCmap()
    except (OSError, TTLibError) as exc:
        logger.debug("Cannot read cmap of %s: %s", font_path, exc)
        return None
    return frozenset(cmap) if cmap else frozenset()


class FontBook:
    """Per-render font cache backed by the manifest."""

    def __init__(self, manifest_path: str | None = None):
        self._families, self._default_family = load_manifest(manifest_path)
        self._fonts: dict[tuple, AnyFont] = {}
        self._cmaps: dict[str, frozenset[int] | None] = {}

    def family(self, name: str | None) -> FontFamily | None:
        if name:
            found = self._families.get(name.strip().strip("'\"").lower())
            if found:
                return found
        if self._default_family:
            return self._families.get(self._default_family.lower())
        return None

    def covers(self, font: AnyFont, text: str) -> bool:
        """True when *font*'s character map has every visible character of *text*."""
        path = getattr(font, "path", None)
        if not isinstance(path, str):
            return True
        if path not in self._cmaps:
            self._cmaps[path] = _cmap_for(path)
        cmap = self._cmaps[path]
        if cmap is None:
            return True
        return all(ord(ch) in cmap for ch in text if not ch.isspace())

    def get(
        self,
        family: str | None,
        size: float,
        weight: int | None = None,
        style: str | None = None,
        text: str | None = None,
    ) -> AnyFont:
        """Return a face for the request, falling back to the built-in font."""
        px = int(clamp(round(size), 1, MAX_FONT_PX))
        face = face_name(weight, style)
        entry = self.family(family)
        key = (entry.name if entry else "", px, face, weight or 400)
        font = self._fonts.get(key)
        if font is None:
            font = self._load(entry, px, face, weight or 400)
            self._fonts[key] = font
        if text and not self.covers(font, text):
            logger.debug("Font %s lacks glyphs for %r; using default face", family, text[:24])
            return self._default(px)
        return font

    def _default(self, px: int) -> AnyFont:
        key = ("", px, "default", 0)
        if key not in self._fonts:
            try:
                self._fonts[key] = default_font(px)
            except (OSError, ValueError) as exc:
                logger.debug("Built-in font unavailable at %dpx: %s", px, exc)
                self._fonts[key] = ImageFont.load_default()
        return self._fonts[key]

    def _load(self, entry: FontFamily | None, px: int, face: str, weight: int) -> AnyFont:
        path = entry.file_for(face) if entry else None
        if path:
            try:
                return load_font_file(path, px, weight=weight)
            except FontLoadError as exc:
                logger.debug("%s", exc)
        return self._default(px)


# ---------------------------------------------------------------------------
# Preloading
# ---------------------------------------------------------------------------

async def preload_fonts(
    families,
    book: FontBook,
    config: RenderConfig | None = None,
) -> list[str]:
    """Warm *book* with the regular face of up to ``font_preload_limit`` families.

    Best-effort: failures and timeouts are logged and never raised. Returns the
    family names that loaded from a real font file.
    """
    config = config or RenderConfig()
    wanted = []
    for name in families:
        if name and name not in wanted:
            wanted.append(name)
    wanted = wanted[: max(0, config.font_preload_limit)]
    if not wanted:
        return []

    def _warm(name: str) -> bool:
        font = book.get(name, 16)
        return isinstance(getattr(font, "path", None), str)

    tasks = [asyncio.to_thread(_warm, name) for name in wanted]
    try:
        results = await asyncio.wait_for(
            asyncio.gather(*tasks, return_exceptions=True),
            timeout=config.font_ready_timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Font preload did not finish within %.1fs", config.font_ready_timeout)
        return []

    ready = []
    for name, result in zip(wanted, results):
        if isinstance(result, BaseException):
            logger.warning("Font preload failed for %s: %s", name, result)
        elif result:
            ready.append(name)
    logger.debug("Fonts ready: %s", ready)
    return ready
