"""Shared pytest configuration and fixtures for the collage renderer tests."""

import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Helpers
# =============================================================================

def png_bytes(color=(255, 0, 0, 255), size=(40, 20)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def decode_jpeg(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as img:
        return np.asarray(img.convert("RGB"), dtype=np.int16)


def fixed_measure_for(advance: float = 0.6):
    """Monospace measure factory: every character is ``advance * size`` wide."""
    def _for_size(size):
        return lambda text: len(text) * size * advance
    return _for_size


def build_test_font(path: Path, chars: str = "ABC abc") -> Path:
    """Write a tiny TrueType font with box glyphs for *chars*."""
    from fontTools.fontBuilder import FontBuilder
    from fontTools.pens.ttGlyphPen import TTGlyphPen

    cmap = {ord(c): f"uni{ord(c):04X}" for c in chars}
    names = [".notdef"] + sorted(set(cmap.values()))

    def _box():
        pen = TTGlyphPen(None)
        pen.moveTo((100, 0))
        pen.lineTo((100, 700))
        pen.lineTo((500, 700))
        pen.lineTo((500, 0))
        pen.closePath()
        return pen.glyph()

    fb = FontBuilder(1000, isTTF=True)
    fb.setupGlyphOrder(names)
    fb.setupCharacterMap(cmap)
    fb.setupGlyf({name: _box() for name in names})
    fb.setupHorizontalMetrics({name: (600, 100) for name in names})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": "Boxes", "styleName": "Regular"})
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    fb.setupPost()
    fb.save(str(path))
    return path


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def red_png() -> bytes:
    return png_bytes((255, 0, 0, 255))


@pytest.fixture
def box_font(tmp_path) -> Path:
    return build_test_font(tmp_path / "Boxes.ttf")


@pytest.fixture
def box_manifest(tmp_path, box_font) -> Path:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(
        '{"default": "Boxes", "families": {"Boxes": {"aliases": ["BOX"], "regular": "Boxes.ttf"}}}',
        encoding="utf-8",
    )
    return manifest
