"""Text layout engine: plain-text projection, wrapping, caption auto-fit and top caption band."""

import re
import unicodedata
from dataclasses import dataclass
from typing import Callable

import arabic_reshaper
from bidi.algorithm import get_display

from collage_render.fonts import MAX_FONT_PX
from collage_render.grid import PanelRect
from collage_render.models import PanelText, clamp

Measure = Callable[[str], float]
MeasureForSize = Callable[[float], Measure]

LINE_HEIGHT_RATIO = 1.2
TEXT_PADDING_PX = 10
DEFAULT_BOTTOM_RATIO = 0.95
EXTENDED_BOTTOM_RATIO = 1.10

AUTO_FIT_MIN_SIZE = 8
AUTO_FIT_MAX_SIZE = 48
AUTO_FIT_STEP = 2
AUTO_FIT_HEIGHT_RATIO = 0.4
AUTO_FIT_FALLBACK_SIZE = 12

TEXT_BOX_DEFAULT_PERCENT = 90.0
TEXT_BOX_MIN_PERCENT = 20.0
TEXT_BOX_MAX_PERCENT = 100.0
TEXT_BOX_MIN_PX = 36

CAPTION_DEFAULT_FAMILY = "Arial"
CAPTION_DEFAULT_WEIGHT = 400
CAPTION_DEFAULT_COLOR = "#ffffff"

TOP_CAPTION_DEFAULT_SIZE = 42.0
TOP_CAPTION_DEFAULT_WEIGHT = 700
TOP_CAPTION_DEFAULT_FAMILY = "Impact"
TOP_CAPTION_DEFAULT_COLOR = "#111111"
TOP_CAPTION_MIN_HEIGHT = 56
TOP_CAPTION_MIN_IMAGE_AREA = 120
TOP_CAPTION_MIN_IMAGE_RATIO = 0.35

_FORMAT_TAG_RE = re.compile(r"</?\s*(?:b|i|u)\s*>", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Plain-text projection and shaping
# ---------------------------------------------------------------------------

def plain_text(raw: str | None) -> str:
    """Strip inline ``<b>``/``<i>``/``<u>`` markup, keeping the text only."""
    if not raw:
        return ""
    return _FORMAT_TAG_RE.sub("", str(raw))


def _contains_rtl(text: str) -> bool:
    return any(unicodedata.bidirectional(ch) in ("R", "AL") for ch in text)


def shape_text(text: str) -> str:
    """Reshape and reorder right-to-left text into visual order for drawing.

    Left-to-right text is returned unchanged.
    """
    if not text or not _contains_rtl(text):
        return text
    return get_display(arabic_reshaper.reshape(text))


# ---------------------------------------------------------------------------
# Wrapping
# ---------------------------------------------------------------------------

def _break_token(token: str, max_width: float, measure: Measure) -> list[str]:
    """Split a single over-long token character by character."""
    pieces = []
    current = ""
    for ch in token:
        candidate = current + ch
        if current and measure(candidate) > max_width:
            pieces.append(current)
            current = ch
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def wrap_text(text: str, max_width: float, measure: Measure) -> list[str]:
    """Greedy word wrap honouring explicit newlines.

    No returned line measures wider than *max_width* unless it is a single
    character. Never returns an empty list.
    """
    lines: list[str] = []
    for paragraph in str(text or "").split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if measure(candidate) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
                current = ""
            if measure(word) <= max_width:
                current = word
                continue
            pieces = _break_token(word, max_width, measure)
            lines.extend(pieces[:-1])
            current = pieces[-1]
        if current:
            lines.append(current)
    return lines or [""]


# ---------------------------------------------------------------------------
# Panel captions
# ---------------------------------------------------------------------------

def fit_caption_size(
    text: str,
    panel_width: float,
    panel_height: float,
    measure_for_size: MeasureForSize,
) -> float:
    """Largest probed font size whose wrapped block fits 40% of the panel height."""
    upper = min(AUTO_FIT_MAX_SIZE, panel_height * 0.15)
    max_width = panel_width - 2 * TEXT_PADDING_PX
    budget = panel_height * AUTO_FIT_HEIGHT_RATIO

    size = upper
    while size >= AUTO_FIT_MIN_SIZE:
        lines = wrap_text(text, max_width, measure_for_size(size))
        if len(lines) * size * LINE_HEIGHT_RATIO <= budget:
            return size
        size -= AUTO_FIT_STEP
    return AUTO_FIT_FALLBACK_SIZE


def text_box_width(panel_width: float, percent: float | None) -> float:
    available = max(24.0, panel_width - 2 * TEXT_PADDING_PX)
    pct = TEXT_BOX_DEFAULT_PERCENT if percent is None else clamp(
        percent, TEXT_BOX_MIN_PERCENT, TEXT_BOX_MAX_PERCENT)
    return clamp(available * pct / 100, min(TEXT_BOX_MIN_PX, available), available)


def anchor_x(rect: PanelRect, position_x: float | None) -> float:
    """Horizontal text anchor; -100 is the left padding edge, 100 the right."""
    pos = clamp(position_x or 0.0, -100.0, 100.0)
    usable = max(1.0, rect.width - 2 * TEXT_PADDING_PX)
    return rect.x + TEXT_PADDING_PX + (pos + 100) / 200 * usable


def anchor_y(rect: PanelRect, position_y: float | None) -> float:
    """Bottom edge of the caption block (the last line sits just above it).

    0 sits near the bottom of the frame, -100 drops it below the frame by 10%
    of the panel height, 100 raises it to the top.
    """
    pos = clamp(position_y or 0.0, -100.0, 100.0)
    default_bottom = rect.y + rect.height * DEFAULT_BOTTOM_RATIO
    if pos <= 0:
        extended_bottom = rect.y + rect.height * EXTENDED_BOTTOM_RATIO
        return default_bottom + abs(pos) / 100 * (extended_bottom - default_bottom)
    return default_bottom + pos / 100 * (rect.y - default_bottom)


def line_start_x(align: str, anchor: float, line_width: float) -> float:
    if align == "left":
        return anchor
    if align == "right":
        return anchor - line_width
    return anchor - line_width / 2


def normalize_align(value: str | None, default: str = "center") -> str:
    return value if value in ("left", "center", "right") else default


def default_stroke_width(font_size: float) -> float:
    return min(16, max(3, round(font_size * 0.18)))


def resolve_stroke_width(requested: float | None, font_size: float) -> float:
    """0 disables the stroke, absent uses a size-derived default. Capped at the font size."""
    if requested is None:
        return default_stroke_width(font_size)
    return clamp(requested, 0.0, max(1.0, font_size))


@dataclass(frozen=True)
class CaptionLayout:
    """Wrapped panel caption positioned in surface coordinates."""

    lines: tuple[str, ...]
    line_widths: tuple[float, ...]
    font_size: float
    line_height: float
    align: str
    anchor_x: float
    anchor_y: float
    box_width: float

    @property
    def block_height(self) -> float:
        return len(self.lines) * self.line_height

    @property
    def top(self) -> float:
        return self.anchor_y - self.block_height

    @property
    def center(self) -> tuple[float, float]:
        left = line_start_x(self.align, self.anchor_x, self.box_width)
        return left + self.box_width / 2, self.anchor_y - self.block_height / 2


def layout_caption(
    text: str,
    settings: PanelText,
    rect: PanelRect,
    scale: float,
    measure_for_size: MeasureForSize,
) -> CaptionLayout:
    """Size, wrap and anchor a panel caption inside *rect*.

    Explicit font sizes are given at the reference width and scaled by
    *scale*; auto-fit sizes are already in output pixels.
    """
    if settings.font_size:
        size = min(settings.font_size * scale, MAX_FONT_PX)
    else:
        size = fit_caption_size(text, rect.width, rect.height, measure_for_size)
    measure = measure_for_size(size)
    box = text_box_width(rect.width, settings.text_box_width_percent)
    lines = tuple(wrap_text(text, box, measure))
    return CaptionLayout(
        lines=lines,
        line_widths=tuple(measure(line) for line in lines),
        font_size=size,
        line_height=size * LINE_HEIGHT_RATIO,
        align=normalize_align(settings.text_align),
        anchor_x=anchor_x(rect, settings.text_position_x),
        anchor_y=anchor_y(rect, settings.text_position_y),
        box_width=box,
    )


# ---------------------------------------------------------------------------
# Top caption band
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TopCaptionLayout:
    enabled: bool
    caption_height: float
    image_area_height: float
    total_height: float
    image_offset_y: float
    rect: tuple[float, float, float, float] | None = None
    font_size: float = 0.0

    @classmethod
    def disabled(cls, base_height: float) -> "TopCaptionLayout":
        return cls(False, 0.0, base_height, base_height, 0.0)


def top_caption_font_size(settings: PanelText, scale: float) -> float:
    return min((settings.font_size or TOP_CAPTION_DEFAULT_SIZE) * scale, MAX_FONT_PX)


def layout_top_caption(
    text: str,
    settings: PanelText | None,
    width: float,
    base_height: float,
    border: float,
    scale: float,
    measure_for_size: MeasureForSize,
    expand_canvas: bool = False,
) -> TopCaptionLayout:
    """Measure the caption band above the grid.

    With *expand_canvas* the surface grows by the band height; otherwise the
    band is carved out of *base_height*, leaving the image area at least
    ``max(120, 0.35 * base_height)`` tall.
    """
    if settings is None or not text.strip():
        return TopCaptionLayout.disabled(base_height)

    font_size = top_caption_font_size(settings, scale)
    spacing = max(0.0, settings.caption_spacing_y or 0.0) * scale
    h_pad = max(18, round(width * 0.045))
    v_pad = max(12, round(font_size * 0.42)) + spacing
    max_width = max(48, width - 2 * h_pad - 2 * border)

    lines = wrap_text(text, max_width, measure_for_size(font_size))
    line_height = font_size * LINE_HEIGHT_RATIO
    text_height = max(line_height, len(lines) * line_height)
    requested = text_height + 2 * v_pad + max(border, 0)

    min_image_area = max(TOP_CAPTION_MIN_IMAGE_AREA, base_height * TOP_CAPTION_MIN_IMAGE_RATIO)
    if expand_canvas:
        caption_height = max(TOP_CAPTION_MIN_HEIGHT, requested)
        image_area = base_height
        total = base_height + caption_height
    else:
        cap = max(TOP_CAPTION_MIN_HEIGHT, base_height - min_image_area)
        caption_height = max(TOP_CAPTION_MIN_HEIGHT, min(requested, cap))
        image_area = max(1.0, base_height - caption_height)
        total = base_height

    rect = (
        float(border),
        float(max(0, border)),
        float(max(1, width - 2 * border)),
        float(max(1, caption_height - border)),
    )
    return TopCaptionLayout(
        enabled=True,
        caption_height=caption_height,
        image_area_height=image_area,
        total_height=total,
        image_offset_y=caption_height,
        rect=rect,
        font_size=font_size,
    )


def top_caption_text_width(rect_width: float) -> tuple[float, float]:
    """(horizontal padding, wrap width) used when drawing inside the band."""
    h_pad = max(16, rect_width * 0.04)
    return h_pad, max(24, rect_width - 2 * h_pad)


def top_caption_anchor_x(align: str, rect: tuple[float, float, float, float], h_pad: float) -> float:
    x, _, w, _ = rect
    if align == "left":
        return x + h_pad
    if align == "right":
        return x + w - h_pad
    return x + w / 2


def top_caption_background(settings: PanelText, border_color: str) -> str:
    """Explicit band colour, unless unset or plain white, then the border colour."""
    background = (settings.background_color or "").strip().lower()
    if background and background not in ("#ffffff", "#fff", "white"):
        return settings.background_color
    return border_color


class TextMeasurer:
    """Caches text widths per (font, text) for one render."""

    def __init__(self):
        self._widths: dict[tuple[int, str], float] = {}

    def width(self, font, text: str) -> float:
        key = (id(font), text)
        cached = self._widths.get(key)
        if cached is None:
            cached = float(font.getlength(shape_text(text))) if text else 0.0
            self._widths[key] = cached
        return cached

    def measure(self, font) -> Measure:
        return lambda text: self.width(font, text)
