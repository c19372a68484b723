"""Data model definitions: the persisted collage snapshot as the renderer reads it.

The editor owns and persists snapshots as camelCase JSON. ``Snapshot.from_dict``
turns that payload into frozen dataclasses; the renderer never mutates them.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from collage_render.errors import SnapshotError

TOP_CAPTION_PANEL_ID = "__top-caption__"
MIN_PANELS = 1
MAX_PANELS = 5

ASPECT_RATIO_PRESETS = {
    "square": 1.0,
    "portrait": 0.8,
    "ratio-2-3": 2 / 3,
    "story": 0.5625,
    "classic": 1.33,
    "ratio-3-2": 1.5,
    "landscape": 1.78,
}
CUSTOM_ASPECT_MIN = 0.1
CUSTOM_ASPECT_MAX = 10.0

# Percent of canvas width
BORDER_PRESETS = {
    "none": 0.0,
    "thin": 0.5,
    "medium": 1.5,
    "thicc": 4.0,
    "thiccer": 7.0,
    "xtra thicc": 12.0,
    "ungodly chonk'd": 20.0,
}
DEFAULT_BORDER_PERCENT = BORDER_PRESETS["medium"]


# ---------------------------------------------------------------------------
# Field coercion helpers
# ---------------------------------------------------------------------------

def _number(value: Any) -> float | None:
    """Return *value* as a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _font_weight(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, str):
        named = {"normal": 400, "bold": 700, "bolder": 800, "lighter": 300}
        if value.strip().lower() in named:
            return named[value.strip().lower()]
    weight = _number(value)
    return int(weight) if weight is not None else None


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """Round like the browser's Math.round (halves go up, not to even)."""
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Snapshot parts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImageRef:
    """Opaque reference to an image: a library key, a URL, or both."""

    library_key: str | None = None
    url: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> "ImageRef":
        if isinstance(value, str):
            return cls(url=_text(value))
        data = _mapping(value)
        return cls(library_key=_text(data.get("libraryKey")), url=_text(data.get("url")))

    @property
    def is_empty(self) -> bool:
        return self.library_key is None and self.url is None


@dataclass(frozen=True)
class PanelTransform:
    """User pan/zoom for one panel, in the preview's pixel space."""

    scale: float = 1.0
    position_x: float = 0.0
    position_y: float = 0.0

    @classmethod
    def from_value(cls, value: Any) -> "PanelTransform":
        data = _mapping(value)
        scale = _number(data.get("scale"))
        return cls(
            scale=scale if scale and scale > 0 else 1.0,
            position_x=_number(data.get("positionX")) or 0.0,
            position_y=_number(data.get("positionY")) or 0.0,
        )


@dataclass(frozen=True)
class PanelText:
    """Caption settings for a panel or the top caption band."""

    raw_content: str = ""
    font_size: float | None = None
    font_weight: int | None = None
    font_style: str | None = None
    font_family: str | None = None
    color: str | None = None
    stroke_width: float | None = None
    background_color: str | None = None
    text_position_x: float | None = None
    text_position_y: float | None = None
    text_rotation: float | None = None
    text_align: str | None = None
    text_box_width_percent: float | None = None
    caption_spacing_y: float | None = None

    @classmethod
    def from_value(cls, value: Any) -> "PanelText":
        data = _mapping(value)
        raw = data.get("rawContent")
        if raw is None:
            raw = data.get("content")
        font_size = _number(data.get("fontSize"))
        return cls(
            raw_content="" if raw is None else str(raw),
            font_size=font_size if font_size and font_size > 0 else None,
            font_weight=_font_weight(data.get("fontWeight")),
            font_style=_text(data.get("fontStyle")),
            font_family=_text(data.get("fontFamily")),
            color=_text(data.get("color")),
            stroke_width=_number(data.get("strokeWidth")),
            background_color=_text(data.get("backgroundColor")),
            text_position_x=_number(data.get("textPositionX")),
            text_position_y=_number(data.get("textPositionY")),
            text_rotation=_number(data.get("textRotation")),
            text_align=_text(data.get("textAlign")),
            text_box_width_percent=_number(data.get("textBoxWidthPercent")),
            caption_spacing_y=_number(data.get("captionSpacingY")),
        )


@dataclass(frozen=True)
class Sticker:
    """Freely positioned image overlay, sized and placed in percent of the canvas."""

    ref: ImageRef
    aspect_ratio: float | None = None
    angle_deg: float | None = None
    width_percent: float | None = None
    x_percent: float | None = None
    y_percent: float | None = None

    @classmethod
    def from_value(cls, value: Any) -> "Sticker":
        data = _mapping(value)
        ref_value = data.get("ref")
        if ref_value is None:
            ref_value = {"libraryKey": data.get("libraryKey"), "url": data.get("url")}
        aspect = _number(data.get("aspectRatio"))
        return cls(
            ref=ImageRef.from_value(ref_value),
            aspect_ratio=aspect if aspect and aspect > 0 else None,
            angle_deg=_number(data.get("angleDeg")),
            width_percent=_number(data.get("widthPercent")),
            x_percent=_number(data.get("xPercent")),
            y_percent=_number(data.get("yPercent")),
        )


@dataclass(frozen=True)
class PanelSize:
    width: float
    height: float


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Snapshot:
    """Read-only description of a collage composition."""

    panel_count: int = 1
    selected_aspect_ratio: str = "square"
    custom_aspect_ratio: float | None = None
    border_thickness: float | str | None = None
    border_color: str = "#000000"
    images: tuple[ImageRef, ...] = ()
    panel_image_mapping: Mapping[str, int] = field(default_factory=dict)
    panel_transforms: Mapping[str, PanelTransform] = field(default_factory=dict)
    panel_texts: Mapping[str, PanelText] = field(default_factory=dict)
    selected_template_id: str | None = None
    custom_layout: Mapping[str, Any] | None = None
    stickers: tuple[Sticker, ...] = ()
    canvas_width: float | None = None
    canvas_height: float | None = None
    panel_dimensions: Mapping[str, PanelSize] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """Parse the editor's persisted JSON payload.

        Raises:
            SnapshotError: If *data* is not a mapping.
        """
        if not isinstance(data, Mapping):
            raise SnapshotError(f"Snapshot must be a mapping, got {type(data).__name__}")

        raw_images = data.get("images")
        # Keep empty slots so panelImageMapping indices stay aligned
        images = tuple(
            ImageRef.from_value(v) for v in raw_images
        ) if isinstance(raw_images, (list, tuple)) else ()

        count = _number(data.get("panelCount"))
        if count is None:
            count = len(images) or MIN_PANELS
        panel_count = int(clamp(int(count), MIN_PANELS, MAX_PANELS))

        mapping = {}
        for panel_id, index in _mapping(data.get("panelImageMapping")).items():
            value = _number(index)
            if value is not None and value >= 0 and value == int(value):
                mapping[str(panel_id)] = int(value)

        transforms = {
            str(panel_id): PanelTransform.from_value(value)
            for panel_id, value in _mapping(data.get("panelTransforms")).items()
            if isinstance(value, Mapping)
        }
        texts = {
            str(panel_id): PanelText.from_value(value)
            for panel_id, value in _mapping(data.get("panelTexts")).items()
            if isinstance(value, Mapping)
        }

        raw_stickers = data.get("stickers")
        stickers = tuple(
            Sticker.from_value(s) for s in raw_stickers if isinstance(s, Mapping)
        ) if isinstance(raw_stickers, (list, tuple)) else ()

        dimensions = {}
        for panel_id, dims in _mapping(data.get("panelDimensions")).items():
            dims = _mapping(dims)
            w, h = _number(dims.get("width")), _number(dims.get("height"))
            if w and h and w > 0 and h > 0:
                dimensions[str(panel_id)] = PanelSize(w, h)

        custom_layout = data.get("customLayout")
        border = data.get("borderThickness")
        if not isinstance(border, str):
            border = _number(border)

        canvas_width = _number(data.get("canvasWidth"))
        canvas_height = _number(data.get("canvasHeight"))

        return cls(
            panel_count=panel_count,
            selected_aspect_ratio=_text(data.get("selectedAspectRatio")) or "square",
            custom_aspect_ratio=_number(data.get("customAspectRatio")),
            border_thickness=border,
            border_color=_text(data.get("borderColor")) or "#000000",
            images=images,
            panel_image_mapping=MappingProxyType(mapping),
            panel_transforms=MappingProxyType(transforms),
            panel_texts=MappingProxyType(texts),
            selected_template_id=_text(data.get("selectedTemplateId")),
            custom_layout=custom_layout if isinstance(custom_layout, Mapping) else None,
            stickers=stickers,
            canvas_width=canvas_width if canvas_width and canvas_width > 0 else None,
            canvas_height=canvas_height if canvas_height and canvas_height > 0 else None,
            panel_dimensions=MappingProxyType(dimensions),
        )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def aspect_ratio(self) -> float:
        """Width / height; always a positive finite float."""
        if self.selected_aspect_ratio == "custom":
            if self.custom_aspect_ratio is None or self.custom_aspect_ratio <= 0:
                return 1.0
            return clamp(self.custom_aspect_ratio, CUSTOM_ASPECT_MIN, CUSTOM_ASPECT_MAX)
        return ASPECT_RATIO_PRESETS.get(self.selected_aspect_ratio, 1.0)

    @property
    def border_percent(self) -> float:
        value = self.border_thickness
        if isinstance(value, (int, float)):
            return max(0.0, float(value))
        key = str(value or "medium").strip().lower()
        return BORDER_PRESETS.get(key, DEFAULT_BORDER_PERCENT)

    @property
    def is_single_custom_aspect(self) -> bool:
        """A lone panel with a custom ratio lets the canvas grow for the top caption."""
        return self.panel_count == 1 and self.selected_aspect_ratio == "custom"

    @property
    def top_caption(self) -> PanelText | None:
        return self.panel_texts.get(TOP_CAPTION_PANEL_ID)

    def border_pixels(self, width: int) -> int:
        return round_half_up(self.border_percent / 100 * width)

    def transform_for(self, panel_id: str) -> PanelTransform:
        return self.panel_transforms.get(panel_id) or PanelTransform()

    def text_for(self, panel_id: str) -> PanelText | None:
        return self.panel_texts.get(panel_id)

    def image_index_for(self, panel_id: str) -> int | None:
        return self.panel_image_mapping.get(panel_id)
