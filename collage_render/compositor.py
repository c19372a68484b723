"""Canvas compositor: snapshot -> panels, captions and stickers -> JPEG bytes.

Draw order is fixed: base fill, border colour, the top caption band, each
panel (tint, image, caption), then stickers. A failed asset or font only
degrades its own layer; a structurally invalid snapshot yields ``None``.
"""

import asyncio
import io
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from PIL import Image, ImageDraw, ImageFilter

from collage_render.assets import AssetStore, resolve_all
from collage_render.colors import (
    CAPTION_SHADOW,
    PLACEHOLDER_EMPTY,
    PLACEHOLDER_FILLED,
    contrasting_mono,
    parse_color,
)
from collage_render.config import RenderConfig
from collage_render.errors import SnapshotError
from collage_render.fonts import FontBook, preload_fonts
from collage_render.grid import PanelRect, compute_panel_rects
from collage_render.layouts import resolve_layout
from collage_render.models import PanelText, Snapshot, Sticker, clamp, round_half_up
from collage_render.text import (
    CAPTION_DEFAULT_COLOR,
    CAPTION_DEFAULT_FAMILY,
    CAPTION_DEFAULT_WEIGHT,
    LINE_HEIGHT_RATIO,
    TOP_CAPTION_DEFAULT_COLOR,
    TOP_CAPTION_DEFAULT_FAMILY,
    TOP_CAPTION_DEFAULT_WEIGHT,
    CaptionLayout,
    TextMeasurer,
    TopCaptionLayout,
    layout_caption,
    layout_top_caption,
    line_start_x,
    normalize_align,
    plain_text,
    resolve_stroke_width,
    shape_text,
    top_caption_anchor_x,
    top_caption_background,
    top_caption_text_width,
    wrap_text,
)
from collage_render.transforms import cover_placement, scaled_transform

logger = logging.getLogger(__name__)

ParseText = Callable[[str], str]

SHADOW_BLUR = 14
STICKER_MIN_PX = 12
STICKER_MAX_RATIO = 0.98
STICKER_MIN_VISIBLE_PX = 32
STICKER_DEFAULT_WIDTH_PCT = 28.0
STICKER_DEFAULT_X_PCT = 36.0
STICKER_DEFAULT_Y_PCT = 12.0


@dataclass
class RenderContext:
    """Everything one render threads through its draw steps."""

    snapshot: Snapshot
    config: RenderConfig
    width: int
    base_height: int
    border: int
    text_scale: float
    fonts: FontBook
    measurer: TextMeasurer = field(default_factory=TextMeasurer)
    parse_text: ParseText = plain_text
    surface: Image.Image | None = None
    images: list = field(default_factory=list)
    sticker_images: list = field(default_factory=list)

    def measure_for(self, family, weight, style, text=None):
        """Measure factory for a caption style, keyed by font size."""
        def _for_size(size: float):
            font = self.fonts.get(family, size, weight, style, text=text)
            return self.measurer.measure(font)
        return _for_size


# ---------------------------------------------------------------------------
# Raster helpers
# ---------------------------------------------------------------------------

def _pixel_box(x: float, y: float, w: float, h: float, bounds: tuple[int, int]) -> tuple[int, int, int, int] | None:
    """Integer box for a float rect, clipped to *bounds*; None if empty."""
    x0 = max(0, int(round(x)))
    y0 = max(0, int(round(y)))
    x1 = min(bounds[0], int(round(x + w)))
    y1 = min(bounds[1], int(round(y + h)))
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1, y1


def _fill(surface: Image.Image, box: tuple[int, int, int, int], color) -> None:
    """Alpha-blend a solid colour over *box*."""
    x0, y0, x1, y1 = box
    surface.alpha_composite(Image.new("RGBA", (x1 - x0, y1 - y0), color), dest=(x0, y0))


def _composite_clipped(surface: Image.Image, layer: Image.Image, clip: tuple[int, int, int, int]) -> None:
    """Composite a full-surface *layer* onto *surface*, only inside *clip*."""
    surface.alpha_composite(layer.crop(clip), dest=(clip[0], clip[1]))


def _draw_scaled(surface: Image.Image, img: Image.Image, placement, clip) -> None:
    """Draw *img* stretched to *placement* (x, y, w, h), clipped to *clip*."""
    dx, dy, dw, dh = placement
    if dw <= 0 or dh <= 0:
        return
    x0 = max(clip[0], int(round(dx)))
    y0 = max(clip[1], int(round(dy)))
    x1 = min(clip[2], int(round(dx + dw)))
    y1 = min(clip[3], int(round(dy + dh)))
    if x1 <= x0 or y1 <= y0:
        return

    sx = img.width / dw
    sy = img.height / dh
    src_box = (
        clamp((x0 - dx) * sx, 0, img.width),
        clamp((y0 - dy) * sy, 0, img.height),
        clamp((x1 - dx) * sx, 0, img.width),
        clamp((y1 - dy) * sy, 0, img.height),
    )
    if src_box[2] <= src_box[0] or src_box[3] <= src_box[1]:
        return
    tile = img.resize((x1 - x0, y1 - y0), Image.Resampling.LANCZOS, box=src_box)
    surface.alpha_composite(tile, dest=(x0, y0))


# ---------------------------------------------------------------------------
# Text drawing
# ---------------------------------------------------------------------------

def _draw_lines(
    draw: ImageDraw.ImageDraw,
    lines,
    positions,
    font,
    fill,
    stroke_width: float = 0,
    stroke_fill=None,
) -> None:
    stroke = int(round(stroke_width / 2)) if stroke_width > 0 else 0
    for line, (x, y) in zip(lines, positions):
        if not line:
            continue
        draw.text(
            (x, y), shape_text(line), font=font, fill=fill, anchor="lm",
            stroke_width=stroke, stroke_fill=stroke_fill if stroke else None,
        )


def _caption_positions(layout: CaptionLayout) -> list[tuple[float, float]]:
    top = layout.top
    return [
        (line_start_x(layout.align, layout.anchor_x, width), top + (i + 0.5) * layout.line_height)
        for i, width in enumerate(layout.line_widths)
    ]


def _draw_panel_caption(ctx: RenderContext, rect: PanelRect, settings: PanelText) -> None:
    text = ctx.parse_text(settings.raw_content)
    if not text.strip():
        return
    clip = _pixel_box(rect.x, rect.y, rect.width, rect.height, ctx.surface.size)
    if clip is None:
        return

    family = settings.font_family or CAPTION_DEFAULT_FAMILY
    weight = settings.font_weight or CAPTION_DEFAULT_WEIGHT
    measure_for = ctx.measure_for(family, weight, settings.font_style, text=text)
    layout = layout_caption(text, settings, rect, ctx.text_scale, measure_for)
    font = ctx.fonts.get(family, layout.font_size, weight, settings.font_style, text=text)

    fill = parse_color(settings.color or CAPTION_DEFAULT_COLOR, (255, 255, 255, 255))
    stroke_width = resolve_stroke_width(settings.stroke_width, layout.font_size)
    positions = _caption_positions(layout)

    shadow = Image.new("RGBA", ctx.surface.size, (0, 0, 0, 0))
    _draw_lines(ImageDraw.Draw(shadow), layout.lines, positions, font, CAPTION_SHADOW,
                stroke_width, CAPTION_SHADOW)
    shadow = shadow.filter(ImageFilter.GaussianBlur(radius=SHADOW_BLUR * ctx.text_scale / 2))

    glyphs = Image.new("RGBA", ctx.surface.size, (0, 0, 0, 0))
    _draw_lines(ImageDraw.Draw(glyphs), layout.lines, positions, font, fill,
                stroke_width, contrasting_mono(fill))

    rotation = settings.text_rotation or 0.0
    if rotation:
        center = layout.center
        shadow = shadow.rotate(-rotation, resample=Image.Resampling.BICUBIC, center=center)
        glyphs = glyphs.rotate(-rotation, resample=Image.Resampling.BICUBIC, center=center)

    _composite_clipped(ctx.surface, shadow, clip)
    _composite_clipped(ctx.surface, glyphs, clip)


def _draw_top_caption(ctx: RenderContext, band: TopCaptionLayout, settings: PanelText) -> None:
    text = ctx.parse_text(settings.raw_content)
    clip = _pixel_box(*band.rect, ctx.surface.size)
    if clip is None:
        return

    background = top_caption_background(settings, ctx.snapshot.border_color)
    _fill(ctx.surface, clip, parse_color(background, (255, 255, 255, 255)))

    family = settings.font_family or TOP_CAPTION_DEFAULT_FAMILY
    weight = settings.font_weight or TOP_CAPTION_DEFAULT_WEIGHT
    font = ctx.fonts.get(family, band.font_size, weight, settings.font_style, text=text)
    measure = ctx.measurer.measure(font)

    rect_x, rect_y, rect_w, rect_h = band.rect
    h_pad, max_width = top_caption_text_width(rect_w)
    lines = wrap_text(text, max_width, measure)
    line_height = band.font_size * LINE_HEIGHT_RATIO
    start_y = rect_y + (rect_h - len(lines) * line_height) / 2 + line_height / 2
    align = normalize_align(settings.text_align, default="left")
    anchor = top_caption_anchor_x(align, band.rect, h_pad)
    positions = [
        (line_start_x(align, anchor, measure(line)), start_y + i * line_height)
        for i, line in enumerate(lines)
    ]

    fill = parse_color(settings.color or TOP_CAPTION_DEFAULT_COLOR, (17, 17, 17, 255))
    stroke_width = settings.stroke_width if settings.stroke_width and settings.stroke_width > 0 else 0
    glyphs = Image.new("RGBA", ctx.surface.size, (0, 0, 0, 0))
    _draw_lines(ImageDraw.Draw(glyphs), lines, positions, font, fill,
                stroke_width, contrasting_mono(fill))
    _composite_clipped(ctx.surface, glyphs, clip)


# ---------------------------------------------------------------------------
# Panels and stickers
# ---------------------------------------------------------------------------

def _draw_panel(ctx: RenderContext, rect: PanelRect, image_area_height: float) -> None:
    box = _pixel_box(rect.x, rect.y, rect.width, rect.height, ctx.surface.size)
    if box is None:
        return
    index = ctx.snapshot.image_index_for(rect.panel_id)
    img = ctx.images[index] if index is not None and index < len(ctx.images) else None

    _fill(ctx.surface, box, PLACEHOLDER_FILLED if img is not None else PLACEHOLDER_EMPTY)
    if img is None:
        return
    transform = scaled_transform(ctx.snapshot, rect, ctx.width, image_area_height)
    _draw_scaled(ctx.surface, img, cover_placement(img.size, rect, transform), box)


def normalize_angle(value: float | None) -> float:
    """Fold an angle in degrees into (-180, 180]."""
    if value is None or not math.isfinite(value):
        return 0.0
    angle = math.fmod(value, 360)
    if angle > 180:
        angle -= 360
    if angle <= -180:
        angle += 360
    return angle


@dataclass(frozen=True)
class StickerRect:
    x: float
    y: float
    width: float
    height: float
    angle: float


def sticker_rect(sticker: Sticker, image_size: tuple[int, int] | None, canvas: tuple[float, float]) -> StickerRect:
    """Pixel placement of a sticker on a ``canvas`` (width, height) surface."""
    canvas_w, canvas_h = canvas
    aspect = sticker.aspect_ratio
    if aspect is None:
        aspect = image_size[0] / image_size[1] if image_size and image_size[1] else 1.0

    width_pct = sticker.width_percent if sticker.width_percent is not None else STICKER_DEFAULT_WIDTH_PCT
    max_width = max(STICKER_MIN_PX, min(canvas_w * STICKER_MAX_RATIO, canvas_h * STICKER_MAX_RATIO * aspect))
    width = clamp(width_pct / 100 * canvas_w, STICKER_MIN_PX, max_width)
    height = max(STICKER_MIN_PX, width / aspect)
    max_height = max(STICKER_MIN_PX, canvas_h * STICKER_MAX_RATIO)
    if height > max_height:
        height = max_height
        width = height * aspect

    x_pct = sticker.x_percent if sticker.x_percent is not None else STICKER_DEFAULT_X_PCT
    y_pct = sticker.y_percent if sticker.y_percent is not None else STICKER_DEFAULT_Y_PCT
    visible_x = min(STICKER_MIN_VISIBLE_PX, width)
    visible_y = min(STICKER_MIN_VISIBLE_PX, height)
    x = clamp(x_pct / 100 * canvas_w, visible_x - width, canvas_w - visible_x)
    y = clamp(y_pct / 100 * canvas_h, visible_y - height, canvas_h - visible_y)
    return StickerRect(x, y, width, height, normalize_angle(sticker.angle_deg))


def _draw_sticker(ctx: RenderContext, sticker: Sticker, img: Image.Image) -> None:
    surface = ctx.surface
    rect = sticker_rect(sticker, img.size, surface.size)
    w = max(1, int(round(rect.width)))
    h = max(1, int(round(rect.height)))
    art = img.resize((w, h), Image.Resampling.LANCZOS)
    x, y = rect.x, rect.y
    if abs(rect.angle) > 0.01:
        art = art.rotate(-rect.angle, resample=Image.Resampling.BICUBIC, expand=True)
        x += (w - art.width) / 2
        y += (h - art.height) / 2
    clip = (0, 0, surface.width, surface.height)
    _draw_scaled(surface, art, (int(round(x)), int(round(y)), art.width, art.height), clip)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _coerce_snapshot(snapshot: Any) -> Snapshot | None:
    if snapshot is None:
        return None
    if isinstance(snapshot, Snapshot):
        return snapshot
    try:
        return Snapshot.from_dict(snapshot)
    except SnapshotError as exc:
        logger.warning("Invalid snapshot: %s", exc)
        return None


def _caption_families(snapshot: Snapshot) -> list[str]:
    families = []
    for text in snapshot.panel_texts.values():
        if text.font_family:
            families.append(text.font_family)
    families.append(TOP_CAPTION_DEFAULT_FAMILY if snapshot.top_caption else CAPTION_DEFAULT_FAMILY)
    return families


def _encode(surface: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    surface.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


async def render_snapshot(
    snapshot: Snapshot | dict | None,
    *,
    max_dim: int | None = None,
    store: AssetStore | None = None,
    config: RenderConfig | None = None,
    parse_text: ParseText | None = None,
) -> bytes | None:
    """Render *snapshot* to JPEG bytes, ``max_dim`` pixels wide.

    Returns None only when the snapshot itself is missing or invalid.
    """
    snap = _coerce_snapshot(snapshot)
    if snap is None:
        return None

    config = config or RenderConfig()
    started = time.perf_counter()
    width = max(1, int(max_dim or config.max_dim))
    base_height = max(1, round_half_up(width / snap.aspect_ratio))
    ctx = RenderContext(
        snapshot=snap,
        config=config,
        width=width,
        base_height=base_height,
        border=snap.border_pixels(width),
        text_scale=width / config.reference_width,
        fonts=FontBook(config.fonts_manifest),
        parse_text=parse_text or plain_text,
    )

    refs = list(snap.images) + [s.ref for s in snap.stickers]
    resolved, _ = await asyncio.gather(
        resolve_all(refs, store, config),
        preload_fonts(_caption_families(snap), ctx.fonts, config),
    )
    ctx.images = resolved[: len(snap.images)]
    ctx.sticker_images = resolved[len(snap.images):]

    top = snap.top_caption
    band = TopCaptionLayout.disabled(base_height)
    if top is not None:
        top_text = ctx.parse_text(top.raw_content)
        family = top.font_family or TOP_CAPTION_DEFAULT_FAMILY
        weight = top.font_weight or TOP_CAPTION_DEFAULT_WEIGHT
        band = layout_top_caption(
            top_text, top, width, base_height, ctx.border, ctx.text_scale,
            ctx.measure_for(family, weight, top.font_style, text=top_text),
            expand_canvas=snap.is_single_custom_aspect,
        )

    total_height = max(1, int(math.ceil(band.total_height)))
    ctx.surface = Image.new("RGBA", (width, total_height), parse_color(config.background_color, (255, 255, 255, 255)))
    if ctx.border > 0:
        _fill(ctx.surface, (0, 0, width, total_height), parse_color(snap.border_color))

    layout = resolve_layout(snap.selected_template_id, snap.panel_count, snap.custom_layout)
    rects = [
        r.offset(band.image_offset_y)
        for r in compute_panel_rects(layout.config, width, band.image_area_height, snap.panel_count, ctx.border)
    ]
    if len(rects) < snap.panel_count:
        logger.debug("Layout places %d of %d panels", len(rects), snap.panel_count)

    if band.enabled:
        try:
            _draw_top_caption(ctx, band, top)
        except Exception as exc:
            logger.warning("Skipping top caption: %r", exc)

    for rect in rects:
        _draw_panel(ctx, rect, band.image_area_height)
        settings = snap.text_for(rect.panel_id)
        if settings is None:
            continue
        try:
            _draw_panel_caption(ctx, rect, settings)
        except Exception as exc:
            logger.warning("Skipping caption on %s: %r", rect.panel_id, exc)

    for sticker, img in zip(snap.stickers, ctx.sticker_images):
        if img is None:
            continue
        try:
            _draw_sticker(ctx, sticker, img)
        except Exception as exc:
            logger.warning("Skipping sticker %s: %r", sticker.ref.library_key or sticker.ref.url, exc)

    data = _encode(ctx.surface, config.jpeg_quality)
    logger.info(
        "Rendered %dx%d collage (%d panels, %s layout) in %.0f ms",
        width, total_height, len(rects), layout.source.value, (time.perf_counter() - started) * 1000,
    )
    return data


def render_snapshot_sync(snapshot, **kwargs) -> bytes | None:
    """Blocking wrapper around :func:`render_snapshot`."""
    return asyncio.run(render_snapshot(snapshot, **kwargs))


async def render_many(
    snapshots: Iterable,
    *,
    limit: int = 4,
    **kwargs,
) -> list[bytes | None]:
    """Render several snapshots with at most *limit* in flight, preserving order."""
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _one(snapshot):
        async with semaphore:
            return await render_snapshot(snapshot, **kwargs)

    return list(await asyncio.gather(*(_one(s) for s in snapshots)))
