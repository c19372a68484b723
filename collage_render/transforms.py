"""Coordinate scaler: remap stored pan offsets from the preview they were recorded in."""

from dataclasses import dataclass

from collage_render.grid import PanelRect
from collage_render.models import PanelTransform, Snapshot

_UNCHANGED = 1e-4


@dataclass(frozen=True)
class OffsetScale:
    x: float = 1.0
    y: float = 1.0

    @property
    def is_identity(self) -> bool:
        return abs(self.x - 1) < _UNCHANGED and abs(self.y - 1) < _UNCHANGED

    def apply(self, transform: PanelTransform) -> PanelTransform:
        if self.is_identity:
            return transform
        return PanelTransform(
            scale=transform.scale,
            position_x=transform.position_x * self.x,
            position_y=transform.position_y * self.y,
        )


def offset_scale(
    snapshot: Snapshot,
    rect: PanelRect,
    target_width: float,
    image_area_height: float,
) -> OffsetScale:
    """Scale factors for one panel's stored offsets.

    Panel dimensions saved with the snapshot win; otherwise the preview canvas
    size is compared against the render's width and image-area height.
    """
    saved = snapshot.panel_dimensions.get(rect.panel_id)
    if saved is not None:
        return OffsetScale(rect.width / saved.width, rect.height / saved.height)

    scale_x = target_width / snapshot.canvas_width if snapshot.canvas_width else 1.0
    scale_y = image_area_height / snapshot.canvas_height if snapshot.canvas_height else 1.0
    return OffsetScale(scale_x, scale_y)


def scaled_transform(
    snapshot: Snapshot,
    rect: PanelRect,
    target_width: float,
    image_area_height: float,
) -> PanelTransform:
    """The panel's pan/zoom with offsets expressed in render pixels."""
    factors = offset_scale(snapshot, rect, target_width, image_area_height)
    return factors.apply(snapshot.transform_for(rect.panel_id))


def cover_placement(
    image_size: tuple[int, int],
    rect: PanelRect,
    transform: PanelTransform,
) -> tuple[float, float, float, float]:
    """(x, y, width, height) of an image covering *rect*, after the user's pan/zoom."""
    img_w, img_h = image_size
    image_aspect = img_w / img_h
    panel_aspect = rect.width / rect.height
    if image_aspect > panel_aspect:
        initial = rect.height / img_h
    else:
        initial = rect.width / img_w
    scale = initial * (transform.scale or 1.0)
    scaled_w = img_w * scale
    scaled_h = img_h * scale
    offset_x = (rect.width - scaled_w) / 2 + transform.position_x
    offset_y = (rect.height - scaled_h) / 2 + transform.position_y
    return rect.x + offset_x, rect.y + offset_y, scaled_w, scaled_h
