"""Layout resolver: template id + panel count (+ persisted override) to a grid configuration."""

import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping

from collage_render.grid import GridConfig
from collage_render.models import MAX_PANELS, MIN_PANELS, clamp

logger = logging.getLogger(__name__)


def uniform_grid(columns: int, rows: int, panels: int | None = None) -> GridConfig:
    return GridConfig(
        columns=f"repeat({columns}, 1fr)",
        rows=f"repeat({rows}, 1fr)",
        item_count=panels if panels is not None else columns * rows,
    )


def _areas(columns: str, rows: str, template: str, *names: str) -> GridConfig:
    return GridConfig(columns=columns, rows=rows, template_areas=template, areas=names)


def _tracks(columns: str, rows: str, panels: int) -> GridConfig:
    return GridConfig(columns=columns, rows=rows, item_count=panels)


# ---------------------------------------------------------------------------
# Template registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LayoutTemplate:
    id: str
    name: str
    panels: int
    config: GridConfig


def _t(template_id: str, name: str, panels: int, config: GridConfig) -> LayoutTemplate:
    return LayoutTemplate(template_id, name, panels, config)


SINGLE_PANEL = _t("single-panel", "Single Panel", 1, _tracks("1fr", "1fr", 1))

SPLIT_HORIZONTAL = _t("split-horizontal", "Split Horizontal", 2, _tracks("1fr 1fr", "1fr", 2))
SPLIT_VERTICAL = _t("split-vertical", "Split Vertical", 2, _tracks("1fr", "1fr 1fr", 2))
FEATURE_LEFT_2 = _t("wide-left-narrow-right", "Feature Left", 2, _tracks("2fr 1fr", "1fr", 2))
FEATURE_RIGHT_2 = _t("narrow-left-wide-right", "Feature Right", 2, _tracks("1fr 2fr", "1fr", 2))
FEATURE_TOP_2 = _t("top-tall-bottom-short", "Feature Top", 2, _tracks("1fr", "2fr 1fr", 2))
FEATURE_BOTTOM_2 = _t("top-short-bottom-tall", "Feature Bottom", 2, _tracks("1fr", "1fr 2fr", 2))

MAIN_TWO_BOTTOM = _t("main-with-two-bottom", "Feature Top", 3, _areas(
    "1fr 1fr", "2fr 1fr", '"main main" "left right"', "main", "left", "right"))
MAIN_TWO_RIGHT = _t("main-with-two-right", "Feature Left", 3, _areas(
    "2fr 1fr", "1fr 1fr", '"main top" "main bottom"', "main", "top", "bottom"))
COLUMNS_3 = _t("3-columns", "3 Columns", 3, _tracks("repeat(3, 1fr)", "1fr", 3))
ROWS_3 = _t("3-rows", "3 Rows", 3, _tracks("1fr", "repeat(3, 1fr)", 3))
CENTER_WIDE = _t("center-feature-wide", "Center Feature", 3, _areas(
    "1fr 2fr 1fr", "1fr", '"left main right"', "left", "main", "right"))
CENTER_TALL = _t("center-feature-tall", "Center Feature", 3, _areas(
    "1fr", "1fr 2fr 1fr", '"top" "main" "bottom"', "top", "main", "bottom"))
SIDE_STACK = _t("side-stack-wide", "Left + Side Stack", 3, _areas(
    "2fr 1fr", "1fr 1fr", '"main top" "main bottom"', "main", "top", "bottom"))
TWO_ONE_TALL = _t("two-and-one-tall", "Two Top + One Bottom", 3, _areas(
    "1fr 1fr", "1fr 1fr", '"left right" "bottom bottom"', "left", "right", "bottom"))
TWO_ONE_SQUARE = _t("two-and-one-square", "Two Top + One Bottom", 3, _areas(
    "1fr 1fr", "1fr 1fr", '"left right" "bottom bottom"', "left", "right", "bottom"))
TRIPTYCH = _t("triptych", "Triptych", 3, _areas(
    "1fr 2fr 1fr", "1fr", '"left main right"', "left", "main", "right"))

GRID_2X2 = _t("grid-2x2", "Grid 2×2", 4, uniform_grid(2, 2))
BIG_3_BOTTOM = _t("big-and-3-bottom", "Feature Top", 4, _areas(
    "1fr 1fr 1fr", "2fr 1fr", '"main main main" "left middle right"',
    "main", "left", "middle", "right"))
BIG_3_RIGHT = _t("big-and-3-right", "Feature Left", 4, _areas(
    "2fr 1fr", "1fr 1fr 1fr", '"main top" "main middle" "main bottom"',
    "main", "top", "middle", "bottom"))
COLUMNS_4 = _t("4-columns", "4 Columns", 4, _tracks("repeat(4, 1fr)", "1fr", 4))
ROWS_4 = _t("4-rows", "4 Rows", 4, _tracks("1fr", "repeat(4, 1fr)", 4))
LEFT_FEATURE_3 = _t("left-feature-with-3-right", "Feature Left + 3 Right", 4, _areas(
    "2fr 1fr", "repeat(3, 1fr)", '"main top" "main middle" "main bottom"',
    "main", "top", "middle", "bottom"))
TOP_FEATURE_3 = _t("top-feature-with-3-bottom", "Feature Top + 3 Bottom", 4, _areas(
    "1fr 1fr 1fr", "2fr 1fr", '"main main main" "left middle right"',
    "main", "left", "middle", "right"))
SPLIT_BOTTOM_FEATURE = _t("split-bottom-feature-tall", "Two Top + Feature Bottom", 4, _areas(
    "1fr 1fr", "1fr 1fr 2fr",
    '"top-left top-right" "bottom-left bottom-right" "bottom bottom"',
    "top-left", "top-right", "bottom-left", "bottom-right"))

ROWS_5 = _t("5-rows", "5 Rows", 5, _tracks("1fr", "repeat(5, 1fr)", 5))
COLUMNS_5 = _t("5-columns", "5 Columns", 5, _tracks("repeat(5, 1fr)", "1fr", 5))
FEATURE_TOP_4 = _t("featured-top-with-4-below", "Feature Top with 4 Below", 5, _areas(
    "repeat(4, 1fr)", "2fr 1fr", '"main main main main" "one two three four"',
    "main", "one", "two", "three", "four"))
FEATURE_LEFT_4 = _t("featured-left-with-4-right", "Feature Left with 4 Right", 5, _areas(
    "2fr 1fr 1fr", "repeat(2, 1fr)",
    '"main top-left top-right" "main bottom-left bottom-right"',
    "main", "top-left", "top-right", "bottom-left", "bottom-right"))

# panel count -> aspect category -> templates, in lookup order
LAYOUT_REGISTRY: dict[int, dict[str, tuple[LayoutTemplate, ...]]] = {
    1: {
        "wide": (SINGLE_PANEL,),
        "tall": (SINGLE_PANEL,),
        "square": (SINGLE_PANEL,),
    },
    2: {
        "wide": (SPLIT_HORIZONTAL, SPLIT_VERTICAL, FEATURE_LEFT_2, FEATURE_RIGHT_2),
        "tall": (SPLIT_VERTICAL, SPLIT_HORIZONTAL, FEATURE_TOP_2, FEATURE_BOTTOM_2),
        "square": (SPLIT_HORIZONTAL, SPLIT_VERTICAL),
    },
    3: {
        "wide": (MAIN_TWO_BOTTOM, COLUMNS_3, ROWS_3, CENTER_WIDE, SIDE_STACK),
        "tall": (ROWS_3, MAIN_TWO_RIGHT, COLUMNS_3, CENTER_TALL, TWO_ONE_TALL),
        "square": (MAIN_TWO_RIGHT, MAIN_TWO_BOTTOM, ROWS_3, TWO_ONE_SQUARE, TRIPTYCH),
    },
    4: {
        "wide": (GRID_2X2, BIG_3_BOTTOM, COLUMNS_4, LEFT_FEATURE_3),
        "tall": (ROWS_4, BIG_3_RIGHT, GRID_2X2, TOP_FEATURE_3, SPLIT_BOTTOM_FEATURE),
        "square": (GRID_2X2, BIG_3_BOTTOM, BIG_3_RIGHT, ROWS_4, COLUMNS_4),
    },
    5: {
        "wide": (COLUMNS_5, FEATURE_TOP_4, ROWS_5),
        "tall": (ROWS_5, FEATURE_LEFT_4, COLUMNS_5),
        "square": (ROWS_5, FEATURE_TOP_4, COLUMNS_5, FEATURE_LEFT_4),
    },
}


def lookup_template(panel_count: int, template_id: str | None) -> LayoutTemplate | None:
    """Find *template_id* among every category registered for *panel_count*."""
    if not template_id:
        return None
    count = int(clamp(panel_count, MIN_PANELS, MAX_PANELS))
    for templates in LAYOUT_REGISTRY[count].values():
        for template in templates:
            if template.id == template_id:
                return template
    return None


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class LayoutSource(enum.Enum):
    CUSTOM = "custom"
    TEMPLATE = "template"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ResolvedLayout:
    source: LayoutSource
    config: GridConfig
    template_id: str | None = None


def fallback_layout(panel_count: int) -> GridConfig:
    """Generated uniform grid for templates that cannot be resolved."""
    count = max(1, panel_count)
    if count == 5:
        # A single column avoids an uneven remainder cell in a 3x2 grid.
        return uniform_grid(1, 5, panels=5)
    cols = math.ceil(math.sqrt(count))
    rows = math.ceil(count / cols)
    return uniform_grid(cols, rows, panels=count)


def _custom_config(custom_layout: Any, panel_count: int) -> GridConfig | None:
    if not isinstance(custom_layout, Mapping):
        return None
    if not (custom_layout.get("gridTemplateColumns") or custom_layout.get("gridTemplateRows")):
        return None
    try:
        config = GridConfig.from_dict(custom_layout)
        declared = config.declared_count
    except (TypeError, ValueError) as exc:
        logger.debug("Ignoring malformed custom layout: %s", exc)
        return None
    if declared < panel_count:
        logger.debug("Custom layout declares %d cells for %d panels; ignoring", declared, panel_count)
        return None
    return config


def resolve_layout(
    template_id: str | None,
    panel_count: int,
    custom_layout: Mapping[str, Any] | None = None,
) -> ResolvedLayout:
    """Resolve the grid configuration for a snapshot. Never raises."""
    count = int(clamp(panel_count, MIN_PANELS, MAX_PANELS))

    custom = _custom_config(custom_layout, count)
    if custom is not None:
        return ResolvedLayout(LayoutSource.CUSTOM, custom, template_id)

    template = lookup_template(count, template_id)
    if template is not None:
        return ResolvedLayout(LayoutSource.TEMPLATE, template.config, template.id)

    logger.debug("No template %r for %d panels; using generated grid", template_id, count)
    return ResolvedLayout(LayoutSource.FALLBACK, fallback_layout(count))
