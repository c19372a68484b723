"""Grid rect calculator: fractional tracks and named areas to panel pixel rectangles."""

import re
from dataclasses import dataclass
from typing import Any, Mapping

_REPEAT_RE = re.compile(r"repeat\(\s*(\d+)\s*,\s*([^)]+)\)", re.IGNORECASE)
_FR_RE = re.compile(r"(\d*\.?\d*)fr", re.IGNORECASE)


@dataclass(frozen=True)
class GridConfig:
    """CSS-grid-like description: fractional tracks plus optional named areas."""

    columns: str = "1fr"
    rows: str = "1fr"
    template_areas: str | None = None
    areas: tuple[str, ...] | None = None
    item_count: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GridConfig":
        areas = data.get("areas")
        items = data.get("items")
        template_areas = data.get("gridTemplateAreas")
        return cls(
            columns=str(data.get("gridTemplateColumns") or "1fr"),
            rows=str(data.get("gridTemplateRows") or "1fr"),
            template_areas=template_areas if isinstance(template_areas, str) and template_areas.strip() else None,
            areas=tuple(str(a) for a in areas) if isinstance(areas, (list, tuple)) and areas else None,
            item_count=len(items) if isinstance(items, (list, tuple)) else None,
        )

    @property
    def uses_areas(self) -> bool:
        return bool(self.areas and self.template_areas)

    @property
    def declared_count(self) -> int:
        """How many panels this configuration declares room for."""
        if self.uses_areas:
            return len(self.areas)
        if self.item_count is not None:
            return self.item_count
        return len(parse_tracks(self.columns)) * len(parse_tracks(self.rows))


@dataclass(frozen=True)
class AreaBounds:
    """Inclusive track indices spanned by a named area."""

    row_start: int
    row_end: int
    col_start: int
    col_end: int


@dataclass(frozen=True)
class PanelRect:
    x: float
    y: float
    width: float
    height: float
    panel_id: str
    index: int

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def offset(self, dy: float) -> "PanelRect":
        return PanelRect(self.x, self.y + dy, self.width, self.height, self.panel_id, self.index)


def panel_id_for(index: int) -> str:
    return f"panel-{index + 1}"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_tracks(template: str | None) -> list[float]:
    """Parse ``"1fr 2fr"`` or ``"repeat(3, 1fr)"`` into fractional weights."""
    if not template or not isinstance(template, str):
        return [1.0]

    repeat = _REPEAT_RE.search(template)
    if repeat:
        count = int(repeat.group(1))
        fr = _FR_RE.search(repeat.group(2))
        weight = 1.0
        if fr and fr.group(1):
            weight = float(fr.group(1))
        if count > 0 and weight > 0:
            return [weight] * count
        return [1.0]

    weights = []
    for match in _FR_RE.finditer(template):
        value = match.group(1)
        if value in ("", "."):
            weights.append(1.0)
        else:
            weights.append(float(value))
    if not weights or sum(weights) <= 0:
        return [1.0]
    return weights


def parse_template_areas(template_areas: str | None) -> dict[str, AreaBounds]:
    """Parse an ASCII ``grid-template-areas`` block into area bounds."""
    if not template_areas:
        return {}

    clean = template_areas.strip()
    if '" "' in clean or '"\n' in clean:
        rows = re.findall(r'"([^"]*)"', clean)
    elif "' '" in clean or "'\n" in clean:
        rows = re.findall(r"'([^']*)'", clean)
    else:
        rows = [clean.replace('"', "").replace("'", "")]

    bounds: dict[str, list[int]] = {}
    for row_index, row in enumerate(rows):
        for col_index, name in enumerate(row.split()):
            if name == "." or not name:
                continue
            if name not in bounds:
                bounds[name] = [row_index, row_index, col_index, col_index]
            else:
                b = bounds[name]
                b[0] = min(b[0], row_index)
                b[1] = max(b[1], row_index)
                b[2] = min(b[2], col_index)
                b[3] = max(b[3], col_index)
    return {name: AreaBounds(*b) for name, b in bounds.items()}


# ---------------------------------------------------------------------------
# Rect calculation
# ---------------------------------------------------------------------------

def _fit_border(border: float, dim: float, weights: list[float]) -> float:
    """Largest gutter up to *border* that still leaves every track at least 1px."""
    positive = [w for w in weights if w > 0] or [1.0]
    needed = sum(positive) / min(positive)
    return max(0.0, min(border, (dim - needed) / (len(weights) + 1)))


def _track_offsets(weights: list[float], unit: float, border: float) -> list[float]:
    """Start coordinate of each track, including the outer border."""
    offsets = []
    cursor = border
    for weight in weights:
        offsets.append(cursor)
        cursor += weight * unit + border
    return offsets


def _span(weights, offsets, unit, border, start, end) -> tuple[float, float]:
    """Origin and length of tracks start..end inclusive, interior gutters included."""
    length = sum(weights[i] * unit for i in range(start, end + 1))
    length += (end - start) * border
    return offsets[start], length


def compute_panel_rects(
    config: GridConfig,
    width: float,
    height: float,
    panel_count: int,
    border: float = 0,
) -> list[PanelRect]:
    """Lay out panels on a ``width`` x ``height`` area.

    Panels beyond the available cells are silently left unplaced.
    """
    col_weights = parse_tracks(config.columns)
    row_weights = parse_tracks(config.rows)

    border_x = _fit_border(border, width, col_weights)
    border_y = _fit_border(border, height, row_weights)
    avail_w = width - (len(col_weights) + 1) * border_x
    avail_h = height - (len(row_weights) + 1) * border_y
    col_unit = max(avail_w, 0) / sum(col_weights)
    row_unit = max(avail_h, 0) / sum(row_weights)

    col_offsets = _track_offsets(col_weights, col_unit, border_x)
    row_offsets = _track_offsets(row_weights, row_unit, border_y)

    rects: list[PanelRect] = []

    if config.uses_areas:
        bounds = parse_template_areas(config.template_areas)
        for index, name in enumerate(config.areas[:panel_count]):
            area = bounds.get(name)
            if area is None:
                continue
            if area.col_end >= len(col_weights) or area.row_end >= len(row_weights):
                continue
            x, w = _span(col_weights, col_offsets, col_unit, border_x, area.col_start, area.col_end)
            y, h = _span(row_weights, row_offsets, row_unit, border_y, area.row_start, area.row_end)
            rects.append(PanelRect(x, y, max(1.0, w), max(1.0, h), panel_id_for(index), index))
        return rects

    cells = len(col_weights) * len(row_weights)
    for index in range(min(panel_count, cells)):
        row, col = divmod(index, len(col_weights))
        rects.append(PanelRect(
            col_offsets[col],
            row_offsets[row],
            max(1.0, col_weights[col] * col_unit),
            max(1.0, row_weights[row] * row_unit),
            panel_id_for(index),
            index,
        ))
    return rects
