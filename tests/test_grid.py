import itertools

import pytest

from collage_render.grid import (
    GridConfig,
    compute_panel_rects,
    panel_id_for,
    parse_template_areas,
    parse_tracks,
)
from collage_render.layouts import LAYOUT_REGISTRY, MAIN_TWO_BOTTOM, resolve_layout, uniform_grid


def _overlap(a, b) -> float:
    w = min(a.right, b.right) - max(a.x, b.x)
    h = min(a.bottom, b.bottom) - max(a.y, b.y)
    return max(0.0, w) * max(0.0, h)


def _all_templates():
    for count, categories in LAYOUT_REGISTRY.items():
        seen = set()
        for templates in categories.values():
            for template in templates:
                if template.id not in seen:
                    seen.add(template.id)
                    yield count, template


# ---------------------------------------------------------------------------
# Track / area parsing
# ---------------------------------------------------------------------------

def test_parse_tracks_repeat():
    assert parse_tracks("repeat(3, 1fr)") == [1.0, 1.0, 1.0]
    assert parse_tracks("repeat(2, 2fr)") == [2.0, 2.0]


def test_parse_tracks_explicit_weights():
    assert parse_tracks("2fr 1fr") == [2.0, 1.0]
    assert parse_tracks("1fr 1.5fr fr") == [1.0, 1.5, 1.0]


@pytest.mark.parametrize("template", [None, "", "auto", "0fr"])
def test_parse_tracks_degrades_to_single_track(template):
    assert parse_tracks(template) == [1.0]


def test_parse_template_areas_bounds():
    bounds = parse_template_areas('"main main" "left right"')
    assert bounds["main"].row_start == 0 and bounds["main"].row_end == 0
    assert bounds["main"].col_start == 0 and bounds["main"].col_end == 1
    assert bounds["right"].row_start == 1 and bounds["right"].col_start == 1


def test_parse_template_areas_single_quotes_and_dots():
    bounds = parse_template_areas("'a .' 'a b'")
    assert set(bounds) == {"a", "b"}
    assert bounds["a"].row_end == 1


# ---------------------------------------------------------------------------
# Rect calculation
# ---------------------------------------------------------------------------

def test_two_columns_with_gutters():
    rects = compute_panel_rects(GridConfig("1fr 1fr", "1fr"), 100, 100, 2, border=2)
    assert [(r.x, r.width) for r in rects] == [(2, 47), (51, 47)]
    assert rects[1].right + 2 == pytest.approx(100)
    assert all(r.y == 2 and r.height == 96 for r in rects)


def test_named_area_spans_tracks():
    rects = compute_panel_rects(MAIN_TWO_BOTTOM.config, 100, 90, 3)
    main, left, right = rects
    assert main.width == pytest.approx(100)
    assert main.height == pytest.approx(60)
    assert left.y == pytest.approx(60)
    assert left.width == pytest.approx(50) and right.x == pytest.approx(50)


def test_named_areas_truncated_to_panel_count():
    rects = compute_panel_rects(MAIN_TWO_BOTTOM.config, 100, 90, 2)
    assert [r.panel_id for r in rects] == ["panel-1", "panel-2"]


def test_excess_panels_are_left_unplaced():
    rects = compute_panel_rects(uniform_grid(2, 1), 100, 100, 4)
    assert len(rects) == 2


def test_dimensions_never_below_one_pixel():
    rects = compute_panel_rects(uniform_grid(3, 3), 4, 4, 9, border=3)
    assert rects
    assert all(r.width >= 1 and r.height >= 1 for r in rects)


@pytest.mark.parametrize("count,template", list(_all_templates()), ids=lambda v: getattr(v, "id", str(v)))
def test_registered_templates_fill_canvas(count, template):
    width, height, border = 256, 192, 4
    rects = compute_panel_rects(template.config, width, height, count, border)

    assert len(rects) == count
    assert [r.panel_id for r in rects] == [panel_id_for(i) for i in range(count)]
    for r in rects:
        assert r.width > 0 and r.height > 0
        assert r.x >= 0 and r.y >= 0
        assert r.right <= width + 1e-6 and r.bottom <= height + 1e-6
    for a, b in itertools.combinations(rects, 2):
        assert _overlap(a, b) < 1e-6


@pytest.mark.parametrize("count,template", list(_all_templates()), ids=lambda v: getattr(v, "id", str(v)))
def test_oversized_border_keeps_panels_on_canvas(count, template):
    # landscape thumbnail with the thickest preset (20% of 256)
    width, height, border = 256, 144, 51
    rects = compute_panel_rects(template.config, width, height, count, border)

    assert len(rects) == count
    for r in rects:
        assert r.width >= 1 and r.height >= 1
        assert r.x >= 0 and r.y >= 0
        assert r.right <= width + 1e-6 and r.bottom <= height + 1e-6
    for a, b in itertools.combinations(rects, 2):
        assert _overlap(a, b) < 1e-6


def test_gutters_shrink_only_when_tracks_would_vanish():
    rows = uniform_grid(1, 5)
    rects = compute_panel_rects(rows, 256, 144, 5, border=51)
    assert rects[-1].bottom <= 144
    assert rects[0].x == pytest.approx(51)
    assert rects[0].y == pytest.approx((144 - 5) / 6)


def test_five_panel_fallback_stacks_rows():
    resolved = resolve_layout("no-such-template", 5, None)
    rects = compute_panel_rects(resolved.config, 256, 256, 5, border=0)
    assert len(rects) == 5
    for i, r in enumerate(rects):
        assert r.width == pytest.approx(256)
        assert r.height == pytest.approx(256 / 5)
        assert r.y == pytest.approx(i * 256 / 5)


def test_offset_moves_rect_down():
    rect = compute_panel_rects(uniform_grid(1, 1), 10, 10, 1)[0].offset(5)
    assert rect.y == 5 and rect.bottom == 15
