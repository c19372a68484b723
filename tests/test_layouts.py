import pytest

from collage_render.grid import parse_tracks
from collage_render.layouts import (
    GRID_2X2,
    LAYOUT_REGISTRY,
    LayoutSource,
    fallback_layout,
    lookup_template,
    resolve_layout,
)


def test_registry_templates_match_their_panel_count():
    for count, categories in LAYOUT_REGISTRY.items():
        assert set(categories) == {"wide", "tall", "square"}
        for templates in categories.values():
            for template in templates:
                assert template.panels == count
                assert template.config.declared_count >= count


def test_template_lookup_by_id():
    resolved = resolve_layout("grid-2x2", 4)
    assert resolved.source is LayoutSource.TEMPLATE
    assert resolved.config == GRID_2X2.config
    assert resolved.template_id == "grid-2x2"


def test_lookup_scans_every_category():
    # only registered under "tall" for 4 panels
    assert lookup_template(4, "split-bottom-feature-tall").id == "split-bottom-feature-tall"


def test_template_from_another_count_falls_back():
    resolved = resolve_layout("grid-2x2", 3)
    assert resolved.source is LayoutSource.FALLBACK
    assert parse_tracks(resolved.config.columns) == [1.0, 1.0]
    assert parse_tracks(resolved.config.rows) == [1.0, 1.0]


@pytest.mark.parametrize("count,cols,rows", [(1, 1, 1), (2, 2, 1), (3, 2, 2), (4, 2, 2)])
def test_fallback_grid_shape(count, cols, rows):
    config = fallback_layout(count)
    assert len(parse_tracks(config.columns)) == cols
    assert len(parse_tracks(config.rows)) == rows


def test_fallback_for_five_is_single_column():
    config = fallback_layout(5)
    assert parse_tracks(config.columns) == [1.0]
    assert len(parse_tracks(config.rows)) == 5


def test_panel_count_is_clamped():
    resolved = resolve_layout(None, 9)
    assert resolved.source is LayoutSource.FALLBACK
    assert resolved.config == fallback_layout(5)


def test_compatible_custom_layout_wins():
    custom = {
        "gridTemplateColumns": "1fr 3fr",
        "gridTemplateRows": "1fr",
        "items": [{}, {}],
    }
    resolved = resolve_layout("split-vertical", 2, custom)
    assert resolved.source is LayoutSource.CUSTOM
    assert resolved.config.columns == "1fr 3fr"


def test_custom_layout_with_named_areas():
    custom = {
        "gridTemplateColumns": "1fr 1fr",
        "gridTemplateRows": "1fr 1fr",
        "gridTemplateAreas": '"a b" "c c"',
        "areas": ["a", "b", "c"],
    }
    resolved = resolve_layout(None, 3, custom)
    assert resolved.source is LayoutSource.CUSTOM
    assert resolved.config.uses_areas


def test_custom_layout_too_small_is_ignored():
    custom = {"gridTemplateColumns": "1fr", "gridTemplateRows": "1fr", "items": [{}]}
    resolved = resolve_layout("3-columns", 3, custom)
    assert resolved.source is LayoutSource.TEMPLATE
    assert resolved.template_id == "3-columns"


@pytest.mark.parametrize("custom", ["not a layout", {"areas": ["a"]}, {"gridTemplateColumns": ""}])
def test_malformed_custom_layout_is_ignored(custom):
    resolved = resolve_layout(None, 2, custom)
    assert resolved.source is LayoutSource.FALLBACK
