import pytest

from collage_render.grid import PanelRect
from collage_render.models import PanelText
from collage_render.text import (
    AUTO_FIT_FALLBACK_SIZE,
    anchor_x,
    anchor_y,
    default_stroke_width,
    fit_caption_size,
    layout_caption,
    layout_top_caption,
    plain_text,
    resolve_stroke_width,
    shape_text,
    text_box_width,
    top_caption_background,
    wrap_text,
)
from tests.conftest import fixed_measure_for


def char_measure(advance=6):
    return lambda text: len(text) * advance


def test_plain_text_strips_inline_markup():
    assert plain_text("<b>Hi</b> <I>there</I> <u>you</u>") == "Hi there you"
    assert plain_text(None) == ""
    assert plain_text("a < b") == "a < b"


def test_shape_text_leaves_latin_alone():
    assert shape_text("Hello") == "Hello"


def test_shape_text_reorders_arabic():
    text = "مرحبا بالعالم"
    shaped = shape_text(text)
    assert shaped != text
    assert len(shaped) > 0


# ---------------------------------------------------------------------------
# Wrapping
# ---------------------------------------------------------------------------

def test_wrap_greedy_words():
    assert wrap_text("aa bb cc dd", 30, char_measure()) == ["aa bb", "cc dd"]


def test_wrap_keeps_explicit_newlines():
    assert wrap_text("one\n\ntwo", 100, char_measure()) == ["one", "", "two"]


def test_wrap_breaks_long_tokens_by_character():
    assert wrap_text("abcdefghij", 30, char_measure()) == ["abcde", "fghij"]


def test_wrap_never_returns_empty():
    assert wrap_text("", 50, char_measure()) == [""]


@pytest.mark.parametrize("max_width", [1, 6, 13, 30, 47, 100, 500])
def test_wrapped_lines_fit_unless_single_character(max_width):
    text = "the quick brown fox jumps over supercalifragilistic lazy dogs\nagain and again"
    measure = char_measure()
    lines = wrap_text(text, max_width, measure)
    assert lines
    for line in lines:
        assert measure(line) <= max_width or len(line) == 1
    assert "".join(lines).replace(" ", "") == text.replace(" ", "").replace("\n", "")


# ---------------------------------------------------------------------------
# Auto-fit
# ---------------------------------------------------------------------------

def test_auto_fit_short_caption_small_panel():
    # 100x60 panel: probes start at min(48, 9) and the block must fit 24px
    size = fit_caption_size("short caption", 100, 60, fixed_measure_for())
    assert size == pytest.approx(9)


def test_auto_fit_falls_back_when_nothing_fits():
    text = "this caption is definitely far too long to fit inside a tiny panel"
    assert fit_caption_size(text, 100, 60, fixed_measure_for()) == AUTO_FIT_FALLBACK_SIZE


@pytest.mark.parametrize("width,height", [(100, 200), (256, 256), (128, 300), (400, 120)])
def test_auto_fit_picks_largest_fitting_probe(width, height):
    text = "when the build passes on the first try and nobody believes you"
    measure_for = fixed_measure_for()
    size = fit_caption_size(text, width, height, measure_for)

    def block(s):
        return len(wrap_text(text, width - 20, measure_for(s))) * s * 1.2

    upper = min(48, 0.15 * height)
    if size == AUTO_FIT_FALLBACK_SIZE and block(size) > 0.4 * height:
        return
    assert 8 <= size <= upper
    assert block(size) <= 0.4 * height
    if size + 2 <= upper:
        assert block(size + 2) > 0.4 * height


# ---------------------------------------------------------------------------
# Panel caption geometry
# ---------------------------------------------------------------------------

RECT = PanelRect(0, 0, 100, 100, "panel-1", 0)


@pytest.mark.parametrize("position,expected", [(0, 95), (-100, 110), (-50, 102.5), (100, 0), (50, 47.5)])
def test_anchor_y_interpolates(position, expected):
    assert anchor_y(RECT, position) == pytest.approx(expected)


@pytest.mark.parametrize("position,expected", [(-100, 10), (0, 50), (100, 90), (None, 50)])
def test_anchor_x_spans_padded_width(position, expected):
    assert anchor_x(RECT, position) == pytest.approx(expected)


def test_text_box_width_clamps():
    assert text_box_width(100, None) == pytest.approx(72)
    assert text_box_width(100, 10) == pytest.approx(36)
    assert text_box_width(100, 150) == pytest.approx(80)
    assert text_box_width(30, None) == pytest.approx(24)


def test_stroke_width_defaults():
    assert default_stroke_width(10) == 3
    assert default_stroke_width(40) == 7
    assert default_stroke_width(200) == 16
    assert resolve_stroke_width(0, 40) == 0
    assert resolve_stroke_width(None, 40) == 7
    assert resolve_stroke_width(2.5, 40) == 2.5
    assert resolve_stroke_width(1e6, 40) == 40


def test_layout_caption_explicit_size_is_scaled():
    settings = PanelText(raw_content="hi", font_size=20)
    layout = layout_caption("hi", settings, RECT, 0.5, fixed_measure_for())
    assert layout.font_size == pytest.approx(10)
    assert layout.lines == ("hi",)
    assert layout.anchor_y == pytest.approx(95)
    assert layout.top == pytest.approx(95 - 12)
    assert layout.align == "center"


def test_layout_caption_center_uses_text_box():
    settings = PanelText(raw_content="hi", font_size=10, text_align="left")
    layout = layout_caption("hi", settings, RECT, 1.0, fixed_measure_for())
    cx, cy = layout.center
    assert cx == pytest.approx(50 + 72 / 2)
    assert cy == pytest.approx(95 - 6)


# ---------------------------------------------------------------------------
# Top caption band
# ---------------------------------------------------------------------------

def test_top_caption_disabled_without_text():
    layout = layout_top_caption("  ", PanelText(), 256, 256, 0, 0.64, fixed_measure_for())
    assert not layout.enabled
    assert layout.total_height == 256 and layout.image_offset_y == 0


def test_top_caption_carves_band_out_of_fixed_canvas():
    layout = layout_top_caption("Hello", PanelText(raw_content="Hello"), 256, 256, 0, 0.64, fixed_measure_for())
    # 42 * 0.64 = 26.88px type, 12px vertical padding
    assert layout.enabled
    assert layout.font_size == pytest.approx(26.88)
    assert layout.caption_height == pytest.approx(26.88 * 1.2 + 24)
    assert layout.image_area_height == pytest.approx(256 - layout.caption_height)
    assert layout.total_height == 256
    assert layout.rect == pytest.approx((0, 0, 256, layout.caption_height))


def test_top_caption_is_capped_on_fixed_canvas():
    text = "\n".join(["line"] * 20)
    layout = layout_top_caption(text, PanelText(raw_content=text), 256, 256, 0, 0.64, fixed_measure_for())
    assert layout.caption_height == pytest.approx(256 - 120)
    assert layout.image_area_height == pytest.approx(120)


def test_top_caption_expands_canvas_for_single_custom_panel():
    text = "\n".join(["line"] * 20)
    layout = layout_top_caption(
        text, PanelText(raw_content=text), 256, 256, 0, 0.64, fixed_measure_for(), expand_canvas=True,
    )
    assert layout.image_area_height == 256
    assert layout.total_height == pytest.approx(256 + layout.caption_height)
    assert layout.caption_height > 136


def test_top_caption_band_respects_border():
    layout = layout_top_caption("Hi", PanelText(raw_content="Hi"), 256, 256, 4, 0.64, fixed_measure_for())
    x, y, w, h = layout.rect
    assert (x, y, w) == (4, 4, 248)
    assert h == pytest.approx(layout.caption_height - 4)


@pytest.mark.parametrize("background,expected", [
    (None, "#123456"),
    ("#FFFFFF", "#123456"),
    ("#ff0000", "#ff0000"),
])
def test_top_caption_background(background, expected):
    settings = PanelText(background_color=background)
    assert top_caption_background(settings, "#123456") == expected
