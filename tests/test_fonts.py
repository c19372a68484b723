import asyncio

import pytest

from collage_render.config import RenderConfig
from collage_render import fonts
from collage_render.fonts import MAX_FONT_PX, FontBook, FontFamily, face_name, load_manifest, preload_fonts


@pytest.mark.parametrize("weight,style,face", [
    (None, None, "regular"),
    (400, "normal", "regular"),
    (700, None, "bold"),
    (300, "italic", "italic"),
    (800, "oblique", "bold_italic"),
])
def test_face_name(weight, style, face):
    assert face_name(weight, style) == face


def test_family_face_degrades_to_regular():
    family = FontFamily("X", {"regular": "x.ttf", "bold": "x-bold.ttf"})
    assert family.file_for("bold_italic") == "x-bold.ttf"
    assert family.file_for("italic") == "x.ttf"
    assert FontFamily("Empty").file_for("regular") is None


def test_manifest_aliases_are_case_insensitive(box_manifest, box_font):
    table, default = load_manifest(str(box_manifest))
    assert default == "Boxes"
    assert table["box"] is table["boxes"]
    assert table["boxes"].files["regular"] == str(box_font)


def test_missing_manifest_yields_empty_table(tmp_path):
    assert load_manifest(str(tmp_path / "nope.json")) == ({}, None)


def test_fontbook_loads_manifest_font(box_manifest, box_font):
    book = FontBook(str(box_manifest))
    font = book.get("BOX", 20)
    assert font.path == str(box_font)
    assert book.get("boxes", 20) is book.get("Boxes", 20.2)


def test_unknown_family_uses_manifest_default(box_manifest, box_font):
    book = FontBook(str(box_manifest))
    assert book.get("Comic Sans", 12).path == str(box_font)


def test_missing_glyphs_fall_back_to_default_face(box_manifest, box_font):
    book = FontBook(str(box_manifest))
    font = book.get("Boxes", 16)
    assert book.covers(font, "ABC abc")
    assert not book.covers(font, "XYZ")
    fallback = book.get("Boxes", 16, text="XYZ")
    assert fallback is not font
    assert fallback.getlength("XYZ") > 0


def test_unloadable_font_falls_back(tmp_path):
    manifest = tmp_path / "manifest.json"
    manifest.write_text('{"families": {"Ghost": {"regular": "ghost-font-that-is-missing.ttf"}}}', encoding="utf-8")
    book = FontBook(str(manifest))
    font = book.get("Ghost", 18)
    assert font.getlength("hello") > 0


def test_preload_reports_ready_families(box_manifest):
    book = FontBook(str(box_manifest))
    ready = asyncio.run(preload_fonts(["Boxes", "Boxes", None], book))
    assert ready == ["Boxes"]


def test_preload_respects_limit(box_manifest):
    book = FontBook(str(box_manifest))
    config = RenderConfig(font_preload_limit=0)
    assert asyncio.run(preload_fonts(["Boxes"], book, config)) == []


def test_preload_never_raises_for_unknown_fonts(tmp_path):
    book = FontBook(str(tmp_path / "missing.json"))
    assert asyncio.run(preload_fonts(["A", "B", "C"], book)) == []


def test_pixel_size_is_capped(box_manifest, box_font):
    book = FontBook(str(box_manifest))
    assert book.get("Boxes", 1e7).size == MAX_FONT_PX
    assert book.get("Boxes", -5).size == 1


def test_builtin_face_failure_uses_unsized_default(tmp_path, monkeypatch):
    def _broken(size):
        raise OSError("invalid pixel size")

    monkeypatch.setattr(fonts, "default_font", _broken)
    book = FontBook(str(tmp_path / "missing.json"))
    font = book.get("Anything", 30)
    assert font.getlength("hello") > 0
