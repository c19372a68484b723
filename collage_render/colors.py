"""Colour parsing and contrast helpers."""

from PIL import ImageColor

RGBA = tuple[int, int, int, int]

PLACEHOLDER_EMPTY = (0, 0, 0, 77)  # rgba(0,0,0,0.3)
PLACEHOLDER_FILLED = (0, 0, 0, 8)  # rgba(0,0,0,0.03)
CAPTION_SHADOW = (0, 0, 0, 64)  # rgba(0,0,0,0.25)


def _alpha_to_byte(alpha: float) -> int:
    return max(0, min(255, int(round(alpha * 255))))


def parse_color(value: str | None, default: RGBA = (0, 0, 0, 255)) -> RGBA:
    """Parse a CSS colour (hex, rgb()/rgba(), hsl(), named) into an RGBA tuple.

    ``rgba()`` alpha is read the CSS way (0-1 float); anything Pillow cannot
    parse returns *default*.
    """
    if not value or not isinstance(value, str):
        return default
    text = value.strip()
    lowered = text.lower()
    if lowered == "transparent":
        return (0, 0, 0, 0)
    if lowered.startswith("rgba(") and lowered.endswith(")"):
        parts = [p.strip() for p in text[5:-1].split(",")]
        if len(parts) == 4:
            try:
                r, g, b = (int(round(float(p))) for p in parts[:3])
                a = parts[3]
                alpha = float(a[:-1]) / 100 if a.endswith("%") else float(a)
                return (r, g, b, _alpha_to_byte(alpha))
            except ValueError:
                return default
    try:
        color = ImageColor.getcolor(text, "RGBA")
    except ValueError:
        return default
    return tuple(color)


# ---------------------------------------------------------------------------
# WCAG luminance / contrast
# ---------------------------------------------------------------------------

def linearize_channel(c: float) -> float:
    """Linearize a single sRGB channel value (0-1 float) for luminance calc."""
    if c <= 0.03928:
        return c / 12.92
    return ((c + 0.055) / 1.055) ** 2.4


def relative_luminance(r: int, g: int, b: int) -> float:
    """Compute WCAG relative luminance from 0-255 RGB values."""
    r_lin = linearize_channel(r / 255.0)
    g_lin = linearize_channel(g / 255.0)
    b_lin = linearize_channel(b / 255.0)
    return 0.2126 * r_lin + 0.7152 * g_lin + 0.0722 * b_lin


def contrast_ratio(color1_rgb, color2_rgb) -> float:
    """Compute WCAG contrast ratio between two (R, G, B) tuples (0-255)."""
    l1 = relative_luminance(*color1_rgb[:3])
    l2 = relative_luminance(*color2_rgb[:3])
    if l1 < l2:
        l1, l2 = l2, l1
    return (l1 + 0.05) / (l2 + 0.05)


def contrasting_mono(color: RGBA) -> RGBA:
    """Black or white, whichever reads better against *color*."""
    black, white = (0, 0, 0, 255), (255, 255, 255, 255)
    if contrast_ratio(color, black) >= contrast_ratio(color, white):
        return black
    return white
