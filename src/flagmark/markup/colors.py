"""Flag colour vocabulary and marker styling."""

from __future__ import annotations

import re

from flagmark.errors import FlagValidationError

# Named flag colours and the hex value each renders with
NAMED_COLORS: dict[str, str] = {
    "red": "#ef5350",
    "yellow": "#ffeb3b",
    "green": "#4caf50",
}

# Column width of Flag.color
MAX_COLOR_LENGTH = 10

MARKER_OPACITY = 0.3

_HEX_COLOR = re.compile(r"#(?:[0-9a-f]{3}|[0-9a-f]{6})")


def normalize_color(value: str) -> str:
    """Validate a flag colour and return its canonical spelling.

    Named colours and hex values are lowercased; surrounding whitespace is
    dropped.

    Raises:
        FlagValidationError: If *value* is neither a named colour nor
            ``#rgb``/``#rrggbb`` hex.
    """
    color = value.strip().lower()
    if color in NAMED_COLORS or _HEX_COLOR.fullmatch(color):
        return color
    msg = f"Unsupported flag colour {value!r}; use {', '.join(NAMED_COLORS)} or #rrggbb"
    raise FlagValidationError(msg)


def to_hex(color: str) -> str:
    """Return the ``#rrggbb`` value for a (normalised) flag colour."""
    color = normalize_color(color)
    color = NAMED_COLORS.get(color, color)
    if len(color) == 4:
        color = "#" + "".join(c * 2 for c in color[1:])
    return color


def marker_style(color: str) -> str:
    """Inline style for a marker: translucent tint plus a solid underline."""
    hex_color = to_hex(color)
    r, g, b = (int(hex_color[i : i + 2], 16) for i in (1, 3, 5))
    return (
        f"background-color: rgba({r}, {g}, {b}, {MARKER_OPACITY}); "
        f"box-shadow: inset 0 -2px 0 {hex_color};"
    )
