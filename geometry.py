# geometry.py
import logging
import math
import re

logger = logging.getLogger(__name__)

# A4 in points
PAGE_W = 595.0
PAGE_H = 842.0

_HEX_RE = re.compile(r"#[0-9a-fA-F]{6}")


def hex_to_rgb(hex_color) -> tuple[float, float, float]:
    """
    Parse "#RRGGBB" into three floats in [0, 1].
    Anything else logs a warning and yields black.
    """
    raw = hex_color if isinstance(hex_color, str) else ""
    if not _HEX_RE.fullmatch(raw):
        logger.warning("Invalid hex color: %r", hex_color)
        return (0.0, 0.0, 0.0)
    return (
        int(raw[1:3], 16) / 255.0,
        int(raw[3:5], 16) / 255.0,
        int(raw[5:7], 16) / 255.0,
    )


def _to_percentage(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        s = str(value).strip()
        pct = float(s) if s else None
    except (TypeError, ValueError):
        return None
    if pct is None or not math.isfinite(pct):
        return None
    return pct


def resolve_position(position_data, element_name: str, axis: str, default, *, page_w=PAGE_W, page_h=PAGE_H):
    """
    Percentage override from positionData, converted to page points.

    x    -> pct/100 * page width
    y    -> page height - pct/100 * page height (page origin is bottom-left)
    size -> pct/100 * 2 (a scale multiplier, 50% == 1.0)

    Missing or unparsable entries return `default` untouched.
    """
    if not isinstance(position_data, dict):
        return default
    entry = position_data.get(element_name)
    if not isinstance(entry, dict):
        return default
    pct = _to_percentage(entry.get(axis))
    if pct is None:
        return default

    ratio = pct / 100.0
    if axis == "x":
        return ratio * page_w
    if axis == "y":
        return page_h - ratio * page_h
    if axis == "size":
        return ratio * 2
    return default
