"""
Style directives - Parse and format `style <id> key:value,...` lines.
"""

import re
from typing import Optional

from .models import NodeStyle, DEFAULT_NODE_STYLE

_STYLE_LINE_RE = re.compile(r"^\s*style\s+([A-Za-z_][A-Za-z0-9_]*)\s+(.+)$")
_LEADING_INT_RE = re.compile(r"\s*(-?\d+)")


def _parse_int(value: str, default: int) -> int:
    match = _LEADING_INT_RE.match(value)
    if match is None:
        return default
    return int(match.group(1)) or default


def style_line_pattern(target_id: str) -> re.Pattern:
    """Matches a style directive for exactly this id; group 1 is the indent."""
    return re.compile(rf"^(\s*)style\s+{re.escape(target_id)}\s+")


def parse_style_line(line: str) -> Optional[tuple[str, NodeStyle]]:
    """
    Parse one style directive into (target id, properties).

    Unknown keys are skipped. Numeric values have their unit stripped;
    values that are not numbers fall back to the default.
    """
    match = _STYLE_LINE_RE.match(line)
    if match is None:
        return None

    target_id = match.group(1)
    values: dict = {}
    for pair in match.group(2).split(","):
        key, _, value = pair.partition(":")
        key, value = key.strip(), value.strip()
        if not key or not value:
            continue

        if key == "fill":
            values["fill"] = value
        elif key == "stroke":
            values["stroke"] = value
        elif key == "stroke-width":
            values["stroke_width"] = _parse_int(value, DEFAULT_NODE_STYLE.stroke_width)
        elif key == "color":
            values["color"] = value
        elif key == "rx":
            values["rx"] = _parse_int(value, DEFAULT_NODE_STYLE.rx)

    return target_id, NodeStyle(**values)


def format_style_value(style: NodeStyle) -> str:
    """Serialize properties in fixed key order, dropping unset ones."""
    parts: list[str] = []
    if style.fill:
        parts.append(f"fill:{style.fill}")
    if style.stroke:
        parts.append(f"stroke:{style.stroke}")
    if style.stroke_width is not None:
        parts.append(f"stroke-width:{style.stroke_width}px")
    if style.color:
        parts.append(f"color:{style.color}")
    if style.rx is not None:
        parts.append(f"rx:{style.rx}px")
    return ",".join(parts)


def merge_styles(base: NodeStyle, update: NodeStyle) -> NodeStyle:
    """Overlay the set fields of `update` on `base`."""
    merged = base.model_dump()
    for key, value in update.model_dump().items():
        if value is not None:
            merged[key] = value
    return NodeStyle(**merged)
