"""SVG momentum badge rendering."""

from __future__ import annotations

from html import escape

from repo_radar.models import TrendLabel

_LABEL_COLORS: dict[TrendLabel, str] = {
    TrendLabel.HOT: "#e05d44",
    TrendLabel.RISING: "#fe7d37",
    TrendLabel.STEADY: "#007ec6",
    TrendLabel.DECLINING: "#9f9f9f",
    TrendLabel.NEW: "#97ca00",
}

_CHAR_WIDTH = 7
_PADDING = 10


def _text_width(text: str) -> int:
    return len(text) * _CHAR_WIDTH + _PADDING * 2


def render_badge(label: TrendLabel | None, momentum: float | None) -> str:
    """Render a two-part shields-style badge, e.g. ``momentum | hot 82.5``."""
    trend = label or TrendLabel.NEW
    left = "momentum"
    right = trend.value if momentum is None else f"{trend.value} {momentum:.1f}"
    left_width = _text_width(left)
    right_width = _text_width(right)
    total = left_width + right_width
    color = _LABEL_COLORS[trend]

    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{total}" height="20" '
        f'role="img" aria-label="{escape(left)}: {escape(right)}">'
        f'<rect width="{left_width}" height="20" fill="#555"/>'
        f'<rect x="{left_width}" width="{right_width}" height="20" fill="{color}"/>'
        '<g fill="#fff" text-anchor="middle" '
        'font-family="Verdana,Geneva,sans-serif" font-size="11">'
        f'<text x="{left_width / 2}" y="14">{escape(left)}</text>'
        f'<text x="{left_width + right_width / 2}" y="14">{escape(right)}</text>'
        "</g></svg>"
    )
