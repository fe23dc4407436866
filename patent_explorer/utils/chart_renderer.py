"""
Server-side SVG rendering for charts created by the createChart tool, so
``![Title](/api/charts/<id>/image)`` works in any markdown renderer.
"""
import math
from typing import Any, Dict, List, Tuple
from xml.sax.saxutils import escape

WIDTH = 800
HEIGHT = 450
MARGIN_LEFT = 70
MARGIN_RIGHT = 30
MARGIN_TOP = 60
MARGIN_BOTTOM = 60
PALETTE = ["#2563eb", "#16a34a", "#dc2626", "#9333ea", "#ea580c", "#0891b2", "#ca8a04", "#db2777"]

PLOT_W = WIDTH - MARGIN_LEFT - MARGIN_RIGHT
PLOT_H = HEIGHT - MARGIN_TOP - MARGIN_BOTTOM

def _color(index: int) -> str:
    return PALETTE[index % len(PALETTE)]

def _fmt(value: float) -> str:
    if abs(value) >= 1000 or value == int(value):
        return f"{value:,.0f}"
    return f"{value:.2f}".rstrip("0").rstrip(".")

def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0

def _range(values: List[float], include_zero: bool) -> Tuple[float, float]:
    if not values:
        return 0.0, 1.0
    low, high = min(values), max(values)
    if include_zero:
        low, high = min(low, 0.0), max(high, 0.0)
    if low == high:
        pad = abs(low) * 0.1 or 1.0
        return low - pad, high + pad
    pad = (high - low) * 0.05
    return (low if include_zero and low == 0 else low - pad), high + pad

def _scale(value: float, low: float, high: float, length: float) -> float:
    return (value - low) / (high - low) * length

def _y_axis(parts: List[str], low: float, high: float) -> None:
    for i in range(6):
        value = low + (high - low) * i / 5
        y = MARGIN_TOP + PLOT_H - _scale(value, low, high, PLOT_H)
        parts.append(f'<line x1="{MARGIN_LEFT}" y1="{y:.1f}" x2="{MARGIN_LEFT + PLOT_W}" y2="{y:.1f}" stroke="#e5e7eb"/>')
        parts.append(f'<text x="{MARGIN_LEFT - 8}" y="{y + 4:.1f}" text-anchor="end" font-size="11" fill="#4b5563">{_fmt(value)}</text>')

def _legend(parts: List[str], series: List[Dict[str, Any]]) -> None:
    x = MARGIN_LEFT
    for index, s in enumerate(series):
        name = escape(str(s.get("name", f"Series {index + 1}")))
        parts.append(f'<rect x="{x}" y="36" width="10" height="10" fill="{_color(index)}"/>')
        parts.append(f'<text x="{x + 14}" y="45" font-size="11" fill="#374151">{name}</text>')
        x += 24 + 7 * len(name)

def _categorical(parts: List[str], chart_type: str, series: List[Dict[str, Any]]) -> None:
    categories: List[str] = []
    for s in series:
        for point in s.get("data", []):
            label = str(point.get("x"))
            if label not in categories:
                categories.append(label)
    values = [_to_float(p.get("y")) for s in series for p in s.get("data", [])]
    low, high = _range(values, include_zero=True)
    _y_axis(parts, low, high)

    count = max(len(categories), 1)
    band = PLOT_W / count
    baseline = MARGIN_TOP + PLOT_H - _scale(0.0, low, high, PLOT_H)
    for i, label in enumerate(categories):
        x = MARGIN_LEFT + band * (i + 0.5)
        parts.append(f'<text x="{x:.1f}" y="{MARGIN_TOP + PLOT_H + 18}" text-anchor="middle" font-size="11" fill="#4b5563">{escape(label)}</text>')

    for index, s in enumerate(series):
        color = _color(index)
        points = []
        for p in s.get("data", []):
            i = categories.index(str(p.get("x")))
            y = MARGIN_TOP + PLOT_H - _scale(_to_float(p.get("y")), low, high, PLOT_H)
            points.append((i, y))
        if chart_type == "bar":
            width = band * 0.8 / len(series)
            for i, y in points:
                x = MARGIN_LEFT + band * i + band * 0.1 + width * index
                top, height = min(y, baseline), abs(baseline - y)
                parts.append(f'<rect x="{x:.1f}" y="{top:.1f}" width="{width:.1f}" height="{height:.1f}" fill="{color}"/>')
            continue
        coords = " ".join(f"{MARGIN_LEFT + band * (i + 0.5):.1f},{y:.1f}" for i, y in points)
        if chart_type == "area" and points:
            first_x = MARGIN_LEFT + band * (points[0][0] + 0.5)
            last_x = MARGIN_LEFT + band * (points[-1][0] + 0.5)
            polygon = f"{first_x:.1f},{baseline:.1f} {coords} {last_x:.1f},{baseline:.1f}"
            parts.append(f'<polygon points="{polygon}" fill="{color}" fill-opacity="0.25" stroke="none"/>')
        parts.append(f'<polyline points="{coords}" fill="none" stroke="{color}" stroke-width="2"/>')
        for i, y in points:
            parts.append(f'<circle cx="{MARGIN_LEFT + band * (i + 0.5):.1f}" cy="{y:.1f}" r="3" fill="{color}"/>')

def _numeric(parts: List[str], chart_type: str, series: List[Dict[str, Any]]) -> None:
    points = [p for s in series for p in s.get("data", [])]
    x_low, x_high = _range([_to_float(p.get("x")) for p in points], include_zero=False)
    y_low, y_high = _range([_to_float(p.get("y")) for p in points], include_zero=False)
    sizes = [_to_float(p.get("size")) for p in points if p.get("size") is not None]
    max_size = max(sizes) if sizes else 0.0
    _y_axis(parts, y_low, y_high)

    for i in range(6):
        value = x_low + (x_high - x_low) * i / 5
        x = MARGIN_LEFT + _scale(value, x_low, x_high, PLOT_W)
        parts.append(f'<text x="{x:.1f}" y="{MARGIN_TOP + PLOT_H + 18}" text-anchor="middle" font-size="11" fill="#4b5563">{_fmt(value)}</text>')

    if chart_type == "quadrant":
        mid_x = MARGIN_LEFT + PLOT_W / 2
        mid_y = MARGIN_TOP + PLOT_H / 2
        parts.append(f'<line x1="{mid_x}" y1="{MARGIN_TOP}" x2="{mid_x}" y2="{MARGIN_TOP + PLOT_H}" stroke="#9ca3af" stroke-dasharray="6 4"/>')
        parts.append(f'<line x1="{MARGIN_LEFT}" y1="{mid_y}" x2="{MARGIN_LEFT + PLOT_W}" y2="{mid_y}" stroke="#9ca3af" stroke-dasharray="6 4"/>')

    for index, s in enumerate(series):
        color = _color(index)
        for p in s.get("data", []):
            cx = MARGIN_LEFT + _scale(_to_float(p.get("x")), x_low, x_high, PLOT_W)
            cy = MARGIN_TOP + PLOT_H - _scale(_to_float(p.get("y")), y_low, y_high, PLOT_H)
            radius = 5.0
            if max_size and p.get("size") is not None:
                radius = 4.0 + 16.0 * math.sqrt(max(_to_float(p.get("size")), 0.0) / max_size)
            parts.append(f'<circle cx="{cx:.1f}" cy="{cy:.1f}" r="{radius:.1f}" fill="{color}" fill-opacity="0.6" stroke="{color}"/>')
            if p.get("label"):
                parts.append(f'<text x="{cx + radius + 3:.1f}" y="{cy + 4:.1f}" font-size="10" fill="#111827">{escape(str(p["label"]))}</text>')

def render_chart_svg(chart_data: Dict[str, Any]) -> str:
    """Render stored chart data (as returned by createChart) to an SVG document."""
    chart_type = chart_data.get("chartType", "line")
    series = chart_data.get("dataSeries") or []
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{WIDTH}" height="{HEIGHT}" viewBox="0 0 {WIDTH} {HEIGHT}" font-family="Helvetica, Arial, sans-serif">',
        f'<rect width="{WIDTH}" height="{HEIGHT}" fill="#ffffff"/>',
        f'<text x="{WIDTH / 2}" y="24" text-anchor="middle" font-size="16" font-weight="bold" fill="#111827">{escape(str(chart_data.get("title", "")))}</text>',
    ]
    _legend(parts, series)

    if chart_type in ("scatter", "quadrant"):
        _numeric(parts, chart_type, series)
    else:
        _categorical(parts, chart_type, series)

    parts.append(f'<line x1="{MARGIN_LEFT}" y1="{MARGIN_TOP + PLOT_H}" x2="{MARGIN_LEFT + PLOT_W}" y2="{MARGIN_TOP + PLOT_H}" stroke="#374151"/>')
    parts.append(f'<line x1="{MARGIN_LEFT}" y1="{MARGIN_TOP}" x2="{MARGIN_LEFT}" y2="{MARGIN_TOP + PLOT_H}" stroke="#374151"/>')
    parts.append(f'<text x="{MARGIN_LEFT + PLOT_W / 2}" y="{HEIGHT - 14}" text-anchor="middle" font-size="12" fill="#374151">{escape(str(chart_data.get("xAxisLabel", "")))}</text>')
    parts.append(
        f'<text x="18" y="{MARGIN_TOP + PLOT_H / 2}" text-anchor="middle" font-size="12" fill="#374151" '
        f'transform="rotate(-90 18 {MARGIN_TOP + PLOT_H / 2})">{escape(str(chart_data.get("yAxisLabel", "")))}</text>'
    )
    parts.append("</svg>")
    return "\n".join(parts)
