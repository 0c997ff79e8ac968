"""ASCII chart and number formatting helpers for terminal output."""

from datetime import datetime
from typing import List, Sequence, Tuple

ChartPoint = Tuple[str, float]


def render_progress_bar(percentage: float, width: int = 20) -> str:
    """Renders a horizontal bar such as ``█████░░░░░`` for a percentage."""
    percentage = max(0.0, min(100.0, percentage))
    filled = round(percentage / 100 * width)
    return "█" * filled + "░" * (width - filled)


def render_line_chart(data: Sequence[ChartPoint], height: int = 10) -> str:
    """Renders a column chart of the values with a labelled y axis.

    Each column is filled up to its value; the top cell of a column is drawn
    as a half block when the value falls close to that row.
    """
    if not data:
        return "No data to display"

    values = [value for _, value in data]
    max_value = max(values)
    min_value = min(values)
    value_range = (max_value - min_value) or 1

    lines: List[str] = []
    for y in range(height, -1, -1):
        threshold = min_value + value_range * y / height
        row = ""
        for value in values:
            normalized = (value - min_value) / value_range * height
            if abs(normalized - y) < 0.5:
                row += "▄"
            elif normalized > y:
                row += "█"
            else:
                row += " "
        lines.append(f"{_format_axis_value(threshold):>8} │{row}")

    lines.append("         └" + "─" * len(values))
    lines.append("          " + data[0][0][:10])
    return "\n".join(lines)


def format_number(num: float) -> str:
    """Formats a number with a K, M or B suffix, e.g. ``1.5M``."""
    if num >= 1_000_000_000:
        return f"{num / 1_000_000_000:.1f}B"
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return f"{num:,.0f}"


def _format_axis_value(num: float) -> str:
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return f"{num:.0f}"


def calculate_percentage_change(current: float, previous: float) -> str:
    """Formats the change from `previous` to `current` as a signed percentage.

    Examples: ``+25.0%``, ``-10.0%``, ``0.0%``. A previous value of zero
    gives ``+∞%`` (or ``0%`` if the current value is zero too).
    """
    if previous == 0:
        return "+∞%" if current > 0 else "0%"
    change = (current - previous) / previous * 100
    sign = "+" if change > 0 else ""
    return f"{sign}{change:.1f}%"


def parse_percentage(change: str) -> float:
    """Turns a string made by `calculate_percentage_change` back into a number."""
    stripped = change.replace("+", "").replace("%", "")
    if stripped == "∞":
        return float("inf")
    try:
        return float(stripped)
    except ValueError:
        return 0.0


def format_date_short(date_str: str) -> str:
    """Formats an ISO date (``2024-01-15``) as ``Jan 15``."""
    try:
        date = datetime.strptime(date_str[:10], "%Y-%m-%d")
    except (TypeError, ValueError):
        return str(date_str)[:10]
    return f"{date.strftime('%b')} {date.day}"
