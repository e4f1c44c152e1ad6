"""Time formatting helpers for status output."""

from __future__ import annotations

import math


def format_seconds(seconds: float) -> str:
    """Format seconds as MM:SS, or H:MM:SS from one hour on."""
    return _format(_whole_seconds(seconds), force_hours=False)


def format_position(position: float, duration: float) -> str:
    """Format ``position / duration`` with matching widths.

    Unknown durations (zero, negative or non-finite) render as dashes.
    """
    pos = _whole_seconds(position)
    total = _whole_seconds(duration)
    hours_mode = pos >= 3600 or total >= 3600
    left = _format(pos, force_hours=hours_mode)
    if total <= 0:
        right = "--:--:--" if hours_mode else "--:--"
    else:
        right = _format(total, force_hours=hours_mode)
    return f"{left} / {right}"


def _format(total_seconds: int, *, force_hours: bool) -> str:
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0 or force_hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def _whole_seconds(value: float) -> int:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(numeric):
        return 0
    return max(0, int(numeric))
