"""Runtime configuration normalization helpers.

These helpers keep CLI flag interpretation and engine settings deterministic
across entrypoints and media backends.
"""

from __future__ import annotations

import math
from typing import Literal

Preload = Literal["auto", "metadata", "none"]

MEDIUM_BACKENDS = ("fake", "vlc")
DEFAULT_BACKEND = "fake"
PRELOAD_VALUES: tuple[Preload, ...] = ("auto", "metadata", "none")
VOLUME_MIN = 0.0
VOLUME_MAX = 1.0
RATE_DEFAULT = 1.0
RATE_MAX = 4.0


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def resolve_backend_name(cli_value: str | None, fallback: str | None = None) -> str:
    """Pick the medium backend: valid CLI value, then valid fallback, then default."""
    for value in (cli_value, fallback):
        if value is None:
            continue
        normalized = value.strip().lower()
        if normalized in MEDIUM_BACKENDS:
            return normalized
    return DEFAULT_BACKEND


def normalize_preload(value: str | None) -> Preload:
    """Normalize a preload hint; unknown values fall back to ``"auto"``."""
    if value is None:
        return "auto"
    normalized = value.strip().lower()
    for preload in PRELOAD_VALUES:
        if normalized == preload:
            return preload
    return "auto"


def clamp_volume(value: float) -> float:
    """Clamp volume to [0.0, 1.0]; non-finite values become full volume."""
    numeric = _finite_or_none(value)
    if numeric is None:
        return VOLUME_MAX
    return max(VOLUME_MIN, min(numeric, VOLUME_MAX))


def clamp_rate(value: float) -> float:
    """Cap rate at `RATE_MAX`; non-positive or non-finite values reset to 1.0."""
    numeric = _finite_or_none(value)
    if numeric is None or numeric <= 0.0:
        return RATE_DEFAULT
    return min(numeric, RATE_MAX)


def _finite_or_none(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        numeric = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return numeric
