"""Project version source of truth."""

from __future__ import annotations

import platform

__all__ = ["__version__", "build_help_epilog"]

# Manually updated for each release; keep in sync with pyproject.toml.
__version__ = "0.3.0"


def build_help_epilog() -> str:
    return f"Platform: {platform.platform()}\nVersion: {__version__}"
