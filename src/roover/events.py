"""Cross-module event models for controller-to-observer communication."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from roover.machine import PlaybackContext, PlaybackState


@dataclass(frozen=True)
class PlaybackChanged:
    """Service event emitted when the machine state or context changes."""

    state: PlaybackState
    context: PlaybackContext


@dataclass(frozen=True)
class MediumSwapped:
    """Service event emitted when the controller replaces or drops its medium."""

    source: str | None
    previous_source: str | None
