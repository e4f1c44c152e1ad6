"""Medium contracts and event payloads.

`MediumController` depends on this protocol to stay engine-agnostic. Concrete
implementations (fake/VLC) translate engine-specific behavior into these shared
commands and events. A medium reports status only through the single handler
installed with `set_event_handler`; passing ``None`` detaches it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from roover.runtime_config import Preload


@dataclass(frozen=True)
class MediumOptions:
    """Creation options handed to a medium factory."""

    preload: Preload = "auto"
    autoplay: bool = False
    volume: float = 1.0
    rate: float = 1.0
    muted: bool = False
    loop: bool = False


@dataclass(frozen=True)
class MediumEvent:
    """Marker base type for medium-originated events."""

    pass


@dataclass(frozen=True)
class LoadStarted(MediumEvent):
    """The medium began fetching/decoding its source."""

    pass


@dataclass(frozen=True)
class DataReady(MediumEvent):
    """First playable data is available; duration is in seconds."""

    duration: float


@dataclass(frozen=True)
class MediumError(MediumEvent):
    """Load or playback failure reported by the medium."""

    message: str


@dataclass(frozen=True)
class PlayStarted(MediumEvent):
    pass


@dataclass(frozen=True)
class Paused(MediumEvent):
    pass


@dataclass(frozen=True)
class VolumeChanged(MediumEvent):
    """Volume change, including ones not issued by the controller (OS mixer)."""

    value: float


@dataclass(frozen=True)
class RateChanged(MediumEvent):
    value: float


@dataclass(frozen=True)
class Ended(MediumEvent):
    """Natural end of track (never sent while looping)."""

    pass


MediumEventHandler = Callable[[MediumEvent], Awaitable[None]]


class Medium(Protocol):
    """Audio-producing resource consumed by `MediumController`."""

    def set_event_handler(self, handler: MediumEventHandler | None) -> None: ...

    async def start(self) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def set_volume(self, volume: float) -> None: ...

    async def set_rate(self, rate: float) -> None: ...

    async def set_muted(self, muted: bool) -> None: ...

    async def set_loop(self, loop: bool) -> None: ...

    async def set_current_time(self, seconds: float) -> None: ...

    async def get_current_time(self) -> float: ...

    async def dispose(self) -> None: ...


MediumFactory = Callable[[str, MediumOptions], Medium]
