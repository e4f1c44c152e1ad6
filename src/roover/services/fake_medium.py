"""Fake medium for deterministic testing."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass

from roover.runtime_config import clamp_rate, clamp_volume

from .medium import (
    DataReady,
    Ended,
    LoadStarted,
    MediumError,
    MediumEvent,
    MediumEventHandler,
    MediumOptions,
    Paused,
    PlayStarted,
    RateChanged,
    VolumeChanged,
)


@dataclass
class _MediumState:
    loaded: bool = False
    playing: bool = False
    disposed: bool = False
    position: float = 0.0
    duration: float = 0.0
    volume: float = 1.0
    rate: float = 1.0
    muted: bool = False
    loop: bool = False


class FakeMedium:
    """In-memory medium that simulates loading and playback progress.

    With ``auto_ready`` the medium reports `DataReady` (or `MediumError` when
    ``fail_with`` is set) ``load_delay_s`` after `start`. Tests that need full
    control pass ``auto_ready=False`` and drive it with the ``simulate_*``
    helpers. Position only advances while a ticker runs
    (``tick_interval_s`` is not None).
    """

    def __init__(
        self,
        source: str,
        options: MediumOptions | None = None,
        *,
        duration: float = 180.0,
        auto_ready: bool = True,
        load_delay_s: float = 0.0,
        tick_interval_s: float | None = None,
        fail_with: str | None = None,
        echo_volume: bool = True,
    ) -> None:
        options = options or MediumOptions()
        self.source = source
        self.options = options
        self._default_duration = duration
        self._auto_ready = auto_ready
        self._load_delay_s = load_delay_s
        self._tick_interval_s = tick_interval_s
        self._fail_with = fail_with
        self._echo_volume = echo_volume
        self._state = _MediumState(
            volume=clamp_volume(options.volume),
            rate=clamp_rate(options.rate),
            muted=options.muted,
            loop=options.loop,
        )
        self._handler: MediumEventHandler | None = None
        self._lock = asyncio.Lock()
        self._load_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self.calls: list[str] = []

    @property
    def disposed(self) -> bool:
        return self._state.disposed

    @property
    def playing(self) -> bool:
        return self._state.playing

    @property
    def volume(self) -> float:
        return self._state.volume

    @property
    def rate(self) -> float:
        return self._state.rate

    @property
    def muted(self) -> bool:
        return self._state.muted

    @property
    def loop(self) -> bool:
        return self._state.loop

    def set_event_handler(self, handler: MediumEventHandler | None) -> None:
        self._handler = handler

    async def start(self) -> None:
        self.calls.append("start")
        await self._emit(LoadStarted())
        if self._auto_ready and self._load_task is None:
            self._load_task = asyncio.create_task(self._finish_loading())
        if self._tick_interval_s is not None and self._tick_task is None:
            self._tick_task = asyncio.create_task(self._ticker_loop())

    async def play(self) -> None:
        self.calls.append("play")
        async with self._lock:
            if self._state.disposed or not self._state.loaded:
                return
            if self._state.playing:
                return
            if self._state.position >= self._state.duration > 0:
                self._state.position = 0.0
            self._state.playing = True
        await self._emit(PlayStarted())

    async def pause(self) -> None:
        self.calls.append("pause")
        async with self._lock:
            if not self._state.playing:
                return
            self._state.playing = False
        await self._emit(Paused())

    async def set_volume(self, volume: float) -> None:
        self.calls.append("set_volume")
        async with self._lock:
            self._state.volume = clamp_volume(volume)
            value = self._state.volume
        if self._echo_volume:
            await self._emit(VolumeChanged(value))

    async def set_rate(self, rate: float) -> None:
        self.calls.append("set_rate")
        async with self._lock:
            self._state.rate = clamp_rate(rate)
            value = self._state.rate
        await self._emit(RateChanged(value))

    async def set_muted(self, muted: bool) -> None:
        self.calls.append("set_muted")
        async with self._lock:
            self._state.muted = muted

    async def set_loop(self, loop: bool) -> None:
        self.calls.append("set_loop")
        async with self._lock:
            self._state.loop = loop

    async def set_current_time(self, seconds: float) -> None:
        self.calls.append("set_current_time")
        async with self._lock:
            upper = self._state.duration if self._state.duration > 0 else seconds
            self._state.position = _clamp_float(seconds, 0.0, max(0.0, upper))

    async def get_current_time(self) -> float:
        async with self._lock:
            return self._state.position

    async def dispose(self) -> None:
        self.calls.append("dispose")
        for task in (self._load_task, self._tick_task):
            if task is None:
                continue
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._load_task = None
        self._tick_task = None
        async with self._lock:
            self._state.disposed = True
            self._state.playing = False
            self._state.position = 0.0

    async def simulate_ready(self, duration: float | None = None) -> None:
        """Report readiness (autoplaying when the options ask for it)."""
        async with self._lock:
            self._state.loaded = True
            self._state.duration = (
                self._default_duration if duration is None else duration
            )
            value = self._state.duration
        await self._emit(DataReady(value))
        if self.options.autoplay:
            await self.play()

    async def simulate_error(self, message: str) -> None:
        async with self._lock:
            self._state.playing = False
        await self._emit(MediumError(message))

    async def simulate_end(self) -> None:
        async with self._lock:
            self._state.playing = False
            self._state.position = self._state.duration
        await self._emit(Ended())

    async def simulate_volume_change(self, volume: float) -> None:
        """Volume change that did not come from the controller (OS mixer)."""
        async with self._lock:
            self._state.volume = clamp_volume(volume)
            value = self._state.volume
        await self._emit(VolumeChanged(value))

    async def simulate_position(self, seconds: float) -> None:
        async with self._lock:
            self._state.position = max(0.0, seconds)

    async def _finish_loading(self) -> None:
        if self._load_delay_s > 0:
            await asyncio.sleep(self._load_delay_s)
        if self._fail_with is not None:
            await self.simulate_error(self._fail_with)
            return
        await self.simulate_ready()

    async def _ticker_loop(self) -> None:
        assert self._tick_interval_s is not None
        try:
            while True:
                await asyncio.sleep(self._tick_interval_s)
                await self._tick()
        except asyncio.CancelledError:
            pass

    async def _tick(self) -> None:
        ended = False
        async with self._lock:
            if not self._state.playing or self._state.duration <= 0:
                return
            step = self._tick_interval_s or 0.0
            next_pos = self._state.position + step * self._state.rate
            if next_pos >= self._state.duration:
                if self._state.loop:
                    next_pos = 0.0
                else:
                    next_pos = self._state.duration
                    self._state.playing = False
                    ended = True
            self._state.position = next_pos
        if ended:
            await self._emit(Ended())

    async def _emit(self, event: MediumEvent) -> None:
        if self._handler is None:
            return
        await self._handler(event)


def _clamp_float(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
