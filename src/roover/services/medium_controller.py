"""Bridge between an asynchronous medium and the pure playback machine.

`MediumController` owns exactly one medium at a time. It is the only component
that calls into the medium and the only one that feeds `PlaybackMachine`.
User commands act on the medium and then dispatch the matching machine event
right away, because some engines never echo command-driven changes (a volume
setter that does not re-emit a change event, for example). Medium callbacks
are forwarded as machine events in arrival order.

Every dispatch goes through a single-consumer queue so two dispatches never
interleave, including events a medium emits inline while a command is still
awaiting it. Commands themselves are serialized with an `asyncio.Lock`;
medium callbacks never take that lock.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import replace
from functools import partial

from roover.events import MediumSwapped, PlaybackChanged
from roover.machine import (
    End,
    Error,
    Load,
    Loop,
    MachineEvent,
    Mute,
    Pause,
    Play,
    PlaybackContext,
    PlaybackMachine,
    PlaybackState,
    Rate,
    Ready,
    Retry,
    Volume,
)
from roover.runtime_config import (
    RATE_MAX,
    clamp_rate,
    clamp_volume,
    normalize_preload,
)
from roover.services.medium import (
    DataReady,
    Ended,
    LoadStarted,
    Medium,
    MediumError,
    MediumEvent,
    MediumEventHandler,
    MediumFactory,
    MediumOptions,
    Paused,
    PlayStarted,
    RateChanged,
    VolumeChanged,
)

logger = logging.getLogger(__name__)


def _format_user_error(
    *, what_failed: str, likely_cause: str, next_step: str, detail: str | None = None
) -> str:
    message = f"{what_failed}\nLikely cause: {likely_cause}\nNext step: {next_step}"
    if detail:
        message = f"{message}\nDetails: {detail}"
    return message


class MediumController:
    """Owns one medium and keeps the playback machine in step with it."""

    def __init__(
        self,
        *,
        medium_factory: MediumFactory,
        emit_event: Callable[[object], Awaitable[None]] | None = None,
        source: str | None = None,
        options: MediumOptions | None = None,
        machine: PlaybackMachine | None = None,
    ) -> None:
        self._medium_factory = medium_factory
        self._emit_event = emit_event
        self._machine = machine or PlaybackMachine()
        self._source = source
        self._options = _normalize_options(options or MediumOptions())
        self._medium: Medium | None = None
        self._lock = asyncio.Lock()
        self._pending: deque[MachineEvent] = deque()
        self._draining = False
        self._last_snapshot = (self._machine.state, self._machine.context)

    @property
    def state(self) -> PlaybackState:
        return self._machine.state

    @property
    def context(self) -> PlaybackContext:
        return self._machine.context

    @property
    def medium(self) -> Medium | None:
        return self._medium

    @property
    def source(self) -> str | None:
        return self._source

    @property
    def options(self) -> MediumOptions:
        return self._options

    @property
    def is_initial(self) -> bool:
        return self._machine.state.is_initial

    @property
    def is_loading(self) -> bool:
        return self._machine.state.is_loading

    @property
    def is_ready(self) -> bool:
        return self._machine.state.is_ready

    @property
    def is_idle(self) -> bool:
        return self._machine.state.is_idle

    @property
    def is_playing(self) -> bool:
        return self._machine.state.is_playing

    @property
    def is_paused(self) -> bool:
        return self._machine.state.is_paused

    @property
    def is_ended(self) -> bool:
        return self._machine.state.is_ended

    @property
    def is_errored(self) -> bool:
        return self._machine.state.is_errored

    @property
    def volume(self) -> float:
        return self._machine.context.volume

    @property
    def rate(self) -> float:
        return self._machine.context.rate

    @property
    def duration(self) -> float:
        return self._machine.context.duration

    @property
    def mute(self) -> bool:
        return self._machine.context.mute

    @property
    def loop(self) -> bool:
        return self._machine.context.loop

    @property
    def error(self) -> str | None:
        return self._machine.context.error

    async def load(
        self, source: str | None = None, options: MediumOptions | None = None
    ) -> Medium | None:
        """Load `source` (or the configured source) into a fresh medium.

        Loading the source that is already owned is a no-op returning the
        current medium; `options` are ignored in that case.
        """
        async with self._lock:
            medium = await self._load_locked(source, options)
        await self._emit_changes()
        return medium

    async def retry(self) -> None:
        """Reopen the current source after a load or playback error."""
        async with self._lock:
            source = self._source
            if not self._machine.state.is_errored or source is None:
                return
            await self._release_medium()
            logger.info("Retrying source %s", source)
            self._dispatch(Retry())
            await self._open_medium(source, self._options)
        await self._emit_changes()

    async def destroy(self) -> None:
        """Release the medium and return the session to its initial state."""
        async with self._lock:
            if self._medium is None:
                return
            previous = self._source
            await self._release_medium()
            self._machine.reset()
            logger.info("Medium for %s destroyed", previous)
            if self._emit_event is not None:
                await self._emit_event(MediumSwapped(None, previous))
        await self._emit_changes()

    async def toggle(self) -> None:
        """Play or pause; loads the configured source when no medium exists."""
        async with self._lock:
            if self._medium is None:
                await self._load_locked(None, None)
            elif self._machine.state.is_playing:
                await self._pause_locked()
            else:
                await self._play_locked()
        await self._emit_changes()

    async def play(self) -> None:
        async with self._lock:
            if self._medium is None:
                await self._load_locked(None, None)
            else:
                await self._play_locked()
        await self._emit_changes()

    async def pause(self) -> None:
        async with self._lock:
            await self._pause_locked()
        await self._emit_changes()

    async def set_volume(self, value: float) -> None:
        if not _is_finite_number(value) or not 0.0 <= value <= 1.0:
            logger.debug("Ignoring out-of-range volume %r", value)
            return
        async with self._lock:
            medium = self._ready_medium()
            if medium is None:
                return
            volume = float(value)
            if await self._run_medium_command(
                "set volume", partial(medium.set_volume, volume)
            ):
                self._dispatch(Volume(volume))
        await self._emit_changes()

    async def set_rate(self, value: float) -> None:
        if not _is_finite_number(value) or not 0.0 < value <= RATE_MAX:
            logger.debug("Ignoring out-of-range rate %r", value)
            return
        async with self._lock:
            medium = self._ready_medium()
            if medium is None:
                return
            rate = float(value)
            if await self._run_medium_command(
                "set rate", partial(medium.set_rate, rate)
            ):
                self._dispatch(Rate(rate))
        await self._emit_changes()

    async def toggle_mute(self) -> None:
        async with self._lock:
            medium = self._ready_medium()
            if medium is None:
                return
            muted = not self._machine.context.mute
            if await self._run_medium_command(
                "toggle mute", partial(medium.set_muted, muted)
            ):
                self._dispatch(Mute())
        await self._emit_changes()

    async def toggle_loop(self) -> None:
        async with self._lock:
            medium = self._ready_medium()
            if medium is None:
                return
            loop = not self._machine.context.loop
            if await self._run_medium_command(
                "toggle loop", partial(medium.set_loop, loop)
            ):
                self._dispatch(Loop())
        await self._emit_changes()

    async def seek_to(self, seconds: float) -> None:
        """Move the playback position; clamped to [0, duration] once known."""
        if not _is_finite_number(seconds):
            return
        async with self._lock:
            medium = self._medium
            state = self._machine.state
            if medium is None or not (state.is_ready or state.is_ended):
                return
            await self._seek_locked(medium, float(seconds))
        await self._emit_changes()

    async def skip_forward(self, seconds: float) -> None:
        await self._skip(seconds)

    async def skip_backward(self, seconds: float) -> None:
        """Rewind by `seconds`, never past the start of the track."""
        if not _is_finite_number(seconds):
            return
        await self._skip(-seconds)

    async def get_current_time(self) -> float:
        medium = self._medium
        if medium is None:
            return 0.0
        return await medium.get_current_time()

    async def _skip(self, delta: float) -> None:
        if not _is_finite_number(delta):
            return
        async with self._lock:
            medium = self._ready_medium()
            if medium is None:
                return
            current = await medium.get_current_time()
            await self._seek_locked(medium, current + delta)
        await self._emit_changes()

    async def _seek_locked(self, medium: Medium, target: float) -> None:
        position = max(0.0, target)
        duration = self._machine.context.duration
        if duration > 0:
            position = min(position, duration)
        await self._run_medium_command(
            "seek", partial(medium.set_current_time, position)
        )

    async def _load_locked(
        self, source: str | None, options: MediumOptions | None
    ) -> Medium | None:
        target = source if source is not None else self._source
        if target is None:
            logger.debug("Load ignored: no source configured")
            return self._medium
        if self._medium is not None and target == self._source:
            logger.debug("Load ignored: source unchanged (%s)", target)
            return self._medium
        previous = self._source if self._medium is not None else None
        await self._release_medium()
        self._source = target
        if options is not None:
            self._options = _normalize_options(options)
        opts = self._options
        logger.info("Loading source %s", target)
        self._dispatch(
            Load(
                source=target,
                volume=opts.volume,
                rate=opts.rate,
                mute=opts.muted,
                loop=opts.loop,
            )
        )
        if self._machine.state.is_errored:
            # Same source as the failed attempt: reopen it the way retry does.
            self._dispatch(Retry())
        medium = await self._open_medium(target, opts)
        if self._emit_event is not None:
            await self._emit_event(MediumSwapped(target, previous))
        return medium

    async def _play_locked(self) -> None:
        medium = self._medium
        state = self._machine.state
        if medium is None or not (state.is_idle or state.is_paused):
            return
        if await self._run_medium_command("play", medium.play):
            self._dispatch(Play())

    async def _pause_locked(self) -> None:
        medium = self._medium
        if medium is None or not self._machine.state.is_playing:
            return
        if await self._run_medium_command("pause", medium.pause):
            self._dispatch(Pause())

    def _ready_medium(self) -> Medium | None:
        if not self._machine.state.is_ready:
            return None
        return self._medium

    async def _open_medium(self, source: str, options: MediumOptions) -> Medium | None:
        try:
            medium = self._medium_factory(source, options)
        except Exception as exc:
            logger.error("Failed to create medium for %s: %s", source, exc)
            self._dispatch(
                Error(
                    _format_user_error(
                        what_failed="Failed to open media source.",
                        likely_cause="Playback engine is unavailable or the source is invalid.",
                        next_step="Check the playback backend setup and source path, then retry.",
                        detail=str(exc),
                    )
                )
            )
            return None
        self._medium = medium
        medium.set_event_handler(self._bind_handler(medium))
        try:
            await medium.start()
        except Exception as exc:
            logger.error("Failed to start medium for %s: %s", source, exc)
            self._dispatch(
                Error(
                    _format_user_error(
                        what_failed="Failed to start loading media.",
                        likely_cause="Playback engine could not open or decode the source.",
                        next_step="Verify the source is reachable and playable, then retry.",
                        detail=str(exc),
                    )
                )
            )
            await self._release_medium()
            return None
        return medium

    async def _release_medium(self) -> None:
        """Detach, stop and dispose the owned medium (best effort)."""
        medium = self._medium
        if medium is None:
            return
        self._medium = None
        medium.set_event_handler(None)
        for step in (medium.pause, medium.dispose):
            try:
                await step()
            except Exception as exc:
                logger.warning(
                    "Medium %s failed while releasing %s: %s",
                    step.__name__,
                    self._source,
                    exc,
                )

    async def _run_medium_command(
        self, label: str, call: Callable[[], Awaitable[None]]
    ) -> bool:
        try:
            await call()
        except Exception as exc:
            logger.error("Medium command '%s' failed: %s", label, exc)
            self._dispatch(
                Error(
                    _format_user_error(
                        what_failed=f"Playback command '{label}' failed.",
                        likely_cause="Playback engine rejected the command or lost the media.",
                        next_step="Retry playback or reload the source.",
                        detail=str(exc),
                    )
                )
            )
            return False
        return True

    def _bind_handler(self, medium: Medium) -> MediumEventHandler:
        async def handle(event: MediumEvent) -> None:
            if medium is not self._medium:
                logger.debug(
                    "Dropping %s from released medium", type(event).__name__
                )
                return
            machine_event = self._translate(event)
            if machine_event is None:
                return
            self._dispatch(machine_event)
            await self._emit_changes()

        return handle

    def _translate(self, event: MediumEvent) -> MachineEvent | None:
        if isinstance(event, LoadStarted):
            context = self._machine.context
            return Load(
                source=self._source,
                volume=context.volume,
                rate=context.rate,
                mute=context.mute,
                loop=context.loop,
            )
        if isinstance(event, DataReady):
            return Ready(event.duration)
        if isinstance(event, MediumError):
            return Error(event.message)
        if isinstance(event, PlayStarted):
            return Play()
        if isinstance(event, Paused):
            return Pause()
        if isinstance(event, VolumeChanged):
            return Volume(event.value)
        if isinstance(event, RateChanged):
            return Rate(event.value)
        if isinstance(event, Ended):
            return End()
        return None

    def _dispatch(self, event: MachineEvent) -> None:
        self._pending.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._pending:
                queued = self._pending.popleft()
                previous = self._machine.state
                current = self._machine.dispatch(queued)
                if current != previous:
                    logger.debug(
                        "Playback %s -> %s on %s",
                        previous,
                        current,
                        type(queued).__name__,
                    )
                    if current.is_errored:
                        logger.warning(
                            "Playback error for %s: %s",
                            self._source,
                            self._machine.context.error,
                        )
        finally:
            self._draining = False

    async def _emit_changes(self) -> None:
        snapshot = (self._machine.state, self._machine.context)
        if snapshot == self._last_snapshot:
            return
        self._last_snapshot = snapshot
        if self._emit_event is None:
            return
        await self._emit_event(PlaybackChanged(*snapshot))


def _normalize_options(options: MediumOptions) -> MediumOptions:
    return replace(
        options,
        preload=normalize_preload(options.preload),
        volume=clamp_volume(options.volume),
        rate=clamp_rate(options.rate),
    )


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
