"""VLC medium using python-vlc."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import queue
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, cast

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

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_S = 2.0


@dataclass
class _Command:
    name: str
    args: tuple[Any, ...]
    future: asyncio.Future[Any] | None


@dataclass
class _PollState:
    media: Any = None
    parse_flags: int = 0
    loaded: bool = False
    parse_failed: bool = False
    loop: bool = False
    last_status: str = "idle"
    volume: int | None = None
    rate: float | None = None


class VLCMedium:
    """Medium backed by a dedicated VLC thread.

    libVLC calls run on one worker thread fed by a command queue. The same
    thread polls parse and player status and reports transitions back to the
    event loop through the installed handler.
    """

    def __init__(
        self,
        source: str,
        options: MediumOptions | None = None,
        *,
        poll_interval_ms: int = 200,
        parse_timeout_ms: int = 5000,
    ) -> None:
        self.source = source
        self.options = options or MediumOptions()
        self._poll_interval = poll_interval_ms / 1000
        self._parse_timeout_ms = parse_timeout_ms
        self._handler: MediumEventHandler | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: queue.Queue[_Command] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._poll = _PollState(loop=self.options.loop)

    def set_event_handler(self, handler: MediumEventHandler | None) -> None:
        self._handler = handler

    async def start(self) -> None:
        if self._thread is not None:
            return
        self._loop = asyncio.get_running_loop()
        ready_future: asyncio.Future[None] = self._loop.create_future()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._thread_main,
            args=(ready_future,),
            name="VLCMediumThread",
            daemon=True,
        )
        self._thread.start()
        await ready_future
        await self._submit("open")

    async def dispose(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        self._queue.put(_Command("wake", (), None))
        thread.join(timeout=SHUTDOWN_TIMEOUT_S)
        if thread.is_alive():
            raise RuntimeError(
                f"VLC medium thread did not stop within {SHUTDOWN_TIMEOUT_S} seconds."
            )
        self._thread = None

    async def play(self) -> None:
        await self._submit("play")

    async def pause(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            return
        await self._submit("pause")

    async def set_volume(self, volume: float) -> None:
        await self._submit("set_volume", volume)

    async def set_rate(self, rate: float) -> None:
        await self._submit("set_rate", rate)

    async def set_muted(self, muted: bool) -> None:
        await self._submit("set_muted", muted)

    async def set_loop(self, loop: bool) -> None:
        await self._submit("set_loop", loop)

    async def set_current_time(self, seconds: float) -> None:
        await self._submit("set_current_time", seconds)

    async def get_current_time(self) -> float:
        return float(await self._submit("get_current_time"))

    async def _submit(self, name: str, *args: Any) -> Any:
        thread = self._thread
        if self._loop is None or thread is None or not thread.is_alive():
            raise RuntimeError("VLC medium not started.")
        future: asyncio.Future[Any] = self._loop.create_future()
        self._queue.put(_Command(name, args, future))
        return await future

    def _thread_main(self, ready_future: asyncio.Future[None]) -> None:
        try:
            import vlc

            instance = vlc.Instance()
            player = instance.media_player_new()
            self._poll.parse_flags = int(vlc.MediaParseFlag.local) | int(
                vlc.MediaParseFlag.network
            )
        except Exception as exc:  # pragma: no cover - depends on VLC install
            self._notify_future_exception(
                ready_future,
                RuntimeError(
                    f"VLC medium unavailable. Ensure VLC/libVLC is installed. ({exc})"
                ),
            )
            return

        self._notify_future_result(ready_future, None)

        while not self._stop_event.is_set():
            try:
                cmd = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                cmd = None

            if cmd is not None and cmd.name != "wake":
                try:
                    result = self._handle_command(cmd, instance, player)
                    self._notify_future_result(cmd.future, result)
                except Exception as exc:  # pragma: no cover - backend safety net
                    self._notify_future_exception(cmd.future, exc)

            self._poll_status(player)

        player.stop()
        player.release()
        instance.release()
        self._drain_pending_commands()

    def _handle_command(self, cmd: _Command, instance: Any, player: Any) -> Any:
        name = cmd.name
        if name == "open":
            if "://" in self.source:
                media = instance.media_new(self.source)
            else:
                media = instance.media_new_path(self.source)
            player.set_media(media)
            player.audio_set_volume(_to_vlc_volume(self.options.volume))
            player.audio_set_mute(bool(self.options.muted))
            player.set_rate(clamp_rate(self.options.rate))
            self._poll.media = media
            self._poll.loaded = False
            self._poll.parse_failed = False
            self._poll.volume = None
            self._poll.rate = None
            self._emit_event(LoadStarted())
            media.parse_with_options(self._poll.parse_flags, self._parse_timeout_ms)
            return None
        if name == "play":
            player.play()
            return None
        if name == "pause":
            player.set_pause(1)
            return None
        if name == "set_volume":
            (volume,) = cmd.args
            player.audio_set_volume(_to_vlc_volume(volume))
            return None
        if name == "set_rate":
            (rate,) = cmd.args
            player.set_rate(clamp_rate(rate))
            return None
        if name == "set_muted":
            (muted,) = cmd.args
            player.audio_set_mute(bool(muted))
            return None
        if name == "set_loop":
            (loop,) = cmd.args
            self._poll.loop = bool(loop)
            return None
        if name == "set_current_time":
            (seconds,) = cmd.args
            player.set_time(int(max(0.0, float(seconds)) * 1000))
            return None
        if name == "get_current_time":
            return max(player.get_time(), 0) / 1000
        raise ValueError(f"Unknown command {name}")

    def _poll_status(self, player: Any) -> None:
        media = self._poll.media
        if media is None:
            return
        if not self._poll.loaded and not self._poll.parse_failed:
            parsed = _enum_name(media.get_parsed_status())
            if parsed == "done":
                self._poll.loaded = True
                duration_ms = max(media.get_duration(), 0)
                self._emit_event(DataReady(duration_ms / 1000))
                if self.options.autoplay:
                    player.play()
            elif parsed in {"failed", "timeout"}:
                self._poll.parse_failed = True
                self._emit_event(MediumError(f"Error while loading: {self.source}"))
                return
        if not self._poll.loaded:
            return

        self._poll_levels(player)
        status = _map_state(player)
        if status == self._poll.last_status:
            return
        self._poll.last_status = status
        if status == "playing":
            self._emit_event(PlayStarted())
        elif status == "paused":
            self._emit_event(Paused())
        elif status == "ended":
            if self._poll.loop:
                player.stop()
                player.play()
                self._poll.last_status = "playing"
            else:
                self._emit_event(Ended())
        elif status == "error":
            self._emit_event(MediumError(f"Error while playing: {self.source}"))

    def _poll_levels(self, player: Any) -> None:
        """Report volume/rate changes made outside this medium (e.g. OS mixer).

        The first reading after a load only sets the baseline. libVLC returns
        -1 volume while no audio output exists yet.
        """
        volume = int(player.audio_get_volume())
        if volume >= 0:
            previous_volume = self._poll.volume
            self._poll.volume = volume
            if previous_volume is not None and volume != previous_volume:
                self._emit_event(VolumeChanged(clamp_volume(volume / 100)))
        rate = round(float(player.get_rate()), 3)
        if rate > 0:
            previous_rate = self._poll.rate
            self._poll.rate = rate
            if previous_rate is not None and rate != previous_rate:
                self._emit_event(RateChanged(clamp_rate(rate)))

    def _drain_pending_commands(self) -> None:
        while True:
            try:
                cmd = self._queue.get_nowait()
            except queue.Empty:
                return
            self._notify_future_exception(
                cmd.future, RuntimeError("VLC medium stopped.")
            )

    def _emit_event(self, event: MediumEvent) -> None:
        handler = self._handler
        if handler is None or self._loop is None:
            return
        coro = handler(event)
        future = asyncio.run_coroutine_threadsafe(
            cast(Coroutine[Any, Any, None], coro), self._loop
        )
        future.add_done_callback(_log_handler_failure)

    def _notify_future_result(
        self, future: asyncio.Future[Any] | None, value: Any
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._resolve_future_result, future, value)

    def _notify_future_exception(
        self, future: asyncio.Future[Any] | None, exc: Exception
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._resolve_future_exception, future, exc)

    @staticmethod
    def _resolve_future_result(future: asyncio.Future[Any], value: Any) -> None:
        if not future.done():
            future.set_result(value)

    @staticmethod
    def _resolve_future_exception(future: asyncio.Future[Any], exc: Exception) -> None:
        if not future.done():
            future.set_exception(exc)


def _log_handler_failure(future: concurrent.futures.Future[None]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Medium event handler failed: %s", exc, exc_info=exc)


def _to_vlc_volume(volume: float) -> int:
    return int(round(clamp_volume(volume) * 100))


def _enum_name(value: Any) -> str:
    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name.lower()
    return str(value).rsplit(".", 1)[-1].lower()


def _map_state(player: Any) -> str:
    try:
        state = player.get_state()
    except Exception:
        return "error"
    name = _enum_name(state)
    if name in {"playing", "paused", "ended", "error"}:
        return name
    if name == "stopped":
        return "stopped"
    if name in {"opening", "buffering"}:
        return "loading"
    return "idle"
