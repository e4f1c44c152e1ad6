"""Unit tests for VLC medium command and polling behavior without VLC."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading

import pytest

from roover.services.medium import (
    DataReady,
    Ended,
    LoadStarted,
    MediumError,
    MediumOptions,
    Paused,
    PlayStarted,
    RateChanged,
    VolumeChanged,
)
from roover.services.vlc_medium import (
    VLCMedium,
    _Command,
    _log_handler_failure,
    _map_state,
)


class _DummyState:
    def __init__(self, name: str) -> None:
        self._name = name

    def __str__(self) -> str:
        return f"State.{self._name}"


class _DummyMedia:
    def __init__(self, path: str) -> None:
        self.path = path
        self.parse_calls: list[tuple[int, int]] = []
        self.parsed_status = "MediaParsedStatus.0"
        self.duration_ms = 125_000

    def parse_with_options(self, flags: int, timeout_ms: int) -> None:
        self.parse_calls.append((flags, timeout_ms))

    def get_parsed_status(self) -> str:
        return self.parsed_status

    def get_duration(self) -> int:
        return self.duration_ms


class _DummyInstance:
    def __init__(self) -> None:
        self.created: list[tuple[str, str]] = []

    def media_new_path(self, path: str) -> _DummyMedia:
        self.created.append(("path", path))
        return _DummyMedia(path)

    def media_new(self, uri: str) -> _DummyMedia:
        self.created.append(("uri", uri))
        return _DummyMedia(uri)


class _DummyPlayer:
    def __init__(self) -> None:
        self.media: _DummyMedia | None = None
        self.play_calls = 0
        self.stop_calls = 0
        self.paused_with: int | None = None
        self.volume: int | None = None
        self.muted: bool | None = None
        self.rate: float | None = None
        self.time_ms = 0
        self.state = "NothingSpecial"

    def set_media(self, media: _DummyMedia) -> None:
        self.media = media

    def play(self) -> None:
        self.play_calls += 1

    def stop(self) -> None:
        self.stop_calls += 1

    def set_pause(self, flag: int) -> None:
        self.paused_with = flag

    def audio_set_volume(self, volume: int) -> None:
        self.volume = volume

    def audio_set_mute(self, muted: bool) -> None:
        self.muted = muted

    def set_rate(self, rate: float) -> None:
        self.rate = rate

    def audio_get_volume(self) -> int:
        return -1 if self.volume is None else self.volume

    def get_rate(self) -> float:
        return 0.0 if self.rate is None else self.rate

    def set_time(self, time_ms: int) -> None:
        self.time_ms = time_ms

    def get_time(self) -> int:
        return self.time_ms

    def get_state(self) -> _DummyState:
        return _DummyState(self.state)


class _RecordingMedium(VLCMedium):
    def __init__(self, source: str = "/music/track.mp3", **kwargs) -> None:
        super().__init__(source, **kwargs)
        self.emitted: list[object] = []

    def _emit_event(self, event: object) -> None:  # type: ignore[override]
        self.emitted.append(event)


def _opened(
    source: str = "/music/track.mp3", options: MediumOptions | None = None
) -> tuple[_RecordingMedium, _DummyInstance, _DummyPlayer]:
    medium = _RecordingMedium(source, options=options)
    instance = _DummyInstance()
    player = _DummyPlayer()
    medium._handle_command(_Command("open", (), None), instance, player)
    return medium, instance, player


def test_open_applies_options_and_reports_load_started() -> None:
    medium, instance, player = _opened(
        options=MediumOptions(volume=0.42, rate=1.5, muted=True)
    )
    assert instance.created == [("path", "/music/track.mp3")]
    assert player.volume == 42
    assert player.muted is True
    assert player.rate == 1.5
    assert player.media is not None
    assert player.media.parse_calls == [(0, 5000)]
    assert medium.emitted == [LoadStarted()]


def test_open_uses_uri_constructor_for_urls() -> None:
    _medium, instance, _player = _opened("https://radio.example/stream.mp3")
    assert instance.created == [("uri", "https://radio.example/stream.mp3")]


def test_commands_map_to_player_calls() -> None:
    medium, instance, player = _opened()
    medium._handle_command(_Command("play", (), None), instance, player)
    medium._handle_command(_Command("pause", (), None), instance, player)
    medium._handle_command(_Command("set_volume", (0.5,), None), instance, player)
    medium._handle_command(_Command("set_rate", (2.0,), None), instance, player)
    medium._handle_command(_Command("set_muted", (False,), None), instance, player)
    medium._handle_command(
        _Command("set_current_time", (12.25,), None), instance, player
    )
    assert player.play_calls == 1
    assert player.paused_with == 1
    assert player.volume == 50
    assert player.rate == 2.0
    assert player.muted is False
    assert player.time_ms == 12_250
    position = medium._handle_command(
        _Command("get_current_time", (), None), instance, player
    )
    assert position == 12.25


def test_unknown_command_raises() -> None:
    medium, instance, player = _opened()
    with pytest.raises(ValueError, match="Unknown command"):
        medium._handle_command(_Command("explode", (), None), instance, player)


def test_poll_reports_ready_then_transport_transitions() -> None:
    medium, _instance, player = _opened()
    assert player.media is not None
    medium.emitted.clear()
    medium._poll_status(player)
    assert medium.emitted == []

    player.media.parsed_status = "MediaParsedStatus.done"
    medium._poll_status(player)
    assert medium.emitted == [DataReady(125.0)]

    player.state = "Playing"
    medium._poll_status(player)
    medium._poll_status(player)
    player.state = "Paused"
    medium._poll_status(player)
    player.state = "Playing"
    medium._poll_status(player)
    player.state = "Ended"
    medium._poll_status(player)
    assert medium.emitted[1:] == [PlayStarted(), Paused(), PlayStarted(), Ended()]


def test_poll_reports_parse_failure_once() -> None:
    medium, _instance, player = _opened()
    assert player.media is not None
    player.media.parsed_status = "MediaParsedStatus.failed"
    medium.emitted.clear()
    medium._poll_status(player)
    medium._poll_status(player)
    assert medium.emitted == [MediumError("Error while loading: /music/track.mp3")]


def test_poll_autoplays_when_requested() -> None:
    medium, _instance, player = _opened(options=MediumOptions(autoplay=True))
    assert player.media is not None
    player.media.parsed_status = "MediaParsedStatus.done"
    medium._poll_status(player)
    assert player.play_calls == 1


def test_loop_restarts_instead_of_reporting_end() -> None:
    medium, instance, player = _opened()
    assert player.media is not None
    medium._handle_command(_Command("set_loop", (True,), None), instance, player)
    player.media.parsed_status = "MediaParsedStatus.done"
    player.state = "Playing"
    medium._poll_status(player)
    player.state = "Ended"
    medium.emitted.clear()
    medium._poll_status(player)
    assert medium.emitted == []
    assert player.stop_calls == 1
    assert player.play_calls == 1


def test_map_state_names() -> None:
    player = _DummyPlayer()
    expected = {
        "Playing": "playing",
        "Paused": "paused",
        "Ended": "ended",
        "Error": "error",
        "Stopped": "stopped",
        "Opening": "loading",
        "Buffering": "loading",
        "NothingSpecial": "idle",
    }
    for raw, mapped in expected.items():
        player.state = raw
        assert _map_state(player) == mapped


def test_resolve_future_result_ignores_done_future() -> None:
    async def run() -> None:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[int] = loop.create_future()
        future.set_result(1)
        VLCMedium._resolve_future_result(future, 2)
        assert future.result() == 1

    asyncio.run(run())


def test_submit_rejects_when_thread_not_running() -> None:
    async def run() -> None:
        medium = VLCMedium("/music/track.mp3")
        medium._loop = asyncio.get_running_loop()  # noqa: SLF001
        medium._thread = threading.Thread()  # noqa: SLF001
        with pytest.raises(RuntimeError, match="VLC medium not started"):
            await medium.get_current_time()

    asyncio.run(run())


def test_pause_without_thread_is_a_no_op() -> None:
    asyncio.run(VLCMedium("/music/track.mp3").pause())


def test_dispose_raises_when_thread_does_not_stop() -> None:
    class _StuckThread:
        def join(self, timeout: float | None = None) -> None:
            return None

        def is_alive(self) -> bool:
            return True

    async def run() -> None:
        medium = VLCMedium("/music/track.mp3")
        medium._thread = _StuckThread()  # type: ignore[assignment]  # noqa: SLF001
        with pytest.raises(RuntimeError, match="did not stop within 2\\.0 seconds"):
            await medium.dispose()

    asyncio.run(run())


def test_poll_reports_external_volume_and_rate_changes() -> None:
    medium, _instance, player = _opened(options=MediumOptions(volume=0.3, rate=2.0))
    assert player.media is not None
    player.media.parsed_status = "MediaParsedStatus.done"
    player.state = "Playing"
    medium._poll_status(player)
    medium.emitted.clear()

    player.volume = 10
    player.rate = 1.5
    medium._poll_status(player)
    medium._poll_status(player)

    assert medium.emitted == [VolumeChanged(0.1), RateChanged(1.5)]


def test_first_level_reading_after_load_sets_baseline_only() -> None:
    medium, _instance, player = _opened(options=MediumOptions(volume=0.8))
    assert player.media is not None
    player.media.parsed_status = "MediaParsedStatus.done"
    medium._poll_status(player)
    assert medium.emitted == [LoadStarted(), DataReady(125.0)]

    player.volume = None
    medium._poll_status(player)
    assert medium.emitted == [LoadStarted(), DataReady(125.0)]


def test_handler_failure_is_logged(caplog) -> None:
    future: concurrent.futures.Future[None] = concurrent.futures.Future()
    future.set_exception(RuntimeError("observer exploded"))
    with caplog.at_level(logging.ERROR, logger="roover.services.vlc_medium"):
        _log_handler_failure(future)
    assert "Medium event handler failed: observer exploded" in caplog.text

    ok: concurrent.futures.Future[None] = concurrent.futures.Future()
    ok.set_result(None)
    caplog.clear()
    _log_handler_failure(ok)
    assert caplog.text == ""
