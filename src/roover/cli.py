"""Command-line interface for roover."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import suppress
from functools import partial
from pathlib import Path
from typing import TextIO

from . import __version__
from .events import PlaybackChanged
from .logging_utils import setup_logging
from .paths import log_dir
from .runtime_config import (
    MEDIUM_BACKENDS,
    PRELOAD_VALUES,
    normalize_preload,
    resolve_backend_name,
    resolve_log_level,
)
from .services.fake_medium import FakeMedium
from .services.medium import Medium, MediumFactory, MediumOptions
from .services.medium_controller import MediumController
from .services.vlc_medium import VLCMedium
from .utils.time_format import format_position
from .version import build_help_epilog

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roover",
        description="Play an audio source through the roover playback controller.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=build_help_epilog(),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--backend",
        choices=MEDIUM_BACKENDS,
        help="Medium backend to use (fake or vlc).",
    )
    subparsers = parser.add_subparsers(dest="command")
    play = subparsers.add_parser("play", help="Play a source until it ends.")
    play.add_argument("source", help="File path or URI of the audio source.")
    play.add_argument("--volume", type=float, default=1.0, help="Volume 0.0-1.0.")
    play.add_argument("--rate", type=float, default=1.0, help="Playback rate.")
    play.add_argument("--mute", action="store_true", help="Start muted.")
    play.add_argument("--loop", action="store_true", help="Loop the source.")
    play.add_argument(
        "--preload", choices=PRELOAD_VALUES, default="auto", help="Preload hint."
    )
    play.add_argument(
        "--status-interval",
        type=float,
        default=1.0,
        help="Seconds between position updates.",
    )
    play.add_argument(
        "--fake-duration",
        type=float,
        default=10.0,
        help="Track length in seconds for the fake backend.",
    )
    return parser


def build_medium_factory(
    backend_name: str, *, fake_duration: float = 10.0
) -> MediumFactory:
    """Return a medium factory for a (normalized) backend name."""
    if resolve_backend_name(backend_name) == "vlc":
        return VLCMedium

    def create_fake(source: str, options: MediumOptions) -> Medium:
        return FakeMedium(
            source,
            options,
            duration=fake_duration,
            load_delay_s=0.1,
            tick_interval_s=0.25,
        )

    return create_fake


async def run_play(
    args: argparse.Namespace,
    medium_factory: MediumFactory,
    *,
    out: TextIO | None = None,
) -> int:
    """Play `args.source` until it ends or fails; return the exit code."""
    changed = asyncio.Event()
    finished = asyncio.Event()
    echo = partial(print, file=out, flush=True)

    async def emit_event(event: object) -> None:
        if not isinstance(event, PlaybackChanged):
            return
        echo(f"[{event.state}]")
        if event.state.is_errored and event.context.error:
            echo(event.context.error)
        if event.state.is_ended or event.state.is_errored:
            finished.set()
        changed.set()

    options = MediumOptions(
        preload=normalize_preload(args.preload),
        volume=args.volume,
        rate=args.rate,
        muted=args.mute,
        loop=args.loop,
    )
    controller = MediumController(
        medium_factory=medium_factory,
        emit_event=emit_event,
        source=args.source,
        options=options,
    )
    interval = max(0.05, float(args.status_interval))
    started = False
    try:
        await controller.load()
        while not finished.is_set():
            if controller.is_idle and not started:
                started = True
                await controller.play()
            changed.clear()
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(changed.wait(), timeout=interval)
            if controller.is_playing:
                position = await controller.get_current_time()
                echo(format_position(position, controller.duration))
        exit_code = 0 if controller.is_ended else 1
    finally:
        await controller.destroy()
    return exit_code


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        if getattr(args, "command", None) != "play":
            parser.print_help()
            return 0
        backend = resolve_backend_name(args.backend)
        logger.info("Starting roover with %s backend", backend)
        factory = build_medium_factory(backend, fake_duration=args.fake_duration)
        return asyncio.run(run_play(args, factory))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
