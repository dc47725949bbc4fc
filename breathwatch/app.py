"""Command entry point: read frames and run the motion detector on them."""

from __future__ import annotations

import sys
import time
from typing import Optional, Sequence, TextIO

from .commandline import CommandLine
from .motion import MotionDetector
from .video import VideoSource


class _FrameTimer:
    """Print monotonic timestamps in microseconds, then deltas between marks."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._last = 0

    def mark(self, tag: str) -> None:
        now = time.monotonic_ns() // 1000
        if self._last == 0:
            self._stream.write(f"{tag} Start time: {now}\n")
        else:
            self._stream.write(f"{tag} Delta: {now - self._last}\n")
        self._last = now


def _ring_bell() -> None:
    sys.stdout.write("\a")
    sys.stdout.flush()


def batch(config: CommandLine) -> int:
    """Run detection over every frame of the configured source; return 0."""
    timer = _FrameTimer(sys.stderr) if config.show_times else None

    def mark(tag: str) -> None:
        if timer is not None:
            timer.mark(tag)

    with MotionDetector(config, alarm=_ring_bell) as detector, VideoSource(
        config.camera_id,
        config.in_file,
        int(config.input_fps),
        config.frame_width,
        config.frame_height,
    ) as source:
        mark("A")
        while True:
            frame = source.read()
            mark("A")
            if frame is None:
                mark("B")
                return 0
            detector.update(frame)
            mark("B")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse the command line and run; return the process exit status."""
    args = list(sys.argv if argv is None else argv)
    try:
        config = CommandLine.from_argv(args)
        if config.help or config.about:
            return 0
        if config.ok:
            print("[info] starting batch processing.")
            if config.source_count:
                return batch(config)
    except RuntimeError as exc:
        sys.stderr.write(f"System error: {exc}\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())