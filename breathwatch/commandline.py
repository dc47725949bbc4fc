"""Program settings read from the command line and a configuration file."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from os import PathLike
from typing import Any, Iterable, TextIO, Union

from .ini import IniReader

_ACKNOWLEDGEMENTS = (
    " is a real-time implementation of the methods"
    " described in the paper"
    ' "Eulerian Video Magnification for Revealing Subtle Changes'
    ' in the World"'
    " published in the"
    " <i>ACM Transactions for Graphics</i>,"
    " Volume 31, Number 4, July 2012."
)


def acknowledgements() -> str:
    """Return the text printed after the program name for ``--about``."""
    return _ACKNOWLEDGEMENTS


def show_usage(program: str, stream: TextIO) -> None:
    """Write a usage message for ``program`` to ``stream``."""
    stream.write(
        f"\n{program}: Amplify motion in a video.\n"
        "\n"
        f"Usage: {program} [--config] <path>\n"
        "\n"
        "Where: --config specifies the path to the config INI.\n"
        f"Example: {program} --config config.ini\n"
        "\n"
    )


def _as_unsigned(value: int) -> int:
    """Wrap an integer the way a 32-bit unsigned field stores it."""
    return value % 2**32


def _as_int(value: int) -> int:
    """Wrap an integer the way a 32-bit signed field stores it."""
    value %= 2**32
    return value - 2**32 if value >= 2**31 else value


def _program_name(av0: str) -> str:
    slash = av0.rfind("/")
    if slash < 0 or slash == len(av0) - 1:
        return av0
    return av0[slash + 1:]


@dataclass
class CommandLine:
    """Settings for one run: video source, magnification and detection."""

    av0: str = "breathwatch"
    program: str = field(init=False)
    in_file: str = ""
    camera_id: int = -1
    source_count: int = 0
    erode_dimension: int = 2
    dilate_dimension: int = 60
    diff_threshold: int = 5
    motion_duration: int = 1
    pixel_threshold: int = 10
    time_to_alarm: int = 10
    frames_to_settle: int = 10
    roi_update_interval: int = 100
    roi_window: int = 10
    amplify: float = 30.0
    input_fps: float = 15.0
    full_fps: float = 4.5
    crop_fps: float = 15.0
    low_cutoff: float = 0.5
    high_cutoff: float = 1.0
    threshold: float = 25.0
    show_diff: bool = False
    show_magnification: bool = False
    show_times: bool = False
    about: bool = False
    help: bool = False
    ok: bool = True
    crop: bool = False
    frame_width: int = 640
    frame_height: int = 480

    def __post_init__(self) -> None:
        self.program = _program_name(self.av0)

    @classmethod
    def from_argv(cls, argv: Iterable[str]) -> "CommandLine":
        """Parse ``argv``, whose first item is the program path.

        Problems are reported on the standard streams and leave ``ok`` false.
        """
        args = list(argv)
        cl = cls(av0=args[0] if args else "")
        config_path = None
        rest = iter(args[1:])
        for raw in rest:
            if not cl.ok:
                break
            words = raw.split()
            arg = words[0] if words else ""
            if arg == "--about":
                cl.about = True
            elif arg == "--help":
                cl.help = True
                show_usage(cl.program, sys.stderr)
                break
            else:
                path = next(rest, None) if arg == "--config" else None
                if path is not None:
                    config_path = path
                    break
                sys.stderr.write(f"\n{cl.program}: Bad option '{arg}'\n")
                cl.ok = False

        if config_path is not None and not cl._read_config(config_path):
            return cl
        if cl.about:
            sys.stdout.write(f"{cl.program}{acknowledgements()}\n")
        if not cl.ok:
            show_usage(cl.program, sys.stderr)
        return cl

    def load_config(self, path: Union[str, PathLike]) -> None:
        """Read settings from the INI file at ``path`` and validate them."""
        self._read_config(path)

    def _read_config(self, path: Union[str, PathLike]) -> bool:
        """Read the INI file; return false when reading stopped early."""
        self.source_count = 0
        try:
            reader = IniReader(path)
        except OSError:
            sys.stdout.write(f"[error] Cannot load {path}\n")
            self.ok = False
            return False

        ok = self.ok
        input_path = reader.get("io", "input", "")
        if input_path:
            self.in_file = input_path
            ok = ok and self.source_count == 0
            self.source_count += 1

        camera = reader.get_integer("io", "camera", -1)
        if camera != -1:
            self.camera_id = _as_int(camera)
            ok = ok and self.camera_id >= 0 and self.source_count == 0
            self.source_count += 1

        if self.source_count > 1:
            sys.stderr.write(
                f"{self.program}: Specify only one of --camera or --input.\n\n"
            )
            self.ok = False
            return False
        if not self.source_count and not (self.about or self.help):
            sys.stderr.write(f"{self.program}: Specify at least 1 input.\n\n")

        self.amplify = reader.get_real("magnification", "amplify", 20)
        ok = ok and 0 < self.amplify <= 100

        self.input_fps = reader.get_real("io", "input_fps", 15)
        if camera != -1:
            # The camera keeps good low-light performance only up to 40 fps.
            ok = ok and 0 < self.input_fps <= 40
        else:
            ok = ok and self.input_fps > 0

        self.full_fps = reader.get_real("io", "full_fps", 4.5)
        ok = ok and self.full_fps > 0
        self.crop_fps = reader.get_real("io", "crop_fps", 15)
        ok = ok and self.crop_fps > 0

        self.low_cutoff = reader.get_real("magnification", "low-cutoff", 0.7)
        ok = ok and self.low_cutoff > 0
        self.high_cutoff = reader.get_real("magnification", "high-cutoff", 1)
        ok = ok and self.high_cutoff > 0
        self.threshold = reader.get_real("magnification", "threshold", 50)
        ok = ok and 0 < self.threshold <= 100

        self.frame_width = _as_int(reader.get_integer("io", "width", 640))
        ok = ok and 320 <= self.frame_width <= 1920
        self.frame_height = _as_int(reader.get_integer("io", "height", 480))
        ok = ok and 240 <= self.frame_height <= 1080

        self.erode_dimension = _as_int(reader.get_integer("motion", "erode_dim", 3))
        ok = ok and self.erode_dimension > 0
        self.dilate_dimension = _as_int(
            reader.get_integer("motion", "dilate_dim", 60)
        )
        ok = ok and self.dilate_dimension > 0
        self.diff_threshold = _as_int(
            reader.get_integer("motion", "diff_threshold", 10)
        )
        ok = ok and self.diff_threshold > 0
        self.motion_duration = _as_int(reader.get_integer("motion", "duration", 1))
        ok = ok and self.motion_duration >= 1
        self.pixel_threshold = _as_int(
            reader.get_integer("motion", "pixel_threshold", 5)
        )
        ok = ok and self.pixel_threshold >= 1

        self.show_diff = reader.get_boolean("motion", "show_diff", False)
        self.show_magnification = reader.get_boolean(
            "magnification", "show_magnification", False
        )
        self.show_times = reader.get_boolean("debug", "print_times", False)
        self.crop = reader.get_boolean("cropping", "crop", False)

        self.frames_to_settle = _as_unsigned(
            reader.get_integer("cropping", "frames_to_settle", 10)
        )
        ok = ok and self.frames_to_settle >= 1
        self.time_to_alarm = _as_unsigned(
            reader.get_integer("io", "time_to_alarm", 10)
        )
        ok = ok and self.time_to_alarm > 1
        self.roi_window = _as_unsigned(
            reader.get_integer("cropping", "roi_window", 10)
        )
        ok = ok and self.roi_window >= 1
        self.roi_update_interval = _as_unsigned(
            reader.get_integer("cropping", "roi_update_interval", 100)
        )
        ok = ok and self.roi_update_interval >= self.roi_window and (
            self.roi_update_interval > 0
        )

        self.about = reader.get_boolean("io", "about", False)
        self.help = reader.get_boolean("io", "help", False)
        self.ok = ok
        return True

    def apply(self, transform: Any) -> None:
        """Copy the magnification settings onto ``transform``.

        The high cutoff is always set before the low cutoff.  Amplification
        and threshold are stored as whole numbers.
        """
        if self.amplify >= 0:
            transform.alpha = int(self.amplify)
        if self.high_cutoff > 0:
            transform.high_cutoff = self.high_cutoff
        if self.low_cutoff > 0:
            transform.low_cutoff = self.low_cutoff
        if self.threshold >= 0:
            transform.threshold = int(self.threshold)

    def __str__(self) -> str:
        """Render the settings as a shell-style invocation."""
        parts = [self.av0]
        if not self.in_file:
            if self.camera_id >= 0:
                parts.append(f"--camera {self.camera_id}")
        else:
            parts.append(f"--input {self.in_file}")
        if self.amplify >= 0:
            parts.append(f"--amplify {self.amplify:g}")
        if self.low_cutoff > 0:
            parts.append(f"--low-cutoff {self.low_cutoff:g}")
        if self.high_cutoff > 0:
            parts.append(f"--high-cutoff {self.high_cutoff:g}")
        if self.threshold >= 0:
            parts.append(f"--threshold {self.threshold:g}")
        return " ".join(parts)