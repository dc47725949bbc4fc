# breathwatch

breathwatch watches a sleeping infant in a recorded video or a camera feed
and reports whether it can still see breathing. It converts each frame to
its brightness (luma) channel and magnifies small motions with a Riesz
pyramid. It then compares frames three at a time to find the pixels that
changed, and estimates a breathing rate from how that motion rises and
falls. If no motion is seen for a set number of seconds, it raises an alarm.

## Installing

```
pip install .
```

Frames are read through imageio. To read video files or a camera, you also
need an imageio plugin that can decode them, such as an ffmpeg-based one.
You install that plugin separately.

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Running

All settings come from an INI file:

```
breathwatch --config config.ini
```

The other options are:

- `breathwatch --help` writes the usage message to standard error and exits
  with status 0.
- `breathwatch --about` prints where the method comes from and exits with
  status 0.

Any other option is reported as a bad option, followed by the usage message,
and the exit status is 1. The status is also 1 when the settings do not
validate or no input is given. After a full run over a video file the
status is 0.

While it runs, the program prints one line per frame in the monitoring
state:

```
[info] Pixel Movement: 42	 [info] Motion Estimate: 0.400000 Hz
```

If no motion has been seen for `time_to_alarm` seconds, the alarm rings the
terminal bell and prints `[ERROR] >>>>>  NO MOVEMENT DETECTED!!!!!!`.

## Configuration

Give exactly one input source: either `input` (a video file) or `camera` (a
camera number). All other keys are optional. The values below are the
defaults used when a key is missing.

```ini
[io]
input = sleeping.mp4
; camera = 0
input_fps = 15          ; at most 40 when a camera is used
full_fps = 4.5
crop_fps = 15
width = 640             ; 320..1920
height = 480            ; 240..1080
time_to_alarm = 10      ; seconds, must be more than 1

[magnification]
amplify = 20            ; more than 0, at most 100
low-cutoff = 0.7
high-cutoff = 1
threshold = 50          ; more than 0, at most 100 (percent of pi)
show_magnification = false

[motion]
erode_dim = 3
dilate_dim = 60
diff_threshold = 10
duration = 1
pixel_threshold = 5
show_diff = false

[cropping]
crop = false
frames_to_settle = 10
roi_window = 10
roi_update_interval = 100   ; at least roi_window

[debug]
print_times = false
```

With `print_times` on, the program writes monotonic timestamps and
microsecond deltas, tagged `A` and `B`, to standard error around each frame.

When `crop` is on, the detector first accumulates motion over the whole
frame for `roi_window` frames. It then picks a region of interest around
the largest area of motion and from then on magnifies only that region.
Every `roi_update_interval` frames it returns to the whole frame and picks
the region again.

## Using it from Python

```python
import numpy as np

from breathwatch.butterworth import butterworth
from breathwatch.ini import IniReader
from breathwatch.commandline import CommandLine
from breathwatch.motion import MotionDetector, State
from breathwatch.video import VideoSource
from breathwatch.app import batch, main

a, b = butterworth(1, 0.1)               # denominator, numerator; a[0] == 1

reader = IniReader.from_string("[io]\nwidth = 640\n")
reader.get_integer("io", "width", 320)   # 640

config = CommandLine.from_argv(["breathwatch", "--config", "config.ini"])
if config.ok and config.source_count:
    batch(config)                         # process every frame of the source

with MotionDetector(config, alarm=lambda: print("alarm")) as detector:
    state = detector.update(np.zeros((480, 640), dtype=np.uint8))
```

The modules are:

- `breathwatch.butterworth`: `butterworth(order, wn)` designs a digital
  low-pass Butterworth filter.
- `breathwatch.ini`: `parse_lines`, `parse_file` and `IniReader`, which
  offers case-insensitive `get`, `get_integer` (decimal, octal or hex),
  `get_real` and `get_boolean` lookups. A file that cannot be read raises
  `OSError`.
- `breathwatch.commandline`: `CommandLine`, which holds all settings and
  has `from_argv`, `load_config`, `apply` and a shell-style `str()`. Also
  `acknowledgements()` and `show_usage(program, stream)`.
- `breathwatch.worker`: `WorkerThread`, a single background thread that
  runs submitted calls in order and returns futures.
- `breathwatch.riesz`: `RieszTransform`, which has the settable `alpha`,
  `threshold`, `fps`, `low_cutoff` and `high_cutoff`, plus `initialize` and
  `transform`. Also the pyramid pieces it is built from and the helpers
  `count_levels`, `pyr_down` and `pyr_up`.
- `breathwatch.motion`: `MotionDetector`, whose `update(frame)` takes one
  single-channel frame and returns the new `State`. Also `Rect`,
  `FrameSize`, `differential_collins`, `erode`, `dilate`, `largest_region`
  and `fit_roi`.
- `breathwatch.video`: `VideoSource`, which yields luma frames from a file
  or camera (`read()` returns `None` at the end), and `luma(rgb)`.
- `breathwatch.app`: `batch(config)` and `main(argv=None)`, the
  `breathwatch` command.

## What it does not do

- The alarm goes no further than the terminal bell and a printed message.
  It plays no sound through the system's sound service.
- Nothing is shown on screen. The `show_diff` and `show_magnification`
  settings are read and validated, but no window opens.
- Camera capture depends on what the installed imageio plugin supports.
  The package does not talk to camera devices directly.