# vidq/parsers/ffmpeg_progress.py
import math
import re
import time
from typing import Callable

from ..models.media import ProgressSnapshot

_OUT_TIME = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2}(?:\.\d+)?)$")


def _clamp01(v: float) -> float:
    if not math.isfinite(v):
        return 0.0
    if v < 0:
        return 0.0
    if v > 1:
        return 1.0
    return v


def _finite(value: str) -> float:
    v = float(value)
    if not math.isfinite(v):
        raise ValueError(value)
    return v


def _clock_to_seconds(value: str) -> float:
    if not (m := _OUT_TIME.match(value)):
        raise ValueError(value)
    h, mi, s = m.groups()
    return int(h) * 3600 + int(mi) * 60 + float(s)


class ProgressParser:
    """Running totals over ffmpeg's ``-progress`` key=value stream.

    One parser per job run; it only knows that run's total duration and when
    it started. ``feed`` takes raw pipe chunks (lines may be split anywhere)
    and yields one snapshot per ``progress=`` line. ``parse_block`` treats a
    whole block as one reporting cycle.

    The ETA is only recomputed when the processed time moves, so a repeated
    block reports the same numbers as the first one.
    """

    def __init__(self, total_duration: float, clock: Callable[[], float] = time.monotonic):
        self.total_duration = total_duration if total_duration and total_duration > 0 else 0.0
        self._clock = clock
        self.reset()

    def reset(self):
        self._started = self._clock()
        self._pending = ""
        self._frame = 0
        self._fps = 0.0
        self._size = 0
        self._out_us = 0
        self._best_pct = 0.0
        self._eta = 0.0
        self._eta_at = 0

    def _apply(self, line: str) -> str | None:
        """Fold one line into the totals; returns the key when it was used."""
        key, sep, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key:
            return None
        try:
            if key == "frame":
                self._frame = int(value)
            elif key == "fps":
                self._fps = _finite(value)
            elif key == "total_size":
                self._size = int(value)
            elif key in ("out_time_us", "out_time_ms"):
                # ffmpeg reports both in microseconds
                self._out_us = max(0, int(value))
            elif key == "out_time":
                self._out_us = int(_clock_to_seconds(value) * 1_000_000)
            elif key != "progress":
                return None
        except ValueError:
            return None
        return key

    def snapshot(self) -> ProgressSnapshot:
        processed = self._out_us / 1_000_000.0
        total = self.total_duration
        pct = _clamp01(processed / total) if total > 0 else 0.0
        self._best_pct = max(self._best_pct, pct)

        if self._out_us != self._eta_at:
            self._eta_at = self._out_us
            self._eta = 0.0
            if processed > 0 and total > 0:
                elapsed = max(0.0, self._clock() - self._started)
                self._eta = max(elapsed * (total - processed) / processed, 0.0)

        return ProgressSnapshot(
            percentage=self._best_pct,
            frame=self._frame,
            fps=self._fps,
            processed_seconds=processed,
            eta_seconds=self._eta,
            size_bytes=self._size,
        )

    def feed(self, chunk: str) -> list[ProgressSnapshot]:
        data = self._pending + chunk
        *lines, self._pending = data.split("\n")
        out = []
        for line in lines:
            if self._apply(line.rstrip("\r")) == "progress":
                out.append(self.snapshot())
        return out

    def parse_block(self, text: str) -> ProgressSnapshot:
        for line in text.splitlines():
            self._apply(line)
        return self.snapshot()
