# vidq/workers/transcoder.py
import codecs
import logging
import os
import select
import shlex
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator

from ..models.job import Job
from ..models.media import ProgressSnapshot
from ..parsers.ffmpeg_progress import ProgressParser

logger = logging.getLogger(__name__)

_ROTATION_FILTERS = {
    90: "transpose=1",
    180: "transpose=1,transpose=1",
    270: "transpose=2",
}
DIAGNOSTIC_LINES = 50


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    START_FAILED = "start_failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TranscodeResult:
    outcome: Outcome
    destination: Path | None = None
    reason: str = ""
    returncode: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


def build_ffmpeg_args(job: Job, ffmpeg_path: str = "ffmpeg") -> list[str]:
    p, o, md = job.profile, job.options, job.metadata
    rotate = _ROTATION_FILTERS.get(md.rotation) if md else None

    cmd = [ffmpeg_path, "-y", "-nostdin"]
    if o.hardware_acceleration:
        cmd += ["-hwaccel", "auto"]
    if rotate:
        # we rotate explicitly, so stop ffmpeg from applying the tag as well
        cmd.append("-noautorotate")
    cmd += ["-i", str(job.source)]

    cmd += [
        "-c:v", "libx264",
        "-crf", str(p.crf),
        "-preset", p.preset,
        "-keyint_min", str(p.gop),
        "-g", str(p.gop),
        "-refs", str(p.refs),
        "-bf", str(p.bframes),
        "-sc_threshold", "60",
        "-qcomp", "0.5",
        "-aq-mode", "2",
        "-aq-strength", "0.8",
        "-psy-rd", "0.3:0",
    ]
    if rotate:
        cmd += ["-vf", rotate, "-metadata:s:v", "rotate=0"]

    if o.remove_audio or (md is not None and not md.has_audio):
        cmd.append("-an")
    else:
        cmd += ["-c:a", "aac", "-b:a", "128k"]

    cmd += ["-movflags", "+faststart"]
    cmd += ["-progress", "pipe:1", "-nostats"]
    cmd.append(str(job.destination))
    return cmd


class ProcessSupervisor:
    """Runs one ffmpeg process at a time and streams its progress.

    ``run`` is a generator: ProgressSnapshot items while ffmpeg works, then
    exactly one TranscodeResult. ``cancel`` may be called from any thread.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        grace_period: float = 2.0,
        poll_interval: float = 0.1,
        clock=time.monotonic,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._proc: subprocess.Popen | None = None
        self._cancel_requested = False

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._proc is not None and self._proc.poll() is None

    def cancel(self) -> bool:
        """Ask the running process to stop. Returns False if nothing was running."""
        with self._lock:
            proc = self._proc
            if proc is None or proc.poll() is not None:
                return False
            if self._cancel_requested:
                return True
            self._cancel_requested = True
        logger.info("Cancelling ffmpeg (pid %s)", proc.pid)
        try:
            proc.terminate()
        except ProcessLookupError:
            pass
        return True

    def _stop(self, proc: subprocess.Popen):
        if proc.poll() is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
        try:
            proc.wait(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            logger.warning("ffmpeg (pid %s) still running %.1fs after terminate; killing", proc.pid, self.grace_period)
            proc.kill()
            proc.wait()

    def _stopping(self, cancel_event: threading.Event | None) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            self._cancel_requested = True
        return self._cancel_requested

    def _wait_exit(self, proc: subprocess.Popen, cancel_event: threading.Event | None = None) -> int | None:
        while (rc := proc.poll()) is None:
            if self._stopping(cancel_event):
                return None
            try:
                return proc.wait(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                pass
        return rc

    def run(
        self, job: Job, cancel_event: threading.Event | None = None,
    ) -> Iterator[ProgressSnapshot | TranscodeResult]:
        """Launch ffmpeg for job and stream its progress.

        cancel_event, when given, is checked before launch and on every poll
        tick, so a cancel that arrives before the process exists still stops it.
        """
        if cancel_event is not None and cancel_event.is_set():
            yield TranscodeResult(Outcome.CANCELLED, job.destination, "Cancelled before launch")
            return
        cmd = build_ffmpeg_args(job, self.ffmpeg_path)
        logger.info("$ %s", shlex.join(cmd))
        try:
            job.destination.parent.mkdir(parents=True, exist_ok=True)
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error("Could not start %s: %s", self.ffmpeg_path, e)
            yield TranscodeResult(Outcome.START_FAILED, job.destination, f"Could not start ffmpeg: {e}")
            return

        with self._lock:
            self._proc = proc
            self._cancel_requested = False

        parser = ProgressParser(job.duration, clock=self._clock)
        out_dec = codecs.getincrementaldecoder("utf-8")(errors="replace")
        err_dec = codecs.getincrementaldecoder("utf-8")(errors="replace")
        diagnostics: deque[str] = deque(maxlen=DIAGNOSTIC_LINES)
        err_tail = ""
        settled = False
        try:
            out_fd, err_fd = proc.stdout.fileno(), proc.stderr.fileno()
            open_fds = {out_fd, err_fd}
            while open_fds and not self._stopping(cancel_event):
                ready, _, _ = select.select(list(open_fds), [], [], self.poll_interval)
                for fd in ready:
                    if not (data := os.read(fd, 65536)):
                        open_fds.discard(fd)
                    elif fd == out_fd:
                        for snap in parser.feed(out_dec.decode(data)):
                            yield snap
                    else:
                        *lines, err_tail = (err_tail + err_dec.decode(data)).split("\n")
                        diagnostics.extend(ln.rstrip("\r") for ln in lines if ln.strip())
            if err_tail.strip():
                diagnostics.append(err_tail.strip())

            rc = None if self._stopping(cancel_event) else self._wait_exit(proc, cancel_event)
            if rc is None:
                self._stop(proc)
                settled = True
                logger.info("ffmpeg cancelled: %s", job.source)
                yield TranscodeResult(Outcome.CANCELLED, job.destination, "Cancelled", proc.returncode)
                return

            settled = True
            if rc == 0:
                yield TranscodeResult(Outcome.SUCCESS, job.destination, returncode=rc)
            else:
                detail = "\n".join(diagnostics) or "no diagnostic output"
                logger.error("ffmpeg exited with status %s for %s", rc, job.source)
                yield TranscodeResult(Outcome.FAILED, job.destination, f"ffmpeg exited with status {rc}: {detail}", rc)
        finally:
            if not settled:
                # consumer stopped reading before the process finished
                self._stop(proc)
            proc.stdout.close()
            proc.stderr.close()
            with self._lock:
                if self._proc is proc:
                    self._proc = None
