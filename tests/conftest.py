"""Shared fixtures for vidq tests."""

import contextlib
import itertools
import warnings
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication

from vidq.models.media import ProgressSnapshot, SourceMetadata
from vidq.models.store import JobStore
from vidq.workers.scheduler import JobScheduler
from vidq.workers.transcoder import Outcome, TranscodeResult


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """One QCoreApplication for the whole run (Qt wants at most one)."""
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("VIDQ_CONFIG_DIR", str(tmp_path / "config"))
    return tmp_path / "config"


@pytest.fixture
def make_video(tmp_path: Path):
    """Create a fake video file of a given size and return its path."""

    def _make(name: str = "clip.mp4", size: int = 4096, folder: Path | None = None) -> Path:
        path = (folder or tmp_path / "videos") / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0" * size)
        return path

    return _make


def succeed(size: int = 1234, snapshots=()):
    """Script for FakeSupervisor: emit snapshots, write the output, exit 0."""

    def _script(job):
        yield from snapshots
        job.destination.write_bytes(b"\1" * size)
        yield TranscodeResult(Outcome.SUCCESS, job.destination, returncode=0)

    return _script


def fail(reason: str = "ffmpeg exited with status 1: boom", outcome: Outcome = Outcome.FAILED):
    def _script(job):
        yield TranscodeResult(outcome, job.destination, reason, 1)

    return _script


def endless_progress(job):
    for i in itertools.count(1):
        yield ProgressSnapshot(percentage=min(i / 100, 1.0), frame=i, processed_seconds=float(i))


class FakeSupervisor:
    """Stands in for ProcessSupervisor; scripts are chosen by source file name."""

    def __init__(self, scripts: dict | None = None, default=None):
        self.scripts = scripts or {}
        self.default = default or succeed()
        self.runs: list[str] = []
        self.closed: list[str] = []
        self.cancel_calls = 0

    def run(self, job, cancel_event=None):
        self.runs.append(job.source.name)
        script = self.scripts.get(job.source.name, self.default)
        try:
            yield from script(job)
        finally:
            self.closed.append(job.source.name)

    def cancel(self) -> bool:
        self.cancel_calls += 1
        return bool(self.runs)


class ListHistory:
    def __init__(self):
        self.records = []

    def add(self, record):
        self.records.append(record)


@pytest.fixture
def supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def history() -> ListHistory:
    return ListHistory()


@pytest.fixture
def metadata() -> SourceMetadata:
    return SourceMetadata(duration=10.0, width=1920, height=1080, codec="h264",
                          bitrate=1_000_000, fps=30.0, rotation=0, has_audio=True)


SCHEDULER_SIGNALS = ("job_added", "job_updated", "job_removed", "queue_started", "queue_idle", "queue_stopped")


def disconnect_all(sched: JobScheduler) -> None:
    """Drop test slots so closures over sched don't keep Qt objects alive past the test."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        for name in SCHEDULER_SIGNALS:
            with contextlib.suppress(RuntimeError, TypeError):
                getattr(sched, name).disconnect()


@pytest.fixture
def make_scheduler(supervisor, history, metadata):
    made: list[JobScheduler] = []

    def _make(probe=lambda path: metadata, disk_free=lambda path: 10**12, sup=None):
        sched = JobScheduler(JobStore(), sup or supervisor, probe=probe, history=history, disk_free=disk_free)
        made.append(sched)
        return sched

    yield _make
    for sched in made:
        disconnect_all(sched)
        sched.cancel_all()
        sched.wait(5000)


@pytest.fixture
def fake_ffmpeg(tmp_path: Path):
    """Write an executable sh script standing in for ffmpeg and return its path."""

    def _write(body: str) -> str:
        path = tmp_path / "fake-ffmpeg"
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(0o755)
        return str(path)

    return _write
