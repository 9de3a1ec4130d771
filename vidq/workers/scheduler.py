# vidq/workers/scheduler.py
import logging
import os
import threading
from pathlib import Path
from typing import Callable

from PySide6.QtCore import QObject, Qt, QThread, Signal

from ..errors import ErrorKind, JobStateError, SubmitRejected
from ..models.history import HistoryRecord
from ..models.job import Job, JobOptions, JobStatus, utcnow
from ..models.media import SourceMetadata, format_bytes
from ..models.profile import DEFAULT_PROFILE, CompressionProfile
from ..models.store import JobStore
from ..utils.paths import derive_destination, file_size, find_video_files, free_space, is_video_file
from .transcoder import Outcome, ProcessSupervisor, TranscodeResult

logger = logging.getLogger(__name__)

# assume the output is about half the source, and keep twice that free
COMPRESSION_GUESS = 0.5
SPACE_SAFETY_FACTOR = 2


def required_space(metadata: SourceMetadata | None) -> float | None:
    """Free bytes a job needs before it may start, or None when it can't be estimated."""
    if metadata is None or metadata.bitrate <= 0 or metadata.duration <= 0:
        return None
    naive = metadata.bitrate * metadata.duration / 8
    return naive * COMPRESSION_GUESS * SPACE_SAFETY_FACTOR


class _QueueRunner(QObject):
    finished = Signal()

    def __init__(self, scheduler: "JobScheduler"):
        super().__init__()
        self._scheduler = scheduler

    def run(self):
        try:
            self._scheduler._run_queue()
        finally:
            self.finished.emit()


class JobScheduler(QObject):
    """Owns the job queue and advances it one job at a time.

    This is the only writer of the JobStore. Every change to a job record is
    announced on the signals below with a copy of the job; nothing else is
    needed to keep a view in sync.
    """

    job_added = Signal(object)      # Job
    job_updated = Signal(object)    # Job
    job_removed = Signal(str)       # job id
    queue_started = Signal()
    queue_idle = Signal()           # ran out of pending jobs
    queue_stopped = Signal()

    def __init__(
        self,
        store: JobStore,
        supervisor: ProcessSupervisor,
        probe: Callable[[Path], SourceMetadata | None] | None = None,
        history=None,
        disk_free: Callable[[Path], int | None] = free_space,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._store = store
        self._supervisor = supervisor
        self._probe = probe
        self._history = history
        self._disk_free = disk_free

        self._lock = threading.RLock()
        self._running = False
        self._stop_requested = False
        self._active_id: str | None = None
        self._cancel_event: threading.Event | None = None
        self._thread: QThread | None = None
        self._runner: _QueueRunner | None = None

    # -- observation ---------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_job_id(self) -> str | None:
        return self._active_id

    def jobs(self) -> list[Job]:
        return self._store.all()

    def get(self, job_id: str) -> Job:
        return self._store.get(job_id)

    # -- submission ----------------------------------------------------------

    def submit(
        self,
        source: str | Path,
        profile: CompressionProfile | None = None,
        options: JobOptions | None = None,
    ) -> str:
        src = Path(source).expanduser().resolve()
        options = options or JobOptions()

        if self._store.live_for_source(src):
            raise SubmitRejected(ErrorKind.DUPLICATE, f"{src.name} is already in the queue")
        if not is_video_file(src):
            raise SubmitRejected(ErrorKind.UNSUPPORTED_FORMAT, f"Unsupported file type: {src.suffix or src.name}")
        if not src.is_file():
            raise SubmitRejected(ErrorKind.NOT_FOUND, f"File not found: {src}")
        if not os.access(src, os.R_OK):
            raise SubmitRejected(ErrorKind.UNREADABLE, f"File is not readable: {src}")

        job = Job(
            source=src,
            destination=derive_destination(src, options.output_dir, options.output_suffix),
            profile=profile or DEFAULT_PROFILE,
            options=options,
            metadata=self._probe(src) if self._probe else None,
            original_size=file_size(src),
        )
        if job.metadata is None:
            logger.warning("No metadata for %s; progress and space check disabled", src.name)

        with self._lock:
            # probing is slow, someone may have queued the same file meanwhile
            if self._store.live_for_source(src):
                raise SubmitRejected(ErrorKind.DUPLICATE, f"{src.name} is already in the queue")
            added = self._store.add(job)
        logger.info("Queued %s -> %s [%s]", src, job.destination, job.profile.name)
        self.job_added.emit(added)
        return added.id

    def submit_directory(
        self,
        path: str | Path,
        recursive: bool = False,
        profile: CompressionProfile | None = None,
        options: JobOptions | None = None,
    ) -> list[str]:
        root = Path(path).expanduser()
        if not root.is_dir():
            raise SubmitRejected(ErrorKind.NOT_FOUND, f"Folder not found: {root}")
        ids = []
        for p in find_video_files(root, recursive):
            try:
                ids.append(self.submit(p, profile, options))
            except SubmitRejected as e:
                logger.warning("Skipping %s: %s", p, e.message)
        logger.info("Queued %d file(s) from %s", len(ids), root)
        return ids

    def remove(self, job_id: str) -> None:
        with self._lock:
            self._store.remove(job_id)
        self.job_removed.emit(job_id)

    def clear_finished(self) -> list[str]:
        with self._lock:
            gone = self._store.remove_finished()
        for job_id in gone:
            self.job_removed.emit(job_id)
        return gone

    # -- running -------------------------------------------------------------

    def start(self, block: bool = False) -> bool:
        """Begin working through pending jobs.

        Runs on a QThread unless block is True, in which case it returns once
        the queue stops. Returns False if already running or nothing is pending.
        """
        with self._lock:
            if self._running or self._store.first_pending() is None:
                return False
            self._running = True
            self._stop_requested = False
        self.queue_started.emit()

        if block:
            self._run_queue()
            return True

        if self._thread is not None:
            # the previous run has finished its loop, let its thread exit too
            self._thread.wait()
        self._thread = QThread()
        self._runner = _QueueRunner(self)
        self._runner.moveToThread(self._thread)
        self._thread.started.connect(self._runner.run)
        # quit() is thread-safe; call it directly so no event loop is needed
        self._runner.finished.connect(self._thread.quit, Qt.DirectConnection)
        self._thread.start()
        return True

    def wait(self, timeout_ms: int | None = None) -> bool:
        """Block until the background worker thread has exited."""
        if (thread := self._thread) is None:
            return True
        return thread.wait() if timeout_ms is None else thread.wait(timeout_ms)

    def cancel_active(self) -> bool:
        with self._lock:
            self._stop_requested = True
            active, self._active_id = self._active_id, None
            if self._cancel_event is not None:
                self._cancel_event.set()
            cancelled = None
            if active is not None:
                try:
                    cancelled = self._store.transition(active, JobStatus.CANCELLED, completed_at=utcnow())
                except (JobStateError, KeyError):
                    cancelled = None
        self._supervisor.cancel()
        if cancelled is not None:
            logger.info("Cancelled %s", cancelled.source)
            self.job_updated.emit(cancelled)
        return cancelled is not None

    def cancel_all(self) -> int:
        n = 1 if self.cancel_active() else 0
        for job_id in self._store.pending_ids():
            if self._finish(job_id, JobStatus.CANCELLED) is not None:
                n += 1
        logger.info("Cancelled %d job(s)", n)
        return n

    # -- worker side ---------------------------------------------------------

    def _run_queue(self):
        logger.info("Queue started")
        drained = False
        try:
            while True:
                with self._lock:
                    if self._stop_requested:
                        break
                    job = self._store.first_pending()
                if job is None:
                    drained = True
                    break
                try:
                    self._process(job)
                except Exception as e:
                    logger.exception("Unexpected error while processing %s", job.source)
                    self._finish(job.id, JobStatus.FAILED, error=f"Internal error: {e}")
        finally:
            with self._lock:
                self._running = False
                self._active_id = None
            logger.info("Queue stopped")
            if drained:
                self.queue_idle.emit()
            self.queue_stopped.emit()

    def _finish(self, job_id: str, status: JobStatus, **changes) -> Job | None:
        with self._lock:
            try:
                job = self._store.transition(job_id, status, completed_at=utcnow(), **changes)
            except (JobStateError, KeyError) as e:
                logger.debug("Dropping %s update for %s: %s", status.value, job_id, e)
                return None
        self.job_updated.emit(job)
        return job

    def _has_space(self, job: Job) -> bool:
        if (needed := required_space(job.metadata)) is None:
            return True
        if (free := self._disk_free(job.destination.parent)) is None:
            return True
        if free > needed:
            return True
        self._finish(
            job.id, JobStatus.FAILED,
            error=f"Insufficient disk space: needs about {format_bytes(int(needed))}, {format_bytes(free)} free",
            error_kind=ErrorKind.INSUFFICIENT_SPACE,
        )
        logger.warning("Not enough space for %s (%d needed, %d free)", job.source.name, needed, free)
        return False

    def _process(self, job: Job):
        if not self._has_space(job):
            return

        with self._lock:
            if self._stop_requested:
                return
            try:
                job = self._store.transition(job.id, JobStatus.PROCESSING, started_at=utcnow())
            except (JobStateError, KeyError):
                return
            self._active_id = job.id
            self._cancel_event = cancel_event = threading.Event()
        self.job_updated.emit(job)
        if cancel_event.is_set():
            with self._lock:
                self._cancel_event = None
            return
        logger.info("Compressing %s", job.source)

        result: TranscodeResult | None = None
        events = self._supervisor.run(job, cancel_event)
        try:
            for event in events:
                if isinstance(event, TranscodeResult):
                    result = event
                    break
                if self._active_id != job.id:
                    break   # cancelled: stop reading this job's output
                if (updated := self._store.set_progress(job.id, event)) is not None:
                    self.job_updated.emit(updated)
        finally:
            events.close()
            with self._lock:
                if self._active_id == job.id:
                    self._active_id = None
                self._cancel_event = None

        if result is None or result.outcome is Outcome.CANCELLED:
            return
        self._finalize(job, result)

    def _finalize(self, job: Job, result: TranscodeResult):
        if not result.ok:
            kind = ErrorKind.START_FAILED if result.outcome is Outcome.START_FAILED else ErrorKind.ENCODE_FAILED
            if self._finish(job.id, JobStatus.FAILED, error=result.reason, error_kind=kind) is not None:
                logger.error("Failed %s: %s", job.source.name, result.reason.splitlines()[0] if result.reason else kind.value)
            return

        done = self._finish(job.id, JobStatus.COMPLETED, compressed_size=file_size(job.destination))
        if done is None:
            return
        logger.info(
            "Completed %s (%s -> %s)", done.source.name,
            format_bytes(done.original_size or 0), format_bytes(done.compressed_size or 0),
        )
        self._record_history(done)
        if done.options.delete_source:
            try:
                done.source.unlink()
                logger.info("Deleted source %s", done.source)
            except OSError as e:
                logger.warning("Could not delete source %s: %s", done.source, e)

    def _record_history(self, job: Job):
        if self._history is None:
            return
        if job.original_size is None or job.compressed_size is None:
            logger.warning("Sizes unknown for %s; not added to history", job.source.name)
            return
        record = HistoryRecord(
            source=str(job.source),
            destination=str(job.destination),
            original_size=job.original_size,
            compressed_size=job.compressed_size,
            profile=job.profile.name,
        )
        try:
            self._history.add(record)
        except Exception:
            logger.exception("History collaborator rejected record for %s", job.source.name)
