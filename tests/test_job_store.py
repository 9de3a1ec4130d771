"""Tests for JobStore and the job state machine."""

from pathlib import Path

import pytest

from vidq.errors import ErrorKind, JobStateError
from vidq.models.job import Job, JobStatus, can_transition
from vidq.models.media import ProgressSnapshot
from vidq.models.store import JobStore


def new_job(name: str = "a.mp4") -> Job:
    src = Path("/videos") / name
    return Job(source=src, destination=src.with_name(f"{src.stem}_compressed{src.suffix}"))


@pytest.fixture
def store() -> JobStore:
    return JobStore()


class TestTransitions:
    @pytest.mark.parametrize(
        "current, new",
        [
            (JobStatus.PENDING, JobStatus.PROCESSING),
            (JobStatus.PENDING, JobStatus.CANCELLED),
            (JobStatus.PENDING, JobStatus.FAILED),
            (JobStatus.PROCESSING, JobStatus.COMPLETED),
            (JobStatus.PROCESSING, JobStatus.FAILED),
            (JobStatus.PROCESSING, JobStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, new) -> None:
        assert can_transition(current, new)

    @pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED])
    def test_terminal_states_are_final(self, terminal) -> None:
        for status in JobStatus:
            assert not can_transition(terminal, status)

    def test_pending_cannot_complete_directly(self) -> None:
        assert not can_transition(JobStatus.PENDING, JobStatus.COMPLETED)


class TestJobStore:
    def test_readers_get_copies(self, store: JobStore) -> None:
        job = store.add(new_job())
        job.status = JobStatus.FAILED
        assert store.get(job.id).status is JobStatus.PENDING

    def test_order_and_first_pending(self, store: JobStore) -> None:
        a, b = store.add(new_job("a.mp4")), store.add(new_job("b.mp4"))
        assert [j.id for j in store.all()] == [a.id, b.id]
        assert store.first_pending().id == a.id
        store.transition(a.id, JobStatus.PROCESSING)
        assert store.first_pending().id == b.id
        assert store.pending_ids() == [b.id]

    def test_live_for_source(self, store: JobStore) -> None:
        job = store.add(new_job())
        assert store.live_for_source(job.source).id == job.id
        store.transition(job.id, JobStatus.CANCELLED)
        assert store.live_for_source(job.source) is None

    def test_illegal_transition_raises(self, store: JobStore) -> None:
        job = store.add(new_job())
        store.transition(job.id, JobStatus.PROCESSING)
        store.transition(job.id, JobStatus.COMPLETED, compressed_size=10)
        with pytest.raises(JobStateError):
            store.transition(job.id, JobStatus.FAILED, error="late")
        assert store.get(job.id).status is JobStatus.COMPLETED
        assert store.get(job.id).error is None

    def test_compressed_size_only_for_completed(self, store: JobStore) -> None:
        job = store.add(new_job())
        store.transition(job.id, JobStatus.PROCESSING)
        with pytest.raises(JobStateError):
            store.transition(job.id, JobStatus.FAILED, compressed_size=10)
        assert store.get(job.id).status is JobStatus.PROCESSING

    def test_transition_applies_changes(self, store: JobStore) -> None:
        job = store.add(new_job())
        failed = store.transition(job.id, JobStatus.FAILED, error="disk full", error_kind=ErrorKind.INSUFFICIENT_SPACE)
        assert failed.error == "disk full"
        assert failed.error_kind is ErrorKind.INSUFFICIENT_SPACE
        assert not failed.error_kind.retryable

    def test_unknown_id(self, store: JobStore) -> None:
        with pytest.raises(KeyError):
            store.get("nope")
        with pytest.raises(KeyError):
            store.transition("nope", JobStatus.CANCELLED)

    def test_progress_only_while_processing(self, store: JobStore) -> None:
        job = store.add(new_job())
        snap = ProgressSnapshot(percentage=0.25, frame=10)
        assert store.set_progress(job.id, snap) is None

        store.transition(job.id, JobStatus.PROCESSING)
        assert store.set_progress(job.id, snap).progress == snap

        store.transition(job.id, JobStatus.CANCELLED)
        late = ProgressSnapshot(percentage=0.5, frame=20)
        assert store.set_progress(job.id, late) is None
        assert store.get(job.id).progress == snap

    def test_remove_pending_only(self, store: JobStore) -> None:
        a, b = store.add(new_job("a.mp4")), store.add(new_job("b.mp4"))
        store.remove(a.id)
        assert [j.id for j in store.all()] == [b.id]

        store.transition(b.id, JobStatus.PROCESSING)
        with pytest.raises(JobStateError):
            store.remove(b.id)
        with pytest.raises(KeyError):
            store.remove(a.id)

    def test_remove_finished(self, store: JobStore) -> None:
        a, b, c = (store.add(new_job(n)) for n in ("a.mp4", "b.mp4", "c.mp4"))
        store.transition(a.id, JobStatus.CANCELLED)
        store.transition(b.id, JobStatus.PROCESSING)
        assert store.remove_finished() == [a.id]
        assert [j.id for j in store.all()] == [b.id, c.id]
        assert len(store) == 2
