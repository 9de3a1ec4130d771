# vidq/utils/history.py
import json
import logging
import threading
from pathlib import Path

from ..models.history import HistoryRecord

logger = logging.getLogger(__name__)


class HistoryStore:
    """Successful compressions, newest first, persisted as a JSON list."""

    def __init__(self, path: Path, max_records: int = 100):
        self.path = Path(path)
        self.max_records = max_records
        self._lock = threading.Lock()
        self.records: list[HistoryRecord] = []
        self.load()

    def load(self) -> None:
        records = []
        if self.path.exists():
            try:
                records = [HistoryRecord.from_dict(d) for d in json.loads(self.path.read_text())]
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning("Discarding unreadable history %s: %s", self.path, e)
        with self._lock:
            self.records = records[: self.max_records]

    def save(self) -> None:
        with self._lock:
            payload = [r.to_dict() for r in self.records]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2))
        except OSError as e:
            logger.warning("Could not write history to %s: %s", self.path, e)

    def add(self, record: HistoryRecord) -> None:
        with self._lock:
            self.records.insert(0, record)
            del self.records[self.max_records:]
        self.save()

    def delete(self, record_id: str) -> bool:
        with self._lock:
            before = len(self.records)
            self.records = [r for r in self.records if r.id != record_id]
            changed = len(self.records) != before
        if changed:
            self.save()
        return changed

    def clear(self) -> None:
        with self._lock:
            self.records = []
        self.save()

    @property
    def total_original(self) -> int:
        return sum(r.original_size for r in self.records)

    @property
    def total_compressed(self) -> int:
        return sum(r.compressed_size for r in self.records)

    @property
    def total_saved(self) -> int:
        return self.total_original - self.total_compressed

    @property
    def average_ratio(self) -> float:
        if not self.records:
            return 0.0
        return sum(r.ratio for r in self.records) / len(self.records)
