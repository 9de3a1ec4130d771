# vidq/models/history.py
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class HistoryRecord:
    source: str
    destination: str
    original_size: int
    compressed_size: int
    profile: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def ratio(self) -> float:
        return self.compressed_size / self.original_size if self.original_size > 0 else 0.0

    @property
    def saved_bytes(self) -> int:
        return self.original_size - self.compressed_size

    def to_dict(self) -> dict:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryRecord":
        return cls(
            source=data["source"],
            destination=data["destination"],
            original_size=int(data["original_size"]),
            compressed_size=int(data["compressed_size"]),
            profile=data.get("profile", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            id=data.get("id") or uuid.uuid4().hex,
        )
