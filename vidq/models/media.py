# vidq/models/media.py
from dataclasses import dataclass


def format_clock(seconds: float) -> str:
    """Render seconds as m:ss (minutes are not wrapped into hours)."""
    total = max(0, int(seconds))
    m, s = divmod(total, 60)
    return f"{m}:{s:02d}"


def format_bytes(size: int) -> str:
    value = float(max(0, size))
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1000 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{value:.1f} TB"


@dataclass(frozen=True)
class SourceMetadata:
    duration: float = 0.0   # seconds
    width: int = 0
    height: int = 0
    codec: str = "unknown"
    bitrate: int = 0        # bits per second
    fps: float = 0.0
    rotation: int = 0       # 0, 90, 180, 270
    has_audio: bool = False

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def duration_text(self) -> str:
        return format_clock(self.duration)


@dataclass(frozen=True)
class ProgressSnapshot:
    percentage: float = 0.0          # 0.0 - 1.0
    frame: int = 0
    fps: float = 0.0
    processed_seconds: float = 0.0
    eta_seconds: float = 0.0         # 0 means unknown
    size_bytes: int = 0

    @property
    def percent_text(self) -> str:
        return f"{self.percentage * 100:.1f}%"

    @property
    def eta_text(self) -> str:
        return format_clock(self.eta_seconds) if self.eta_seconds > 0 else "--:--"

    @property
    def size_text(self) -> str:
        return format_bytes(self.size_bytes)
