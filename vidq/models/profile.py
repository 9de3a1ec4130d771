# vidq/models/profile.py
from dataclasses import dataclass


@dataclass(frozen=True)
class CompressionProfile:
    name: str
    crf: int          # quality factor, 18-28 is the useful range
    preset: str       # x264 speed/efficiency preset
    gop: int          # keyframe interval
    bframes: int
    refs: int
    description: str = ""


PROFILES: dict[str, CompressionProfile] = {
    "default": CompressionProfile(
        "default", crf=23, preset="veryslow", gop=600, bframes=3, refs=4,
        description="Balanced quality and speed, fits most footage",
    ),
    "fast": CompressionProfile(
        "fast", crf=26, preset="medium", gop=250, bframes=2, refs=3,
        description="Quick turnaround for batch jobs",
    ),
    "high_quality": CompressionProfile(
        "high_quality", crf=20, preset="veryslow", gop=600, bframes=4, refs=5,
        description="Best output quality, slowest to encode",
    ),
}

DEFAULT_PROFILE = PROFILES["default"]


def get_profile(name: str) -> CompressionProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise KeyError(f"Unknown profile {name!r} (choose from {', '.join(PROFILES)})") from None
