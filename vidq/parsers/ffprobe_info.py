# vidq/parsers/ffprobe_info.py
from ..models.media import SourceMetadata


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def parse_frame_rate(rate: str | None) -> float:
    """'30000/1001' -> 29.97; anything unparsable -> 0.0."""
    if not rate:
        return 0.0
    num, sep, den = str(rate).partition("/")
    if not sep:
        return _to_float(num)
    n, d = _to_float(num), _to_float(den)
    return n / d if d > 0 else 0.0


def normalize_rotation(degrees: float) -> int:
    """Snap any angle to one of 0/90/180/270 (display matrices report -90 etc.)."""
    return int(round(degrees / 90.0)) % 4 * 90


def _rotation_of(stream: dict) -> int:
    if (tag := (stream.get("tags") or {}).get("rotate")) is not None:
        return normalize_rotation(_to_float(tag))
    for side in stream.get("side_data_list") or []:
        if "rotation" in side:
            # display matrix rotation is counter-clockwise
            return normalize_rotation(-_to_float(side["rotation"]))
    return 0


def parse_ffprobe_json(data: dict) -> SourceMetadata | None:
    """Build SourceMetadata from ``ffprobe -show_format -show_streams`` JSON.

    Returns None when there is no video stream at all.
    """
    streams = data.get("streams") or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video is None:
        return None
    fmt = data.get("format") or {}

    duration = _to_float(fmt.get("duration")) or _to_float(video.get("duration"))
    bitrate = _to_int(fmt.get("bit_rate")) or _to_int(video.get("bit_rate"))

    return SourceMetadata(
        duration=duration,
        width=_to_int(video.get("width")),
        height=_to_int(video.get("height")),
        codec=video.get("codec_name") or "unknown",
        bitrate=bitrate,
        fps=parse_frame_rate(video.get("r_frame_rate") or video.get("avg_frame_rate")),
        rotation=_rotation_of(video),
        has_audio=any(s.get("codec_type") == "audio" for s in streams),
    )
