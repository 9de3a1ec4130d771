# vidq/workers/info_probe.py
import json
import logging
import subprocess
from pathlib import Path

from ..models.media import SourceMetadata
from ..parsers.ffprobe_info import parse_ffprobe_json

logger = logging.getLogger(__name__)


class MetadataProbe:
    """Reads SourceMetadata with ffprobe. Never raises: failures mean "unavailable"."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 60):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def command(self, path: Path) -> list[str]:
        return [
            self.ffprobe_path, "-v", "quiet",
            "-print_format", "json",
            "-show_format", "-show_streams",
            str(path),
        ]

    def probe(self, path: Path) -> SourceMetadata | None:
        try:
            out = subprocess.check_output(
                self.command(path), stderr=subprocess.DEVNULL, text=True, timeout=self.timeout,
            )
            return parse_ffprobe_json(json.loads(out))
        except FileNotFoundError:
            logger.warning("ffprobe not found at %r; metadata unavailable", self.ffprobe_path)
        except subprocess.CalledProcessError as e:
            logger.warning("ffprobe failed on %s (rc=%s)", path, e.returncode)
        except subprocess.TimeoutExpired:
            logger.warning("ffprobe timed out on %s after %ss", path, self.timeout)
        except (OSError, ValueError) as e:
            logger.warning("Could not read metadata for %s: %s", path, e)
        return None

    __call__ = probe
