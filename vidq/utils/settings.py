# vidq/utils/settings.py
import json
import logging
import os
from pathlib import Path

from ..models.job import JobOptions

logger = logging.getLogger(__name__)


def config_dir() -> Path:
    if env := os.environ.get("VIDQ_CONFIG_DIR"):
        return Path(env)
    return Path.home() / ".config" / "vidq"


def settings_file() -> Path:
    return config_dir() / "settings.json"


DEFAULT_SETTINGS = {
    "ffmpeg_path": "ffmpeg",
    "ffprobe_path": "ffprobe",
    "output_dir": "",                  # empty => next to each source file
    "output_suffix": "_compressed",
    "profile": "default",

    # per-job defaults
    "remove_audio": False,
    "delete_source": False,            # only after a successful encode
    "hardware_acceleration": True,
    "recursive_scan": False,

    # process handling
    "grace_period": 2.0,               # seconds between terminate and kill
    "probe_timeout": 60,

    "history_limit": 100,
    "log_level": "info",
}


def load_settings(path: Path | None = None) -> dict:
    p = path or settings_file()
    if p.exists():
        try:
            data = json.loads(p.read_text())
            if isinstance(data, dict):
                return {**DEFAULT_SETTINGS, **data}
            logger.warning("Ignoring %s: expected a JSON object", p)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", p, e)
    # First run or broken file → write defaults so the file exists
    save_settings(DEFAULT_SETTINGS, p)
    return DEFAULT_SETTINGS.copy()


def save_settings(data: dict, path: Path | None = None) -> None:
    p = path or settings_file()
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(data, indent=2))
    except OSError as e:
        logger.warning("Could not save settings to %s: %s", p, e)


def job_options(settings: dict) -> JobOptions:
    out = settings.get("output_dir") or None
    return JobOptions(
        remove_audio=bool(settings.get("remove_audio", False)),
        delete_source=bool(settings.get("delete_source", False)),
        hardware_acceleration=bool(settings.get("hardware_acceleration", True)),
        output_dir=Path(out).expanduser() if out else None,
        output_suffix=str(settings.get("output_suffix", "_compressed")),
    )
