# vidq/utils/log.py
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "info", log_file: Path | None = None) -> None:
    """Send vidq logs to stderr and, optionally, a rotating file."""
    root = logging.getLogger()
    root.setLevel(_LEVELS.get(level.casefold(), logging.INFO))
    root.handlers.clear()

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%Y-%m-%dT%H:%M:%S")

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    root.addHandler(console)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        except OSError as e:
            root.warning("File logging disabled, cannot open %s: %s", log_file, e)
        else:
            fh.setFormatter(fmt)
            root.addHandler(fh)
