# vidq/utils/paths.py
import logging
import os
import shutil
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

# Containers ffmpeg can read that people actually hand us
SUPPORTED_EXTENSIONS = frozenset({
    "mp4", "mov", "avi", "mkv", "flv", "wmv", "m4v", "webm",
    "mpg", "mpeg", "3gp", "rmvb", "ogv", "vob", "mts", "m2ts",
    "ts", "m2t", "dv", "dif", "gif", "qt", "rv", "rm",
    "asf", "amv", "m4p", "m4b", "m4r", "f4v", "f4p", "f4a", "f4b",
})

DEFAULT_SUFFIX = "_compressed"


def is_video_file(path: Path) -> bool:
    return path.suffix[1:].lower() in SUPPORTED_EXTENSIONS


def derive_destination(source: Path, output_dir: Path | None = None, suffix: str = DEFAULT_SUFFIX) -> Path:
    """<dir>/<stem><suffix><ext>, where <dir> is output_dir or the source's folder.

    An empty suffix writing into the source folder would overwrite the
    source, so the default suffix is used in that case.
    """
    directory = Path(output_dir) if output_dir else source.parent
    dest = directory / f"{source.stem}{suffix}{source.suffix}"
    if dest.resolve() == source.resolve():
        dest = directory / f"{source.stem}{DEFAULT_SUFFIX}{source.suffix}"
    return dest


def find_video_files(root: Path, recursive: bool = False) -> Iterator[Path]:
    """Supported files under root, in whatever order the filesystem lists them."""
    if recursive:
        for dirpath, _dirnames, filenames in os.walk(root, onerror=lambda e: logger.warning("Skipping %s: %s", e.filename, e.strerror)):
            for name in filenames:
                if is_video_file(p := Path(dirpath) / name):
                    yield p
    else:
        for p in root.iterdir():
            if p.is_file() and is_video_file(p):
                yield p


def free_space(path: Path) -> int | None:
    """Free bytes on the filesystem that holds path (or its nearest existing parent)."""
    probe = Path(path)
    while not probe.exists():
        if probe.parent == probe:
            return None
        probe = probe.parent
    try:
        return shutil.disk_usage(probe).free
    except OSError as e:
        logger.warning("Could not read free space for %s: %s", probe, e)
        return None


def file_size(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except OSError as e:
        logger.warning("Could not read size of %s: %s", path, e)
        return None
