"""Find source images under an input root."""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Set, Tuple

from .errors import DiscoveryError
from .models import DiscoveredImage

logger = logging.getLogger(__name__)

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".tiff", ".webp"}


def is_image(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in IMAGE_EXTS


def _dir_identity(path: Path) -> Tuple[int, int]:
    st = os.stat(path)
    return st.st_dev, st.st_ino


def discover(root: Path, exclude: Iterable[Path] = ()) -> List[DiscoveredImage]:
    """
    Return every image under root, recursing into sub-directories (symlinks included).
    Directories already visited (symlink cycles) and directories in `exclude` are skipped.
    """
    root = Path(root)
    if not root.exists():
        raise DiscoveryError(f"Input directory not found: {root}")
    if not root.is_dir():
        raise DiscoveryError(f"Input path is not a directory: {root}")

    skip: Set[Tuple[int, int]] = set()
    for p in exclude:
        try:
            skip.add(_dir_identity(Path(p)))
        except OSError:
            continue  # not created yet

    found: List[DiscoveredImage] = []
    visited: Set[Tuple[int, int]] = set()
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            ident = _dir_identity(directory)
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            if directory == root:
                raise DiscoveryError(f"Cannot read input directory {root}: {e}") from e
            logger.warning("Skipping unreadable directory %s: %s", directory, e)
            continue
        if ident in visited:
            logger.warning("Skipping %s: directory already visited (symlink cycle)", directory)
            continue
        visited.add(ident)

        subdirs: List[Path] = []
        for entry in entries:
            path = Path(entry.path)
            try:
                is_dir = entry.is_dir()
                is_file = not is_dir and entry.is_file()
                excluded = is_dir and _dir_identity(path) in skip
            except OSError:
                continue
            if is_dir:
                if excluded:
                    logger.debug("Skipping excluded directory %s", path)
                    continue
                subdirs.append(path)
            elif is_file and is_image(entry.name):
                found.append(DiscoveredImage.from_path(path, root))
        # depth-first, name order
        pending.extend(reversed(subdirs))

    return found
