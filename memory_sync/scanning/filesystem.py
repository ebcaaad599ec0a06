import os
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, List, Optional, Set

from .. import config


class DiskScanner:
    """Discovers supported media files under a root directory."""

    def __init__(self, skip_dirs: Optional[Set[Path]] = None):
        self.skip_dirs = skip_dirs or set()

    def discover(self, root: Path, modified_since: Optional[date] = None) -> List[Path]:
        """
        Supported files under root in stable traversal order.
        `modified_since` keeps only files modified on or after that date.
        """
        found = []
        skipped = 0
        for path in self._iter_files(root):
            if not is_supported(path):
                skipped += 1
                continue
            if modified_since and not self._modified_since(path, modified_since):
                continue
            found.append(path)

        logging.info(f"Discovered {len(found)} media files under {root} ({skipped} unsupported ignored)")
        return found

    def _modified_since(self, path: Path, since: date) -> bool:
        try:
            return datetime.fromtimestamp(path.stat().st_mtime).date() >= since
        except OSError:
            return False

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()
            if self.skip_dirs and any(sd == current or sd in current.parents for sd in self.skip_dirs):
                continue

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except (OSError, PermissionError):
                logging.warning(f"Permission denied: {current}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                if e.is_dir(follow_symlinks=False):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False):
                    files.append(Path(e.path))

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f


def is_supported(path: Path) -> bool:
    # macOS resource forks ("._IMG_0001.JPG") carry the media extension but no media
    if path.name.startswith("._"):
        return False
    return path.suffix.lower() in config.SUPPORTED_EXTS
