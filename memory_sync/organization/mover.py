import shutil
import logging
import threading
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .. import config
from ..metadata import capture_time as capture_time_resolver
from ..models import MediaKind


class DestinationPlanner:
    """
    Decides where a cataloged file lives: dest_root/YYYY/MM/photo|video/name.
    Safe to call from concurrent workers.
    """

    def __init__(self, dest_root: Path):
        self.dest_root = dest_root
        # Names handed out during this run; the file may not be on disk yet
        self.used_names = defaultdict(set)
        self._lock = threading.Lock()

    def plan(self, file_name: str, kind: MediaKind, capture_time: Optional[datetime]) -> Path:
        """
        Folder date: capture time -> date in the file name -> now.
        Name clashes get a `_N` counter before the extension.
        """
        dt = capture_time or capture_time_resolver.from_file_name(file_name) or datetime.now().astimezone()
        folder = self.dest_root / config.FOLDER_PATTERN.format(
            year=dt.year, month=dt.month, kind=kind.directory_name
        )
        with self._lock:
            return self._resolve_collision(folder, file_name)

    def release(self, path: Path):
        """Forget a reservation whose file was never written."""
        with self._lock:
            self.used_names[path.parent].discard(path.name)

    def _resolve_collision(self, folder: Path, filename: str) -> Path:
        """Ensures filename is unique in the destination folder."""
        stem = Path(filename).stem
        ext = Path(filename).suffix
        candidate = filename
        counter = 1

        while candidate in self.used_names[folder] or (folder / candidate).exists():
            candidate = f"{stem}_{counter}{ext}"
            counter += 1

        self.used_names[folder].add(candidate)
        return folder / candidate


class FileMover:
    def place(self, src: Path, dest: Path, move: bool = False) -> Path:
        """Copies (or moves) src to dest, creating parent folders."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        if move:
            logging.info(f"Move {src.name} -> {dest}")
            shutil.move(str(src), str(dest))
        else:
            logging.info(f"Copy {src.name} -> {dest}")
            shutil.copy2(str(src), str(dest))
        return dest

    def remove(self, paths: Iterable[Path]) -> int:
        """Deletes files left behind by rolled-back items. Returns how many were removed."""
        removed = 0
        for path in paths:
            try:
                path.unlink()
                removed += 1
                logging.info(f"Removed orphaned file {path}")
            except FileNotFoundError:
                continue
            except OSError as e:
                logging.error(f"Failed to remove orphaned file {path}: {e}")
        return removed
