"""
"Already processed?" checks, run before any expensive per-item work.

Both gates snapshot their universe once per batch. Two identical files seen
for the first time inside the same batch are therefore not caught here; the
catalog's UNIQUE constraints reject the second insert instead.
"""
import logging
from pathlib import Path
from typing import Iterable, List, Set, Tuple

from .database.ops import CatalogOps
from .exceptions import HashError
from .scanning.hasher import FileHasher

ALREADY_EXISTS = "already exists"
ALREADY_UPLOADED = "already uploaded"
SOURCE_MISSING = "source missing"


class NameGate:
    """
    Name-based dedup for imports and drive downloads.
    Approximate by design: renamed or re-encoded copies are not detected.
    """

    def __init__(self, processed_names: Set[str]):
        self._names = frozenset(processed_names)

    @classmethod
    def load(cls, catalog: CatalogOps) -> "NameGate":
        names = catalog.get_all_processed_names()
        logging.info(f"Loaded {len(names)} processed names")
        return cls(names)

    def is_processed(self, name: str) -> bool:
        return name in self._names

    def __len__(self):
        return len(self._names)


class HashGate:
    """Content-hash dedup for uploads. Survives renames."""

    def __init__(self, uploaded_hashes: Set[str], hasher: FileHasher = None):
        self._hashes = frozenset(uploaded_hashes)
        self.hasher = hasher or FileHasher()

    @classmethod
    def load(cls, catalog: CatalogOps, hasher: FileHasher = None) -> "HashGate":
        hashes = catalog.get_all_processed_hashes()
        logging.info(f"Loaded {len(hashes)} uploaded hashes")
        return cls(hashes, hasher)

    def is_processed(self, file_hash: str) -> bool:
        return file_hash in self._hashes

    def filter_pending(self, paths: Iterable[Path]) -> List[Tuple[Path, str]]:
        """
        (path, hash) for every file whose content has not been uploaded yet.
        Files that can no longer be read are left out.
        """
        pending = []
        for path in paths:
            try:
                file_hash = self.hasher.compute_hash(path)
            except HashError as e:
                logging.warning(f"Skip {path.name}: {SOURCE_MISSING} ({e})")
                continue
            if self.is_processed(file_hash):
                logging.debug(f"Skip {path.name}: {ALREADY_UPLOADED}")
                continue
            pending.append((path, file_hash))
        return pending
