import hashlib
from pathlib import Path

from .. import config
from ..exceptions import HashError


class FileHasher:
    """
    Content fingerprint used as the upload dedup key.
    Always a full read: renamed or re-copied files must produce the same digest.
    """

    def __init__(self, chunk_size: int = config.HASH_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def compute_hash(self, path: Path) -> str:
        """Streams the file through SHA-256 in fixed-size chunks. Returns the hex digest."""
        h = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                while chunk := f.read(self.chunk_size):
                    h.update(chunk)
        except OSError as e:
            raise HashError(f"Failed to hash {path}: {e}") from e
        return h.hexdigest()
