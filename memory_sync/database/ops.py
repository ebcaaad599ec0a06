import sqlite3
import logging
from dataclasses import fields
from datetime import datetime, UTC
from pathlib import Path
from typing import Optional, List, Set, Tuple

from ..models import MediaItem, MediaKind

TABLE_FOR_KIND = {
    MediaKind.PHOTO: "photos",
    MediaKind.VIDEO: "videos",
}

# Dataclass field -> column, where they differ
_RENAMED_COLUMNS = {
    "path": "file_path",
    "size": "size_bytes",
}


class CatalogOps:
    """
    Catalog reads and writes on one connection.
    Transactions are owned by the caller (TransactionExecutor or batch code).
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Media catalog ---

    def exists_by_name(self, kind: MediaKind, name: str) -> bool:
        table = TABLE_FOR_KIND[kind]
        cur = self.conn.execute(f"SELECT 1 FROM {table} WHERE name = ? LIMIT 1", (name,))
        return cur.fetchone() is not None

    def insert(self, item: MediaItem, source_id: Optional[str] = None) -> int:
        """Inserts a Photo or Video row. A duplicate name raises sqlite3.IntegrityError."""
        table = TABLE_FOR_KIND[item.kind]
        columns = []
        values = []
        for f in fields(item):
            value = getattr(item, f.name)
            if isinstance(value, Path):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            columns.append(_RENAMED_COLUMNS.get(f.name, f.name))
            values.append(value)

        columns += ["source_id", "created_at"]
        values += [source_id, datetime.now(UTC).isoformat()]

        placeholders = ", ".join("?" for _ in columns)
        cur = self.conn.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            values,
        )
        if cur.lastrowid is None:
            raise RuntimeError("Database INSERT failed to return a row ID.")
        logging.debug(f"Cataloged {item.kind.value} {item.name} (id={cur.lastrowid})")
        return cur.lastrowid

    def get_all_processed_names(self) -> Set[str]:
        cur = self.conn.execute("SELECT name FROM photos UNION SELECT name FROM videos")
        return {row[0] for row in cur.fetchall()}

    def fetch_cataloged_paths(self) -> List[Tuple[str, Path]]:
        """(name, file_path) for every cataloged photo and video."""
        cur = self.conn.execute("""
            SELECT name, file_path FROM photos
            UNION ALL
            SELECT name, file_path FROM videos
            ORDER BY file_path
        """)
        return [(name, Path(path)) for name, path in cur.fetchall()]

    # --- Upload ledger ---

    def get_all_processed_hashes(self) -> Set[str]:
        cur = self.conn.execute("SELECT file_hash FROM uploaded_files")
        return {row[0] for row in cur.fetchall()}

    def mark_uploaded(self, file_hash: str, name: str, remote_id: str):
        self.conn.execute("""
            INSERT INTO uploaded_files (file_hash, name, remote_id, uploaded_at)
            VALUES (?, ?, ?, ?)
        """, (file_hash, name, remote_id, datetime.now(UTC).isoformat()))

    def get_uploaded_remote_id(self, file_hash: str) -> Optional[str]:
        cur = self.conn.execute("SELECT remote_id FROM uploaded_files WHERE file_hash = ?", (file_hash,))
        row = cur.fetchone()
        return row[0] if row else None

    def forget_uploaded(self, file_hash: str) -> bool:
        cur = self.conn.execute("DELETE FROM uploaded_files WHERE file_hash = ?", (file_hash,))
        return cur.rowcount > 0

    # --- Location cache ---

    def get_cached_location(self, lat: float, lon: float, language: str) -> Optional[str]:
        cur = self.conn.execute("""
            SELECT display_name FROM location_cache
            WHERE latitude = ? AND longitude = ? AND language = ?
        """, (lat, lon, language))
        row = cur.fetchone()
        return row[0] if row else None

    def cache_location(self, lat: float, lon: float, language: str, display_name: str):
        self.conn.execute("""
            INSERT OR REPLACE INTO location_cache (latitude, longitude, language, display_name, cached_at)
            VALUES (?, ?, ?, ?, ?)
        """, (lat, lon, language, display_name, datetime.now(UTC).isoformat()))

    # --- External drive backups ---

    def get_all_backup_paths(self) -> Set[str]:
        cur = self.conn.execute("SELECT backup_path FROM storage_backups")
        return {row[0] for row in cur.fetchall()}

    def record_backup(self, source: Path, backup: Path):
        self.conn.execute("""
            INSERT OR REPLACE INTO storage_backups (backup_path, source_path, backed_up_at)
            VALUES (?, ?, ?)
        """, (str(backup), str(source), datetime.now(UTC).isoformat()))

    # --- Comments ---

    def find_media_id(self, kind: MediaKind, name: str) -> Optional[int]:
        table = TABLE_FOR_KIND[kind]
        cur = self.conn.execute(f"SELECT id FROM {table} WHERE name = ?", (name,))
        row = cur.fetchone()
        return row[0] if row else None

    def find_commenter_id(self, name: str) -> Optional[int]:
        cur = self.conn.execute("SELECT id FROM commenters WHERE name = ?", (name,))
        row = cur.fetchone()
        return row[0] if row else None

    def add_commenter(self, name: str) -> int:
        cur = self.conn.execute(
            "INSERT INTO commenters (name, created_at) VALUES (?, ?)",
            (name, datetime.now(UTC).isoformat()),
        )
        return cur.lastrowid

    def next_comment_seq(self, kind: MediaKind, media_id: int) -> int:
        """1 for the first comment on a media row, then max + 1."""
        cur = self.conn.execute(
            "SELECT MAX(comment_seq) FROM comments WHERE media_kind = ? AND media_id = ?",
            (kind.value, media_id),
        )
        current = cur.fetchone()[0]
        return (current or 0) + 1

    def insert_comment(self,
                       kind: MediaKind,
                       media_id: int,
                       commenter_id: Optional[int],
                       comment_seq: int,
                       body: str,
                       commented_on: Optional[str] = None) -> int:
        cur = self.conn.execute("""
            INSERT INTO comments (media_kind, media_id, commenter_id, comment_seq, body, commented_on, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (kind.value, media_id, commenter_id, comment_seq, body, commented_on, datetime.now(UTC).isoformat()))
        return cur.lastrowid

    def fetch_comments(self, kind: MediaKind, media_id: int) -> List[Tuple[int, Optional[str], str]]:
        """(comment_seq, commenter name, body) in sequence order."""
        cur = self.conn.execute("""
            SELECT c.comment_seq, p.name, c.body
            FROM comments c LEFT JOIN commenters p ON p.id = c.commenter_id
            WHERE c.media_kind = ? AND c.media_id = ?
            ORDER BY c.comment_seq
        """, (kind.value, media_id))
        return cur.fetchall()
