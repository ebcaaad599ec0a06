import pytest
import sqlite3
from datetime import datetime
from pathlib import Path

from memory_sync.database.db import DBManager
from memory_sync.database.ops import CatalogOps
from memory_sync.database.schema import init_schema
from memory_sync.models import Photo, Video


@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def catalog(conn):
    """Returns a CatalogOps instance attached to the in-memory DB."""
    return CatalogOps(conn)


@pytest.fixture
def db_manager(tmp_path):
    """
    File-backed catalog. Per-item transactions open their own connections,
    which cannot share an in-memory database.
    """
    manager = DBManager(tmp_path / "catalog.db")
    manager.connect()
    try:
        yield manager
    finally:
        manager.close()


def count_rows(db_manager: DBManager, table: str) -> int:
    """Counts committed rows through a fresh connection."""
    c = db_manager.open_connection()
    try:
        return c.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        c.close()


def make_photo(name: str = "img.jpg", path: Path = None, **kwargs) -> Photo:
    fields = dict(
        name=name,
        path=path or Path("/library") / name,
        mime_type="image/jpeg",
        size=10,
        capture_time=datetime(2023, 6, 15, 12, 0).astimezone(),
    )
    fields.update(kwargs)
    return Photo(**fields)


def make_video(name: str = "clip.mp4", path: Path = None, **kwargs) -> Video:
    fields = dict(
        name=name,
        path=path or Path("/library") / name,
        mime_type="video/mp4",
        size=100,
        capture_time=datetime(2023, 6, 15, 12, 0).astimezone(),
    )
    fields.update(kwargs)
    return Video(**fields)
