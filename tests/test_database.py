import sqlite3
from pathlib import Path

import pytest

from memory_sync.database.db import DBManager
from memory_sync.models import MediaKind
from conftest import make_photo, make_video


def test_schema_tables_exist(conn):
    cur = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    tables = {row[0] for row in cur.fetchall()}
    assert {"photos", "videos", "location_cache", "storage_backups", "uploaded_files",
            "commenters", "comments"} <= tables


def test_insert_and_exists_per_kind(catalog):
    catalog.insert(make_photo("a.jpg", latitude=35.0, longitude=139.0, location_name="Tokyo"))
    catalog.insert(make_video("b.mp4", duration_seconds=12.5, video_codec="h264"))

    assert catalog.exists_by_name(MediaKind.PHOTO, "a.jpg")
    assert catalog.exists_by_name(MediaKind.VIDEO, "b.mp4")
    # Kinds live in separate tables
    assert not catalog.exists_by_name(MediaKind.VIDEO, "a.jpg")
    assert not catalog.exists_by_name(MediaKind.PHOTO, "missing.jpg")


def test_insert_stores_columns(conn, catalog):
    photo = make_photo("a.jpg", path=Path("/library/2023/06/photo/a.jpg"), iso=200)
    catalog.insert(photo, source_id="drive-1")

    row = conn.execute("SELECT file_path, size_bytes, iso, capture_time, source_id FROM photos").fetchone()
    assert row[0] == "/library/2023/06/photo/a.jpg"
    assert row[1] == 10
    assert row[2] == 200
    assert row[3] == photo.capture_time.isoformat()
    assert row[4] == "drive-1"


def test_video_thumbnail_blob(conn, catalog):
    catalog.insert(make_video("c.mp4", thumbnail=b"\xff\xd8jpeg", thumbnail_mime_type="image/jpeg"))
    blob, mime = conn.execute("SELECT thumbnail, thumbnail_mime_type FROM videos").fetchone()
    assert bytes(blob) == b"\xff\xd8jpeg"
    assert mime == "image/jpeg"


def test_duplicate_name_rejected(catalog):
    catalog.insert(make_photo("dup.jpg"))
    with pytest.raises(sqlite3.IntegrityError):
        catalog.insert(make_photo("dup.jpg", path=Path("/elsewhere/dup.jpg")))


def test_processed_names_span_both_kinds(catalog):
    catalog.insert(make_photo("a.jpg"))
    catalog.insert(make_video("b.mp4"))
    assert catalog.get_all_processed_names() == {"a.jpg", "b.mp4"}


def test_fetch_cataloged_paths(catalog):
    catalog.insert(make_photo("a.jpg", path=Path("/lib/2023/a.jpg")))
    catalog.insert(make_video("b.mp4", path=Path("/lib/2022/b.mp4")))
    assert catalog.fetch_cataloged_paths() == [
        ("b.mp4", Path("/lib/2022/b.mp4")),
        ("a.jpg", Path("/lib/2023/a.jpg")),
    ]


def test_upload_ledger(catalog):
    assert catalog.get_all_processed_hashes() == set()

    catalog.mark_uploaded("abc123", "a.jpg", "remote-1")
    assert catalog.get_all_processed_hashes() == {"abc123"}
    assert catalog.get_uploaded_remote_id("abc123") == "remote-1"

    with pytest.raises(sqlite3.IntegrityError):
        catalog.mark_uploaded("abc123", "copy.jpg", "remote-2")

    assert catalog.forget_uploaded("abc123") is True
    assert catalog.forget_uploaded("abc123") is False
    assert catalog.get_uploaded_remote_id("abc123") is None


def test_location_cache(catalog):
    assert catalog.get_cached_location(35.681, 139.767, "ja") is None
    catalog.cache_location(35.681, 139.767, "ja", "東京駅")
    assert catalog.get_cached_location(35.681, 139.767, "ja") == "東京駅"
    # Language is part of the key
    assert catalog.get_cached_location(35.681, 139.767, "en") is None


def test_backup_records(catalog):
    catalog.record_backup(Path("/lib/a.jpg"), Path("/ext/a.jpg"))
    catalog.record_backup(Path("/lib/a.jpg"), Path("/ext/a.jpg"))
    assert catalog.get_all_backup_paths() == {"/ext/a.jpg"}


def test_comment_sequence_per_media(catalog):
    photo_id = catalog.insert(make_photo("a.jpg"))
    video_id = catalog.insert(make_video("b.mp4"))
    assert catalog.find_media_id(MediaKind.PHOTO, "a.jpg") == photo_id
    assert catalog.find_media_id(MediaKind.PHOTO, "b.mp4") is None

    assert catalog.find_commenter_id("Grandma") is None
    grandma = catalog.add_commenter("Grandma")
    assert catalog.find_commenter_id("Grandma") == grandma

    assert catalog.next_comment_seq(MediaKind.PHOTO, photo_id) == 1
    catalog.insert_comment(MediaKind.PHOTO, photo_id, grandma, 1, "So cute!")
    catalog.insert_comment(MediaKind.PHOTO, photo_id, None, 2, "Where was this?")
    assert catalog.next_comment_seq(MediaKind.PHOTO, photo_id) == 3
    # Numbering is per media row and kind
    assert catalog.next_comment_seq(MediaKind.VIDEO, video_id) == 1

    assert catalog.fetch_comments(MediaKind.PHOTO, photo_id) == [
        (1, "Grandma", "So cute!"),
        (2, None, "Where was this?"),
    ]

    with pytest.raises(sqlite3.IntegrityError):
        catalog.insert_comment(MediaKind.PHOTO, photo_id, None, 2, "duplicate seq")


def test_db_manager_connections(tmp_path):
    manager = DBManager(tmp_path / "catalog.db")
    shared = manager.connect()
    assert manager.connect() is shared

    other = manager.open_connection()
    try:
        assert other is not shared
        mode = other.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"
    finally:
        other.close()
    manager.close()
