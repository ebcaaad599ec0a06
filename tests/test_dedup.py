import hashlib

from memory_sync.database.ops import CatalogOps
from memory_sync.dedup import HashGate, NameGate
from memory_sync.scanning.hasher import FileHasher
from memory_sync.sync.uploader import UploadWorker
from conftest import make_photo, make_video


def test_hash_matches_sha256(tmp_path):
    f = tmp_path / "a.jpg"
    f.write_bytes(b"x" * 20000)
    # Chunk size smaller than the file: streaming must not change the digest
    assert FileHasher(chunk_size=1024).compute_hash(f) == hashlib.sha256(b"x" * 20000).hexdigest()


def test_name_gate_snapshot(catalog):
    catalog.insert(make_photo("a.jpg"))
    catalog.insert(make_video("b.mp4"))
    gate = NameGate.load(catalog)

    # Later inserts are not visible to an already loaded gate
    catalog.insert(make_photo("c.jpg"))

    assert len(gate) == 2
    assert gate.is_processed("a.jpg")
    assert gate.is_processed("b.mp4")
    assert not gate.is_processed("c.jpg")


def test_identical_content_under_different_names(tmp_path):
    one = tmp_path / "IMG_0001.jpg"
    two = tmp_path / "copy of IMG_0001.jpg"
    one.write_bytes(b"same bytes")
    two.write_bytes(b"same bytes")

    pending = HashGate(set()).filter_pending([one, two])
    assert [p for p, _ in pending] == [one, two]
    assert pending[0][1] == pending[1][1]


def test_uploaded_content_excluded_from_candidates(tmp_path, db_manager):
    src = tmp_path / "camera"
    src.mkdir()
    (src / "IMG_0001.jpg").write_bytes(b"same bytes")
    (src / "IMG_0001 (1).jpg").write_bytes(b"same bytes")
    (src / "IMG_0002.jpg").write_bytes(b"other bytes")

    digest = hashlib.sha256(b"same bytes").hexdigest()
    conn = db_manager.connect()
    with conn:
        CatalogOps(conn).mark_uploaded(digest, "IMG_0001.jpg", "remote-1")

    worker = UploadWorker(None, db_manager)
    candidates = worker.select_candidates(src)

    assert [c.name for c in candidates] == ["IMG_0002.jpg"]
    assert candidates[0].file_hash == hashlib.sha256(b"other bytes").hexdigest()
    assert candidates[0].mime_type == "image/jpeg"


def test_unreadable_file_is_left_out(tmp_path):
    present = tmp_path / "a.jpg"
    present.write_bytes(b"pixels")
    gone = tmp_path / "b.jpg"

    pending = HashGate(set()).filter_pending([gone, present])
    assert [p for p, _ in pending] == [present]
