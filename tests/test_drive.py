from datetime import datetime, timezone

import pytest
from googleapiclient.errors import HttpError

import memory_sync.sync.drive as drive_module
from memory_sync.exceptions import DriveAuthError, DriveTransferError
from memory_sync.models import MediaKind, PendingUpload, SourceDescriptor
from memory_sync.sync.drive import GoogleDriveClient


class FakeResp(dict):
    """httplib2.Response look-alike: a dict of headers with status/reason attributes."""

    def __init__(self, status, reason="error"):
        super().__init__()
        self.status = status
        self.reason = reason


def http_error(status):
    return HttpError(FakeResp(status), b"")


class FakeRequest:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def execute(self):
        if self.error:
            raise self.error
        return self.result


class FakeUploadRequest:
    def __init__(self, outcome):
        self.outcome = outcome

    def next_chunk(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return None, self.outcome


class FakeFiles:
    def __init__(self, pages=None, uploads=None):
        self.pages = list(pages or [])
        self.uploads = list(uploads or [])
        self.list_calls = []
        self.create_calls = []
        self.update_calls = []

    def list(self, **kwargs):
        self.list_calls.append(kwargs)
        return FakeRequest(self.pages.pop(0))

    def create(self, body=None, media_body=None, fields=None):
        self.create_calls.append(body)
        return FakeUploadRequest(self.uploads.pop(0))

    def update(self, fileId=None, body=None, fields=None):
        self.update_calls.append((fileId, body))
        return FakeRequest({"id": fileId})

    def get_media(self, fileId=None):
        return FakeRequest()


class FakeService:
    def __init__(self, files):
        self._files = files

    def files(self):
        return self._files


class FakeMedia:
    def __init__(self, filename, mimetype=None, resumable=False):
        self.filename = filename
        self.mimetype = mimetype


@pytest.fixture(autouse=True)
def no_real_media(monkeypatch):
    monkeypatch.setattr(drive_module, "MediaFileUpload", FakeMedia)


def _client(files, slept=None):
    return GoogleDriveClient(service=FakeService(files), sleep=(slept.append if slept is not None else lambda s: None))


def _pending(tmp_path):
    path = tmp_path / "IMG_0001.jpg"
    path.write_bytes(b"pixels")
    return PendingUpload(
        path=path, name=path.name, kind=MediaKind.PHOTO, mime_type="image/jpeg",
        file_hash="abc123", capture_time=datetime(2023, 6, 15, 3, 0, tzinfo=timezone.utc),
    )


def test_missing_credentials_file(tmp_path):
    with pytest.raises(DriveAuthError):
        GoogleDriveClient(credentials_file=tmp_path / "nope.json")


def test_list_files_paginates_and_skips_folders():
    files = FakeFiles(pages=[
        {"files": [
            {"id": "1", "name": "a.jpg", "mimeType": "image/jpeg", "size": "100"},
            {"id": "2", "name": "Trips", "mimeType": "application/vnd.google-apps.folder"},
        ], "nextPageToken": "page-2"},
        {"files": [
            {"id": "3", "name": "b.mp4", "mimeType": "video/mp4", "size": "2048"},
            {"id": "4", "name": "Notes", "mimeType": "application/vnd.google-apps.document"},
        ]},
    ])

    descriptors = _client(files).list_files("inbox")

    assert descriptors == [
        SourceDescriptor("a.jpg", "image/jpeg", 100, "1"),
        SourceDescriptor("b.mp4", "video/mp4", 2048, "3"),
    ]
    assert files.list_calls[0]["q"] == "'inbox' in parents and trashed=false"
    assert files.list_calls[1]["pageToken"] == "page-2"


def test_list_files_http_error_is_translated():
    class FailingFiles(FakeFiles):
        def list(self, **kwargs):
            return FakeRequest(error=http_error(500))

    with pytest.raises(DriveTransferError):
        _client(FailingFiles()).list_files()


def test_upload_sends_metadata(tmp_path):
    files = FakeFiles(uploads=[{"id": "remote-1"}])
    assert _client(files).upload(_pending(tmp_path), "folder-1") == "remote-1"

    body = files.create_calls[0]
    assert body["name"] == "IMG_0001.jpg"
    assert body["parents"] == ["folder-1"]
    assert body["mimeType"] == "image/jpeg"
    assert body["appProperties"] == {"file_hash": "abc123"}
    assert body["createdTime"] == "2023-06-15T03:00:00+00:00"


def test_upload_retries_rate_limit(tmp_path):
    slept = []
    files = FakeFiles(uploads=[http_error(429), {"id": "remote-1"}])

    assert _client(files, slept).upload(_pending(tmp_path), "folder-1") == "remote-1"
    assert slept == [5.0]
    assert len(files.create_calls) == 2


def test_upload_auth_error_is_not_retried(tmp_path):
    slept = []
    files = FakeFiles(uploads=[http_error(401), {"id": "never"}])

    with pytest.raises(DriveAuthError):
        _client(files, slept).upload(_pending(tmp_path), "folder-1")
    assert slept == []
    assert len(files.create_calls) == 1


def test_upload_gives_up_after_max_attempts(tmp_path):
    slept = []
    files = FakeFiles(uploads=[http_error(500), http_error(503), OSError("connection reset")])

    with pytest.raises(DriveTransferError):
        _client(files, slept).upload(_pending(tmp_path), "folder-1")
    assert slept == [2.0, 4.0]
    assert len(files.create_calls) == 3


def test_delete_moves_to_trash():
    files = FakeFiles()
    _client(files).delete("file-9")
    assert files.update_calls == [("file-9", {"trashed": True})]


def test_delete_by_hash():
    files = FakeFiles(pages=[{"files": [{"id": "a", "name": "x.jpg"}, {"id": "b", "name": "y.jpg"}]}])

    assert _client(files).delete_by_hash("abc123") == 2
    assert "appProperties has { key='file_hash' and value='abc123' }" in files.list_calls[0]["q"]
    assert [fid for fid, _ in files.update_calls] == ["a", "b"]


def test_download_writes_file(monkeypatch, tmp_path):
    class FakeDownloader:
        def __init__(self, fd, request):
            self.fd = fd

        def next_chunk(self):
            self.fd.write(b"remote bytes")
            return None, True

    monkeypatch.setattr(drive_module, "MediaIoBaseDownload", FakeDownloader)
    descriptor = SourceDescriptor("a.jpg", "image/jpeg", 12, "id-1")

    local = _client(FakeFiles()).download(descriptor, tmp_path / "id-1")
    assert local == tmp_path / "id-1" / "a.jpg"
    assert local.read_bytes() == b"remote bytes"


def test_download_failure_removes_partial_file(monkeypatch, tmp_path):
    class FailingDownloader:
        def __init__(self, fd, request):
            self.fd = fd

        def next_chunk(self):
            self.fd.write(b"half")
            raise http_error(404)

    monkeypatch.setattr(drive_module, "MediaIoBaseDownload", FailingDownloader)
    descriptor = SourceDescriptor("a.jpg", "image/jpeg", 12, "id-1")

    with pytest.raises(DriveTransferError):
        _client(FakeFiles()).download(descriptor, tmp_path)
    assert not (tmp_path / "a.jpg").exists()
