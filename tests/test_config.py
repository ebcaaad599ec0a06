from datetime import date
from pathlib import Path

import pytest

from memory_sync.config import Settings
from memory_sync.exceptions import ConfigurationError
from memory_sync.main import build_settings, parse_args, read_comment_lines

ENV_VARS = [
    "MEMORY_SYNC_DESTINATION", "MEMORY_SYNC_DB", "GOOGLE_CREDENTIALS_FILE", "GDRIVE_FOLDER_ID",
    "GDRIVE_UPLOAD_FOLDER_ID", "MEMORY_SYNC_TRUSTED_SSID", "MEMORY_SYNC_BATCH_LIMIT",
    "MEMORY_SYNC_TOOL_LIMIT", "MEMORY_SYNC_AUTO_UPLOAD", "MEMORY_SYNC_UPLOAD_BASELINE",
    "MEMORY_SYNC_LANGUAGE", "FFPROBE_PATH", "FFMPEG_PATH",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env()
    assert settings.batch_limit == 10
    assert settings.tool_limit == 4
    assert settings.auto_upload is False
    assert settings.trusted_ssid is None
    assert settings.language == "ja"


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MEMORY_SYNC_DESTINATION", str(tmp_path))
    monkeypatch.setenv("GDRIVE_FOLDER_ID", "folder-in")
    monkeypatch.setenv("MEMORY_SYNC_TRUSTED_SSID", "Home")
    monkeypatch.setenv("MEMORY_SYNC_BATCH_LIMIT", "6")
    monkeypatch.setenv("MEMORY_SYNC_TOOL_LIMIT", "2")
    monkeypatch.setenv("MEMORY_SYNC_AUTO_UPLOAD", "Yes")
    monkeypatch.setenv("MEMORY_SYNC_UPLOAD_BASELINE", "2024-03-01")

    settings = Settings.from_env()
    assert settings.destination_root == tmp_path
    assert settings.drive_folder_id == "folder-in"
    assert settings.trusted_ssid == "Home"
    assert (settings.batch_limit, settings.tool_limit) == (6, 2)
    assert settings.auto_upload is True
    assert settings.upload_baseline == date(2024, 3, 1)
    assert settings.resolved_db_path() == tmp_path / "memory_catalog.db"


def test_tool_limit_above_batch_limit(monkeypatch):
    monkeypatch.setenv("MEMORY_SYNC_BATCH_LIMIT", "2")
    monkeypatch.setenv("MEMORY_SYNC_TOOL_LIMIT", "3")
    with pytest.raises(ConfigurationError, match="must not exceed"):
        Settings.from_env()


def test_zero_batch_limit():
    with pytest.raises(ConfigurationError):
        Settings(batch_limit=0).validate_limits()


def test_bad_integer(monkeypatch):
    monkeypatch.setenv("MEMORY_SYNC_BATCH_LIMIT", "ten")
    with pytest.raises(ConfigurationError, match="MEMORY_SYNC_BATCH_LIMIT"):
        Settings.from_env()


def test_bad_baseline(monkeypatch):
    monkeypatch.setenv("MEMORY_SYNC_UPLOAD_BASELINE", "yesterday")
    with pytest.raises(ConfigurationError):
        Settings.from_env()


def test_require_lists_missing():
    settings = Settings(credentials_file=Path("creds.json"))
    settings.require("credentials_file")
    with pytest.raises(ConfigurationError, match="drive_folder_id, upload_folder_id"):
        settings.require("credentials_file", "drive_folder_id", "upload_folder_id")


def test_db_path_needs_destination():
    with pytest.raises(ConfigurationError):
        Settings().resolved_db_path()
    assert Settings(db_path=Path("/tmp/x.db")).resolved_db_path() == Path("/tmp/x.db")


def test_cli_overrides_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MEMORY_SYNC_DESTINATION", "/somewhere/else")
    args = parse_args(["--dest", str(tmp_path), "--db", str(tmp_path / "c.db"), "import-local", "src", "--move"])

    assert args.command == "import-local"
    assert args.move is True
    settings = build_settings(args)
    assert settings.destination_root == tmp_path.resolve()
    assert settings.db_path == tmp_path / "c.db"


def test_cli_upload_hashes():
    args = parse_args(["upload", "camera", "--manual", "--hash", "aa", "--hash", "bb"])
    assert args.manual is True
    assert args.hashes == ["aa", "bb"]


def test_cli_import_comments(tmp_path):
    export = tmp_path / "comments.txt"
    export.write_text("\ufeffa.jpg Nice\nMom · today\n", encoding="utf-8")

    args = parse_args(["import-comments", "--file", str(export), "--add-commenters"])
    assert args.command == "import-comments"
    assert args.add_commenters is True
    # BOM from spreadsheet exports is dropped
    assert read_comment_lines(args.file) == ["a.jpg Nice", "Mom · today"]

    with pytest.raises(ConfigurationError, match="not found"):
        read_comment_lines(tmp_path / "missing.txt")
