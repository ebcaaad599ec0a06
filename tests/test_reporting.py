from pathlib import Path

from memory_sync.exceptions import ExtractError, WriteError
from memory_sync.models import Failure, Skip, Success
from memory_sync.reporting import BatchReport, to_outcome
from memory_sync.results import Ok, Err, Unmanaged


def test_to_outcome():
    assert to_outcome(Ok(Success("/lib/a.jpg"))) == Success("/lib/a.jpg")
    assert to_outcome(Ok("remote-1")) == Success("remote-1")
    err = ExtractError("bad")
    assert to_outcome(Err(err)) == Failure(err)


def test_report_counts_and_cleanup_paths():
    report = BatchReport("import")
    report.record("a.jpg", Success("/lib/a.jpg"))
    report.record("b.jpg", Skip("already exists"))
    report.record_result("c.jpg", Err(WriteError("insert rejected", [Path("/lib/c.jpg")])))
    report.record_result("d.jpg", Err(Unmanaged("d.jpg", RuntimeError("boom"))))

    assert report.counts == (1, 1, 2)
    assert report.failed_names == ["c.jpg", "d.jpg"]
    assert report.cleanup_paths == [Path("/lib/c.jpg")]


def test_write_failed_names(tmp_path):
    report = BatchReport("download")
    assert report.write_failed_names(tmp_path / "log") is None

    report.record("x.mov", Failure(ExtractError("ffprobe exited with code 1")))
    out = report.write_failed_names(tmp_path / "log")

    assert out.parent == tmp_path / "log"
    assert out.name.startswith("failed_downloads_")
    assert out.read_text(encoding="utf-8") == "x.mov\n"
