"""
Ingestion flows: local directory import and cloud drive download.

Both follow the same shape:
  discover -> name gate (snapshot once) -> bounded fan-out ->
  per-item transaction (extract, place file, catalog insert) -> post-process
"""
import logging
import sqlite3
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import config
from .concurrency.scheduler import CancelToken, map_concurrently
from .concurrency.transaction import TransactionExecutor
from .database.db import DBManager
from .database.ops import CatalogOps
from .dedup import ALREADY_EXISTS, SOURCE_MISSING, NameGate
from .exceptions import DriveError, WriteError
from .metadata.extract import MetadataExtractor
from .models import MediaItem, MediaKind, Skip, SourceDescriptor, Success, UploadOutcome
from .organization.mover import DestinationPlanner, FileMover
from .reporting import BatchReport
from .results import Ok, Err, Result
from .scanning.filesystem import DiskScanner
from .sync.drive import GoogleDriveClient

UNSUPPORTED = "unsupported format"


class PostProcess:
    """Runs after a batch: failed-name log and removal of orphaned files."""

    def __init__(self, log_dir: Path, mover: Optional[FileMover] = None):
        self.log_dir = log_dir
        self.mover = mover or FileMover()

    def finish(self, report: BatchReport, prefix: str = "failed_downloads"):
        if report.cleanup_paths:
            self.mover.remove(report.cleanup_paths)
        report.write_failed_names(self.log_dir, prefix)
        report.log_summary()


class _IngestBase:
    def __init__(self,
                 db_manager: DBManager,
                 extractor: MetadataExtractor,
                 planner: DestinationPlanner,
                 executor: Optional[TransactionExecutor] = None,
                 mover: Optional[FileMover] = None,
                 batch_limit: int = config.DEFAULT_BATCH_LIMIT,
                 cancel_token: Optional[CancelToken] = None):
        self.db_manager = db_manager
        self.extractor = extractor
        self.planner = planner
        self.executor = executor or TransactionExecutor(db_manager)
        self.mover = mover or FileMover()
        self.batch_limit = batch_limit
        self.cancel_token = cancel_token or CancelToken()
        self.post_process = PostProcess(planner.dest_root / config.FAILED_LOG_DIR, self.mover)

    def _load_gate(self) -> NameGate:
        return NameGate.load(CatalogOps(self.db_manager.connect()))

    def _place_and_insert(self,
                          catalog: CatalogOps,
                          item: MediaItem,
                          src: Path,
                          move: bool,
                          source_id: Optional[str] = None) -> Result:
        """Puts the file at its final location and catalogs it. The caller's transaction commits."""
        target = self.planner.plan(item.name, item.kind, item.capture_time)
        try:
            self.mover.place(src, target, move=move)
        except OSError as e:
            self.planner.release(target)
            return Err(WriteError(f"Failed to place {item.name} at {target}: {e}", [target]))

        try:
            catalog.insert(replace(item, path=target), source_id=source_id)
        except sqlite3.IntegrityError as e:
            # Same name cataloged by a sibling in this batch
            return Err(WriteError(f"Catalog rejected {item.name}: {e}", [target]))

        return Ok(Success(str(target)))


class ImportLocalService(_IngestBase):
    """Imports media files from a local directory into the catalog and library."""

    def __init__(self, *args, move: bool = False, scanner: Optional[DiskScanner] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.move = move
        self.scanner = scanner or DiskScanner()

    def run(self, source_root: Path) -> BatchReport:
        report = BatchReport("import")
        paths = self.scanner.discover(source_root)
        gate = self._load_gate()

        map_concurrently(
            paths,
            self.batch_limit,
            lambda path: self.process(path, gate, report),
            cancel_token=self.cancel_token,
            desc="Importing",
        )
        self.post_process.finish(report, prefix="failed_imports")
        return report

    def process(self, path: Path, gate: NameGate, report: BatchReport) -> UploadOutcome:
        name = path.name
        if gate.is_processed(name):
            outcome = Skip(ALREADY_EXISTS)
            report.record(name, outcome)
            return outcome

        try:
            source = SourceDescriptor.from_local(path)
        except OSError as e:
            # Removed or made unreadable after discovery
            logging.warning(f"Skip {name}: {SOURCE_MISSING} ({e})")
            outcome = Skip(SOURCE_MISSING)
            report.record(name, outcome)
            return outcome

        result = self.executor.run_isolated(name, lambda catalog: self._import_one(catalog, source, path))
        return report.record_result(name, result)

    def _import_one(self, catalog: CatalogOps, source: SourceDescriptor, path: Path) -> Result:
        extracted = self.extractor.extract(source, path)
        if isinstance(extracted, Err):
            return extracted
        return self._place_and_insert(catalog, extracted.value, path, move=self.move)


class DriveDownloadService(_IngestBase):
    """
    Pulls new media from a drive folder into the library.
    A drive file is trashed once it is safely cataloged (or was already).
    """

    def __init__(self, *args, drive: GoogleDriveClient, folder_id: str = "root", **kwargs):
        super().__init__(*args, **kwargs)
        self.drive = drive
        self.folder_id = folder_id

    def run(self) -> BatchReport:
        report = BatchReport("download")
        descriptors = self.drive.list_files(self.folder_id)
        gate = self._load_gate()

        with tempfile.TemporaryDirectory(prefix="memory_sync_dl_") as tmp:
            tmp_root = Path(tmp)
            map_concurrently(
                descriptors,
                self.batch_limit,
                lambda d: self.process(d, gate, tmp_root, report),
                cancel_token=self.cancel_token,
                desc="Downloading",
            )
        self.post_process.finish(report)
        return report

    def process(self,
                descriptor: SourceDescriptor,
                gate: NameGate,
                tmp_root: Path,
                report: BatchReport) -> UploadOutcome:
        name = descriptor.name
        if MediaKind.of(name) is None:
            outcome = Skip(UNSUPPORTED)
            report.record(name, outcome)
            return outcome

        if gate.is_processed(name):
            self._trash_quietly(descriptor)
            outcome = Skip(ALREADY_EXISTS)
            report.record(name, outcome)
            return outcome

        result = self.executor.run_isolated(
            name, lambda catalog: self._download_one(catalog, descriptor, tmp_root)
        )
        return report.record_result(name, result)

    def _download_one(self, catalog: CatalogOps, descriptor: SourceDescriptor, tmp_root: Path) -> Result:
        # One temp dir per drive id: two drive files may share a name
        try:
            local = self.drive.download(descriptor, tmp_root / descriptor.external_id)
        except DriveError as e:
            return Err(e)

        extracted = self.extractor.extract(descriptor, local)
        if isinstance(extracted, Err):
            return extracted

        placed = self._place_and_insert(
            catalog, extracted.value, local, move=True, source_id=descriptor.external_id
        )
        if isinstance(placed, Err):
            return placed

        try:
            self.drive.delete(descriptor.external_id)
        except DriveError as e:
            # Keep drive and catalog consistent: undo the insert, remove the placed file
            return Err(WriteError(f"Failed to trash {descriptor.name} on drive: {e}",
                                  [Path(placed.value.destination)]))
        return placed

    def _trash_quietly(self, descriptor: SourceDescriptor):
        try:
            self.drive.delete(descriptor.external_id)
        except DriveError as e:
            logging.warning(f"Could not trash already-imported {descriptor.name} on drive: {e}")

