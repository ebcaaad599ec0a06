import logging
import threading
from pathlib import Path
from typing import Iterable, Optional

from .backup import BackupService
from .comments import CommentImportService
from .concurrency.scheduler import CancelToken
from .concurrency.transaction import TransactionExecutor
from .config import Settings
from .database.db import DBManager
from .database.ops import CatalogOps
from .ingest import DriveDownloadService, ImportLocalService
from .metadata.extract import MetadataExtractor
from .metadata.location import ReverseGeocoder
from .organization.mover import DestinationPlanner
from .reporting import BatchReport
from .sync.drive import GoogleDriveClient
from .sync.network import NetworkGate, NetworkObserver, NmcliObserver
from .sync.uploader import DriveUploader, UploadWorker


class MemorySyncApp:
    """
    Wires the pipeline together from Settings.
    The tool semaphore is created here and handed to every extractor,
    so subprocess fan-out is bounded per process, not per batch.
    """

    def __init__(self,
                 settings: Settings,
                 drive: Optional[GoogleDriveClient] = None,
                 observer: Optional[NetworkObserver] = None):
        self.settings = settings
        self.db_manager = DBManager(settings.resolved_db_path())
        self.executor = TransactionExecutor(self.db_manager)
        self.cancel_token = CancelToken()
        self.tool_semaphore = threading.Semaphore(settings.tool_limit)
        self._drive = drive
        self._observer = observer

    # --- collaborators ---

    @property
    def drive(self) -> GoogleDriveClient:
        if self._drive is None:
            self.settings.require("credentials_file")
            self._drive = GoogleDriveClient(self.settings.credentials_file)
        return self._drive

    def _extractor(self) -> MetadataExtractor:
        geocoder = ReverseGeocoder(self.db_manager, language=self.settings.language,
                                   cancel_token=self.cancel_token)
        return MetadataExtractor(
            self.tool_semaphore,
            geocoder=geocoder,
            ffprobe_path=self.settings.ffprobe_path,
            ffmpeg_path=self.settings.ffmpeg_path,
        )

    def _planner(self) -> DestinationPlanner:
        self.settings.require("destination_root")
        return DestinationPlanner(self.settings.destination_root)

    # --- flows ---

    def import_local(self, source_root: Path, move: bool = False) -> BatchReport:
        logging.info(f"Importing from {source_root} (Move={move})")
        service = ImportLocalService(
            self.db_manager, self._extractor(), self._planner(),
            executor=self.executor,
            batch_limit=self.settings.batch_limit,
            cancel_token=self.cancel_token,
            move=move,
        )
        return service.run(source_root)

    def download(self) -> BatchReport:
        self.settings.require("drive_folder_id")
        logging.info(f"Downloading from drive folder {self.settings.drive_folder_id}")
        service = DriveDownloadService(
            self.db_manager, self._extractor(), self._planner(),
            executor=self.executor,
            batch_limit=self.settings.batch_limit,
            cancel_token=self.cancel_token,
            drive=self.drive,
            folder_id=self.settings.drive_folder_id,
        )
        return service.run()

    def backup(self, local_root: Path, external_root: Path) -> BatchReport:
        logging.info(f"Backing up {local_root} -> {external_root}")
        service = BackupService(
            self.db_manager,
            executor=self.executor,
            batch_limit=self.settings.batch_limit,
            cancel_token=self.cancel_token,
        )
        return service.run(local_root, external_root)

    def upload(self,
               source_root: Path,
               manual: bool = False,
               target_hashes: Optional[Iterable[str]] = None) -> BatchReport:
        self.settings.require("upload_folder_id")
        uploader = DriveUploader(
            self.drive,
            self.executor,
            NetworkGate(self._observer or NmcliObserver()),
            self.settings.trusted_ssid,
            self.settings.upload_folder_id,
        )
        worker = UploadWorker(
            uploader,
            self.db_manager,
            auto_upload=self.settings.auto_upload,
            baseline=self.settings.upload_baseline,
        )
        return worker.run(source_root, manual=manual, target_hashes=target_hashes)

    def import_comments(self, lines: Iterable[str], register_commenters: bool = False) -> BatchReport:
        service = CommentImportService(
            self.db_manager,
            executor=self.executor,
            register_commenters=register_commenters,
        )
        return service.run(lines)

    def delete_remote(self, file_hash: str) -> int:
        """Trashes every drive copy of this content and forgets it was uploaded."""
        removed = self.drive.delete_by_hash(file_hash)
        conn = self.db_manager.connect()
        with conn:
            forgotten = CatalogOps(conn).forget_uploaded(file_hash)
        logging.info(f"Trashed {removed} drive files for hash {file_hash[:12]} (ledger entry removed: {forgotten})")
        return removed

    def close(self):
        self.db_manager.close()
