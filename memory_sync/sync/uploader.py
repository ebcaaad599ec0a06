"""
Upload of locally captured media, gated on a trusted Wi-Fi network.

Default posture is "do not transfer": a byte only leaves the machine when
the network is known, a trusted SSID is configured, and the two match.
"""
import logging
import time
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

from .. import config
from ..concurrency.transaction import TransactionExecutor
from ..database.db import DBManager
from ..database.ops import CatalogOps
from ..dedup import SOURCE_MISSING, HashGate
from ..exceptions import DriveAuthError, DriveError
from ..metadata import capture_time
from ..models import Failure, MediaKind, PendingUpload, Skip, Success, mime_type_of
from ..reporting import BatchReport
from ..results import Ok, Err, Result, Unmanaged
from ..scanning.filesystem import DiskScanner
from ..scanning.hasher import FileHasher
from .drive import GoogleDriveClient
from .network import NetworkGate, WifiState


class WorkResult(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"      # try the whole attempt again later
    FAILURE = "failure"  # terminal for this item


class DriveUploader:
    def __init__(self,
                 drive: GoogleDriveClient,
                 executor: TransactionExecutor,
                 gate: NetworkGate,
                 trusted_ssid: Optional[str],
                 folder_id: str):
        self.drive = drive
        self.executor = executor
        self.gate = gate
        self.trusted_ssid = trusted_ssid
        self.folder_id = folder_id

    def check_network(self) -> Optional[WorkResult]:
        """None when uploads may proceed, otherwise the result to report."""
        if not self.trusted_ssid:
            logging.error("No trusted SSID configured; uploads are disabled until one is set.")
            return WorkResult.FAILURE

        status = self.gate.await_network()
        if status.state != WifiState.FOUND:
            logging.info(f"Network not ready ({status.state.value}); will retry later.")
            return WorkResult.RETRY

        if status.ssid != self.trusted_ssid:
            logging.info(f"Connected to untrusted network '{status.ssid}'; waiting for '{self.trusted_ssid}'.")
            return WorkResult.RETRY

        return None

    def upload(self, pending: PendingUpload) -> WorkResult:
        blocked = self.check_network()
        if blocked is not None:
            return blocked

        result = self.executor.run_isolated(pending.name, lambda catalog: self._transfer(catalog, pending))
        if isinstance(result, Ok):
            return WorkResult.SUCCESS

        error = result.error
        if isinstance(error, DriveAuthError):
            logging.error(f"Drive rejected our credentials while uploading {pending.name}: {error}. "
                          f"Re-authorize before the next run.")
        elif not isinstance(error, Unmanaged):
            logging.error(f"Upload of {pending.name} failed: {error}")
        return WorkResult.FAILURE

    def _transfer(self, catalog: CatalogOps, pending: PendingUpload) -> Result:
        try:
            remote_id = self.drive.upload(pending, self.folder_id)
        except DriveError as e:
            return Err(e)
        catalog.mark_uploaded(pending.file_hash, pending.name, remote_id)
        return Ok(remote_id)


class UploadWorker:
    """
    One upload run: select candidates, push them one by one, and re-run with
    backoff while the network asks us to retry.
    """

    def __init__(self,
                 uploader: DriveUploader,
                 db_manager: DBManager,
                 auto_upload: bool = False,
                 baseline: Optional[date] = None,
                 hasher: Optional[FileHasher] = None,
                 scanner: Optional[DiskScanner] = None,
                 max_runs: int = config.WORKER_MAX_RUNS,
                 backoff: float = config.WORKER_BACKOFF_SEC,
                 sleep: Callable[[float], None] = time.sleep):
        self.uploader = uploader
        self.db_manager = db_manager
        self.auto_upload = auto_upload
        self.baseline = baseline
        self.hasher = hasher or FileHasher()
        self.scanner = scanner or DiskScanner()
        self.max_runs = max_runs
        self.backoff = backoff
        self._sleep = sleep

    def select_candidates(self,
                          source_root: Path,
                          target_hashes: Optional[Set[str]] = None,
                          settled: Optional[Set[str]] = None) -> List[PendingUpload]:
        """
        Supported files under source_root modified since the baseline whose
        content has not been uploaded yet. `target_hashes` narrows a manual run;
        `settled` holds hashes that already reached a final outcome in this run.
        """
        paths = self.scanner.discover(source_root, modified_since=self.baseline)
        gate = HashGate.load(CatalogOps(self.db_manager.connect()), self.hasher)

        candidates = []
        for path, file_hash in gate.filter_pending(paths):
            if target_hashes and file_hash not in target_hashes:
                continue
            if settled and file_hash in settled:
                continue
            try:
                candidates.append(self._pending(path, file_hash))
            except OSError as e:
                logging.warning(f"Skip {path.name}: {SOURCE_MISSING} ({e})")

        logging.info(f"{len(candidates)} files pending upload")
        return candidates

    def run(self,
            source_root: Path,
            manual: bool = False,
            target_hashes: Optional[Iterable[str]] = None) -> BatchReport:
        report = BatchReport("upload")
        if not manual and not self.auto_upload:
            logging.info("Automatic upload is disabled; nothing to do.")
            return report

        targets = set(target_hashes) if target_hashes else None
        settled: Set[str] = set()
        waiting: List[PendingUpload] = []
        for run_no in range(1, self.max_runs + 1):
            candidates = self.select_candidates(source_root, targets, settled)
            waiting = self._run_once(candidates, report, settled)
            if not waiting:
                break
            if run_no < self.max_runs:
                delay = self.backoff * (2 ** (run_no - 1))
                logging.info(f"Upload run {run_no}/{self.max_runs} asked for retry; next run in {delay:.0f}s")
                self._sleep(delay)

        for pending in waiting:
            report.record(pending.name, Skip("waiting for trusted network"))
        report.log_summary()
        return report

    def _run_once(self,
                  candidates: List[PendingUpload],
                  report: BatchReport,
                  settled: Set[str]) -> List[PendingUpload]:
        """
        Uploads candidates in order. Returns the items left when a retry was requested.
        Hashes that end in success or terminal failure are added to `settled`.
        """
        if not candidates:
            return []

        blocked = self.uploader.check_network()
        if blocked == WorkResult.FAILURE:
            for pending in candidates:
                report.record(pending.name, Failure("no trusted SSID configured"))
                settled.add(pending.file_hash)
            return []
        if blocked == WorkResult.RETRY:
            return candidates

        for idx, pending in enumerate(candidates):
            result = self.uploader.upload(pending)
            if result == WorkResult.RETRY:
                # Network conditions apply to every remaining item alike
                return candidates[idx:]
            if result == WorkResult.SUCCESS:
                report.record(pending.name, Success(f"drive:{self.uploader.folder_id}"))
            else:
                report.record(pending.name, Failure("upload failed"))
            settled.add(pending.file_hash)
        return []

    def _pending(self, path: Path, file_hash: str) -> PendingUpload:
        stat = path.stat()
        return PendingUpload(
            path=path,
            name=path.name,
            kind=MediaKind.of(path.name),
            mime_type=mime_type_of(path.name),
            file_hash=file_hash,
            capture_time=capture_time.resolve(None, path.name, path, stat.st_mtime),
        )
