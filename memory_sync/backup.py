"""
Mirror the local library onto an external drive.
"""
import logging
from pathlib import Path
from typing import Optional, Set

from . import config
from .concurrency.scheduler import CancelToken, map_concurrently
from .concurrency.transaction import TransactionExecutor
from .database.db import DBManager
from .database.ops import CatalogOps
from .dedup import SOURCE_MISSING
from .exceptions import WriteError
from .models import BackupPlan, Skip, Success, UploadOutcome
from .organization.mover import FileMover
from .reporting import BatchReport
from .results import Ok, Err, Result

ALREADY_BACKED_UP = "already backed up"


class BackupService:
    def __init__(self,
                 db_manager: DBManager,
                 executor: Optional[TransactionExecutor] = None,
                 mover: Optional[FileMover] = None,
                 batch_limit: int = config.DEFAULT_BATCH_LIMIT,
                 cancel_token: Optional[CancelToken] = None):
        self.db_manager = db_manager
        self.executor = executor or TransactionExecutor(db_manager)
        self.mover = mover or FileMover()
        self.batch_limit = batch_limit
        self.cancel_token = cancel_token or CancelToken()

    def run(self, local_root: Path, external_root: Path) -> BatchReport:
        """
        Copies every cataloged file under local_root to the same relative
        path under external_root. Errors are counted, never fatal.
        """
        report = BatchReport("backup")
        catalog = CatalogOps(self.db_manager.connect())
        backed_up = catalog.get_all_backup_paths()

        plans = []
        for name, path in catalog.fetch_cataloged_paths():
            if not path.is_relative_to(local_root):
                logging.debug(f"Skipping {name}: outside {local_root}")
                continue
            plans.append(BackupPlan.derive(path, local_root, external_root))

        logging.info(f"Backup: {len(plans)} cataloged files under {local_root}, {len(backed_up)} already recorded")
        map_concurrently(
            plans,
            self.batch_limit,
            lambda plan: self.process(plan, backed_up, report),
            cancel_token=self.cancel_token,
            desc="Backing up",
        )
        if report.cleanup_paths:
            self.mover.remove(report.cleanup_paths)
        report.log_summary()
        return report

    def process(self, plan: BackupPlan, backed_up: Set[str], report: BatchReport) -> UploadOutcome:
        name = plan.source.name
        if str(plan.destination) in backed_up:
            outcome = Skip(ALREADY_BACKED_UP)
        elif not plan.source.exists():
            outcome = Skip(SOURCE_MISSING)
        else:
            result = self.executor.run_isolated(str(plan.source), lambda catalog: self._backup_one(catalog, plan))
            return report.record_result(name, result)
        report.record(name, outcome)
        return outcome

    def _backup_one(self, catalog: CatalogOps, plan: BackupPlan) -> Result:
        try:
            self.mover.place(plan.source, plan.destination, move=False)
        except OSError as e:
            return Err(WriteError(f"Backup copy failed for {plan.source}: {e}", [plan.destination]))
        catalog.record_backup(plan.source, plan.destination)
        return Ok(Success(str(plan.destination)))
