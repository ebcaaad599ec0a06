import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .exceptions import WriteError
from .models import Failure, Skip, Success, UploadOutcome
from .results import Ok, Result, Unmanaged


def to_outcome(result: Result) -> UploadOutcome:
    """Maps an executor result onto Success/Skip/Failure."""
    if isinstance(result, Ok):
        value = result.value
        if isinstance(value, (Success, Skip, Failure)):
            return value
        return Success(str(value))
    return Failure(result.error)


class BatchReport:
    """
    Per-item accounting for one batch. Thread-safe: workers record their
    own outcome as soon as they finish, one log line each.
    """

    def __init__(self, label: str):
        self.label = label
        self.successes: List[Tuple[str, str]] = []
        self.skips: List[Tuple[str, str]] = []
        self.failures: List[Tuple[str, str]] = []
        # Files written by items that were rolled back afterwards
        self.cleanup_paths: List[Path] = []
        self._lock = threading.Lock()

    def record(self, name: str, outcome: UploadOutcome):
        with self._lock:
            if isinstance(outcome, Success):
                self.successes.append((name, outcome.destination))
                logging.info(f"[{self.label}] OK    {name} -> {outcome.destination}")
            elif isinstance(outcome, Skip):
                self.skips.append((name, outcome.reason))
                logging.info(f"[{self.label}] SKIP  {name}: {outcome.reason}")
            else:
                cause = outcome.cause
                self.failures.append((name, str(cause)))
                if isinstance(cause, WriteError):
                    self.cleanup_paths.extend(cause.paths)
                if isinstance(cause, Unmanaged):
                    # Trace was already logged by the executor
                    logging.error(f"[{self.label}] FAIL  {name}: unexpected {type(cause.cause).__name__}")
                else:
                    logging.error(f"[{self.label}] FAIL  {name}: {cause}")

    def record_result(self, name: str, result: Result) -> UploadOutcome:
        outcome = to_outcome(result)
        self.record(name, outcome)
        return outcome

    @property
    def counts(self) -> Tuple[int, int, int]:
        return len(self.successes), len(self.skips), len(self.failures)

    @property
    def failed_names(self) -> List[str]:
        return [name for name, _ in self.failures]

    def log_summary(self):
        ok, skipped, failed = self.counts
        logging.info(f"[{self.label}] Finished: {ok} succeeded, {skipped} skipped, {failed} failed")

    def write_failed_names(self, log_dir: Path, prefix: str = "failed_downloads") -> Optional[Path]:
        """Writes failed item names, one per line, for manual follow-up."""
        if not self.failures:
            return None
        log_dir.mkdir(parents=True, exist_ok=True)
        out = log_dir / f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        with out.open("w", encoding="utf-8") as f:
            for name in self.failed_names:
                f.write(f"{name}\n")
        logging.warning(f"{len(self.failures)} failed items written to {out}")
        return out
