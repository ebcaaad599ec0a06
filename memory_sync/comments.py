"""
Import of comments copied out of a shared photo album.

The export is plain text, one block per comment:

    PXL_20230601_101010.jpg So cute!
    second line of the same comment
    Grandma · 1 Jun 2023

The first line starts with the media file name and carries the start of the
comment, following lines continue it, and the "name · date" line closes it.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from . import config
from .concurrency.transaction import TransactionExecutor
from .database.db import DBManager
from .database.ops import CatalogOps
from .models import MediaKind, Skip, Success, UploadOutcome
from .reporting import BatchReport
from .results import Ok, Result

COMMENTER_SEPARATOR = "·"
# Column header the album export puts on its first line
EXPORT_HEADER_PREFIX = "コンテンツの名前"

MEDIA_NOT_CATALOGED = "media not cataloged"
UNKNOWN_MEDIA_TYPE = "unknown media type"


@dataclass(frozen=True)
class ParsedComment:
    file_name: str
    body: str
    commenter_name: str
    date_text: str


def _split_file_name(line: str):
    """(file name, rest of line) at the earliest media extension, or None."""
    lowered = line.lower()
    best = None
    for ext in config.SUPPORTED_EXTS:
        idx = lowered.find(ext)
        if idx == -1:
            continue
        end = idx + len(ext)
        # Earliest match wins
        if best is None or idx < best[0]:
            best = (idx, end)
    if best is None:
        return None
    return line[:best[1]].strip(), line[best[1]:].strip()


def parse_comment_lines(lines: Iterable[str]) -> List[ParsedComment]:
    parsed = []
    file_name = ""
    body = ""

    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(EXPORT_HEADER_PREFIX):
            continue

        if COMMENTER_SEPARATOR in stripped:
            commenter, _, date_text = stripped.partition(COMMENTER_SEPARATOR)
            if file_name:
                parsed.append(ParsedComment(file_name, body.strip(), commenter.strip(), date_text.strip()))
                file_name = ""
                body = ""
            else:
                logging.warning(f"Commenter line without a preceding media line: {stripped}")
            continue

        split = _split_file_name(line)
        if split:
            file_name, body = split
        elif file_name:
            # Continuation of a multi-line comment
            body += "\n" + stripped
        else:
            logging.warning(f"No media file name in line and no open comment: {stripped}")

    return parsed


class CommentImportService:
    """
    Attaches parsed comments to cataloged photos and videos.
    Comments on one media row are numbered 1, 2, ... in import order.
    Unknown commenters are stored without a commenter unless `register_commenters` is set.
    """

    def __init__(self,
                 db_manager: DBManager,
                 executor: Optional[TransactionExecutor] = None,
                 register_commenters: bool = False):
        self.db_manager = db_manager
        self.executor = executor or TransactionExecutor(db_manager)
        self.register_commenters = register_commenters

    def run(self, lines: Iterable[str]) -> BatchReport:
        report = BatchReport("comments")
        comments = parse_comment_lines(lines)
        logging.info(f"Parsed {len(comments)} comments")

        # Sequential: sequence numbers depend on the comments inserted before
        for comment in comments:
            self.process(comment, report)

        report.log_summary()
        return report

    def process(self, comment: ParsedComment, report: BatchReport) -> UploadOutcome:
        name = comment.file_name
        kind = MediaKind.of(name)
        if kind is None:
            outcome = Skip(UNKNOWN_MEDIA_TYPE)
            report.record(name, outcome)
            return outcome

        result = self.executor.run_isolated(name, lambda catalog: self._import_one(catalog, kind, comment))
        return report.record_result(name, result)

    def _import_one(self, catalog: CatalogOps, kind: MediaKind, comment: ParsedComment) -> Result:
        media_id = catalog.find_media_id(kind, comment.file_name)
        if media_id is None:
            return Ok(Skip(MEDIA_NOT_CATALOGED))

        commenter_id = catalog.find_commenter_id(comment.commenter_name)
        if commenter_id is None:
            if self.register_commenters:
                commenter_id = catalog.add_commenter(comment.commenter_name)
                logging.info(f"Registered commenter {comment.commenter_name}")
            else:
                logging.warning(f"Commenter not found: {comment.commenter_name}. Saving without a commenter.")

        seq = catalog.next_comment_seq(kind, media_id)
        catalog.insert_comment(kind, media_id, commenter_id, seq, comment.body, comment.date_text or None)
        return Ok(Success(f"{kind.value}:{media_id}#{seq}"))
