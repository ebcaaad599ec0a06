"""
Best-guess capture time for a media file.

Priority (first hit wins):
  1. Embedded metadata timestamp (EXIF DateTimeOriginal, ffprobe creation_time, ...)
  2. YYYYMMDD run in the file name       -> noon local time
  3. .../YYYY/MM/... ancestor directories -> 1st of month, noon local time
  4. File modification time              -> local time

Noon keeps the date stable when the value is later shifted across time zones.
"""
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

_FILENAME_DATE = re.compile(r"(\d{4})(\d{2})(\d{2})")
_YEAR_SEGMENT = re.compile(r"^\d{4}$")
_MONTH_SEGMENT = re.compile(r"^\d{2}$")

Timestamp = Union[datetime, str, None]


def resolve(embedded: Timestamp,
            file_name: str,
            file_path: Path,
            modified_time: Union[datetime, float]) -> datetime:
    """Returns an aware datetime in the local zone. Never raises."""
    dt = _from_embedded(embedded)
    if dt is None:
        dt = from_file_name(file_name)
    if dt is None:
        dt = from_directories(file_path)
    if dt is None:
        dt = _from_mtime(modified_time)
    return dt


def from_file_name(file_name: str) -> Optional[datetime]:
    match = _FILENAME_DATE.search(file_name)
    if not match:
        return None
    year, month, day = (int(g) for g in match.groups())
    try:
        return _local_noon(year, month, day)
    except ValueError:
        logging.debug(f"Ignoring invalid date in file name: {file_name}")
        return None


def from_directories(file_path: Path) -> Optional[datetime]:
    """Deepest YYYY/MM ancestor pair wins."""
    parts = list(Path(file_path).parent.parts)
    for idx in range(len(parts) - 2, -1, -1):
        year_part, month_part = parts[idx], parts[idx + 1]
        if not (_YEAR_SEGMENT.match(year_part) and _MONTH_SEGMENT.match(month_part)):
            continue
        try:
            return _local_noon(int(year_part), int(month_part), 1)
        except ValueError:
            continue
    return None


def parse_exif_datetime(value: str) -> Optional[datetime]:
    """Parses EXIF style "YYYY:MM:DD HH:MM:SS". Returns a naive datetime."""
    try:
        dt_str = str(value).strip().replace(':', '-', 2)
        return datetime.strptime(dt_str, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


def parse_flexible_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """
    Handles ISO-8601 (including a trailing 'Z' from ffprobe), 'UTC' suffixes
    and EXIF-style strings with sub-second precision.
    """
    if not dt_str:
        return None

    clean = str(dt_str).replace("UTC", "").strip()
    if clean.endswith("Z"):
        clean = clean[:-1] + "+00:00"

    try:
        return datetime.fromisoformat(clean)
    except ValueError:
        pass

    clean_exif = clean.replace(":", "-", 2)
    if "." in clean_exif:
        clean_exif = clean_exif.split(".")[0]
    try:
        return datetime.strptime(clean_exif, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


def to_local(dt: datetime) -> datetime:
    """Naive values are taken as local wall time; aware values are converted."""
    return dt.astimezone()


def _from_embedded(embedded: Timestamp) -> Optional[datetime]:
    if embedded is None:
        return None
    if isinstance(embedded, datetime):
        return to_local(embedded)
    dt = parse_exif_datetime(embedded) or parse_flexible_datetime(embedded)
    return to_local(dt) if dt else None


def _from_mtime(modified_time: Union[datetime, float]) -> datetime:
    if isinstance(modified_time, datetime):
        return to_local(modified_time)
    return datetime.fromtimestamp(modified_time).astimezone()


def _local_noon(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 12, 0).astimezone()
