"""
Configuration constants and environment settings for memory_sync.
"""
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError

# --- File Type Definitions ---
PHOTO_EXTS = {'.jpg', '.jpeg', '.png', '.heic', '.heif', '.gif', '.webp'}
VIDEO_EXTS = {'.mp4', '.mov', '.avi', '.mkv', '.3gp', '.webm'}
SUPPORTED_EXTS = PHOTO_EXTS | VIDEO_EXTS

# Extension to Kind Mapping ('photo' / 'video')
EXT_TO_KIND = {}
for ext in PHOTO_EXTS: EXT_TO_KIND[ext] = 'photo'
for ext in VIDEO_EXTS: EXT_TO_KIND[ext] = 'video'

EXT_TO_MIME = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.heic': 'image/heic',
    '.heif': 'image/heif',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.mp4': 'video/mp4',
    '.mov': 'video/quicktime',
    '.avi': 'video/x-msvideo',
    '.mkv': 'video/x-matroska',
    '.3gp': 'video/3gpp',
    '.webm': 'video/webm',
}
DEFAULT_MIME = 'application/octet-stream'

# --- Metadata Parsing ---
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]

# --- Hashing ---
HASH_CHUNK_SIZE = 8 * 1024  # 8 KB buffered reads

# --- Concurrency ---
DEFAULT_BATCH_LIMIT = 10
DEFAULT_TOOL_LIMIT = 4

# --- External Tools ---
FFPROBE_TIMEOUT_SEC = 60
FFMPEG_TIMEOUT_SEC = 10
THUMBNAIL_SEEK = "00:00:01"
THUMBNAIL_MIME = "image/jpeg"

# --- Reverse Geocoding ---
NOMINATIM_URL = "https://nominatim.openstreetmap.org/reverse"
GEOCODE_USER_AGENT = "memory-sync/0.1 (personal media catalog)"
GEOCODE_MIN_INTERVAL_SEC = 1.1
GEOCODE_TIMEOUT_SEC = 10
DEFAULT_LANGUAGE = "ja"

# --- Upload ---
NETWORK_WAIT_SEC = 5.0
NETWORK_POLL_SEC = 0.5
UPLOAD_MAX_ATTEMPTS = 3
UPLOAD_RATE_LIMIT_BACKOFF_SEC = 5.0
UPLOAD_RETRY_BACKOFF_SEC = 2.0
WORKER_MAX_RUNS = 3
WORKER_BACKOFF_SEC = 30.0

# --- Organization ---
FOLDER_PATTERN = "{year}/{month:02d}/{kind}"
FAILED_LOG_DIR = "log"

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_path(name: str) -> Optional[Path]:
    raw = os.getenv(name)
    return Path(raw).expanduser() if raw else None


@dataclass
class Settings:
    """
    Runtime settings resolved from the environment (and `.env` via the CLI).
    Only the values a given command needs are validated, see `require`.
    """
    destination_root: Optional[Path] = None
    db_path: Optional[Path] = None
    credentials_file: Optional[Path] = None
    drive_folder_id: Optional[str] = None
    upload_folder_id: Optional[str] = None
    trusted_ssid: Optional[str] = None
    batch_limit: int = DEFAULT_BATCH_LIMIT
    tool_limit: int = DEFAULT_TOOL_LIMIT
    auto_upload: bool = False
    upload_baseline: Optional[date] = None
    language: str = DEFAULT_LANGUAGE
    ffprobe_path: str = "ffprobe"
    ffmpeg_path: str = "ffmpeg"

    @classmethod
    def from_env(cls) -> "Settings":
        baseline = os.getenv("MEMORY_SYNC_UPLOAD_BASELINE")
        try:
            baseline_date = date.fromisoformat(baseline) if baseline else None
        except ValueError:
            raise ConfigurationError(f"MEMORY_SYNC_UPLOAD_BASELINE must be YYYY-MM-DD, got {baseline!r}")

        settings = cls(
            destination_root=_env_path("MEMORY_SYNC_DESTINATION"),
            db_path=_env_path("MEMORY_SYNC_DB"),
            credentials_file=_env_path("GOOGLE_CREDENTIALS_FILE"),
            drive_folder_id=os.getenv("GDRIVE_FOLDER_ID") or None,
            upload_folder_id=os.getenv("GDRIVE_UPLOAD_FOLDER_ID") or None,
            trusted_ssid=os.getenv("MEMORY_SYNC_TRUSTED_SSID") or None,
            batch_limit=_env_int("MEMORY_SYNC_BATCH_LIMIT", DEFAULT_BATCH_LIMIT),
            tool_limit=_env_int("MEMORY_SYNC_TOOL_LIMIT", DEFAULT_TOOL_LIMIT),
            auto_upload=os.getenv("MEMORY_SYNC_AUTO_UPLOAD", "").strip().lower() in _TRUE_VALUES,
            upload_baseline=baseline_date,
            language=os.getenv("MEMORY_SYNC_LANGUAGE", DEFAULT_LANGUAGE),
            ffprobe_path=os.getenv("FFPROBE_PATH", "ffprobe"),
            ffmpeg_path=os.getenv("FFMPEG_PATH", "ffmpeg"),
        )
        settings.validate_limits()
        return settings

    def validate_limits(self):
        if self.batch_limit < 1:
            raise ConfigurationError("Batch limit must be at least 1.")
        if self.tool_limit < 1:
            raise ConfigurationError("Tool limit must be at least 1.")
        # Extraction workers wait on the tool semaphore; more permits than workers is pointless
        if self.tool_limit > self.batch_limit:
            raise ConfigurationError(
                f"Tool limit ({self.tool_limit}) must not exceed batch limit ({self.batch_limit})."
            )

    def require(self, *names: str):
        """Fails fast when a command needs a setting that is not configured."""
        missing = [n for n in names if getattr(self, n, None) in (None, "")]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    def resolved_db_path(self) -> Path:
        if self.db_path:
            return self.db_path
        self.require("destination_root")
        return self.destination_root / "memory_catalog.db"
