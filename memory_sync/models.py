from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, Optional, Union

from . import config


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"

    @property
    def directory_name(self) -> str:
        return self.value

    @classmethod
    def of(cls, name: str) -> Optional["MediaKind"]:
        """Kind derived from the file extension, or None when unsupported."""
        kind = config.EXT_TO_KIND.get(Path(name).suffix.lower())
        return cls(kind) if kind else None


def mime_type_of(name: str) -> str:
    return config.EXT_TO_MIME.get(Path(name).suffix.lower(), config.DEFAULT_MIME)


@dataclass(frozen=True)
class SourceDescriptor:
    """
    Provenance of a file about to be processed.
    `external_id` is the drive file id; None for purely local files.
    """
    name: str
    mime_type: str
    size: int
    external_id: Optional[str] = None

    @classmethod
    def from_drive(cls, file_meta: Dict[str, Any]) -> "SourceDescriptor":
        name = file_meta["name"]
        return cls(
            name=name,
            mime_type=file_meta.get("mimeType") or mime_type_of(name),
            size=int(file_meta.get("size", 0) or 0),
            external_id=file_meta["id"],
        )

    @classmethod
    def from_local(cls, path: Path) -> "SourceDescriptor":
        return cls(
            name=path.name,
            mime_type=mime_type_of(path.name),
            size=path.stat().st_size,
        )


@dataclass(frozen=True)
class MediaItem:
    """
    The canonical processed unit. Concrete records are always `Photo` or `Video`.
    """
    kind: ClassVar[MediaKind]

    name: str
    path: Path
    mime_type: str
    size: int
    capture_time: Optional[datetime]


@dataclass(frozen=True)
class Photo(MediaItem):
    kind: ClassVar[MediaKind] = MediaKind.PHOTO

    aperture: Optional[float] = None
    shutter_speed: Optional[str] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None
    white_balance: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    orientation: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    device_make: Optional[str] = None
    device_model: Optional[str] = None
    location_name: Optional[str] = None


@dataclass(frozen=True)
class Video(MediaItem):
    kind: ClassVar[MediaKind] = MediaKind.VIDEO

    duration_seconds: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    frame_rate: Optional[float] = None
    video_codec: Optional[str] = None
    video_bitrate_kbps: Optional[int] = None
    audio_codec: Optional[str] = None
    audio_bitrate_kbps: Optional[int] = None
    audio_channels: Optional[int] = None
    audio_sample_rate: Optional[int] = None
    thumbnail: Optional[bytes] = None
    thumbnail_mime_type: Optional[str] = None


@dataclass(frozen=True)
class BackupPlan:
    source: Path
    destination: Path

    @classmethod
    def derive(cls, source: Path, local_root: Path, external_root: Path) -> "BackupPlan":
        """Mirrors `source` under `external_root`, keeping its path relative to `local_root`."""
        return cls(source=source, destination=external_root / source.relative_to(local_root))


@dataclass(frozen=True)
class PendingUpload:
    """A locally captured file waiting to be pushed to the drive."""
    path: Path
    name: str
    kind: MediaKind
    mime_type: str
    file_hash: str
    capture_time: Optional[datetime] = None


# --- Item outcomes (transient, used for logging and aggregation) ---

@dataclass(frozen=True)
class Success:
    destination: str


@dataclass(frozen=True)
class Skip:
    reason: str


@dataclass(frozen=True)
class Failure:
    cause: Any


UploadOutcome = Union[Success, Skip, Failure]
