import logging
import threading
from pathlib import Path
from typing import Any, Optional, Tuple

import exifread
from PIL import Image

from .. import config
from ..exceptions import BatchCancelled, ExtractError, UnsupportedMediaError
from ..models import MediaKind, Photo, SourceDescriptor, Video
from ..results import Ok, Err, Result
from . import capture_time
from .location import ReverseGeocoder
from .video import VideoProbe


class MetadataExtractor:
    """
    Builds a Photo or Video record from a file on disk.

    Strategies:
      - Photos: 'exifread' for EXIF/GPS, Pillow for dimensions when EXIF lacks them,
        optional reverse geocoding of the GPS position.
      - Videos: 'ffprobe' JSON for stream facts, 'ffmpeg' for a 1s thumbnail.

    Capture time always goes through the capture_time resolver before the
    record is returned.
    """

    def __init__(self,
                 tool_semaphore: threading.Semaphore,
                 geocoder: Optional[ReverseGeocoder] = None,
                 video_probe: Optional[VideoProbe] = None,
                 ffprobe_path: str = "ffprobe",
                 ffmpeg_path: str = "ffmpeg"):
        self.geocoder = geocoder
        self.video_probe = video_probe or VideoProbe(tool_semaphore, ffprobe_path, ffmpeg_path)

    def extract(self, source: SourceDescriptor, path: Path) -> Result:
        """
        Returns Ok(Photo | Video) or Err(ExtractError).
        Unsupported extensions raise UnsupportedMediaError; callers filter first.
        """
        kind = MediaKind.of(source.name) or MediaKind.of(path.name)
        if kind is None:
            raise UnsupportedMediaError(f"Unsupported media type: {source.name}")

        try:
            if kind == MediaKind.PHOTO:
                return Ok(self._extract_photo(source, path))
            return Ok(self._extract_video(source, path))
        except BatchCancelled:
            raise
        except ExtractError as e:
            logging.warning(f"Metadata extraction failed for {source.name}: {e}")
            return Err(e)
        except Exception as e:
            # One line per failure; corrupt files are routine in large libraries
            logging.warning(f"Metadata extraction failed for {source.name}: {type(e).__name__}: {e}")
            return Err(ExtractError(f"{type(e).__name__}: {e}", path))

    # --- Photos ---

    def _extract_photo(self, source: SourceDescriptor, path: Path) -> Photo:
        with path.open('rb') as f:
            # details=False skips MakerNote parsing, which we never read
            tags = exifread.process_file(f, details=False)

        width = _tag_int(tags, 'EXIF ExifImageWidth')
        height = _tag_int(tags, 'EXIF ExifImageLength')
        if width is None or height is None:
            width, height = self._pillow_size(path)

        lat, lon, alt = self._parse_gps(tags)
        location_name = None
        if lat is not None and lon is not None and (lat, lon) != (0.0, 0.0) and self.geocoder:
            location_name = self.geocoder.reverse_geocode(lat, lon)

        stat = path.stat()
        return Photo(
            name=source.name,
            path=path,
            mime_type=source.mime_type,
            size=stat.st_size,
            capture_time=capture_time.resolve(
                self._parse_exif_date(tags), source.name, path, stat.st_mtime
            ),
            aperture=_tag_float(tags, 'EXIF FNumber'),
            shutter_speed=_tag_str(tags, 'EXIF ExposureTime'),
            iso=_tag_int(tags, 'EXIF ISOSpeedRatings'),
            focal_length=_tag_float(tags, 'EXIF FocalLength'),
            white_balance=_tag_str(tags, 'EXIF WhiteBalance'),
            width=width,
            height=height,
            orientation=_tag_int(tags, 'Image Orientation'),
            latitude=lat,
            longitude=lon,
            altitude=alt,
            device_make=_tag_str(tags, 'Image Make'),
            device_model=_tag_str(tags, 'Image Model'),
            location_name=location_name,
        )

    def _parse_exif_date(self, tags) -> Optional[str]:
        """First parseable EXIF date tag, as the raw string for the resolver."""
        for tag in config.DATE_TAGS:
            if tag in tags and capture_time.parse_exif_datetime(str(tags[tag])):
                return str(tags[tag])
        return None

    def _parse_gps(self, tags) -> Tuple[Optional[float], Optional[float], Optional[float]]:
        lat = _dms_to_decimal(tags.get('GPS GPSLatitude'), tags.get('GPS GPSLatitudeRef'), 'S')
        lon = _dms_to_decimal(tags.get('GPS GPSLongitude'), tags.get('GPS GPSLongitudeRef'), 'W')

        alt = _tag_float(tags, 'GPS GPSAltitude')
        if alt is not None:
            ref = tags.get('GPS GPSAltitudeRef')
            # AltitudeRef 1 = below sea level
            if ref is not None and getattr(ref, 'values', [0]) and ref.values[0] == 1:
                alt = -alt
        return lat, lon, alt

    def _pillow_size(self, path: Path) -> Tuple[Optional[int], Optional[int]]:
        try:
            with Image.open(path) as img:
                return img.size
        except Exception as e:
            logging.debug(f"Pillow could not read dimensions of {path.name}: {e}")
            return None, None

    # --- Videos ---

    def _extract_video(self, source: SourceDescriptor, path: Path) -> Video:
        facts = self.video_probe.probe(path)
        embedded = facts.pop("creation_time", None)
        thumbnail = self.video_probe.thumbnail(path)

        stat = path.stat()
        return Video(
            name=source.name,
            path=path,
            mime_type=source.mime_type,
            size=stat.st_size,
            capture_time=capture_time.resolve(embedded, source.name, path, stat.st_mtime),
            thumbnail=thumbnail,
            thumbnail_mime_type=config.THUMBNAIL_MIME if thumbnail else None,
            **facts,
        )


# --- exifread tag helpers ---

def _first_value(tags, key: str) -> Any:
    tag = tags.get(key)
    if tag is None:
        return None
    values = getattr(tag, 'values', None)
    if isinstance(values, (list, tuple)):
        return values[0] if values else None
    return values


def _ratio_to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _tag_float(tags, key: str) -> Optional[float]:
    value = _first_value(tags, key)
    return _ratio_to_float(value) if value is not None else None


def _tag_int(tags, key: str) -> Optional[int]:
    value = _first_value(tags, key)
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _tag_str(tags, key: str) -> Optional[str]:
    if key not in tags:
        return None
    text = str(tags[key]).strip()
    return text or None


def _dms_to_decimal(coord_tag, ref_tag, negative_ref: str) -> Optional[float]:
    """EXIF degrees/minutes/seconds ratios -> signed decimal degrees."""
    if coord_tag is None:
        return None
    values = getattr(coord_tag, 'values', None) or []
    if len(values) < 3:
        return None
    parts = [_ratio_to_float(v) for v in values[:3]]
    if any(p is None for p in parts):
        return None
    degrees, minutes, seconds = parts
    decimal = degrees + minutes / 60.0 + seconds / 3600.0
    if ref_tag is not None and str(ref_tag).strip().upper() == negative_ref:
        decimal = -decimal
    return decimal
