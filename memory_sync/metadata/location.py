"""
Reverse geocoding via Nominatim.

Nominatim's usage policy allows at most one request per second per client,
so every call in the process goes through one shared RateLimiter.
"""
import logging
import sqlite3
import threading
import time
from contextlib import closing
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Tuple

import requests

from .. import config
from ..concurrency.scheduler import CancelToken
from ..database.db import DBManager
from ..database.ops import CatalogOps


class RateLimiter:
    """Guarantees at least `min_interval` seconds between consecutive acquisitions."""

    def __init__(self,
                 min_interval: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last: Optional[float] = None

    def wait(self, cancel_token: Optional[CancelToken] = None):
        """
        Blocks until the next acquisition is allowed. With a cancel token the
        pause is interruptible and raises BatchCancelled.
        """
        # The lock is held while sleeping so callers queue up one interval apart
        with self._lock:
            if cancel_token:
                cancel_token.raise_if_cancelled()
            if self._last is not None:
                remaining = self.min_interval - (self._clock() - self._last)
                if remaining > 0:
                    if cancel_token:
                        cancel_token.sleep(remaining)
                    else:
                        self._sleep(remaining)
            self._last = self._clock()


# Shared by every geocoder in the process
NOMINATIM_LIMITER = RateLimiter(config.GEOCODE_MIN_INTERVAL_SEC)


def round_coordinates(lat: float, lon: float, places: int = 3) -> Tuple[float, float]:
    quantum = Decimal(1).scaleb(-places)
    return (
        float(Decimal(str(lat)).quantize(quantum, rounding=ROUND_HALF_UP)),
        float(Decimal(str(lon)).quantize(quantum, rounding=ROUND_HALF_UP)),
    )


class ReverseGeocoder:
    def __init__(self,
                 db_manager: Optional[DBManager] = None,
                 language: str = config.DEFAULT_LANGUAGE,
                 session: Optional[requests.Session] = None,
                 limiter: RateLimiter = NOMINATIM_LIMITER,
                 cancel_token: Optional[CancelToken] = None):
        self.db_manager = db_manager
        self.language = language
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": config.GEOCODE_USER_AGENT})
        self.limiter = limiter
        self.cancel_token = cancel_token

    def reverse_geocode(self, lat: float, lon: float, language: Optional[str] = None) -> Optional[str]:
        """
        Human-readable place name for the coordinates, or None.
        Failures degrade to None and are not retried.
        """
        language = language or self.language
        key_lat, key_lon = round_coordinates(lat, lon)

        cached = self._cached(key_lat, key_lon, language)
        if cached:
            return cached

        self.limiter.wait(self.cancel_token)
        try:
            resp = self.session.get(
                config.NOMINATIM_URL,
                params={
                    "format": "json",
                    "lat": lat,
                    "lon": lon,
                    "accept-language": language,
                },
                timeout=config.GEOCODE_TIMEOUT_SEC,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logging.warning(f"Reverse geocoding failed for ({lat}, {lon}): {e}")
            return None

        name = data.get("display_name") if isinstance(data, dict) else None
        if name:
            self._store(key_lat, key_lon, language, name)
        return name

    def _cached(self, lat: float, lon: float, language: str) -> Optional[str]:
        if not self.db_manager:
            return None
        try:
            with closing(self.db_manager.open_connection()) as conn:
                return CatalogOps(conn).get_cached_location(lat, lon, language)
        except sqlite3.Error as e:
            logging.debug(f"Location cache read failed: {e}")
            return None

    def _store(self, lat: float, lon: float, language: str, name: str):
        if not self.db_manager:
            return
        # Committed on its own connection: the cache outlives any item rollback
        try:
            with closing(self.db_manager.open_connection()) as conn:
                with conn:
                    CatalogOps(conn).cache_location(lat, lon, language, name)
        except sqlite3.Error as e:
            logging.debug(f"Location cache write failed: {e}")
