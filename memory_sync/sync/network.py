"""
Current Wi-Fi identity, observed with a bounded wait.
"""
import logging
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from .. import config


class WifiState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    FOUND = "found"
    NOT_FOUND = "not_found"
    NOT_CONNECTED = "not_connected"


@dataclass(frozen=True)
class WifiStatus:
    state: WifiState
    ssid: Optional[str] = None

    @classmethod
    def found(cls, ssid: str) -> "WifiStatus":
        return cls(WifiState.FOUND, ssid)

    @property
    def is_definitive(self) -> bool:
        return self.state in (WifiState.FOUND, WifiState.NOT_CONNECTED)


IDLE = WifiStatus(WifiState.IDLE)
LOADING = WifiStatus(WifiState.LOADING)
NOT_FOUND = WifiStatus(WifiState.NOT_FOUND)
NOT_CONNECTED = WifiStatus(WifiState.NOT_CONNECTED)


class NetworkObserver(Protocol):
    def current(self) -> WifiStatus:
        ...


class NmcliObserver:
    """
    Reads the active Wi-Fi SSID with NetworkManager's CLI.
    Connected to Wi-Fi but SSID hidden/unreadable -> NOT_FOUND.
    """

    def __init__(self, nmcli_path: str = "nmcli", timeout: float = 3.0):
        self.nmcli_path = nmcli_path
        self.timeout = timeout

    def current(self) -> WifiStatus:
        cmd = [self.nmcli_path, "-t", "-f", "ACTIVE,SSID", "dev", "wifi"]
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            logging.debug(f"nmcli unavailable: {e}")
            return LOADING
        if proc.returncode != 0:
            return NOT_CONNECTED
        return parse_nmcli_output(proc.stdout)


def parse_nmcli_output(output: str) -> WifiStatus:
    """Parses `nmcli -t -f ACTIVE,SSID dev wifi` lines like 'yes:HomeNet'."""
    for line in output.splitlines():
        active, _, ssid = line.partition(":")
        if active.strip().lower() == "yes":
            ssid = ssid.replace("\\:", ":").strip()
            return WifiStatus.found(ssid) if ssid else NOT_FOUND
    return NOT_CONNECTED


class NetworkGate:
    """
    Polls the observer until it reports FOUND or NOT_CONNECTED, or the wait runs out.
    A timeout yields the last non-definitive status seen.
    """

    def __init__(self,
                 observer: NetworkObserver,
                 timeout: float = config.NETWORK_WAIT_SEC,
                 poll_interval: float = config.NETWORK_POLL_SEC,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.observer = observer
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def await_network(self) -> WifiStatus:
        deadline = self._clock() + self.timeout
        while True:
            status = self.observer.current()
            if status.is_definitive:
                return status
            if self._clock() >= deadline:
                logging.info(f"No definitive network state within {self.timeout}s (last: {status.state.value})")
                return status
            self._sleep(self.poll_interval)
