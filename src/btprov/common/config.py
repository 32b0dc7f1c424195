"""
btprov - Configuration

Each setting is resolved from, in order:
1. An environment variable (handy for systemd drop-ins and development)
2. A single-value file under /etc/btprov/config
3. A built-in default
"""

import os
import socket
import logging
from pathlib import Path
from typing import Optional

from . import paths

logger = logging.getLogger(__name__)

DEVICE_NAME_ENV = 'BTPROV_DEVICE_NAME'
CREDENTIALS_TIMEOUT_ENV = 'BTPROV_CREDENTIALS_TIMEOUT'
SCAN_TIMEOUT_ENV = 'BTPROV_SCAN_TIMEOUT'

DEFAULT_CREDENTIALS_TIMEOUT = 600.0  # seconds
DEFAULT_SCAN_TIMEOUT = 30.0  # seconds

# Fixed timing contract for polling loops
POLL_INTERVAL_SECONDS = 1.0
WIRELESS_ENABLED_ATTEMPTS = 10


def _read_setting(env_var: str, path: Path) -> Optional[str]:
    """Return the raw setting value, or None if it is not configured."""
    value = os.environ.get(env_var, '').strip()
    if value:
        return value

    try:
        if path.exists():
            value = path.read_text().strip()
            if value:
                return value
            logger.warning(f"Config file {path} exists but is empty")
    except PermissionError:
        logger.error(f"Permission denied reading {path}")
    except OSError as e:
        logger.warning(f"Error reading config file {path}: {e}")
    return None


def _read_seconds(env_var: str, path: Path, default: float) -> float:
    raw = _read_setting(env_var, path)
    if raw is None:
        return default
    try:
        seconds = float(raw)
    except ValueError:
        logger.warning(f"Invalid value {raw!r} for {env_var}, using default {default}")
        return default
    if seconds <= 0:
        logger.warning(f"Non-positive value {raw!r} for {env_var}, using default {default}")
        return default
    return seconds


def get_device_name() -> str:
    """
    Get the BLE local name to advertise.

    Defaults to "btprov-<hostname>" so multiple devices in range can be told apart.
    """
    name = _read_setting(DEVICE_NAME_ENV, paths.DEVICE_NAME_FILE)
    if name:
        return name
    return f"btprov-{socket.gethostname()}"


def get_credentials_timeout() -> float:
    """Seconds to wait for all credentials to be written over BLE."""
    return _read_seconds(CREDENTIALS_TIMEOUT_ENV, paths.CREDENTIALS_TIMEOUT_FILE, DEFAULT_CREDENTIALS_TIMEOUT)


def get_scan_timeout() -> float:
    """Seconds to wait for NetworkManager to finish a Wi-Fi scan."""
    return _read_seconds(SCAN_TIMEOUT_ENV, paths.SCAN_TIMEOUT_FILE, DEFAULT_SCAN_TIMEOUT)
