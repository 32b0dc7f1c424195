"""
btprov - System Utilities

systemd integration (notifier, signal handlers, watchdog) and the check
that the system services btprov depends on are running.
"""

import subprocess
import signal
import logging
from typing import Tuple, List, Optional, Callable

import sdnotify

logger = logging.getLogger(__name__)

# Shared systemd notifier instance
_sd_notifier: Optional[sdnotify.SystemdNotifier] = None

DEFAULT_COMMAND_TIMEOUT = 10  # seconds

# BlueZ and NetworkManager must both be running before we can provision
REQUIRED_SYSTEM_SERVICES = [
    'bluetooth.service',
    'NetworkManager.service',
]


def get_systemd_notifier() -> sdnotify.SystemdNotifier:
    """
    Get the shared systemd notifier instance.

    Returns:
        SystemdNotifier instance for communicating with systemd.
    """
    global _sd_notifier
    if _sd_notifier is None:
        _sd_notifier = sdnotify.SystemdNotifier()
    return _sd_notifier


def setup_signal_handlers(on_shutdown: Callable[[], None], service_logger: Optional[logging.Logger] = None) -> None:
    """
    Setup graceful shutdown signal handlers for SIGTERM and SIGINT.

    Args:
        on_shutdown: Callback invoked when shutdown is requested. It should
                     cancel outstanding work and quit the main loop.
        service_logger: Optional logger to use for the shutdown message.
    """
    log = service_logger or logger

    def shutdown_handler(signum, frame):
        sig_name = 'SIGTERM' if signum == signal.SIGTERM else 'SIGINT'
        log.info(f"Received {sig_name}, initiating graceful shutdown")
        on_shutdown()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)


def setup_glib_watchdog(interval_seconds: int = 30) -> None:
    """
    Setup systemd watchdog pinging using a GLib timeout.

    Must be called before the GLib main loop starts.
    """
    from gi.repository import GLib

    notifier = get_systemd_notifier()

    def ping_watchdog() -> bool:
        notifier.notify("WATCHDOG=1")
        return True  # Keep the timeout active

    GLib.timeout_add_seconds(interval_seconds, ping_watchdog)
    logger.debug(f"Configured GLib watchdog ping every {interval_seconds}s")


def check_service_active(service_name: str) -> bool:
    """
    Check if a systemd service is currently active.

    Args:
        service_name: Name of the service (e.g., 'bluetooth.service')

    Returns:
        True if service is active.
    """
    try:
        result = subprocess.run(
            ['systemctl', 'is-active', service_name],
            capture_output=True,
            text=True,
            timeout=DEFAULT_COMMAND_TIMEOUT
        )
        return result.stdout.strip() == 'active'

    except subprocess.TimeoutExpired:
        logger.warning(f"Timeout checking {service_name}")
        return False
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Error checking {service_name}: {e}")
        return False


def check_required_services() -> Tuple[bool, List[str]]:
    """
    Check if all required system services are running.

    Returns:
        Tuple of (all_running, list_of_failed_services)
    """
    failed_services = []

    for service in REQUIRED_SYSTEM_SERVICES:
        if not check_service_active(service):
            logger.warning(f"Required service {service} is not active")
            failed_services.append(service)

    return len(failed_services) == 0, failed_services
