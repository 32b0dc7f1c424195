"""
btprov - Logging Configuration

The entry point configures handlers once through setup_service_logging();
library modules only call logging.getLogger(__name__).

BTPROV_LOG_LEVEL (DEBUG, INFO, WARNING, ...) overrides the default level,
which is handy for watching characteristic polls during bring-up.
"""

import os
import logging
from typing import Dict, Optional

LOG_LEVEL_ENV = 'BTPROV_LOG_LEVEL'
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_LOG_LEVEL = logging.INFO


def get_log_level(default: int = DEFAULT_LOG_LEVEL) -> int:
    """Level named by BTPROV_LOG_LEVEL, or default if unset or unknown."""
    name = os.environ.get(LOG_LEVEL_ENV, '').strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    # getLevelName returns "Level X" for names it does not know
    return level if isinstance(level, int) else default


def setup_service_logging(
    service_name: str,
    level: Optional[int] = None,
    log_format: str = DEFAULT_LOG_FORMAT
) -> logging.Logger:
    """
    Configure the root handler and return the service logger.

    Args:
        service_name: Logger name for the entry point (e.g., 'btprov')
        level: Logging level (BTPROV_LOG_LEVEL, then INFO, if not given)
        log_format: Log format string
    """
    if level is None:
        level = get_log_level()
    logging.basicConfig(level=level, format=log_format)
    return logging.getLogger(service_name)


def log_service_start(logger: logging.Logger, service_name: str) -> None:
    logger.info("=" * 60)
    logger.info(f"{service_name} Starting")
    logger.info("=" * 60)


def log_service_ready(logger: logging.Logger, device_name: str, characteristic_uuids: Dict[str, str],
                      service_uuid: str) -> None:
    """
    Log what an installer needs to find us: the advertised name and the
    service and characteristic UUIDs, which are random per run.
    """
    logger.info(f"Ready - advertising as {device_name!r}, service {service_uuid}")
    for role, uuid in characteristic_uuids.items():
        logger.info(f"  {role}: {uuid}")
