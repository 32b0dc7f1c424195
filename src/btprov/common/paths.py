"""
btprov - Shared Path Constants

Directory structure:
  /etc/btprov/
    └── config/
        ├── device_name           # Optional: BLE local name to advertise
        ├── credentials_timeout   # Optional: seconds to wait for credentials
        └── scan_timeout          # Optional: seconds to wait for a Wi-Fi scan
"""

from pathlib import Path

BTPROV_ETC_DIR = Path('/etc/btprov')
CONFIG_DIR = BTPROV_ETC_DIR / 'config'

DEVICE_NAME_FILE = CONFIG_DIR / 'device_name'
CREDENTIALS_TIMEOUT_FILE = CONFIG_DIR / 'credentials_timeout'
SCAN_TIMEOUT_FILE = CONFIG_DIR / 'scan_timeout'
