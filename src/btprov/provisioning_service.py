#!/usr/bin/env python3
"""
btprov - BLE Provisioning Service

Advertises a GATT service that an installer app writes Wi-Fi and cloud
credentials into, then joins the Wi-Fi network with them.

Startup sequence:
1. Check that bluetooth.service and NetworkManager.service are running
2. Initialize D-Bus with GLib main loop integration
3. Find the wireless device and publish the networks it can see
4. Build the GATT service and advertisement and register them with BlueZ
5. Run the main loop; provisioning runs on a worker thread:
   advertise -> wait for credentials -> stop advertising -> connect to Wi-Fi

The main loop exits once provisioning finishes or on SIGTERM/SIGINT. A
failed attempt exits non-zero so systemd can restart us for another try.
"""

import sys
import threading
from typing import Optional

import dbus
import dbus.exceptions
import dbus.mainloop.glib
from gi.repository import GLib

from btprov.ble.bluez import BluezAdapter, BluezPairingClient
from btprov.ble.manager import BluetoothManager, Credentials, new_bluetooth_manager
from btprov.ble.pairing import PairingTrustAutomaton
from btprov.common.config import get_credentials_timeout, get_device_name, get_scan_timeout
from btprov.common.context import Context
from btprov.common.logging_config import (
    log_service_ready,
    log_service_start,
    setup_service_logging,
)
from btprov.common.system import (
    check_required_services,
    get_systemd_notifier,
    setup_glib_watchdog,
    setup_signal_handlers,
)
from btprov.exceptions.btprov_exception import BtprovException
from btprov.exceptions.characteristic_exceptions import InvalidNetworkException
from btprov.network.network_manager import NetworkManagerClient
from btprov.network.provisioning_manager import ProvisioningManager

logger = setup_service_logging('btprov')

SERVICE_NAME = 'btprov BLE Provisioning Service'

# Watchdog interval (should be less than WatchdogSec in service file)
WATCHDOG_INTERVAL = 30

sd_notifier = get_systemd_notifier()


def provision(ctx: Context, bluetooth: BluetoothManager, wifi: ProvisioningManager) -> Credentials:
    """
    Collect credentials over BLE and use them to join Wi-Fi.

    Raises:
        CredentialsException: credentials did not all arrive in time
        WiFiProvisioningException: the Wi-Fi connection attempt failed
        AdvertisementUnavailableException: BlueZ would not start advertising
    """
    bluetooth.accept_incoming_connections()
    sd_notifier.notify("STATUS=Waiting for credentials")
    try:
        credentials = bluetooth.wait_for_credentials(ctx.with_timeout(get_credentials_timeout()))
    finally:
        try:
            bluetooth.reject_incoming_connections()
        except BtprovException as e:
            # Keep the credential wait's own error, if any
            logger.warning(f"Could not stop advertising: {e}")

    sd_notifier.notify(f"STATUS=Connecting to {credentials.get_ssid()}")
    wifi.connect(credentials.get_ssid(), credentials.get_psk(), ctx.with_timeout(get_scan_timeout()))
    sd_notifier.notify(f"STATUS=Connected to {credentials.get_ssid()}")
    return credentials


def run_provisioning(ctx: Context, bluetooth: BluetoothManager, wifi: ProvisioningManager,
                     shutdown_requested: threading.Event) -> Optional[Exception]:
    """
    Run provision() on the worker thread.

    Returns:
        The error that made provisioning fail, or None on success or when
        a requested shutdown cancelled it.
    """
    try:
        provision(ctx, bluetooth, wifi)
    except BtprovException as e:
        logger.error(f"Provisioning failed: {e}")
        error = e
    except Exception as e:
        logger.exception(f"Unexpected error during provisioning: {e}")
        error = e
    else:
        return None

    sd_notifier.notify(f"STATUS=Provisioning failed: {error}")
    if shutdown_requested.is_set():
        return None
    return error


def main():
    log_service_start(logger, SERVICE_NAME)

    ok, failed = check_required_services()
    if not ok:
        logger.error(f"Required system services are not running: {', '.join(failed)}")
        sd_notifier.notify(f"STATUS=Missing services: {', '.join(failed)}")
        sys.exit(1)

    # Provisioning blocks on a worker thread while the main loop dispatches D-Bus
    dbus.mainloop.glib.threads_init()
    dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)

    try:
        bus = dbus.SystemBus()
    except dbus.exceptions.DBusException as e:
        logger.error(f"Failed to connect to system D-Bus: {e}")
        sys.exit(1)

    ctx = Context()
    mainloop = GLib.MainLoop()
    shutdown_requested = threading.Event()

    def shutdown():
        shutdown_requested.set()
        ctx.cancel()
        mainloop.quit()

    setup_signal_handlers(shutdown, logger)

    try:
        wifi = ProvisioningManager(NetworkManagerClient(bus), ctx)
    except (BtprovException, dbus.exceptions.DBusException) as e:
        logger.error(f"Failed to set up WiFi: {e}")
        sd_notifier.notify("STATUS=No usable WiFi device")
        sys.exit(1)

    try:
        networks = wifi.get_available_networks()
    except (InvalidNetworkException, dbus.exceptions.DBusException) as e:
        logger.warning(f"Could not list available networks: {e}")
        networks = []

    device_name = get_device_name()
    logger.info(f"BLE device name: {device_name}")

    try:
        pairing = PairingTrustAutomaton(BluezPairingClient(bus))
        bluetooth = new_bluetooth_manager(BluezAdapter(bus), device_name, pairing=pairing, networks=networks)
    except (BtprovException, dbus.exceptions.DBusException) as e:
        logger.error(f"Failed to set up BLE peripheral: {e}")
        sd_notifier.notify("STATUS=No Bluetooth adapter")
        sys.exit(1)

    result: dict = {'error': None}

    def worker():
        try:
            result['error'] = run_provisioning(ctx, bluetooth, wifi, shutdown_requested)
        finally:
            GLib.idle_add(mainloop.quit)

    worker_thread = threading.Thread(target=worker, name='btprov-provision', daemon=True)
    worker_thread.start()

    setup_glib_watchdog(WATCHDOG_INTERVAL)

    sd_notifier.notify("READY=1")
    sd_notifier.notify(f"STATUS=Advertising as {device_name}")
    log_service_ready(logger, device_name, bluetooth.characteristic_uuids, bluetooth.service_uuid)

    try:
        mainloop.run()
    except Exception as e:
        logger.exception(f"Main loop error: {e}")
    finally:
        ctx.cancel()
        worker_thread.join(timeout=5)
        logger.info("BLE provisioning service stopped")

    if result['error'] is not None:
        sys.exit(1)


if __name__ == '__main__':
    main()
