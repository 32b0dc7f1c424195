"""
Wi-Fi provisioning manager.

Joins the network named in the credentials through NetworkManager:

    DISCOVERING -> WIRELESS_ENABLED -> SCANNING -> SCAN_COMPLETE
        -> CONNECTING -> CONNECTED | FAILED

Device discovery happens once at construction. connect() makes exactly one
attempt; retrying is up to the caller.

Scan completion is only observable as a change to the device's LastScan
property, so the subscription is made before RequestScan and the wait ends
on the first LastScan change that arrives.
"""

import logging
import queue
import threading
from enum import Enum
from typing import Any, Dict, List, Optional

from btprov.ble.characteristic import AvailableWiFiNetwork
from btprov.common.config import POLL_INTERVAL_SECONDS, WIRELESS_ENABLED_ATTEMPTS
from btprov.common.context import Context
from btprov.exceptions.wifi_exceptions import (
    AccessPointNotFoundException,
    WiFiProvisioningException,
    WirelessDeviceNotFoundException,
    WirelessNotEnabledException,
)
from btprov.network.models import NM_WIRELESS_INTERFACE, AccessPoint, NetworkDevice

logger = logging.getLogger(__name__)

# Longest the scan wait blocks between cancellation checks
SCAN_WAIT_SLICE = 0.1


class ProvisioningState(Enum):
    DISCOVERING = 'discovering'
    WIRELESS_ENABLED = 'wireless_enabled'
    SCANNING = 'scanning'
    SCAN_COMPLETE = 'scan_complete'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    FAILED = 'failed'


def build_connection_settings(ssid: str, psk: str) -> Dict[str, Dict[str, Any]]:
    """WPA-PSK infrastructure profile with automatic IPv4 and IPv6 left unconfigured."""
    return {
        'connection': {
            'id': ssid,
            'type': '802-11-wireless',
        },
        '802-11-wireless': {
            'ssid': ssid.encode('utf-8'),
            'mode': 'infrastructure',
        },
        '802-11-wireless-security': {
            'key-mgmt': 'wpa-psk',
            'psk': psk,
        },
        'ipv4': {
            'method': 'auto',
        },
        'ipv6': {
            'method': 'ignore',
        },
    }


class ProvisioningManager:

    def __init__(
        self,
        client,
        ctx: Optional[Context] = None,
        wireless_enabled_attempts: int = WIRELESS_ENABLED_ATTEMPTS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        """
        Enable wireless and pick the first Wi-Fi device.

        Args:
            client: NetworkManagerClient (or a stand-in with the same methods)
            ctx: Cancels the wait for wireless to come up
            wireless_enabled_attempts: How many times to check WirelessEnabled
            poll_interval: Seconds between WirelessEnabled checks

        Raises:
            WirelessNotEnabledException: wireless never reported enabled
            WirelessDeviceNotFoundException: there is no Wi-Fi device
        """
        self._client = client
        self._lock = threading.Lock()
        self.state = ProvisioningState.DISCOVERING

        self._enable_wireless(ctx or Context(), wireless_enabled_attempts, poll_interval)
        self._set_state(ProvisioningState.WIRELESS_ENABLED)

        self.device = self._find_wireless_device()
        logger.info(f"Using wireless device {self.device.interface}")

    def _set_state(self, state: ProvisioningState) -> None:
        with self._lock:
            self.state = state
        logger.debug(f"Provisioning state: {state.value}")

    def _enable_wireless(self, ctx: Context, attempts: int, poll_interval: float) -> None:
        self._client.set_wireless_enabled(True)
        for attempt in range(attempts):
            if self._client.get_wireless_enabled():
                logger.info("Wireless is enabled")
                return
            logger.debug(f"Wireless not enabled yet (attempt {attempt + 1}/{attempts})")
            if attempt < attempts - 1 and not ctx.wait(poll_interval):
                break
        raise WirelessNotEnabledException(f"wireless not enabled after {attempts} attempts")

    def _find_wireless_device(self) -> NetworkDevice:
        wireless = None
        for device in self._client.get_devices():
            if device.is_wireless:
                logger.info(f"Found wifi device {device.interface}")
                if wireless is None:
                    wireless = device
            else:
                logger.info(f"Found {device.kind} device {device.interface}")
        if wireless is None:
            raise WirelessDeviceNotFoundException()
        return wireless

    def connect(self, ssid: str, psk: str, ctx: Optional[Context] = None) -> None:
        """
        Scan, find the access point for ssid and activate a connection to it.

        Raises:
            WiFiProvisioningException: a step failed. ``step`` names it and
                the original error is chained. A missing network surfaces as
                an AccessPointNotFoundException cause.
        """
        ctx = ctx or Context()
        try:
            self._connect(ssid, psk, ctx)
        except WiFiProvisioningException as e:
            self._set_state(ProvisioningState.FAILED)
            logger.error(f"WiFi provisioning failed: {e}")
            raise
        self._set_state(ProvisioningState.CONNECTED)
        logger.info(f"Connected to {ssid}")

    def _connect(self, ssid: str, psk: str, ctx: Context) -> None:
        try:
            self._client.set_managed(self.device, True)
        except Exception as e:
            raise WiFiProvisioningException("set device managed", e) from e

        try:
            baseline = self._client.get_last_scan(self.device)
        except Exception as e:
            raise WiFiProvisioningException("read last scan", e) from e

        events: queue.Queue = queue.Queue()

        def on_properties_changed(interface, changed, invalidated=None):
            events.put((str(interface), dict(changed)))

        try:
            match = self._client.subscribe_device_properties(self.device, on_properties_changed)
        except Exception as e:
            raise WiFiProvisioningException("subscribe to device properties", e) from e

        try:
            self._set_state(ProvisioningState.SCANNING)
            try:
                self._client.request_scan(self.device)
            except Exception as e:
                raise WiFiProvisioningException("request scan", e) from e
            logger.info(f"Requested scan (last scan {baseline})")

            try:
                self._wait_for_scan(events, ctx)
            except Exception as e:
                raise WiFiProvisioningException("wait for scan", e) from e
        finally:
            match.remove()
        self._set_state(ProvisioningState.SCAN_COMPLETE)

        try:
            access_point = self._find_access_point(ssid)
        except Exception as e:
            raise WiFiProvisioningException("find access point", e) from e

        self._set_state(ProvisioningState.CONNECTING)
        settings = build_connection_settings(ssid, psk)
        try:
            self._client.add_and_activate_connection(settings, self.device, access_point)
        except Exception as e:
            raise WiFiProvisioningException("add and activate connection", e) from e

    def _wait_for_scan(self, events: queue.Queue, ctx: Context) -> None:
        while True:
            if ctx.done():
                raise ctx.err()
            remaining = ctx.remaining()
            timeout = SCAN_WAIT_SLICE if remaining is None else min(SCAN_WAIT_SLICE, remaining)
            try:
                interface, changed = events.get(timeout=timeout)
            except queue.Empty:
                continue
            if interface == NM_WIRELESS_INTERFACE and 'LastScan' in changed:
                logger.info(f"Scan complete (last scan {int(changed['LastScan'])})")
                return

    def _find_access_point(self, ssid: str) -> AccessPoint:
        for access_point in self._client.get_access_points(self.device):
            if access_point.ssid == ssid:
                return access_point
        raise AccessPointNotFoundException(ssid)

    def get_available_networks(self) -> List[AvailableWiFiNetwork]:
        """
        Access points from the last scan, strongest first, one per SSID.

        Hidden networks and entries with no signal are left out.
        """
        strongest: Dict[str, AccessPoint] = {}
        for access_point in self._client.get_access_points(self.device):
            if not access_point.ssid or access_point.strength <= 0:
                continue
            current = strongest.get(access_point.ssid)
            if current is None or access_point.strength > current.strength:
                strongest[access_point.ssid] = access_point

        networks = [
            AvailableWiFiNetwork(
                ssid=ap.ssid,
                strength=min(ap.strength, 100) / 100,
                requires_psk=ap.requires_psk,
            )
            for ap in strongest.values()
        ]
        networks.sort(key=lambda network: network.strength, reverse=True)
        return networks
