"""
NetworkManager D-Bus client

The provisioning manager drives NetworkManager through this class only, so
tests can replace it with a fake.

=== NetworkManager objects we use ===

/org/freedesktop/NetworkManager
    org.freedesktop.NetworkManager: WirelessEnabled, GetDevices(),
        AddAndActivateConnection()
/org/freedesktop/NetworkManager/Devices/N
    org.freedesktop.NetworkManager.Device: DeviceType, Interface, Managed
    org.freedesktop.NetworkManager.Device.Wireless: LastScan, RequestScan(),
        GetAllAccessPoints()
/org/freedesktop/NetworkManager/AccessPoint/N
    org.freedesktop.NetworkManager.AccessPoint: Ssid, Strength, Flags,
        WpaFlags, RsnFlags

PropertiesChanged signals are delivered on the GLib main loop, so callers
that block waiting for one must do so off the main loop thread.
"""

import logging
from typing import Any, Callable, Dict, List, Tuple

import dbus
import dbus.exceptions

from btprov.network.models import NM_WIRELESS_INTERFACE, AccessPoint, NetworkDevice

logger = logging.getLogger(__name__)

NM_SERVICE = 'org.freedesktop.NetworkManager'
NM_PATH = '/org/freedesktop/NetworkManager'
NM_INTERFACE = 'org.freedesktop.NetworkManager'
NM_DEVICE_INTERFACE = 'org.freedesktop.NetworkManager.Device'
NM_ACCESS_POINT_INTERFACE = 'org.freedesktop.NetworkManager.AccessPoint'
DBUS_PROPS_INTERFACE = 'org.freedesktop.DBus.Properties'


def to_dbus_settings(settings: Dict[str, Dict[str, Any]]) -> dbus.Dictionary:
    """Convert a plain connection settings dict to the a{sa{sv}} NetworkManager expects."""
    converted = {}
    for group, values in settings.items():
        group_values = {}
        for key, value in values.items():
            if isinstance(value, (bytes, bytearray)):
                value = dbus.ByteArray(bytes(value))
            group_values[key] = value
        converted[group] = dbus.Dictionary(group_values, signature='sv')
    return dbus.Dictionary(converted, signature='sa{sv}')


class NetworkManagerClient:

    def __init__(self, bus):
        """
        Args:
            bus: D-Bus system bus connection

        Raises:
            dbus.exceptions.DBusException: NetworkManager is not reachable
        """
        self.bus = bus
        try:
            self.nm_proxy = bus.get_object(NM_SERVICE, NM_PATH)
            self.nm = dbus.Interface(self.nm_proxy, NM_INTERFACE)
            self.nm_props = dbus.Interface(self.nm_proxy, DBUS_PROPS_INTERFACE)
            logger.info("Connected to NetworkManager D-Bus interface")
        except dbus.exceptions.DBusException as e:
            logger.error(f"Failed to connect to NetworkManager: {e}")
            raise

    def _props(self, path: str):
        return dbus.Interface(self.bus.get_object(NM_SERVICE, path), DBUS_PROPS_INTERFACE)

    def set_wireless_enabled(self, enabled: bool) -> None:
        self.nm_props.Set(NM_INTERFACE, 'WirelessEnabled', dbus.Boolean(enabled))

    def get_wireless_enabled(self) -> bool:
        return bool(self.nm_props.Get(NM_INTERFACE, 'WirelessEnabled'))

    def get_devices(self) -> List[NetworkDevice]:
        devices = []
        for path in self.nm.GetDevices():
            props = self._props(path)
            devices.append(NetworkDevice(
                path=str(path),
                interface=str(props.Get(NM_DEVICE_INTERFACE, 'Interface')),
                device_type=int(props.Get(NM_DEVICE_INTERFACE, 'DeviceType')),
            ))
        return devices

    def set_managed(self, device: NetworkDevice, managed: bool) -> None:
        self._props(device.path).Set(NM_DEVICE_INTERFACE, 'Managed', dbus.Boolean(managed))

    def get_last_scan(self, device: NetworkDevice) -> int:
        """CLOCK_BOOTTIME milliseconds of the last scan, or -1 if never scanned."""
        return int(self._props(device.path).Get(NM_WIRELESS_INTERFACE, 'LastScan'))

    def subscribe_device_properties(self, device: NetworkDevice, handler: Callable):
        """
        Subscribe to PropertiesChanged on one device.

        The handler is called as handler(interface, changed, invalidated).

        Returns:
            The signal match; call remove() on it to unsubscribe.
        """
        return self.bus.add_signal_receiver(
            handler,
            signal_name='PropertiesChanged',
            dbus_interface=DBUS_PROPS_INTERFACE,
            bus_name=NM_SERVICE,
            path=device.path,
        )

    def request_scan(self, device: NetworkDevice) -> None:
        wireless = dbus.Interface(self.bus.get_object(NM_SERVICE, device.path), NM_WIRELESS_INTERFACE)
        wireless.RequestScan(dbus.Dictionary({}, signature='sv'))

    def get_access_points(self, device: NetworkDevice) -> List[AccessPoint]:
        wireless = dbus.Interface(self.bus.get_object(NM_SERVICE, device.path), NM_WIRELESS_INTERFACE)
        access_points = []
        for path in wireless.GetAllAccessPoints():
            try:
                props = self._props(path).GetAll(NM_ACCESS_POINT_INTERFACE)
            except dbus.exceptions.DBusException as e:
                # Access points come and go while we enumerate them
                logger.debug(f"Skipping access point {path}: {e}")
                continue
            access_points.append(AccessPoint(
                path=str(path),
                ssid=bytes(props.get('Ssid', b'')).decode('utf-8', errors='replace'),
                strength=int(props.get('Strength', 0)),
                flags=int(props.get('Flags', 0)),
                wpa_flags=int(props.get('WpaFlags', 0)),
                rsn_flags=int(props.get('RsnFlags', 0)),
            ))
        return access_points

    def add_and_activate_connection(
        self,
        settings: Dict[str, Dict[str, Any]],
        device: NetworkDevice,
        access_point: AccessPoint,
    ) -> Tuple[str, str]:
        """
        Returns:
            (connection settings path, active connection path)
        """
        connection, active = self.nm.AddAndActivateConnection(
            to_dbus_settings(settings),
            dbus.ObjectPath(device.path),
            dbus.ObjectPath(access_point.path),
        )
        return str(connection), str(active)
