from __future__ import annotations

from btprov.network.models import NM_WIRELESS_INTERFACE, AccessPoint, NetworkDevice


class FakeAdapter:
    """Records what the peripheral asks of BlueZ."""

    def __init__(self) -> None:
        self.enabled = 0
        self.write_handlers: dict = {}
        self.read_handlers: dict = {}
        self.service_uuid: str | None = None
        self.registered = False
        self.advertisement: object | None = object()
        self.advertised_name: str | None = None
        self.advertising = False
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None

    def enable(self) -> None:
        self.enabled += 1

    def add_service(self, service_uuid, write_handlers, read_handlers):
        self.service_uuid = service_uuid
        self.write_handlers = dict(write_handlers)
        self.read_handlers = dict(read_handlers)

    def register_application(self) -> None:
        self.registered = True

    def create_advertisement(self, local_name, service_uuids):
        self.advertised_name = local_name
        return self.advertisement

    def start_advertising(self, advertisement) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.advertising = True

    def stop_advertising(self, advertisement) -> None:
        self.advertising = False
        if self.stop_error is not None:
            raise self.stop_error


class FakePairing:
    def __init__(self, start_error: Exception | None = None) -> None:
        self.started = 0
        self.stopped = 0
        self.start_error = start_error

    def start(self) -> None:
        self.started += 1
        if self.start_error is not None:
            raise self.start_error

    def stop(self) -> None:
        self.stopped += 1


class FakeMatch:
    def __init__(self) -> None:
        self.removed = False

    def remove(self) -> None:
        self.removed = True


class FakePairingClient:
    def __init__(self) -> None:
        self.registered: list[tuple[str, str]] = []
        self.unregistered: list[str] = []
        self.trusted: list[str] = []
        self.handler = None
        self.match = FakeMatch()
        self.trust_error: Exception | None = None

    def register_agent(self, path, capability) -> None:
        self.registered.append((path, capability))

    def unregister_agent(self, path) -> None:
        self.unregistered.append(path)

    def subscribe_device_properties(self, handler):
        self.handler = handler
        return self.match

    def set_trusted(self, device_path) -> None:
        if self.trust_error is not None:
            raise self.trust_error
        self.trusted.append(device_path)


WLAN0 = NetworkDevice(path="/org/freedesktop/NetworkManager/Devices/3", interface="wlan0", device_type=2)
ETH0 = NetworkDevice(path="/org/freedesktop/NetworkManager/Devices/2", interface="eth0", device_type=1)


class FakeNetworkManagerClient:
    """
    Stands in for NetworkManagerClient.

    request_scan() emits the queued signals to the subscribed handler, in
    order, the way NetworkManager would once the scan finishes.
    """

    def __init__(self, devices=None, access_points=None, enabled_after: int = 0) -> None:
        self.devices = [ETH0, WLAN0] if devices is None else devices
        self.access_points = access_points or []
        self.enabled_after = enabled_after
        self.enabled_checks = 0
        self.wireless_enabled_requested = False
        self.managed: list[str] = []
        self.last_scan = 1000
        self.handler = None
        self.match = FakeMatch()
        self.scan_requests = 0
        self.scan_signals: list[tuple[str, dict]] = [(NM_WIRELESS_INTERFACE, {"LastScan": 2000})]
        self.activations: list[tuple[dict, NetworkDevice, AccessPoint]] = []
        self.activation_error: Exception | None = None
        self.calls: list[str] = []

    def set_wireless_enabled(self, enabled) -> None:
        self.wireless_enabled_requested = enabled

    def get_wireless_enabled(self) -> bool:
        self.enabled_checks += 1
        return self.enabled_checks > self.enabled_after

    def get_devices(self):
        return list(self.devices)

    def set_managed(self, device, managed) -> None:
        self.calls.append("set_managed")
        self.managed.append(device.interface)

    def get_last_scan(self, device) -> int:
        self.calls.append("get_last_scan")
        return self.last_scan

    def subscribe_device_properties(self, device, handler):
        self.calls.append("subscribe")
        self.handler = handler
        return self.match

    def request_scan(self, device) -> None:
        self.calls.append("request_scan")
        self.scan_requests += 1
        for interface, changed in self.scan_signals:
            self.handler(interface, changed, [])

    def get_access_points(self, device):
        return list(self.access_points)

    def add_and_activate_connection(self, settings, device, access_point):
        self.calls.append("add_and_activate")
        if self.activation_error is not None:
            raise self.activation_error
        self.activations.append((settings, device, access_point))
        return "/org/freedesktop/NetworkManager/Settings/1", "/org/freedesktop/NetworkManager/ActiveConnection/1"
