"""
BlueZ D-Bus boundary

Everything in btprov that talks to BlueZ lives here. The peripheral and the
pairing automaton only see BluezAdapter and BluezPairingClient, so tests can
replace both with fakes.

=== How BlueZ sees us ===

BlueZ is the Linux Bluetooth stack and exposes its API on the system D-Bus.
We export our own objects on the bus and hand their paths to BlueZ:

1. GATT APPLICATION (/org/bluez/btprov): answers GetManagedObjects with our
   service and its characteristics. Registered via GattManager1.
2. SERVICE (/org/bluez/btprov/service0): the provisioning service UUID.
3. CHARACTERISTICS (/org/bluez/btprov/service0/charN): BlueZ calls ReadValue
   and WriteValue on them when a connected phone reads or writes.
4. ADVERTISEMENT (/org/bluez/btprov/advertisement0): local name and service
   UUID. Registered via LEAdvertisingManager1 to start advertising and
   unregistered to stop.
5. PAIRING AGENT (/custom/agent): answers pairing prompts. Registered via
   AgentManager1.

BlueZ calls back into our exported objects while handling the register
requests, so those requests are issued asynchronously and complete on the
GLib main loop.
"""

import logging
import threading
from typing import Callable, Dict, Optional

import dbus
import dbus.exceptions
import dbus.service

from btprov.ble.constants import (
    ADAPTER_IFACE,
    ADVERTISEMENT_PATH_BASE,
    AGENT_IFACE,
    AGENT_MANAGER_IFACE,
    APPLICATION_PATH,
    BLUEZ_ROOT_PATH,
    BLUEZ_SERVICE_NAME,
    DBUS_OM_IFACE,
    DBUS_PROP_IFACE,
    DEVICE_IFACE,
    GATT_CHRC_IFACE,
    GATT_MANAGER_IFACE,
    GATT_SERVICE_IFACE,
    LE_ADVERTISEMENT_IFACE,
    LE_ADVERTISING_MANAGER_IFACE,
    SERVICE_PATH_BASE,
)
from btprov.exceptions.advertising_exceptions import (
    AdapterUnavailableException,
    AdvertisementUnavailableException,
    PairingException,
)

logger = logging.getLogger(__name__)

# Seconds to wait for BlueZ to answer an advertising (un)register request
ADVERTISING_REPLY_TIMEOUT = 10.0


# ============================================================================
# D-Bus Exception Classes
# ============================================================================

# These are returned to BLE clients when operations fail.

class InvalidArgsException(dbus.exceptions.DBusException):
    _dbus_error_name = 'org.freedesktop.DBus.Error.InvalidArgs'


class NotSupportedException(dbus.exceptions.DBusException):
    """Raised when an operation is not supported (e.g., write to read-only)."""
    _dbus_error_name = 'org.bluez.Error.NotSupported'


class InvalidOffsetException(dbus.exceptions.DBusException):
    _dbus_error_name = 'org.bluez.Error.InvalidOffset'


class FailedException(dbus.exceptions.DBusException):
    _dbus_error_name = 'org.bluez.Error.Failed'


def to_dbus_bytes(data: bytes) -> dbus.Array:
    return dbus.Array([dbus.Byte(b) for b in data], signature='y')


# ============================================================================
# BLE Advertisement
# ============================================================================

class Advertisement(dbus.service.Object):
    """
    BLE Advertisement - makes the device discoverable to phones.

    Carries the operator-supplied local name and the provisioning service
    UUID so the installer app can filter its scan results.
    """

    def __init__(self, bus, index: int, local_name: str, service_uuids: list):
        self.path = f"{ADVERTISEMENT_PATH_BASE}{index}"
        self.bus = bus
        self.ad_type = 'peripheral'  # Phones are the central
        self.local_name = local_name
        self.service_uuids = list(service_uuids)
        dbus.service.Object.__init__(self, bus, self.path)

    def get_properties(self):
        return {
            LE_ADVERTISEMENT_IFACE: {
                'Type': self.ad_type,
                'ServiceUUIDs': dbus.Array(self.service_uuids, signature='s'),
                'LocalName': dbus.String(self.local_name),
            }
        }

    def get_path(self):
        return dbus.ObjectPath(self.path)

    @dbus.service.method(DBUS_PROP_IFACE, in_signature='s', out_signature='a{sv}')
    def GetAll(self, interface):
        if interface != LE_ADVERTISEMENT_IFACE:
            raise InvalidArgsException()
        return self.get_properties()[LE_ADVERTISEMENT_IFACE]

    @dbus.service.method(LE_ADVERTISEMENT_IFACE, in_signature='', out_signature='')
    def Release(self):
        """D-Bus method: Called by BlueZ when advertisement is unregistered."""
        logger.info(f"Advertisement released: {self.path}")


# ============================================================================
# GATT Application / Service / Characteristic
# ============================================================================

class Application(dbus.service.Object):
    """
    GATT Application - container for our BLE services.

    BlueZ calls GetManagedObjects() to learn what to expose to connected
    phones: {object_path: {interface: {property: value}}}.
    """

    def __init__(self, bus):
        self.path = APPLICATION_PATH
        self.services = []
        dbus.service.Object.__init__(self, bus, self.path)

    def get_path(self):
        return dbus.ObjectPath(self.path)

    def add_service(self, service):
        self.services.append(service)

    @dbus.service.method(DBUS_OM_IFACE, out_signature='a{oa{sa{sv}}}')
    def GetManagedObjects(self):
        response = {}
        for service in self.services:
            response[service.get_path()] = service.get_properties()
            for chrc in service.get_characteristics():
                response[chrc.get_path()] = chrc.get_properties()
        return response


class Service(dbus.service.Object):

    def __init__(self, bus, index: int, uuid: str, primary: bool = True):
        self.path = f"{SERVICE_PATH_BASE}{index}"
        self.bus = bus
        self.uuid = uuid
        self.primary = primary
        self.characteristics = []
        dbus.service.Object.__init__(self, bus, self.path)

    def get_properties(self):
        return {
            GATT_SERVICE_IFACE: {
                'UUID': self.uuid,
                'Primary': self.primary,
                'Characteristics': dbus.Array(
                    [c.get_path() for c in self.characteristics],
                    signature='o'
                )
            }
        }

    def get_path(self):
        return dbus.ObjectPath(self.path)

    def add_characteristic(self, characteristic):
        self.characteristics.append(characteristic)

    def get_characteristics(self):
        return self.characteristics


class Characteristic(dbus.service.Object):
    """
    Base class for a GATT Characteristic.

    Subclasses override ReadValue and/or WriteValue according to their flags.
    """

    def __init__(self, bus, index: int, uuid: str, flags: list, service):
        self.path = f"{service.path}/char{index}"
        self.bus = bus
        self.uuid = uuid
        self.service = service
        self.flags = flags
        dbus.service.Object.__init__(self, bus, self.path)

    def get_properties(self):
        return {
            GATT_CHRC_IFACE: {
                'Service': self.service.get_path(),
                'UUID': self.uuid,
                'Flags': self.flags,
            }
        }

    def get_path(self):
        return dbus.ObjectPath(self.path)

    @dbus.service.method(DBUS_PROP_IFACE, in_signature='s', out_signature='a{sv}')
    def GetAll(self, interface):
        if interface != GATT_CHRC_IFACE:
            raise InvalidArgsException()
        return self.get_properties()[GATT_CHRC_IFACE]

    @dbus.service.method(GATT_CHRC_IFACE, in_signature='a{sv}', out_signature='ay')
    def ReadValue(self, options):
        raise NotSupportedException()

    @dbus.service.method(GATT_CHRC_IFACE, in_signature='aya{sv}')
    def WriteValue(self, value, options):
        raise NotSupportedException()


class CredentialCharacteristic(Characteristic):
    """
    Write-only characteristic for one credential field.

    Bytes are decoded as UTF-8 and handed to ``on_write`` verbatim. The value
    is an opaque secret at this layer, so it is never logged.
    """

    def __init__(self, bus, index: int, uuid: str, service, on_write: Callable[[str], None]):
        super().__init__(bus, index, uuid, ['write'], service)
        self.on_write = on_write

    @dbus.service.method(GATT_CHRC_IFACE, in_signature='aya{sv}')
    def WriteValue(self, value, options):
        try:
            text = bytes(value).decode('utf-8')
        except UnicodeDecodeError as e:
            logger.warning(f"Rejected non UTF-8 write to {self.uuid}: {e}")
            raise InvalidArgsException('value must be UTF-8 text')
        self.on_write(text)


class NetworkListCharacteristic(Characteristic):
    """
    Read-only characteristic for the available networks payload.

    ``read_value`` is called on every read so updates are visible at once.
    BlueZ passes an 'offset' option for long reads of payloads larger than
    the ATT MTU.
    """

    def __init__(self, bus, index: int, uuid: str, service, read_value: Callable[[], bytes]):
        super().__init__(bus, index, uuid, ['read'], service)
        self.read_value = read_value

    @dbus.service.method(GATT_CHRC_IFACE, in_signature='a{sv}', out_signature='ay')
    def ReadValue(self, options):
        offset = int(options.get('offset', 0))
        try:
            data = self.read_value()
        except Exception as e:
            logger.error(f"Error reading available networks: {e}")
            raise FailedException(str(e))
        if offset > len(data):
            raise InvalidOffsetException()
        return to_dbus_bytes(data[offset:])


# ============================================================================
# Pairing Agent
# ============================================================================

class PairingAgent(dbus.service.Object):
    """
    org.bluez.Agent1 implementation that accepts every pairing prompt.

    Registered with NoInputNoOutput capability, so BlueZ mostly asks for
    authorization rather than passkeys.
    """

    def __init__(self, bus, path: str):
        super().__init__(bus, path)
        self.path = path

    @dbus.service.method(AGENT_IFACE, in_signature='', out_signature='')
    def Release(self):
        logger.info("Pairing agent released")

    @dbus.service.method(AGENT_IFACE, in_signature='o', out_signature='')
    def RequestAuthorization(self, device):
        logger.info(f"Authorizing pairing for {device}")

    @dbus.service.method(AGENT_IFACE, in_signature='os', out_signature='')
    def AuthorizeService(self, device, uuid):
        logger.info(f"Authorizing service {uuid} for {device}")

    @dbus.service.method(AGENT_IFACE, in_signature='ou', out_signature='')
    def RequestConfirmation(self, device, passkey):
        logger.info(f"Confirming passkey for {device}")

    @dbus.service.method(AGENT_IFACE, in_signature='', out_signature='')
    def Cancel(self):
        logger.info("Pairing cancelled by remote")


# ============================================================================
# Clients
# ============================================================================

def find_adapter(bus) -> Optional[str]:
    """
    Find the first Bluetooth adapter that supports GATT and LE advertising.

    Returns:
        D-Bus object path of the adapter (e.g. /org/bluez/hci0), or None
    """
    remote_om = dbus.Interface(
        bus.get_object(BLUEZ_SERVICE_NAME, '/'),
        DBUS_OM_IFACE
    )
    objects = remote_om.GetManagedObjects()

    for path, interfaces in objects.items():
        if GATT_MANAGER_IFACE in interfaces and LE_ADVERTISING_MANAGER_IFACE in interfaces:
            return str(path)
    return None


class BluezAdapter:
    """The BlueZ adapter, its GATT application and its advertisement."""

    def __init__(self, bus, adapter_path: Optional[str] = None):
        self.bus = bus
        if adapter_path is None:
            try:
                adapter_path = find_adapter(bus)
            except dbus.exceptions.DBusException as e:
                raise AdapterUnavailableException(f"failed to query BlueZ for adapters: {e}") from e
        if not adapter_path:
            raise AdapterUnavailableException("no Bluetooth adapter found - is Bluetooth enabled?")
        self.adapter_path = adapter_path
        self.application = Application(bus)
        self._service_count = 0
        self._advertisement_count = 0

    def _interface(self, iface: str):
        return dbus.Interface(self.bus.get_object(BLUEZ_SERVICE_NAME, self.adapter_path), iface)

    def enable(self) -> None:
        """Power the adapter on."""
        try:
            self._interface(DBUS_PROP_IFACE).Set(ADAPTER_IFACE, 'Powered', dbus.Boolean(True))
        except dbus.exceptions.DBusException as e:
            raise AdapterUnavailableException(f"failed to enable bluetooth adapter: {e}") from e
        logger.info(f"Bluetooth adapter {self.adapter_path} powered on")

    def add_service(
        self,
        service_uuid: str,
        write_handlers: Dict[str, Callable[[str], None]],
        read_handlers: Dict[str, Callable[[], bytes]],
    ) -> Service:
        """Build a primary service with write-only and read-only characteristics."""
        service = Service(self.bus, self._service_count, service_uuid, True)
        self._service_count += 1

        index = 0
        for uuid, on_write in write_handlers.items():
            service.add_characteristic(CredentialCharacteristic(self.bus, index, uuid, service, on_write))
            index += 1
        for uuid, read_value in read_handlers.items():
            service.add_characteristic(NetworkListCharacteristic(self.bus, index, uuid, service, read_value))
            index += 1

        self.application.add_service(service)
        return service

    def register_application(self) -> None:
        self._interface(GATT_MANAGER_IFACE).RegisterApplication(
            self.application.get_path(),
            {},
            reply_handler=lambda: logger.info("GATT application registered successfully"),
            error_handler=lambda e: logger.error(f"Failed to register application: {e}")
        )

    def create_advertisement(self, local_name: str, service_uuids: list) -> Advertisement:
        advertisement = Advertisement(self.bus, self._advertisement_count, local_name, service_uuids)
        self._advertisement_count += 1
        return advertisement

    def _call_and_wait(self, method: str, description: str, *args) -> None:
        """
        Issue an asynchronous LEAdvertisingManager1 call and block until BlueZ answers.

        The reply is dispatched on the GLib main loop, so this must be called
        from another thread.

        Raises:
            AdvertisementUnavailableException: the call failed, was rejected
                or got no answer within ADVERTISING_REPLY_TIMEOUT
        """
        answered = threading.Event()
        errors = []

        def on_reply(*_):
            answered.set()

        def on_error(error):
            errors.append(error)
            answered.set()

        try:
            manager = self._interface(LE_ADVERTISING_MANAGER_IFACE)
            getattr(manager, method)(*args, reply_handler=on_reply, error_handler=on_error)
        except dbus.exceptions.DBusException as e:
            raise AdvertisementUnavailableException(f"failed to {description}: {e}") from e

        if not answered.wait(ADVERTISING_REPLY_TIMEOUT):
            raise AdvertisementUnavailableException(f"failed to {description}: no reply from BlueZ")
        if errors:
            raise AdvertisementUnavailableException(f"failed to {description}: {errors[0]}")

    def start_advertising(self, advertisement: Advertisement) -> None:
        self._call_and_wait(
            'RegisterAdvertisement', 'register advertisement', advertisement.get_path(), {}
        )
        logger.info("Advertisement registered successfully")

    def stop_advertising(self, advertisement: Advertisement) -> None:
        self._call_and_wait(
            'UnregisterAdvertisement', 'unregister advertisement', advertisement.get_path()
        )
        logger.info("Advertisement unregistered")


class BluezPairingClient:
    """
    The D-Bus calls made by the pairing automaton.

    Holds its own signal subscription; it does not share one with the
    NetworkManager client.
    """

    def __init__(self, bus):
        self.bus = bus
        self._agent: Optional[PairingAgent] = None

    def _agent_manager(self):
        return dbus.Interface(
            self.bus.get_object(BLUEZ_SERVICE_NAME, BLUEZ_ROOT_PATH),
            AGENT_MANAGER_IFACE
        )

    def register_agent(self, path: str, capability: str) -> None:
        """Export the agent and make it BlueZ's default agent."""
        if self._agent is None:
            self._agent = PairingAgent(self.bus, path)
        try:
            manager = self._agent_manager()
            manager.RegisterAgent(dbus.ObjectPath(path), capability)
            manager.RequestDefaultAgent(dbus.ObjectPath(path))
        except dbus.exceptions.DBusException as e:
            raise PairingException(f"failed to register BlueZ agent: {e}") from e

    def unregister_agent(self, path: str) -> None:
        try:
            self._agent_manager().UnregisterAgent(dbus.ObjectPath(path))
        except dbus.exceptions.DBusException as e:
            raise PairingException(f"failed to unregister BlueZ agent: {e}") from e
        finally:
            if self._agent is not None:
                self._agent.remove_from_connection()
                self._agent = None

    def subscribe_device_properties(self, handler: Callable):
        """
        Subscribe to PropertiesChanged for BlueZ device objects.

        The handler is called as handler(interface, changed, invalidated, path=...).

        Returns:
            The signal match; call remove() on it to unsubscribe.
        """
        return self.bus.add_signal_receiver(
            handler,
            signal_name='PropertiesChanged',
            dbus_interface=DBUS_PROP_IFACE,
            bus_name=BLUEZ_SERVICE_NAME,
            arg0=DEVICE_IFACE,
            path_keyword='path',
        )

    def set_trusted(self, device_path: str) -> None:
        try:
            device = dbus.Interface(
                self.bus.get_object(BLUEZ_SERVICE_NAME, device_path),
                DBUS_PROP_IFACE
            )
            device.Set(DEVICE_IFACE, 'Trusted', dbus.Boolean(True))
        except dbus.exceptions.DBusException as e:
            raise PairingException(f"failed to set Trusted property on {device_path}: {e}") from e
