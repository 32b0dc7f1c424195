"""
GATT peripheral service.

=== Service Structure ===

<device name> (Advertisement)
└── Provisioning Service (UUID: xxxx1111-...)
    ├── SSID                (UUID: xxxx2222-...) [WRITE]
    ├── Pre-shared key      (UUID: xxxx3333-...) [WRITE]
    ├── Robot part key ID   (UUID: xxxx4444-...) [WRITE]
    ├── Robot part key      (UUID: xxxx5555-...) [WRITE]
    └── Available networks  (UUID: xxxx6666-...) [READ]
        └── {"networks": [{"ssid": "...", "strength": 0.5, "requires_psk": true}]}

UUIDs are random per process and logged at construction. The 16-bit
component of each one tags its role so they are easy to tell apart.
"""

import logging
import threading
import uuid
from enum import Enum
from typing import Iterable, Optional

from btprov.ble.characteristic import (
    AvailableWiFiNetwork,
    AvailableWiFiNetworks,
    BLECharacteristic,
    CharacteristicStore,
)
from btprov.exceptions.advertising_exceptions import (
    AdvertisementUnavailableException,
    AdvertisingStateException,
)

logger = logging.getLogger(__name__)

SERVICE_UUID_TAG = 0x1111
SSID_UUID_TAG = 0x2222
PSK_UUID_TAG = 0x3333
ROBOT_PART_KEY_ID_UUID_TAG = 0x4444
ROBOT_PART_KEY_UUID_TAG = 0x5555
AVAILABLE_NETWORKS_UUID_TAG = 0x6666

# How long stop() waits for a pairing automaton that is still registering
PAIRING_JOIN_TIMEOUT = 5.0


class AdvertisingState(Enum):
    INACTIVE = 'inactive'
    ACTIVE = 'active'


def generate_uuid(tag: int) -> str:
    """Random UUID with its 16-bit component (the xxxx in 0000xxxx-...) replaced by tag."""
    value = str(uuid.uuid4())
    return f"{value[:4]}{tag:04x}{value[8:]}"


class BLEPeripheral:
    """
    Binds the characteristic store to a BlueZ GATT service and owns the
    advertising on/off state machine.

    start(), stop() and update() are serialized by the service lock. Reads
    only take the lock of the characteristic being read.
    """

    def __init__(self, adapter, name: str, pairing=None, networks: Iterable[AvailableWiFiNetwork] = ()):
        """
        Args:
            adapter: BluezAdapter (or a stand-in with the same methods)
            name: Local name to advertise
            pairing: Optional PairingTrustAutomaton started alongside advertising
            networks: Initial available networks to publish

        Raises:
            AdapterUnavailableException: the adapter could not be enabled
        """
        self._adapter = adapter
        self._pairing = pairing
        self._lock = threading.Lock()
        self._pairing_thread: Optional[threading.Thread] = None
        self.name = name
        self.state = AdvertisingState.INACTIVE

        self._adapter.enable()

        self.uuid = generate_uuid(SERVICE_UUID_TAG)
        logger.info(f"serviceUUID: {self.uuid}")

        self._store = CharacteristicStore()
        self._ssid = self._add_characteristic(SSID_UUID_TAG, 'ssid')
        self._psk = self._add_characteristic(PSK_UUID_TAG, 'psk')
        self._robot_part_key_id = self._add_characteristic(ROBOT_PART_KEY_ID_UUID_TAG, 'robot part key ID')
        self._robot_part_key = self._add_characteristic(ROBOT_PART_KEY_UUID_TAG, 'robot part key')
        self._available_networks = self._add_characteristic(AVAILABLE_NETWORKS_UUID_TAG, 'available networks')
        self._available_networks.write(AvailableWiFiNetworks.of(networks).to_bytes())

        credential_chars = [self._ssid, self._psk, self._robot_part_key_id, self._robot_part_key]
        self._adapter.add_service(
            self.uuid,
            write_handlers={c.uuid: self._write_handler(c) for c in credential_chars},
            read_handlers={self._available_networks.uuid: self._available_networks.read},
        )
        self._adapter.register_application()

        self._advertisement = self._adapter.create_advertisement(name, [self.uuid])

    def _add_characteristic(self, tag: int, description: str) -> BLECharacteristic:
        characteristic = self._store.add(BLECharacteristic(generate_uuid(tag), description))
        logger.info(f"{description} characteristic UUID: {characteristic.uuid}")
        return characteristic

    def _write_handler(self, characteristic: BLECharacteristic):
        def on_write(value: str) -> None:
            characteristic.write(value)
            logger.info(f"Received {characteristic.description}")
        return on_write

    @property
    def store(self) -> CharacteristicStore:
        return self._store

    @property
    def characteristic_uuids(self) -> dict:
        return {
            'ssid': self._ssid.uuid,
            'psk': self._psk.uuid,
            'robot_part_key_id': self._robot_part_key_id.uuid,
            'robot_part_key': self._robot_part_key.uuid,
            'available_networks': self._available_networks.uuid,
        }

    # ------------------------------------------------------------------
    # Advertising
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Start advertising and launch the pairing automaton.

        Raises:
            AdapterUnavailableException: the adapter could not be enabled
            AdvertisementUnavailableException: there is no advertisement, or
                BlueZ rejected it. The pairing automaton is not started.
            AdvertisingStateException: advertising is already active
        """
        with self._lock:
            if self._advertisement is None:
                raise AdvertisementUnavailableException()
            if self.state == AdvertisingState.ACTIVE:
                raise AdvertisingStateException("invalid request, advertising already active")

            self._adapter.enable()
            # Blocks until BlueZ answers, so this must not run on the main loop thread
            self._adapter.start_advertising(self._advertisement)
            self.state = AdvertisingState.ACTIVE
            logger.info(f"Started advertising as {self.name}")

            if self._pairing is not None:
                self._pairing_thread = threading.Thread(
                    target=self._run_pairing, name='btprov-pairing', daemon=True
                )
                self._pairing_thread.start()

    def stop(self) -> None:
        """
        Stop advertising and stop the pairing automaton.

        Raises:
            AdvertisementUnavailableException: there is no advertisement, or
                BlueZ failed to unregister it. Advertising is still marked inactive and the
                pairing automaton is still stopped.
        """
        with self._lock:
            if self._advertisement is None:
                raise AdvertisementUnavailableException()
            if self.state == AdvertisingState.INACTIVE:
                raise AdvertisingStateException("invalid request, advertising already inactive")

            self.state = AdvertisingState.INACTIVE
            thread, self._pairing_thread = self._pairing_thread, None
            error = None
            try:
                self._adapter.stop_advertising(self._advertisement)
                logger.info("Stopped advertising")
            except AdvertisementUnavailableException as e:
                error = e

        self._stop_pairing(thread)
        if error is not None:
            raise error

    def _stop_pairing(self, thread: Optional[threading.Thread]) -> None:
        if self._pairing is None:
            return
        if thread is not None:
            thread.join(PAIRING_JOIN_TIMEOUT)
        self._pairing.stop()

    def _run_pairing(self) -> None:
        try:
            self._pairing.start()
        except Exception as e:
            logger.error(f"Failed to listen for pairing requests and automatically trust devices: {e}")

    # ------------------------------------------------------------------
    # Characteristic reads
    # ------------------------------------------------------------------

    def read_ssid(self) -> str:
        return self._ssid.read()

    def read_psk(self) -> str:
        return self._psk.read()

    def read_robot_part_key_id(self) -> str:
        return self._robot_part_key_id.read()

    def read_robot_part_key(self) -> str:
        return self._robot_part_key.read()

    def read_available_networks(self) -> bytes:
        return self._available_networks.read()

    # ------------------------------------------------------------------
    # Network list
    # ------------------------------------------------------------------

    def update(self, networks: Iterable[AvailableWiFiNetwork]) -> None:
        """Replace the published network list. Visible to the next read."""
        if not isinstance(networks, AvailableWiFiNetworks):
            networks = AvailableWiFiNetworks.of(networks)
        with self._lock:
            self._available_networks.write(networks.to_bytes())
        logger.info(f"Published {len(networks)} available WiFi networks")
