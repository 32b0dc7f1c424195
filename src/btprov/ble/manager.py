"""
Bluetooth manager: accepts incoming BLE connections and waits for the
installer app to write every credential.

The four credential fields are written by a human at arbitrary times and in
any order. wait_for_credentials() polls each one on its own thread until it
has a value, the read fails, or the context is done, and only returns once
all four threads have finished.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from btprov.common.config import POLL_INTERVAL_SECONDS
from btprov.common.context import Context
from btprov.ble.peripheral import BLEPeripheral
from btprov.exceptions.characteristic_exceptions import (
    CharacteristicNoValueException,
    CharacteristicReadException,
)
from btprov.exceptions.credentials_exception import CredentialsException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """The minimum information required to provision Wi-Fi and a robot part."""
    ssid: str = ''
    psk: str = ''
    robot_part_key_id: str = ''
    robot_part_key: str = ''

    def get_ssid(self) -> str:
        return self.ssid

    def get_psk(self) -> str:
        return self.psk

    def get_robot_part_key_id(self) -> str:
        return self.robot_part_key_id

    def get_robot_part_key(self) -> str:
        return self.robot_part_key

    def __repr__(self):
        # Secrets stay out of logs and tracebacks
        return (
            f"Credentials(ssid={self.ssid!r}, psk={'***' if self.psk else ''!r}, "
            f"robot_part_key_id={self.robot_part_key_id!r}, "
            f"robot_part_key={'***' if self.robot_part_key else ''!r})"
        )


def wait_for_ble_value(
    ctx: Context,
    read: Callable[[], str],
    description: str,
    poll_interval: float = POLL_INTERVAL_SECONDS,
) -> str:
    """
    Poll a characteristic until it holds a non-empty value.

    The context is checked before every poll, so a context that is already
    done never triggers another read.

    Raises:
        OperationCancelledException: the context was cancelled or timed out
        CharacteristicReadException: the read failed for any reason other
            than "nothing written yet"
    """
    while True:
        if ctx.done():
            raise ctx.err()
        if not ctx.wait(poll_interval):
            raise ctx.err()
        try:
            value = read()
        except CharacteristicNoValueException:
            continue
        except Exception as e:
            raise CharacteristicReadException(description, e) from e
        if value:
            return value
        logger.debug(f"Empty value written for {description}, waiting for another write")


class BluetoothManager:
    """Manages the BLE peripheral advertisement used for provisioning."""

    def __init__(self, peripheral, poll_interval: float = POLL_INTERVAL_SECONDS):
        """
        Args:
            peripheral: BLEPeripheral (or a stand-in with the same read methods)
            poll_interval: Seconds between characteristic polls
        """
        self._peripheral = peripheral
        self._poll_interval = poll_interval

    def accept_incoming_connections(self) -> None:
        """Begin advertising the service that accepts Wi-Fi and cloud credentials."""
        self._peripheral.start()

    def reject_incoming_connections(self) -> None:
        self._peripheral.stop()

    @property
    def service_uuid(self) -> str:
        return self._peripheral.uuid

    @property
    def characteristic_uuids(self) -> Dict[str, str]:
        return self._peripheral.characteristic_uuids

    def update_available_networks(self, networks) -> None:
        self._peripheral.update(networks)

    def wait_for_credentials(self, ctx: Context) -> Credentials:
        """
        Block until all four credentials have been written.

        Raises:
            CredentialsException: one or more fields failed or the context
                was done first. Carries every failure and the partial bundle.
        """
        readers = {
            'ssid': (self._peripheral.read_ssid, 'ssid'),
            'psk': (self._peripheral.read_psk, 'psk'),
            'robot_part_key_id': (self._peripheral.read_robot_part_key_id, 'robot part key ID'),
            'robot_part_key': (self._peripheral.read_robot_part_key, 'robot part key'),
        }
        values: Dict[str, str] = {}
        errors: Dict[str, Exception] = {}
        results_lock = threading.Lock()

        def poll(field: str, read: Callable[[], str], description: str) -> None:
            try:
                value = wait_for_ble_value(ctx, read, description, self._poll_interval)
            except CharacteristicReadException as e:
                with results_lock:
                    errors[field] = e
                return
            except Exception as e:
                # Cancellation and anything unexpected still name the field
                with results_lock:
                    errors[field] = CharacteristicReadException(description, e)
                return
            with results_lock:
                values[field] = value

        threads: List[threading.Thread] = []
        for field, (read, description) in readers.items():
            thread = threading.Thread(
                target=poll, args=(field, read, description), name=f'btprov-wait-{field}', daemon=True
            )
            thread.start()
            threads.append(thread)

        logger.info("Waiting for credentials over BLE...")
        for thread in threads:
            thread.join()

        credentials = Credentials(**values)
        if errors:
            # Keep field order stable so the combined message is predictable
            ordered = [errors[field] for field in readers if field in errors]
            raise CredentialsException(ordered, credentials=credentials)

        logger.info(f"Received all credentials for SSID {credentials.ssid}")
        return credentials


def new_bluetooth_manager(adapter, name: str, pairing=None, networks=(),
                          poll_interval: Optional[float] = None) -> BluetoothManager:
    """Construct the peripheral and wrap it in a BluetoothManager."""
    peripheral = BLEPeripheral(adapter, name, pairing=pairing, networks=networks)
    if poll_interval is None:
        poll_interval = POLL_INTERVAL_SECONDS
    return BluetoothManager(peripheral, poll_interval=poll_interval)
