"""
Pairing trust automaton.

While advertising, a NoInputNoOutput agent is registered with BlueZ and every
device that reports Connected=True is marked Trusted so the installer phone
can complete the BLE link without a prompt on the device.

States: UNREGISTERED -> AGENT_REGISTERED -> LISTENING, and back to
UNREGISTERED on stop().

We trust on "Connected" rather than "Paired" because iOS connects before it
pairs, and waiting for "Paired" misses the window. This trusts any device
that merely connects.
"""

import logging
import threading
from enum import Enum
from typing import Set

from btprov.ble.constants import AGENT_CAPABILITY, AGENT_PATH, DEVICE_IFACE
from btprov.exceptions.advertising_exceptions import PairingException

logger = logging.getLogger(__name__)


class PairingState(Enum):
    UNREGISTERED = 'unregistered'
    AGENT_REGISTERED = 'agent_registered'
    LISTENING = 'listening'


def device_path_to_mac(path: str) -> str:
    """
    Convert a BlueZ device object path to a Bluetooth address.

    /org/bluez/hci0/dev_AA_BB_CC_DD_EE_FF -> AA:BB:CC:DD:EE:FF

    Returns an empty string for paths that are not device paths.
    """
    if not path:
        return ''
    parts = str(path).split('/')
    if len(parts) < 4:
        return ''
    segment = parts[-1]
    if segment.startswith('dev_'):
        segment = segment[len('dev_'):]
    if not segment:
        return ''
    return segment.replace('_', ':')


class PairingTrustAutomaton:

    def __init__(self, client, agent_path: str = AGENT_PATH, capability: str = AGENT_CAPABILITY):
        """
        Args:
            client: BluezPairingClient (or a stand-in with the same methods)
            agent_path: Object path to export the agent at
            capability: Agent IO capability
        """
        self._client = client
        self._agent_path = agent_path
        self._capability = capability
        self._lock = threading.Lock()
        self._match = None
        self._trusted: Set[str] = set()
        self.state = PairingState.UNREGISTERED

    @property
    def trusted_devices(self) -> Set[str]:
        with self._lock:
            return set(self._trusted)

    def start(self) -> None:
        """
        Register the agent and start listening for connecting devices.

        Raises:
            PairingException: the agent could not be registered or the
                subscription could not be made. Advertising still works
                without auto-trust; the phone falls back to manual pairing.
        """
        with self._lock:
            if self.state != PairingState.UNREGISTERED:
                logger.debug(f"Pairing automaton already {self.state.value}")
                return

            self._client.register_agent(self._agent_path, self._capability)
            self.state = PairingState.AGENT_REGISTERED
            logger.info("Bluetooth pairing agent registered")

            try:
                self._match = self._client.subscribe_device_properties(self.on_properties_changed)
            except Exception as e:
                raise PairingException(f"failed to subscribe to device property changes: {e}") from e
            self.state = PairingState.LISTENING
            logger.info("Waiting for a BLE pairing request...")

    def stop(self) -> None:
        """Close the subscription and unregister the agent."""
        with self._lock:
            if self.state == PairingState.UNREGISTERED:
                return
            match, self._match = self._match, None
            self.state = PairingState.UNREGISTERED

        if match is not None:
            match.remove()
        try:
            self._client.unregister_agent(self._agent_path)
        except PairingException as e:
            logger.warning(f"Could not unregister pairing agent: {e}")
        logger.info("Stopped listening for pairing requests")

    def on_properties_changed(self, interface, changed, invalidated, path=None) -> None:
        """PropertiesChanged handler for BlueZ device objects."""
        if self.state != PairingState.LISTENING:
            return
        if interface != DEVICE_IFACE:
            return
        if not changed.get('Connected', False):
            return

        mac = device_path_to_mac(path)
        if not mac:
            return

        logger.info(f"Device {mac} initiated pairing")
        try:
            self._client.set_trusted(path)
        except PairingException as e:
            # Manual pairing through the host's own flow still works
            logger.error(f"Failed to trust device {mac}: {e}")
            return

        with self._lock:
            self._trusted.add(mac)
        logger.info(f"Device {mac} marked as trusted")
