"""
Characteristic store.

Each characteristic value sits behind its own lock. The GATT write callback
writes into it from whatever thread BlueZ dispatches on, and the credential
wait reads from it on its polling threads. No lock spans two characteristics.

The read-only network list is published as JSON:

    {"networks": [{"ssid": "Viam", "strength": 0.72, "requires_psk": true}, ...]}
"""

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterable, List, Optional, TypeVar

from btprov.exceptions.characteristic_exceptions import (
    CharacteristicInactiveException,
    CharacteristicNoValueException,
    InvalidNetworkException,
)

T = TypeVar('T')


class BLECharacteristic(Generic[T]):
    """
    A single characteristic value with an exclusive-access guard.

    The value is absent until the first write. ``active`` is reserved for
    making characteristics optional; an inactive characteristic refuses reads.
    """

    def __init__(self, uuid: str, description: str):
        self.uuid = uuid
        self.description = description
        self.active = True
        self._lock = threading.Lock()
        self._value: Optional[T] = None

    def write(self, value: T) -> None:
        with self._lock:
            self._value = value

    def read(self) -> T:
        """
        Return the most recently written value.

        Raises:
            CharacteristicNoValueException: nothing has been written yet
            CharacteristicInactiveException: the characteristic is disabled
        """
        with self._lock:
            if not self.active:
                raise CharacteristicInactiveException(self.description)
            if self._value is None:
                raise CharacteristicNoValueException(self.description)
            return self._value

    def __repr__(self):
        return f"BLECharacteristic(uuid={self.uuid!r}, description={self.description!r})"


class CharacteristicStore:
    """Characteristics keyed by UUID."""

    def __init__(self):
        self._characteristics: Dict[str, BLECharacteristic] = {}

    def add(self, characteristic: BLECharacteristic) -> BLECharacteristic:
        self._characteristics[characteristic.uuid] = characteristic
        return characteristic

    def get(self, uuid: str) -> BLECharacteristic:
        try:
            return self._characteristics[uuid]
        except KeyError:
            raise KeyError(f"unknown characteristic {uuid}") from None

    def write(self, uuid: str, value: Any) -> None:
        self.get(uuid).write(value)

    def read(self, uuid: str) -> Any:
        return self.get(uuid).read()

    def uuids(self) -> List[str]:
        return list(self._characteristics)


@dataclass(frozen=True)
class AvailableWiFiNetwork:
    """
    A nearby network offered to the installer app.

    strength is the fraction of full signal in (0.0, 1.0].
    """
    ssid: str
    strength: float
    requires_psk: bool

    def __post_init__(self):
        if not self.ssid:
            raise InvalidNetworkException("must provide non-empty ssid")
        if self.strength == 0:
            raise InvalidNetworkException("must provide strength greater than zero")
        if not 0.0 < self.strength <= 1.0:
            raise InvalidNetworkException(f"strength must be in (0.0, 1.0], got {self.strength}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ssid': self.ssid,
            'strength': self.strength,
            'requires_psk': self.requires_psk,
        }


@dataclass
class AvailableWiFiNetworks:
    networks: List[AvailableWiFiNetwork] = field(default_factory=list)

    @classmethod
    def of(cls, networks: Iterable[AvailableWiFiNetwork]) -> 'AvailableWiFiNetworks':
        return cls(list(networks))

    def to_bytes(self) -> bytes:
        payload = {'networks': [n.to_dict() for n in self.networks]}
        return json.dumps(payload, separators=(',', ':')).encode('utf-8')

    def __len__(self):
        return len(self.networks)
