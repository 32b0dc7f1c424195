from __future__ import annotations

import json
import re

import pytest

from btprov.ble.characteristic import AvailableWiFiNetwork
from btprov.ble.peripheral import AdvertisingState, BLEPeripheral, generate_uuid
from btprov.exceptions.advertising_exceptions import (
    AdvertisementUnavailableException,
    AdvertisingStateException,
    PairingException,
)
from btprov.exceptions.characteristic_exceptions import CharacteristicNoValueException

from fakes import FakeAdapter, FakePairing


def test_generate_uuid_tags_the_16_bit_component() -> None:
    value = generate_uuid(0x2222)
    assert re.fullmatch(r"[0-9a-f]{4}2222-[0-9a-f]{4}-4[0-9a-f]{3}-[0-9a-f]{4}-[0-9a-f]{12}", value)
    assert generate_uuid(0x2222) != value


def test_construction_registers_service_and_publishes_networks() -> None:
    adapter = FakeAdapter()
    networks = [AvailableWiFiNetwork(ssid="Viam", strength=0.8, requires_psk=True)]

    peripheral = BLEPeripheral(adapter, "btprov-test", networks=networks)

    uuids = peripheral.characteristic_uuids
    assert adapter.enabled == 1
    assert adapter.registered
    assert adapter.advertised_name == "btprov-test"
    assert adapter.service_uuid == peripheral.uuid
    assert set(adapter.write_handlers) == {
        uuids["ssid"], uuids["psk"], uuids["robot_part_key_id"], uuids["robot_part_key"],
    }
    assert set(adapter.read_handlers) == {uuids["available_networks"]}
    assert len(set(peripheral.store.uuids())) == 5
    assert json.loads(peripheral.read_available_networks())["networks"][0]["ssid"] == "Viam"


def test_gatt_writes_land_in_their_own_characteristic() -> None:
    adapter = FakeAdapter()
    peripheral = BLEPeripheral(adapter, "btprov-test")
    uuids = peripheral.characteristic_uuids

    adapter.write_handlers[uuids["psk"]]("checkmate")

    assert peripheral.read_psk() == "checkmate"
    with pytest.raises(CharacteristicNoValueException):
        peripheral.read_ssid()


def test_start_then_start_again_fails() -> None:
    adapter = FakeAdapter()
    peripheral = BLEPeripheral(adapter, "btprov-test")

    peripheral.start()
    assert peripheral.state == AdvertisingState.ACTIVE
    assert adapter.advertising

    with pytest.raises(AdvertisingStateException, match="already active"):
        peripheral.start()


def test_stop_while_inactive_fails() -> None:
    peripheral = BLEPeripheral(FakeAdapter(), "btprov-test")
    with pytest.raises(AdvertisingStateException, match="already inactive"):
        peripheral.stop()


def test_missing_advertisement_is_reported() -> None:
    adapter = FakeAdapter()
    adapter.advertisement = None
    peripheral = BLEPeripheral(adapter, "btprov-test")
    with pytest.raises(AdvertisementUnavailableException):
        peripheral.start()


def test_stop_stops_pairing() -> None:
    pairing = FakePairing()
    adapter = FakeAdapter()
    peripheral = BLEPeripheral(adapter, "btprov-test", pairing=pairing)

    peripheral.start()
    peripheral.stop()

    assert peripheral.state == AdvertisingState.INACTIVE
    assert not adapter.advertising
    assert pairing.started == 1
    assert pairing.stopped == 1


def test_pairing_failure_does_not_stop_advertising() -> None:
    pairing = FakePairing(start_error=PairingException("agent refused"))
    peripheral = BLEPeripheral(FakeAdapter(), "btprov-test", pairing=pairing)

    peripheral.start()
    peripheral.stop()

    assert pairing.started == 1


def test_rejected_advertisement_fails_start() -> None:
    adapter = FakeAdapter()
    adapter.start_error = AdvertisementUnavailableException("failed to register advertisement: org.bluez.Error.Failed")
    pairing = FakePairing()
    peripheral = BLEPeripheral(adapter, "btprov-test", pairing=pairing)

    with pytest.raises(AdvertisementUnavailableException, match="org.bluez.Error.Failed"):
        peripheral.start()

    assert peripheral.state == AdvertisingState.INACTIVE
    assert pairing.started == 0

    adapter.start_error = None
    peripheral.start()
    assert peripheral.state == AdvertisingState.ACTIVE


def test_failed_unregister_still_stops_pairing() -> None:
    adapter = FakeAdapter()
    adapter.stop_error = AdvertisementUnavailableException("failed to unregister advertisement: org.bluez.Error.DoesNotExist")
    pairing = FakePairing()
    peripheral = BLEPeripheral(adapter, "btprov-test", pairing=pairing)
    peripheral.start()

    with pytest.raises(AdvertisementUnavailableException):
        peripheral.stop()

    assert peripheral.state == AdvertisingState.INACTIVE
    assert pairing.stopped == 1


def test_update_is_visible_to_next_read() -> None:
    peripheral = BLEPeripheral(FakeAdapter(), "btprov-test")
    peripheral.update([
        AvailableWiFiNetwork(ssid="Viam", strength=0.5, requires_psk=True),
        AvailableWiFiNetwork(ssid="Guest", strength=0.25, requires_psk=False),
    ])

    payload = json.loads(peripheral.read_available_networks())

    assert [n["ssid"] for n in payload["networks"]] == ["Viam", "Guest"]
