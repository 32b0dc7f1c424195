from __future__ import annotations

import logging

import pytest

from btprov.ble.constants import AGENT_CAPABILITY, AGENT_PATH, DEVICE_IFACE
from btprov.ble.pairing import PairingState, PairingTrustAutomaton, device_path_to_mac
from btprov.exceptions.advertising_exceptions import PairingException

from fakes import FakePairingClient

DEVICE_PATH = "/org/bluez/hci0/dev_AA_BB_CC_DD_EE_FF"


@pytest.mark.parametrize(
    "path, mac",
    [
        (DEVICE_PATH, "AA:BB:CC:DD:EE:FF"),
        ("/org/bluez/hci1/dev_11_22_33_44_55_66", "11:22:33:44:55:66"),
        ("/org/bluez", ""),
        ("", ""),
    ],
)
def test_device_path_to_mac(path, mac) -> None:
    assert device_path_to_mac(path) == mac


def listening_automaton() -> tuple[PairingTrustAutomaton, FakePairingClient]:
    client = FakePairingClient()
    automaton = PairingTrustAutomaton(client)
    automaton.start()
    return automaton, client


def test_start_registers_agent_then_listens() -> None:
    automaton, client = listening_automaton()

    assert client.registered == [(AGENT_PATH, AGENT_CAPABILITY)]
    assert client.handler is not None
    assert automaton.state == PairingState.LISTENING


def test_connected_device_is_trusted() -> None:
    automaton, client = listening_automaton()

    client.handler(DEVICE_IFACE, {"Connected": True}, [], path=DEVICE_PATH)

    assert client.trusted == [DEVICE_PATH]
    assert automaton.trusted_devices == {"AA:BB:CC:DD:EE:FF"}


@pytest.mark.parametrize(
    "interface, changed",
    [
        (DEVICE_IFACE, {"Connected": False}),
        (DEVICE_IFACE, {"RSSI": -40}),
        ("org.bluez.Adapter1", {"Connected": True}),
    ],
)
def test_other_changes_are_ignored(interface, changed) -> None:
    _, client = listening_automaton()

    client.handler(interface, changed, [], path=DEVICE_PATH)

    assert client.trusted == []


def test_trust_failure_is_logged_and_listening_continues(caplog) -> None:
    automaton, client = listening_automaton()
    client.trust_error = PairingException("org.bluez.Error.Failed")

    with caplog.at_level(logging.ERROR):
        client.handler(DEVICE_IFACE, {"Connected": True}, [], path=DEVICE_PATH)

    assert "Failed to trust device AA:BB:CC:DD:EE:FF" in caplog.text
    assert automaton.state == PairingState.LISTENING

    client.trust_error = None
    client.handler(DEVICE_IFACE, {"Connected": True}, [], path="/org/bluez/hci0/dev_11_22_33_44_55_66")
    assert automaton.trusted_devices == {"11:22:33:44:55:66"}


def test_stop_closes_subscription_and_unregisters() -> None:
    automaton, client = listening_automaton()

    automaton.stop()

    assert client.match.removed
    assert client.unregistered == [AGENT_PATH]
    assert automaton.state == PairingState.UNREGISTERED

    client.handler(DEVICE_IFACE, {"Connected": True}, [], path=DEVICE_PATH)
    assert client.trusted == []


def test_registration_failure_propagates() -> None:
    client = FakePairingClient()

    def refuse(path, capability):
        raise PairingException("failed to register BlueZ agent: AlreadyExists")

    client.register_agent = refuse
    automaton = PairingTrustAutomaton(client)

    with pytest.raises(PairingException):
        automaton.start()
    assert automaton.state == PairingState.UNREGISTERED
