from __future__ import annotations

import threading

import pytest

pytest.importorskip("dbus")
pytest.importorskip("gi")

from btprov import provisioning_service  # noqa: E402
from btprov.ble.manager import Credentials  # noqa: E402
from btprov.common.context import Context  # noqa: E402
from btprov.exceptions.advertising_exceptions import AdvertisementUnavailableException  # noqa: E402
from btprov.exceptions.credentials_exception import CredentialsException  # noqa: E402

CREDENTIALS = Credentials(ssid="Viam", psk="checkmate", robot_part_key_id="abc", robot_part_key="def")


class FakeNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


class FakeBluetooth:
    def __init__(self, accept_error=None, wait_error=None, reject_error=None) -> None:
        self.accept_error = accept_error
        self.wait_error = wait_error
        self.reject_error = reject_error
        self.rejected = False

    def accept_incoming_connections(self) -> None:
        if self.accept_error is not None:
            raise self.accept_error

    def wait_for_credentials(self, ctx):
        if self.wait_error is not None:
            raise self.wait_error
        return CREDENTIALS

    def reject_incoming_connections(self) -> None:
        self.rejected = True
        if self.reject_error is not None:
            raise self.reject_error


class FakeWifi:
    def __init__(self) -> None:
        self.connected: list[tuple[str, str]] = []

    def connect(self, ssid, psk, ctx) -> None:
        self.connected.append((ssid, psk))


@pytest.fixture(autouse=True)
def notifier(monkeypatch) -> FakeNotifier:
    fake = FakeNotifier()
    monkeypatch.setattr(provisioning_service, "sd_notifier", fake)
    return fake


def test_successful_provisioning_connects_with_received_credentials(notifier) -> None:
    wifi = FakeWifi()
    bluetooth = FakeBluetooth()

    error = provisioning_service.run_provisioning(Context(), bluetooth, wifi, threading.Event())

    assert error is None
    assert bluetooth.rejected
    assert wifi.connected == [("Viam", "checkmate")]
    assert notifier.messages[-1] == "STATUS=Connected to Viam"


def test_unexpected_error_is_reported_as_failure(notifier) -> None:
    boom = RuntimeError("org.freedesktop.DBus.Error.ServiceUnknown")

    error = provisioning_service.run_provisioning(
        Context(), FakeBluetooth(accept_error=boom), FakeWifi(), threading.Event()
    )

    assert error is boom
    assert notifier.messages[-1].startswith("STATUS=Provisioning failed")


def test_failure_during_shutdown_is_not_reported() -> None:
    shutdown_requested = threading.Event()
    shutdown_requested.set()
    bluetooth = FakeBluetooth(wait_error=CredentialsException([RuntimeError("context canceled")]))

    assert provisioning_service.run_provisioning(Context(), bluetooth, FakeWifi(), shutdown_requested) is None


def test_stop_failure_does_not_hide_credentials_error() -> None:
    wait_error = CredentialsException([RuntimeError("failed to read psk: context deadline exceeded")])
    bluetooth = FakeBluetooth(
        wait_error=wait_error,
        reject_error=AdvertisementUnavailableException("failed to unregister advertisement: gone"),
    )
    wifi = FakeWifi()

    with pytest.raises(CredentialsException) as exc_info:
        provisioning_service.provision(Context(), bluetooth, wifi)

    assert exc_info.value is wait_error
    assert bluetooth.rejected
    assert wifi.connected == []
