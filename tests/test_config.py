from __future__ import annotations

import socket

import pytest

from btprov.common import config, paths


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    for env in (config.DEVICE_NAME_ENV, config.CREDENTIALS_TIMEOUT_ENV, config.SCAN_TIMEOUT_ENV):
        monkeypatch.delenv(env, raising=False)
    monkeypatch.setattr(paths, "DEVICE_NAME_FILE", tmp_path / "device_name")
    monkeypatch.setattr(paths, "CREDENTIALS_TIMEOUT_FILE", tmp_path / "credentials_timeout")
    monkeypatch.setattr(paths, "SCAN_TIMEOUT_FILE", tmp_path / "scan_timeout")
    return tmp_path


def test_defaults() -> None:
    assert config.get_device_name() == f"btprov-{socket.gethostname()}"
    assert config.get_credentials_timeout() == 600.0
    assert config.get_scan_timeout() == 30.0


def test_file_overrides_default(isolated_config) -> None:
    (isolated_config / "device_name").write_text("lab-rover\n")
    (isolated_config / "scan_timeout").write_text("45")
    assert config.get_device_name() == "lab-rover"
    assert config.get_scan_timeout() == 45.0


def test_environment_overrides_file(monkeypatch, isolated_config) -> None:
    (isolated_config / "credentials_timeout").write_text("120")
    monkeypatch.setenv(config.CREDENTIALS_TIMEOUT_ENV, "90")
    assert config.get_credentials_timeout() == 90.0


@pytest.mark.parametrize("raw", ["soon", "0", "-5"])
def test_invalid_seconds_fall_back_to_default(monkeypatch, raw) -> None:
    monkeypatch.setenv(config.SCAN_TIMEOUT_ENV, raw)
    assert config.get_scan_timeout() == config.DEFAULT_SCAN_TIMEOUT
