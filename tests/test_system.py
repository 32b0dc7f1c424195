from __future__ import annotations

import subprocess

from btprov.common import system


class FakeCompleted:
    def __init__(self, stdout: str) -> None:
        self.stdout = stdout


def test_required_services_all_active(monkeypatch) -> None:
    monkeypatch.setattr(system.subprocess, "run", lambda *args, **kwargs: FakeCompleted("active\n"))
    assert system.check_required_services() == (True, [])


def test_inactive_and_unreachable_services_are_reported(monkeypatch) -> None:
    def run(cmd, **kwargs):
        if cmd[-1] == "bluetooth.service":
            return FakeCompleted("inactive\n")
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr(system.subprocess, "run", run)

    ok, failed = system.check_required_services()

    assert not ok
    assert failed == ["bluetooth.service", "NetworkManager.service"]
