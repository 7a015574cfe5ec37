"""
의존성 설치 테스트
"""

import io
import os
import subprocess
import tarfile

import pytest
import requests

from vps_proxy import dependencies, frp
from vps_proxy.dependencies import (
    Capability, DependencyStatus, ensure_all, ensure_dependency, run_checked,
)
from vps_proxy.errors import DependencyError


def test_present_capability_is_not_installed():
    def install():
        raise AssertionError("install called")

    status = ensure_dependency(Capability("tool", check=lambda: True, install=install))
    assert status is DependencyStatus.PRESENT


def test_missing_capability_is_installed():
    installed = []

    capability = Capability("tool", check=lambda: bool(installed), install=lambda: installed.append(True))

    assert ensure_dependency(capability) is DependencyStatus.INSTALLED
    assert installed == [True]


def test_install_failure_is_wrapped():
    def install():
        raise requests.exceptions.ConnectionError("network unreachable")

    with pytest.raises(DependencyError) as excinfo:
        ensure_dependency(Capability("tool", check=lambda: False, install=install))
    assert "tool" in str(excinfo.value)
    assert excinfo.value.step == "dependencies"


def test_still_missing_after_install():
    with pytest.raises(DependencyError):
        ensure_dependency(Capability("tool", check=lambda: False, install=lambda: None))


def test_ensure_all_stops_at_first_failure():
    calls = []

    def failing():
        calls.append("first")
        raise DependencyError("boom")

    capabilities = [
        Capability("first", check=lambda: False, install=failing),
        Capability("second", check=lambda: calls.append("second") or True, install=lambda: None),
    ]

    with pytest.raises(DependencyError):
        ensure_all(capabilities)
    assert calls == ["first"]


def test_run_checked(monkeypatch):
    def fake_run(cmd, **kwargs):
        assert kwargs["timeout"] == 5
        return subprocess.CompletedProcess(cmd, 100, stdout="", stderr="E: Unable to locate package\n")

    monkeypatch.setattr(dependencies.subprocess, "run", fake_run)

    with pytest.raises(DependencyError) as excinfo:
        run_checked(["apt-get", "install", "-y", "nothing"], "nothing 설치", timeout=5)
    assert "Unable to locate package" in str(excinfo.value)


def test_run_checked_timeout(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(dependencies.subprocess, "run", fake_run)

    with pytest.raises(DependencyError):
        run_checked(["docker", "pull", "caddy"], "caddy", timeout=1)


def test_detect_arch(monkeypatch):
    monkeypatch.setattr(frp.platform, "machine", lambda: "aarch64")
    assert frp.detect_arch() == "arm64"

    monkeypatch.setattr(frp.platform, "machine", lambda: "mips")
    with pytest.raises(DependencyError):
        frp.detect_arch()


def make_release(package: str) -> bytes:
    """frps 바이너리 하나만 들어 있는 tar.gz"""
    payload = b"#!/bin/sh\necho frps\n"
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        info = tarfile.TarInfo(f"{package}/frps")
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


class FakeDownload:
    def __init__(self, body: bytes = b"", error: Exception = None):
        self.body = body
        self.error = error

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.error:
            raise self.error

    def iter_content(self, chunk_size):
        yield self.body


def test_download_frps(monkeypatch, tmp_path):
    requested = []
    body = make_release("frp_0.65.0_linux_amd64")

    def fake_get(url, stream, timeout):
        requested.append((url, timeout))
        return FakeDownload(body)

    monkeypatch.setattr(frp.platform, "machine", lambda: "x86_64")
    monkeypatch.setattr(frp.requests, "get", fake_get)

    target = tmp_path / "bin" / "frps"
    frp.download_frps("0.65.0", str(target), http_timeout=7)

    assert requested == [(
        "https://github.com/fatedier/frp/releases/download/v0.65.0/frp_0.65.0_linux_amd64.tar.gz", 7
    )]
    assert target.read_bytes() == b"#!/bin/sh\necho frps\n"
    assert os.access(target, os.X_OK)


def test_download_frps_network_failure(monkeypatch, tmp_path):
    """다운로드 실패 시 DependencyError, 바이너리는 생성되지 않음"""
    monkeypatch.setattr(frp.platform, "machine", lambda: "x86_64")
    monkeypatch.setattr(
        frp.requests, "get",
        lambda url, stream, timeout: FakeDownload(error=requests.exceptions.HTTPError("404 Not Found")),
    )

    target = tmp_path / "bin" / "frps"
    with pytest.raises(DependencyError):
        frp.download_frps("9.9.9", str(target), http_timeout=1)
    assert not target.exists()


def test_download_frps_missing_member(monkeypatch, tmp_path):
    monkeypatch.setattr(frp.platform, "machine", lambda: "x86_64")
    monkeypatch.setattr(
        frp.requests, "get",
        lambda url, stream, timeout: FakeDownload(make_release("something_else")),
    )

    with pytest.raises(DependencyError):
        frp.download_frps("0.65.0", str(tmp_path / "frps"), http_timeout=1)


def test_frps_capability_checks_version(monkeypatch, config):
    monkeypatch.setattr(frp, "installed_frps_version", lambda path: "0.65.0")
    capability = frp.FrpVariant(config).capabilities()[0]
    assert capability.check() is True

    monkeypatch.setattr(frp, "installed_frps_version", lambda path: "0.52.0")
    assert capability.check() is False
