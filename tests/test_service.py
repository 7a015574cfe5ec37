"""
서비스 관리 테스트
systemctl / docker compose 호출은 가짜 subprocess.run 으로 대체
"""

import subprocess

import pytest

from vps_proxy import service
from vps_proxy.errors import ServiceError
from vps_proxy.service import ComposeService, ServiceOutcome, SystemdService


class FakeSystemctl:
    """systemctl / journalctl 흉내"""

    def __init__(self, running=False, starts=True):
        self.running = running
        self.starts = starts
        self.commands = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        if cmd[0] == "journalctl":
            return subprocess.CompletedProcess(cmd, 0, stdout="frps: bind: address already in use\n", stderr="")
        action = cmd[1]
        if action == "is-active":
            return subprocess.CompletedProcess(cmd, 0 if self.running else 3, stdout="", stderr="")
        if action in ("start", "restart"):
            self.running = self.starts
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


@pytest.fixture
def systemctl(monkeypatch):
    def install(**kwargs):
        fake = FakeSystemctl(**kwargs)
        monkeypatch.setattr(service.subprocess, "run", fake)
        return fake
    return install


def actions(fake):
    return [cmd[1] for cmd in fake.commands if cmd[0] == "systemctl"]


def test_start_when_stopped(systemctl):
    fake = systemctl(running=False)
    outcome = SystemdService("frps", settle_seconds=0).apply(lambda: True)

    assert outcome is ServiceOutcome.STARTED
    assert actions(fake) == ["daemon-reload", "enable", "is-active", "start", "is-active"]


def test_restart_when_running(systemctl):
    fake = systemctl(running=True)
    outcome = SystemdService("frps", settle_seconds=0).apply(lambda: True)

    assert outcome is ServiceOutcome.RESTARTED
    assert "restart" in actions(fake)


def test_keep_running_when_restart_declined(systemctl):
    fake = systemctl(running=True)
    outcome = SystemdService("frps", settle_seconds=0).apply(lambda: False)

    assert outcome is ServiceOutcome.KEPT
    assert "restart" not in actions(fake)


def test_failed_start_carries_log_tail(systemctl):
    """시작 후에도 실행 중이 아니면 서비스 로그와 함께 ServiceError"""
    systemctl(running=False, starts=False)

    with pytest.raises(ServiceError) as excinfo:
        SystemdService("frps", settle_seconds=0, tail_lines=20).apply(lambda: True)

    assert "address already in use" in excinfo.value.log_tail
    assert excinfo.value.step == "service"


def test_failing_command_raises(monkeypatch):
    def fake_run(cmd, **kwargs):
        if cmd[0] == "journalctl":
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="Unit frps.service not found.")

    monkeypatch.setattr(service.subprocess, "run", fake_run)

    with pytest.raises(ServiceError) as excinfo:
        SystemdService("frps", settle_seconds=0).apply(lambda: True)
    assert "not found" in str(excinfo.value)


def test_compose_commands(monkeypatch, tmp_path):
    compose_file = tmp_path / "docker-compose.yml"
    commands = []
    state = {"up": False}

    def fake_run(cmd, **kwargs):
        commands.append(cmd)
        if "ps" in cmd:
            stdout = "wireguard\ncaddy\n" if state["up"] else "wireguard\n"
            return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")
        if "up" in cmd:
            state["up"] = True
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(service.subprocess, "run", fake_run)

    manager = ComposeService(compose_file, ["wireguard", "caddy"], settle_seconds=0)
    # 서비스 일부만 실행 중이면 실행 중이 아닌 것으로 판단
    assert manager.is_running() is False

    outcome = manager.apply(lambda: True)

    assert outcome is ServiceOutcome.STARTED
    prefix = ["docker", "compose", "-f", str(compose_file), "--project-directory", str(tmp_path)]
    assert prefix + ["up", "-d"] in commands


def test_compose_restart_recreates(monkeypatch, tmp_path):
    commands = []

    def fake_run(cmd, **kwargs):
        commands.append(cmd)
        stdout = "wireguard\ncaddy\n" if "ps" in cmd else ""
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    monkeypatch.setattr(service.subprocess, "run", fake_run)

    outcome = ComposeService(tmp_path / "docker-compose.yml", ["wireguard", "caddy"], settle_seconds=0).apply(
        lambda: True
    )

    assert outcome is ServiceOutcome.RESTARTED
    assert any(cmd[-3:] == ["up", "-d", "--force-recreate"] for cmd in commands)
