"""
방화벽 설정 테스트
"""

import subprocess

import pytest

from vps_proxy import firewall
from vps_proxy.firewall import FirewallManager

RULES = [("22", "tcp", "SSH"), ("80", "tcp", "HTTP"), ("51820", "udp", "WireGuard")]


@pytest.fixture
def commands(monkeypatch):
    recorded = []

    def fake_run(cmd, **kwargs):
        recorded.append(cmd)
        # iptables -C: 규칙 없음
        returncode = 1 if cmd[:2] == ["iptables", "-C"] else 0
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="")

    monkeypatch.setattr(firewall.subprocess, "run", fake_run)
    return recorded


def only(tool):
    return lambda name: f"/usr/sbin/{name}" if name == tool else None


def test_disabled_does_nothing(commands):
    success, _ = FirewallManager(RULES, enabled=False).configure()
    assert success is True
    assert commands == []


def test_ufw_allows_ssh_before_enable(monkeypatch, commands):
    monkeypatch.setattr(firewall.shutil, "which", only("ufw"))

    success, _ = FirewallManager(RULES, additional_ports=["8080/tcp"]).configure()

    assert success is True
    assert commands[0] == ["ufw", "allow", "22/tcp"]
    assert ["ufw", "allow", "51820/udp"] in commands
    assert ["ufw", "allow", "8080/tcp"] in commands
    assert commands.index(["ufw", "--force", "enable"]) > commands.index(["ufw", "allow", "80/tcp"])


def test_firewalld(monkeypatch, commands):
    monkeypatch.setattr(firewall.shutil, "which", only("firewall-cmd"))

    success, _ = FirewallManager(RULES).configure()

    assert success is True
    assert ["firewall-cmd", "--permanent", "--add-port=51820/udp"] in commands
    assert commands[-1] == ["firewall-cmd", "--reload"]


def test_iptables_checks_before_append(monkeypatch, commands):
    monkeypatch.setattr(firewall.shutil, "which", only("iptables"))

    FirewallManager([("7000", "tcp", "frp control")]).configure()

    assert commands == [
        ["iptables", "-C", "INPUT", "-p", "tcp", "--dport", "7000", "-j", "ACCEPT"],
        ["iptables", "-A", "INPUT", "-p", "tcp", "--dport", "7000", "-j", "ACCEPT"],
    ]


def test_failure_is_reported_not_raised(monkeypatch):
    monkeypatch.setattr(firewall.shutil, "which", only("ufw"))
    monkeypatch.setattr(
        firewall.subprocess, "run",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 1, stdout="", stderr="ERROR: need root"),
    )

    success, message = FirewallManager(RULES).configure()
    assert success is False
    assert "UFW" in message


def test_no_firewall_tool(monkeypatch, commands):
    monkeypatch.setattr(firewall.shutil, "which", lambda name: None)

    success, _ = FirewallManager(RULES).configure()
    assert success is True
    assert commands == []


def test_additional_ports_default_to_tcp(monkeypatch, commands):
    monkeypatch.setattr(firewall.shutil, "which", only("firewall-cmd"))

    FirewallManager([], additional_ports=["8443", "30000-32767/udp"]).configure()

    assert ["firewall-cmd", "--permanent", "--add-port=8443/tcp"] in commands
    assert ["firewall-cmd", "--permanent", "--add-port=30000-32767/udp"] in commands
