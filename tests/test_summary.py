"""
요약 리포트 테스트
"""

import os
import stat
from datetime import datetime

from vps_proxy.frp import FrpVariant
from vps_proxy.service import ServiceOutcome
from vps_proxy.summary import emit_summary, write_report


def test_report_is_line_oriented(config):
    variant = FrpVariant(config)
    state = variant.apply_parameters(
        variant.initial_state(),
        {"domain": "example.com", "auth_token": "abc123", "public_ip": "203.0.113.5"},
    )

    path = write_report(state, variant.summary(state), ServiceOutcome.RESTARTED, now=datetime(2024, 5, 1, 12, 0))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[1] == "# generated: 2024-05-01 12:00:00"
    assert "variant: frp" in lines
    assert "domain: example.com" in lines
    assert "dashboard_password: abc123" in lines
    assert "service: restarted" in lines
    assert any(line.startswith("next_step: DNS") for line in lines)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_emit_summary_prints_peer_config(config, capsys):
    variant = FrpVariant(config)
    state = variant.apply_parameters(
        variant.initial_state(),
        {"domain": "example.com", "auth_token": "abc123", "public_ip": "203.0.113.5"},
    )

    path = emit_summary(state, variant.summary(state))

    output = capsys.readouterr().out
    assert "[[proxies]]" in output
    assert path.exists()
