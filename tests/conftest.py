"""
공통 테스트 픽스처
"""

import base64

import pytest

from vps_proxy.config import Config
from vps_proxy.logger import init_logger


def make_key(seed: int) -> str:
    """테스트용 WireGuard 형식 키 (32바이트 base64)"""
    return base64.b64encode(bytes([seed]) * 32).decode()


@pytest.fixture(autouse=True)
def logger(tmp_path):
    """모든 테스트에서 로그를 임시 디렉토리로"""
    return init_logger(str(tmp_path / "logs"), "DEBUG", False)


@pytest.fixture
def config(tmp_path):
    """모든 경로가 임시 디렉토리를 가리키는 설정"""
    cfg = Config(str(tmp_path / "does-not-exist.yaml"))
    cfg.frp.install_dir = str(tmp_path / "frp")
    cfg.frp.log_dir = str(tmp_path / "frp-log")
    cfg.frp.unit_dir = str(tmp_path / "systemd")
    cfg.frp.binary_path = str(tmp_path / "bin" / "frps")
    cfg.wireguard.install_dir = str(tmp_path / "wg")
    cfg.firewall.enabled = False
    cfg.agent.log_dir = str(tmp_path / "logs")
    cfg.agent.service_settle_seconds = 0
    cfg.agent.lock_timeout = 1
    return cfg
