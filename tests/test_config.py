"""
설정 관리 모듈 테스트
"""

import os
import tempfile
import pytest
from vps_proxy.config import Config


def test_default_config(tmp_path):
    """기본 설정 테스트"""
    config = Config(str(tmp_path / "none.yaml"))
    assert config.frp.version == "0.65.0"
    assert config.frp.install_dir == "/etc/frp"
    assert config.frp.bind_port == 7000
    assert config.wireguard.port == 51820
    assert config.firewall.enabled is True
    assert "https://ifconfig.me" in config.agent.ip_providers


def test_config_load_yaml():
    """YAML 설정 파일 로드 테스트"""
    yaml_content = """
frp:
  install_dir: "/srv/frp"
  vhost_https_port: null

wireguard:
  server_ip: "10.8.0.1"
  unknown_key: "ignored"

firewall:
  enabled: false
"""

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(yaml_content)
        temp_path = f.name

    try:
        config = Config(temp_path)
        assert config.frp.install_dir == "/srv/frp"
        assert config.frp.vhost_https_port is None
        assert config.wireguard.server_ip == "10.8.0.1"
        assert not hasattr(config.wireguard, "unknown_key")
        assert config.firewall.enabled is False
        assert config.config_path == temp_path
    finally:
        os.unlink(temp_path)


def test_config_load_json(tmp_path):
    """JSON 설정 파일 로드 테스트"""
    path = tmp_path / "config.json"
    path.write_text('{"agent": {"http_timeout": 3}}', encoding="utf-8")

    config = Config(str(path))
    assert config.agent.http_timeout == 3


def test_config_rejects_non_mapping(tmp_path):
    """최상위가 매핑이 아닌 설정 파일은 오류"""
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        Config(str(path))


def test_config_save(tmp_path):
    """설정 저장 테스트"""
    config = Config(str(tmp_path / "none.yaml"))
    config.wireguard.peer_public_key = "peer-key"

    target = tmp_path / "saved" / "config.yaml"
    config.save(str(target))

    config2 = Config(str(target))
    assert config2.wireguard.peer_public_key == "peer-key"


def test_config_to_dict(tmp_path):
    """딕셔너리 변환 테스트"""
    config = Config(str(tmp_path / "none.yaml"))
    data = config.to_dict()

    assert set(data) == {"frp", "wireguard", "firewall", "agent"}
    assert data["frp"]["dashboard_user"] == "admin"


def test_create_sample_is_loadable(tmp_path):
    """샘플 설정 파일은 그대로 로드 가능해야 함"""
    sample = tmp_path / "sample" / "config.yaml"
    Config(str(tmp_path / "none.yaml")).create_sample(str(sample))

    config = Config(str(sample))
    assert config.frp.vhost_https_port == 443
    assert config.wireguard.client_ip == "10.0.0.2"
