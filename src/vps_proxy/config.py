"""
설정 관리 모듈
YAML/JSON 기반 설정 파일 관리 및 기본값 제공
"""

import os
import yaml
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict


DEFAULT_IP_PROVIDERS = [
    "https://ifconfig.me",
    "https://icanhazip.com",
    "https://ipecho.net/plain",
]


@dataclass
class FrpConfig:
    """frp 서버 설정"""
    version: str = "0.65.0"
    install_dir: str = "/etc/frp"
    log_dir: str = "/var/log/frp"
    binary_path: str = "/usr/local/bin/frps"
    unit_dir: str = "/etc/systemd/system"
    service_name: str = "frps"
    bind_port: int = 7000
    vhost_http_port: int = 80
    vhost_https_port: Optional[int] = 443
    dashboard_port: int = 7500
    dashboard_user: str = "admin"
    log_level: str = "info"
    log_max_days: int = 3
    client_local_ip: str = "127.0.0.1"
    client_http_port: int = 80
    client_https_port: int = 443


@dataclass
class WireGuardConfig:
    """WireGuard + Caddy 설정"""
    install_dir: str = "/opt/k8s-vps-proxy"
    interface: str = "wg0"
    server_ip: str = "10.0.0.1"
    client_ip: str = "10.0.0.2"
    netmask: int = 24
    port: int = 51820
    keepalive: int = 25
    peer_public_key: str = ""
    upstream_port: int = 80
    wireguard_image: str = "lscr.io/linuxserver/wireguard:latest"
    caddy_image: str = "caddy:2-alpine"


@dataclass
class FirewallConfig:
    """방화벽 설정"""
    enabled: bool = True
    ssh_port: int = 22
    additional_ports: list = field(default_factory=list)


@dataclass
class AgentConfig:
    """프로비저너 실행 설정"""
    log_dir: str = "/var/log/k8s-vps-proxy"
    log_level: str = "INFO"
    command_timeout: int = 300
    http_timeout: int = 10
    lock_timeout: int = 10
    service_settle_seconds: int = 2
    log_tail_lines: int = 50
    ip_providers: list = field(default_factory=lambda: list(DEFAULT_IP_PROVIDERS))


class Config:
    """전체 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "/etc/k8s-vps-proxy/config.yaml",
        "~/.k8s-vps-proxy/config.yaml",
        "./config.yaml",
    ]

    SECTIONS = ("frp", "wireguard", "firewall", "agent")

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.frp = FrpConfig()
        self.wireguard = WireGuardConfig()
        self.firewall = FirewallConfig()
        self.agent = AgentConfig()

        if config_path:
            self.load(config_path)
        else:
            self._load_from_default_paths()

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            return

        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"설정 파일 형식이 올바르지 않습니다: {path}")

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트 (알 수 없는 키는 무시)"""
        for section_name in self.SECTIONS:
            values = data.get(section_name)
            if not values:
                continue
            section = getattr(self, section_name)
            for key, value in values.items():
                if hasattr(section, key):
                    setattr(section, key, value)

    def save(self, path: Optional[str] = None):
        """설정 파일 저장"""
        save_path = path or self.config_path or self.DEFAULT_CONFIG_PATHS[0]
        save_path = os.path.expanduser(save_path)

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(save_path, 'w', encoding='utf-8') as f:
            if save_path.endswith('.json'):
                json.dump(self.to_dict(), f, indent=2)
            else:
                yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {name: asdict(getattr(self, name)) for name in self.SECTIONS}

    def create_sample(self, output_path: str):
        """샘플 설정 파일 생성"""
        template = """# K8s VPS Proxy Configuration File
# 이 파일을 복사하여 config.yaml로 사용하세요
# 도메인/토큰은 설정 파일이 아닌 옵션 또는 환경변수(DOMAIN, TOKEN, VPS_IP)로 전달합니다

# frp 변형 (frps + systemd)
frp:
  version: "0.65.0"
  install_dir: "/etc/frp"
  log_dir: "/var/log/frp"
  bind_port: 7000        # frpc 제어 포트
  vhost_http_port: 80
  vhost_https_port: 443  # null이면 HTTPS 프록시를 생성하지 않음
  dashboard_port: 7500
  dashboard_user: "admin"
  log_max_days: 3

# WireGuard + Caddy 변형 (Docker Compose)
wireguard:
  install_dir: "/opt/k8s-vps-proxy"
  server_ip: "10.0.0.1"   # VPS 측 터널 IP
  client_ip: "10.0.0.2"   # K8s 측 터널 IP
  port: 51820
  keepalive: 25
  peer_public_key: ""     # K8s 측 공개키 (설정하면 피어 섹션이 활성화됨)

# 방화벽 설정
firewall:
  enabled: true
  ssh_port: 22
  additional_ports: []  # 예: ["8080/tcp"]

# 실행 설정
agent:
  log_dir: "/var/log/k8s-vps-proxy"
  log_level: "INFO"  # DEBUG, INFO, WARNING, ERROR
  command_timeout: 300
  http_timeout: 10
  lock_timeout: 10
"""

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template)
