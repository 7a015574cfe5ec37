"""
frp 변형
frps 바이너리 설치, frps/frpc 설정 및 systemd 유닛 렌더링
"""

import os
import platform
import shutil
import subprocess
import tarfile
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Mapping

import requests
from rich.console import Console

from .dependencies import Capability
from .errors import DependencyError
from .firewall import Rule
from .network import format_endpoint
from .render import RenderedFile, Summary, Variant, render_env, render_template
from .service import ServiceManager, SystemdService
from .state import ProvisioningState

console = Console()

RELEASE_URL = "https://github.com/fatedier/frp/releases/download/v{version}/{package}.tar.gz"

ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

FRPS_TOML = """# frps configuration file
# Generated by k8s-vps-proxy

bindPort = {{ frp.bind_port }}
vhostHTTPPort = {{ frp.vhost_http_port }}
{% if frp.vhost_https_port %}
vhostHTTPSPort = {{ frp.vhost_https_port }}
{% endif %}

# Authentication
auth.method = "token"
auth.token = {{ quote(auth_token) }}

# Web dashboard
webServer.addr = "0.0.0.0"
webServer.port = {{ frp.dashboard_port }}
webServer.user = {{ quote(frp.dashboard_user) }}
webServer.password = {{ quote(auth_token) }}

# Logging
log.to = {{ quote(frp.log_dir ~ "/frps.log") }}
log.level = {{ quote(frp.log_level) }}
log.maxDays = {{ frp.log_max_days }}

# Domain for vhost
subdomainHost = {{ quote(domain) }}
"""

FRPS_SERVICE = """[Unit]
Description=frp server service
After=network.target
Wants=network.target

[Service]
Type=simple
ExecStart={{ frp.binary_path }} -c {{ config_path }}
Restart=on-failure
RestartSec=5s
StandardOutput=journal
StandardError=journal

[Install]
WantedBy=multi-user.target
"""

FRPC_TOML = """# frpc configuration for Kubernetes

serverAddr = {{ quote(public_ip) }}
serverPort = {{ frp.bind_port }}

auth.method = "token"
auth.token = {{ quote(auth_token) }}

# HTTP proxy - forwards to K8s Ingress
[[proxies]]
name = "web"
type = "http"
localIP = {{ quote(frp.client_local_ip) }}
localPort = {{ frp.client_http_port }}
customDomains = [{{ quote(wildcard_domain) }}]
{% if frp.vhost_https_port %}

# HTTPS proxy - forwards to K8s Ingress
[[proxies]]
name = "web-https"
type = "https"
localIP = {{ quote(frp.client_local_ip) }}
localPort = {{ frp.client_https_port }}
customDomains = [{{ quote(wildcard_domain) }}]
{% endif %}
"""


def detect_arch() -> str:
    """frp 릴리스 아키텍처 이름"""
    machine = platform.machine().lower()
    arch = ARCH_MAP.get(machine)
    if arch is None:
        raise DependencyError(f"지원하지 않는 아키텍처입니다: {machine}")
    return arch


def installed_frps_version(binary_path: str) -> str:
    """설치된 frps 버전 (없으면 빈 문자열)"""
    if not os.access(binary_path, os.X_OK):
        return ""
    try:
        result = subprocess.run([binary_path, "--version"], capture_output=True, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired):
        return ""
    return result.stdout.strip() if result.returncode == 0 else ""


def download_frps(version: str, binary_path: str, http_timeout: int):
    """GitHub 릴리스에서 frps를 내려받아 설치"""
    package = f"frp_{version}_linux_{detect_arch()}"
    url = RELEASE_URL.format(version=version, package=package)
    console.print(f"[cyan]frp v{version} 다운로드 중...[/cyan]")

    with tempfile.TemporaryDirectory() as tmp:
        archive = Path(tmp) / "frp.tar.gz"
        try:
            with requests.get(url, stream=True, timeout=http_timeout) as response:
                response.raise_for_status()
                with open(archive, "wb") as f:
                    for chunk in response.iter_content(chunk_size=65536):
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            raise DependencyError(f"frp 다운로드 실패 ({url}): {e}") from e

        console.print("[cyan]frp 압축 해제 중...[/cyan]")
        try:
            with tarfile.open(archive, "r:gz") as tar:
                member = tar.extractfile(f"{package}/frps")
                if member is None:
                    raise DependencyError(f"압축 파일에 frps가 없습니다: {package}")
                extracted = Path(tmp) / "frps"
                with open(extracted, "wb") as f:
                    shutil.copyfileobj(member, f)
        except (tarfile.TarError, KeyError) as e:
            raise DependencyError(f"frp 압축 해제 실패: {e}") from e

        target = Path(binary_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        staging = target.with_name(f".{target.name}.new")
        shutil.copyfile(extracted, staging)
        os.chmod(staging, 0o755)
        os.replace(staging, target)

    console.print(f"[green]✓ frps 설치 완료: {binary_path}[/green]")


class FrpVariant(Variant):
    """frps + systemd"""

    name = "frp"
    title = "K8s VPS Proxy Setup (frp)"
    fields = ("domain", "auth_token", "public_ip")
    required_fields = ("domain", "auth_token", "public_ip")
    prompt_fields = ("domain", "auth_token")

    @property
    def install_dir(self) -> str:
        return self.config.frp.install_dir

    def initial_state(self) -> ProvisioningState:
        return ProvisioningState(
            variant=self.name,
            install_dir=self.install_dir,
            frp=replace(self.config.frp),
            wireguard=replace(self.config.wireguard),
        )

    def capabilities(self) -> List[Capability]:
        frp = self.config.frp

        def check() -> bool:
            return installed_frps_version(frp.binary_path) == frp.version

        def install():
            download_frps(frp.version, frp.binary_path, self.config.agent.http_timeout)

        return [Capability(name=f"frps v{frp.version}", check=check, install=install)]

    def apply_parameters(self, state: ProvisioningState, values: Mapping[str, str]) -> ProvisioningState:
        return replace(
            state,
            domain=values["domain"],
            auth_token=values["auth_token"],
            public_ip=values["public_ip"],
        )

    def client_config_path(self, state: ProvisioningState) -> Path:
        return state.path("client", "frpc.toml")

    def render(self, state: ProvisioningState) -> Dict[str, RenderedFile]:
        frp = state.frp
        server_config = state.path("frps.toml")
        context = dict(
            frp=frp,
            domain=state.domain,
            auth_token=state.auth_token,
            public_ip=state.public_ip,
            wildcard_domain=state.wildcard_domain,
            config_path=str(server_config),
        )
        return {
            ".env": RenderedFile(
                state.path(".env"),
                render_env({
                    "DOMAIN": state.domain,
                    "TOKEN": state.auth_token,
                    "VPS_PUBLIC_IP": state.public_ip,
                }),
                mode=0o600,
            ),
            "frps.toml": RenderedFile(server_config, render_template(FRPS_TOML, **context), mode=0o600),
            "frps.service": RenderedFile(
                Path(frp.unit_dir) / f"{frp.service_name}.service",
                render_template(FRPS_SERVICE, **context),
            ),
            "frpc.toml": RenderedFile(
                self.client_config_path(state),
                render_template(FRPC_TOML, **context),
                mode=0o600,
            ),
        }

    def prepare(self, state: ProvisioningState):
        Path(state.frp.log_dir).mkdir(parents=True, exist_ok=True)

    def public_ports(self) -> List[int]:
        frp = self.config.frp
        return [port for port in (frp.vhost_http_port, frp.vhost_https_port) if port]

    def firewall_rules(self, state: ProvisioningState) -> List[Rule]:
        frp = state.frp
        rules = [
            (str(self.config.firewall.ssh_port), "tcp", "SSH"),
            (str(frp.vhost_http_port), "tcp", "HTTP"),
        ]
        if frp.vhost_https_port:
            rules.append((str(frp.vhost_https_port), "tcp", "HTTPS"))
        rules.append((str(frp.bind_port), "tcp", "frp control"))
        rules.append((str(frp.dashboard_port), "tcp", "frp dashboard"))
        return rules

    def service(self, state: ProvisioningState) -> ServiceManager:
        agent = self.config.agent
        return SystemdService(
            state.frp.service_name,
            timeout=agent.command_timeout,
            settle_seconds=agent.service_settle_seconds,
            tail_lines=agent.log_tail_lines,
        )

    def summary(self, state: ProvisioningState) -> Summary:
        frp = state.frp
        unit = frp.service_name
        client = self.render(state)["frpc.toml"]
        return Summary(
            title="frp",
            items=[
                ("domain", state.domain),
                ("public_ip", state.public_ip),
                ("frp_bind_port", str(frp.bind_port)),
                ("dashboard", f"http://{format_endpoint(state.public_ip, frp.dashboard_port)}"),
                ("dashboard_user", frp.dashboard_user),
                ("dashboard_password", state.auth_token),
                ("client_config", str(client.path)),
            ],
            next_steps=[
                f"DNS 레코드 추가: A    {state.wildcard_domain}    →  {state.public_ip}",
                f"K8s에 frpc 배포: {client.path} 로 ConfigMap 생성 후 frp 클라이언트 이미지로 Deployment 생성",
                f"frpc가 Ingress({frp.client_local_ip}:{frp.client_http_port}) 에 접근 가능한지 확인",
            ],
            commands=[
                (f"systemctl status {unit}", "서비스 상태 확인"),
                (f"systemctl restart {unit}", "서비스 재시작"),
                (f"journalctl -u {unit} -f", "로그 보기"),
                (f"cat {state.path('frps.toml')}", "설정 보기"),
            ],
            peer_config=client,
        )
