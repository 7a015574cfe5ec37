"""
WireGuard + Caddy 변형
Docker Compose로 WireGuard 터널과 Caddy 리버스 프록시를 실행
"""

from dataclasses import replace
from typing import Dict, List, Mapping

import yaml

from .dependencies import Capability, apt_package, docker_compose_plugin, docker_engine, docker_image
from .firewall import Rule
from .keys import ensure_key_material
from .network import format_endpoint
from .render import RenderedFile, Summary, Variant, render_env, render_template
from .service import ComposeService, ServiceManager
from .state import ProvisioningState

COMPOSE_SERVICES = ("wireguard", "caddy")

WG_CONF = """[Interface]
Address = {{ wg.server_ip }}/{{ wg.netmask }}
ListenPort = {{ wg.port }}
PrivateKey = {{ private_key }}
PostUp = iptables -A FORWARD -i %i -j ACCEPT; iptables -A FORWARD -o %i -j ACCEPT; iptables -t nat -A POSTROUTING -o eth0 -j MASQUERADE
PostDown = iptables -D FORWARD -i %i -j ACCEPT; iptables -D FORWARD -o %i -j ACCEPT; iptables -t nat -D POSTROUTING -o eth0 -j MASQUERADE

{% if wg.peer_public_key %}
# K8s peer
[Peer]
PublicKey = {{ wg.peer_public_key }}
AllowedIPs = {{ wg.client_ip }}/32
{% else %}
# K8s peer: set wireguard.peer_public_key in the config file and re-run,
# or fill in the public key below and restart the stack.
# [Peer]
# PublicKey = <K8S_PUBLIC_KEY>
# AllowedIPs = {{ wg.client_ip }}/32
{% endif %}
"""

CADDYFILE = """{{ wildcard_domain }}, {{ domain }} {
	reverse_proxy {{ wg.client_ip }}:{{ wg.upstream_port }} {
		header_up Host {host}
		header_up X-Real-IP {remote_host}
		header_up X-Forwarded-For {remote_host}
		header_up X-Forwarded-Proto {scheme}
	}
}
"""

PEER_CONF = """# WireGuard configuration for the K8s side
# Replace <K8S_PRIVATE_KEY> with the key generated on the K8s host (wg genkey)

[Interface]
Address = {{ wg.client_ip }}/{{ wg.netmask }}
PrivateKey = <K8S_PRIVATE_KEY>

[Peer]
PublicKey = {{ public_key }}
Endpoint = {{ endpoint }}
AllowedIPs = {{ wg.server_ip }}/32
PersistentKeepalive = {{ wg.keepalive }}
"""


def compose_document(state: ProvisioningState) -> dict:
    """docker-compose.yml 내용"""
    wg = state.wireguard
    return {
        "services": {
            "wireguard": {
                "image": wg.wireguard_image,
                "container_name": "wireguard",
                "cap_add": ["NET_ADMIN", "SYS_MODULE"],
                "environment": ["PUID=1000", "PGID=1000", "TZ=Etc/UTC"],
                "volumes": [
                    f"./wireguard/{wg.interface}.conf:/config/wg_confs/{wg.interface}.conf:ro",
                    "/lib/modules:/lib/modules:ro",
                ],
                "ports": [
                    f"{wg.port}:{wg.port}/udp",
                    "80:80",
                    "443:443",
                    "443:443/udp",
                ],
                "sysctls": [
                    "net.ipv4.conf.all.src_valid_mark=1",
                    "net.ipv4.ip_forward=1",
                ],
                "restart": "unless-stopped",
            },
            "caddy": {
                "image": wg.caddy_image,
                "container_name": "caddy",
                # Caddy가 터널 인터페이스를 통해 K8s 측에 접근하도록 네트워크 공유
                "network_mode": "service:wireguard",
                "depends_on": ["wireguard"],
                "volumes": [
                    "./caddy/Caddyfile:/etc/caddy/Caddyfile:ro",
                    "caddy_data:/data",
                    "caddy_config:/config",
                ],
                "restart": "unless-stopped",
            },
        },
        "volumes": {"caddy_data": {}, "caddy_config": {}},
    }


class WireGuardVariant(Variant):
    """WireGuard + Caddy (Docker Compose)"""

    name = "wireguard"
    title = "K8s VPS Proxy Setup (WireGuard + Caddy)"
    fields = ("domain", "public_ip")
    required_fields = ("domain", "public_ip")
    prompt_fields = ("domain",)
    uses_keys = True

    @property
    def install_dir(self) -> str:
        return self.config.wireguard.install_dir

    def initial_state(self) -> ProvisioningState:
        return ProvisioningState(
            variant=self.name,
            install_dir=self.install_dir,
            frp=replace(self.config.frp),
            wireguard=replace(self.config.wireguard),
        )

    def capabilities(self) -> List[Capability]:
        wg = self.config.wireguard
        return [
            docker_engine(self.timeout),
            docker_compose_plugin(self.timeout),
            apt_package("wg", "wireguard-tools", self.timeout),
            docker_image(wg.wireguard_image, self.timeout),
            docker_image(wg.caddy_image, self.timeout),
        ]

    def apply_parameters(self, state: ProvisioningState, values: Mapping[str, str]) -> ProvisioningState:
        return replace(state, domain=values["domain"], public_ip=values["public_ip"])

    def ensure_key_material(self, state: ProvisioningState, regenerate: bool = False) -> ProvisioningState:
        return ensure_key_material(state, regenerate=regenerate, timeout=self.timeout)

    def render(self, state: ProvisioningState) -> Dict[str, RenderedFile]:
        wg = state.wireguard
        context = dict(
            wg=wg,
            domain=state.domain,
            wildcard_domain=state.wildcard_domain,
            private_key=state.private_key,
            public_key=state.public_key,
            endpoint=format_endpoint(state.public_ip, wg.port),
        )
        return {
            ".env": RenderedFile(
                state.path(".env"),
                render_env({
                    "DOMAIN": state.domain,
                    "WG_SERVER_IP": wg.server_ip,
                    "WG_CLIENT_IP": wg.client_ip,
                    "WG_PORT": wg.port,
                    "VPS_PUBLIC_IP": state.public_ip,
                }),
                mode=0o600,
            ),
            f"{wg.interface}.conf": RenderedFile(
                state.path("wireguard", f"{wg.interface}.conf"),
                render_template(WG_CONF, **context),
                mode=0o600,
            ),
            "Caddyfile": RenderedFile(
                state.path("caddy", "Caddyfile"),
                render_template(CADDYFILE, **context),
            ),
            "docker-compose.yml": RenderedFile(
                state.path("docker-compose.yml"),
                yaml.safe_dump(compose_document(state), default_flow_style=False, sort_keys=False),
            ),
            "k8s-peer.conf": RenderedFile(
                state.path("k8s-peer.conf"),
                render_template(PEER_CONF, **context),
            ),
        }

    def firewall_rules(self, state: ProvisioningState) -> List[Rule]:
        return [
            (str(self.config.firewall.ssh_port), "tcp", "SSH"),
            ("80", "tcp", "HTTP"),
            ("443", "tcp", "HTTPS"),
            (str(state.wireguard.port), "udp", "WireGuard"),
        ]

    def service(self, state: ProvisioningState) -> ServiceManager:
        agent = self.config.agent
        return ComposeService(
            state.path("docker-compose.yml"),
            COMPOSE_SERVICES,
            timeout=agent.command_timeout,
            settle_seconds=agent.service_settle_seconds,
            tail_lines=agent.log_tail_lines,
        )

    def summary(self, state: ProvisioningState) -> Summary:
        wg = state.wireguard
        peer = self.render(state)["k8s-peer.conf"]
        compose = state.path("docker-compose.yml")
        next_steps = [
            f"DNS 레코드 추가: A    {state.wildcard_domain}    →  {state.public_ip}",
            f"DNS 레코드 추가: A    {state.domain}    →  {state.public_ip}",
            f"K8s 측에서 키 생성 후 {peer.path} 의 <K8S_PRIVATE_KEY> 를 채워 적용",
        ]
        if not wg.peer_public_key:
            next_steps.append(
                "K8s 측 공개키를 설정 파일의 wireguard.peer_public_key 에 넣고 다시 실행"
            )
        return Summary(
            title="WireGuard + Caddy",
            items=[
                ("domain", state.domain),
                ("public_ip", state.public_ip),
                ("endpoint", format_endpoint(state.public_ip, wg.port)),
                ("tunnel_server_ip", wg.server_ip),
                ("tunnel_client_ip", wg.client_ip),
                ("server_public_key", state.public_key),
                ("peer_config", str(peer.path)),
            ],
            next_steps=next_steps,
            commands=[
                (f"docker compose -f {compose} ps", "스택 상태 확인"),
                (f"docker compose -f {compose} logs -f", "로그 보기"),
                ("docker exec wireguard wg show", "터널 상태 확인"),
            ],
            peer_config=peer,
        )
