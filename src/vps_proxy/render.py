"""
설정 파일 렌더링 공통 모듈
변형(frp / WireGuard)별 렌더링 인터페이스와 원자적 파일 쓰기
"""

import json
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from jinja2 import StrictUndefined, Template

from .config import Config
from .dependencies import Capability
from .errors import GenerationError
from .firewall import Rule
from .logger import get_logger
from .service import ServiceManager
from .state import ProvisioningState, atomic_write


@dataclass(frozen=True)
class RenderedFile:
    """렌더링 결과 파일"""
    path: Path
    content: str
    mode: int = 0o644


@dataclass
class Summary:
    """원격 피어 설정에 필요한 정보"""
    title: str
    items: List[Tuple[str, str]]
    next_steps: List[str] = field(default_factory=list)
    commands: List[Tuple[str, str]] = field(default_factory=list)
    peer_config: Optional[RenderedFile] = None


def render_template(source: str, **context) -> str:
    """jinja2 템플릿 렌더링 (정의되지 않은 변수는 오류)"""
    template = Template(
        source,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    return template.render(quote=json.dumps, **context)


def render_env(values: Mapping[str, object]) -> str:
    """KEY=value 형식 .env 내용 (셸 인용 규칙으로 값 인용)"""
    lines = ["# Generated by k8s-vps-proxy. Re-running the provisioner reads this file."]
    lines.extend(f"{key}={shlex.quote(str(value))}" for key, value in values.items())
    return "\n".join(lines) + "\n"


def write_rendered(files: Mapping[str, RenderedFile]) -> List[Path]:
    """렌더링 결과를 모두 원자적으로 기록"""
    logger = get_logger()
    written = []
    for name, rendered in files.items():
        try:
            atomic_write(rendered.path, rendered.content, mode=rendered.mode)
        except OSError as e:
            logger.error(f"Failed to write {rendered.path}: {e}")
            raise GenerationError(f"{name} 파일 생성 실패 ({rendered.path}): {e}") from e
        logger.info(f"Wrote {rendered.path}")
        written.append(rendered.path)
    return written


class Variant:
    """프로비저닝 변형 인터페이스"""

    name = "variant"
    title = ""
    fields: Tuple[str, ...] = ("domain", "public_ip")
    required_fields: Tuple[str, ...] = ("domain", "public_ip")
    prompt_fields: Tuple[str, ...] = ("domain",)
    uses_keys = False

    def __init__(self, config: Config):
        self.config = config
        self.timeout = config.agent.command_timeout
        self.logger = get_logger()

    @property
    def install_dir(self) -> str:
        raise NotImplementedError

    def initial_state(self) -> ProvisioningState:
        raise NotImplementedError

    def capabilities(self) -> List[Capability]:
        raise NotImplementedError

    def apply_parameters(self, state: ProvisioningState, values: Mapping[str, str]) -> ProvisioningState:
        raise NotImplementedError

    def ensure_key_material(self, state: ProvisioningState, regenerate: bool = False) -> ProvisioningState:
        """키가 필요 없는 변형은 상태를 그대로 반환"""
        return state

    def render(self, state: ProvisioningState) -> Dict[str, RenderedFile]:
        raise NotImplementedError

    def prepare(self, state: ProvisioningState):
        """서비스 시작 전 필요한 디렉토리 등 준비"""

    def public_ports(self) -> List[int]:
        """서비스가 직접 바인딩하는 HTTP/HTTPS 포트"""
        return [80, 443]

    def firewall_rules(self, state: ProvisioningState) -> List[Rule]:
        raise NotImplementedError

    def service(self, state: ProvisioningState) -> ServiceManager:
        raise NotImplementedError

    def summary(self, state: ProvisioningState) -> Summary:
        raise NotImplementedError
