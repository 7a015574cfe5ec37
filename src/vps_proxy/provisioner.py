"""
프로비저너
상태 로드 → 사전 점검 → 의존성 → 파라미터 결정 → 설정 생성 → 서비스 적용 → 요약
각 단계는 이미 충족되어 있으면 아무 작업도 하지 않는다 (idempotent)
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from .dependencies import ensure_all
from .errors import MissingRequiredParameter, PreconditionError
from .firewall import FirewallManager
from .locking import InstallLock
from .logger import get_logger
from .network import NetworkChecker
from .params import (
    FIELD_HINTS, AutoDetectSource, EnvSource, ParameterSource, PersistedStateSource, PromptSource,
    resolve_parameters, validate_parameters,
)
from .render import Variant, write_rendered
from .service import ServiceOutcome
from .state import LOCK_FILE, PriorInstallation, ProvisioningState, StateStore
from .summary import emit_summary

console = Console()


class Stage(Enum):
    FRESH = 0
    DEPENDENCIES_READY = 1
    CONFIG_READY = 2
    SERVICE_RUNNING = 3
    REPORTED = 4


@dataclass
class ProvisionResult:
    """실행 결과"""
    stage: Stage
    state: Optional[ProvisioningState] = None
    service_outcome: Optional[ServiceOutcome] = None
    files: List[Path] = field(default_factory=list)
    report: Optional[Path] = None

    @property
    def completed(self) -> bool:
        return self.stage is Stage.REPORTED


def _ask_confirm(question: str, default: bool) -> bool:
    return Confirm.ask(question, default=default)


class Provisioner:
    """프로비저닝 상태 머신"""

    def __init__(self, variant: Variant,
                 environ: Optional[Mapping[str, Optional[str]]] = None,
                 interactive: bool = False,
                 assume_yes: bool = False,
                 regenerate_keys: bool = False,
                 free_ports: bool = False,
                 confirm: Optional[Callable[[str, bool], bool]] = None,
                 ask: Optional[Callable[[str, str], str]] = None,
                 network: Optional[NetworkChecker] = None,
                 require_root: bool = True):
        self.variant = variant
        self.config = variant.config
        self.env_source = EnvSource(environ)
        self.interactive = interactive
        self.assume_yes = assume_yes
        self.regenerate_keys = regenerate_keys
        self.free_ports = free_ports
        self.confirm = confirm or _ask_confirm
        self.ask = ask
        self.network = network or NetworkChecker(
            http_timeout=self.config.agent.http_timeout,
            command_timeout=self.config.agent.command_timeout,
        )
        self.require_root = require_root
        self.store = StateStore(variant.install_dir)
        self.stage = Stage.FRESH
        self.logger = get_logger()

    def _advance(self, stage: Stage):
        """다음 단계로만 이동 가능"""
        if stage.value != self.stage.value + 1:
            raise RuntimeError(f"invalid stage transition {self.stage.name} -> {stage.name}")
        self.logger.info(f"Stage: {self.stage.name} -> {stage.name}")
        self.stage = stage

    # 1. 사전 점검
    def check_privileges(self):
        if self.require_root and os.geteuid() != 0:
            raise PreconditionError("root 권한이 필요합니다. sudo로 실행해주세요.")

    def preflight(self, prior: Optional[Dict[str, str]] = None):
        # 명시적으로 주어진 값은 설치 작업 전에 검증
        explicit = self.env_source.lookup(self.variant.fields)
        validate_parameters(explicit)
        self.logger.mask(explicit.get("auth_token"))
        for field_name, value in explicit.items():
            self.logger.info(f"Explicit {field_name}: {value}")

        if not self.interactive:
            self.check_required(prior)
        self.check_ports(prior)

    def check_required(self, prior: Optional[Dict[str, str]]):
        """비대화형 실행: 자동 감지할 수 없는 필수 값이 없으면 설치 전에 중단"""
        known = PersistedStateSource(prior).lookup(self.variant.fields)
        known.update(self.env_source.lookup(self.variant.fields))
        for field_name in self.variant.required_fields:
            if field_name in self.detectors() or known.get(field_name, "").strip():
                continue
            self.logger.error(f"Missing required parameter: {field_name}")
            raise MissingRequiredParameter(field_name, FIELD_HINTS.get(field_name))

    def check_ports(self, prior: Optional[Dict[str, str]]):
        if prior is not None and self.variant.service(self.variant.initial_state()).is_running():
            # 이미 실행 중인 자체 서비스가 포트를 점유
            self.logger.info("Managed service is running, skipping port holder check")
            return

        for port in self.variant.public_ports():
            holders = self.network.find_port_holders(port)
            if not holders:
                continue
            if self.free_ports:
                self.network.free_port(port)
            else:
                console.print(
                    f"[yellow]⚠ 포트 {port} 을(를) 다른 프로세스가 사용 중입니다 (PID {', '.join(map(str, holders))}). "
                    "--free-ports 옵션으로 종료할 수 있습니다.[/yellow]"
                )
                self.logger.warning(f"Port {port} is held by {holders}")

    # 2. 의존성
    def ensure_dependencies(self):
        ensure_all(self.variant.capabilities())
        self._advance(Stage.DEPENDENCIES_READY)

    # 상태 로드
    def load_state(self) -> Optional[Dict[str, str]]:
        return self.store.load()

    def confirm_update(self, prior: Dict[str, str]) -> bool:
        console.print(f"\n[yellow]기존 설치가 발견되었습니다: {self.store.env_path}[/yellow]")
        for key in ("DOMAIN", "VPS_PUBLIC_IP"):
            if prior.get(key):
                console.print(f"  {key}: {prior[key]}", markup=False)

        if self.assume_yes or not self.interactive:
            return True
        return self.confirm("설정을 업데이트하시겠습니까?", False)

    # 4. 파라미터 결정
    def sources(self, prior: Optional[Dict[str, str]]) -> List[ParameterSource]:
        sources: List[ParameterSource] = [self.env_source, PersistedStateSource(prior)]
        if self.interactive:
            sources.append(PromptSource(self.variant.prompt_fields, ask=self.ask))
        sources.append(AutoDetectSource(self.detectors()))
        return sources

    def detectors(self) -> Dict[str, Callable[[], Optional[str]]]:
        providers = self.config.agent.ip_providers
        return {"public_ip": lambda: self.network.detect_public_ip(providers)}

    def resolve(self, prior: Optional[Dict[str, str]]) -> ProvisioningState:
        values = resolve_parameters(
            self.sources(prior),
            fields=self.variant.fields,
            required=self.variant.required_fields,
        )
        state = self.variant.apply_parameters(self.variant.initial_state(), values)
        self.logger.mask(state.auth_token)
        console.print(f"[cyan]도메인: {state.domain}  /  VPS IP: {state.public_ip}[/cyan]")
        return state

    # 5. 키 + 설정 생성
    def generate(self, state: ProvisioningState) -> List[Path]:
        files = self.variant.render(state)
        written = write_rendered(files)
        self._advance(Stage.CONFIG_READY)
        return written

    # 6. 서비스 적용
    def apply_service(self, state: ProvisioningState) -> ServiceOutcome:
        self.variant.prepare(state)

        firewall = FirewallManager(
            self.variant.firewall_rules(state),
            enabled=self.config.firewall.enabled,
            additional_ports=self.config.firewall.additional_ports,
        )
        success, message = firewall.configure()
        if not success:
            console.print(f"[yellow]⚠ {message}[/yellow]")
            self.logger.warning(f"Firewall configuration incomplete: {message}")

        def should_restart() -> bool:
            if self.assume_yes or not self.interactive:
                return True
            return self.confirm("서비스가 실행 중입니다. 재시작하여 새 설정을 적용하시겠습니까?", True)

        outcome = self.variant.service(state).apply(should_restart)
        self._advance(Stage.SERVICE_RUNNING)
        return outcome

    # 7. 요약
    def report(self, state: ProvisioningState, outcome: ServiceOutcome) -> Path:
        path = emit_summary(state, self.variant.summary(state), outcome)
        self._advance(Stage.REPORTED)
        return path

    def run(self) -> ProvisionResult:
        """전체 실행. 오류는 ProvisionError로 전파 (재시도/롤백 없음)"""
        console.print(Panel.fit(f"[bold cyan]{self.variant.title}[/bold cyan]", border_style="cyan"))
        self.logger.info(f"=== Provisioning started ({self.variant.name}) ===")

        self.check_privileges()
        lock = InstallLock(Path(self.variant.install_dir) / LOCK_FILE, timeout=self.config.agent.lock_timeout)

        with lock:
            prior = self.load_state()
            self.preflight(prior)
            self.ensure_dependencies()

            if prior is not None and not self.confirm_update(prior):
                console.print("[green]기존 설정을 유지합니다. 변경 사항 없음.[/green]")
                self.logger.info("Update declined, existing installation left untouched")
                return ProvisionResult(stage=self.stage)

            state = self.resolve(prior)
            if prior is not None:
                backup_dir = str(self.store.backup())
                state = replace(state, prior_installation=PriorInstallation(prior, backup_dir))

            regenerate = self.regenerate_keys
            if (self.variant.uses_keys and prior is not None and self.interactive
                    and not regenerate and not self.assume_yes):
                regenerate = self.confirm(
                    "WireGuard 키를 재생성하시겠습니까? (원격 피어 설정을 다시 배포해야 합니다)", False
                )
            state = self.variant.ensure_key_material(state, regenerate=regenerate)
            self.logger.mask(state.private_key)

            files = self.generate(state)
            outcome = self.apply_service(state)
            report = self.report(state, outcome)

        self.logger.info("=== Provisioning completed successfully ===")
        return ProvisionResult(
            stage=self.stage,
            state=state,
            service_outcome=outcome,
            files=files,
            report=report,
        )
