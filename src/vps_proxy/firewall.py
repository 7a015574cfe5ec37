"""
방화벽 설정 모듈
UFW, firewalld, iptables 지원. 실패해도 프로비저닝은 계속 진행 (경고만 출력)
"""

import shutil
import subprocess
from typing import List, Optional, Sequence, Tuple
from rich.console import Console
from .logger import get_logger

console = Console()

# (포트 또는 범위, 프로토콜, 설명)
Rule = Tuple[str, str, str]

# (실행할 명령, 이 명령이 성공하면 건너뜀)
Step = Tuple[List[str], Optional[List[str]]]

BACKENDS = (
    ("ufw", "ufw", "UFW"),
    ("firewall-cmd", "firewalld", "firewalld"),
    ("iptables", "iptables", "iptables"),
)


def parse_port_spec(spec: str) -> Tuple[str, str]:
    """'8080/tcp', '30000-32767/udp', '8443' 형식 파싱 (기본 tcp)"""
    port, _, protocol = spec.partition("/")
    return port.strip(), (protocol.strip() or "tcp")


class FirewallManager:
    """방화벽 관리 클래스"""

    def __init__(self, rules: Sequence[Rule], enabled: bool = True,
                 additional_ports: Sequence[str] = (), timeout: int = 60):
        self.rules = list(rules)
        self.rules.extend(
            parse_port_spec(spec) + ("추가 포트",) for spec in additional_ports
        )
        self.enabled = enabled
        self.timeout = timeout
        self.logger = get_logger()
        self.firewall_type = None

    def detect_firewall(self) -> str:
        """시스템의 방화벽 타입 감지"""
        for command, backend, _ in BACKENDS:
            if shutil.which(command):
                return backend
        return "none"

    def plan(self, backend: str) -> List[Step]:
        """방화벽 종류별 실행 명령 목록"""
        steps: List[Step] = []
        if backend == "ufw":
            # SSH 허용이 enable보다 먼저
            for port, protocol, _ in self.rules:
                steps.append((["ufw", "allow", f"{port.replace('-', ':')}/{protocol}"], None))
            steps.append((["ufw", "--force", "enable"], None))
            steps.append((["ufw", "reload"], None))
        elif backend == "firewalld":
            for port, protocol, _ in self.rules:
                steps.append((["firewall-cmd", "--permanent", f"--add-port={port}/{protocol}"], None))
            steps.append((["firewall-cmd", "--reload"], None))
        elif backend == "iptables":
            for port, protocol, _ in self.rules:
                rule = ["INPUT", "-p", protocol, "--dport", port.replace("-", ":"), "-j", "ACCEPT"]
                steps.append((["iptables", "-A"] + rule, ["iptables", "-C"] + rule))
        return steps

    def _run(self, cmd: List[str]) -> bool:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"Firewall command timed out: {' '.join(cmd)}")
            return False
        if result.returncode != 0:
            self.logger.debug(f"Firewall command failed: {' '.join(cmd)}: {result.stderr.strip()}")
            return False
        return True

    def configure(self) -> Tuple[bool, str]:
        """방화벽 규칙 적용. (성공 여부, 메시지) 반환"""
        if not self.enabled:
            console.print("[cyan]방화벽 설정을 건너뜁니다.[/cyan]")
            self.logger.info("Firewall configuration skipped")
            return True, "건너뜀"

        self.firewall_type = self.detect_firewall()
        if self.firewall_type == "none":
            console.print("[yellow]⚠ 방화벽 관리 도구를 찾을 수 없습니다.[/yellow]")
            self.logger.warning("No firewall management tool found")
            return True, "방화벽 없음"

        label = next(name for _, backend, name in BACKENDS if backend == self.firewall_type)
        console.print(f"\n[bold cyan]{label} 방화벽 규칙 추가 중...[/bold cyan]\n")
        self.logger.info(f"Configuring {label}...")

        failed = []
        try:
            for command, skip_if in self.plan(self.firewall_type):
                if skip_if and self._run(skip_if):
                    self.logger.debug(f"Rule already present: {' '.join(skip_if)}")
                    continue
                if not self._run(command):
                    failed.append(" ".join(command))
        except OSError as e:
            error_msg = f"방화벽 설정 실패: {str(e)}"
            self.logger.exception(error_msg)
            return False, error_msg

        for port, protocol, description in self.rules:
            console.print(f"  ✓ {port}/{protocol} - {description}")

        if failed:
            self.logger.warning(f"{label} commands failed: {failed}")
            return False, f"일부 {label} 규칙 적용 실패"

        console.print(f"\n[green]✓ {label} 방화벽 설정 완료[/green]")
        self.logger.info(f"{label} configuration completed")
        return True, f"{label} 설정 완료"
