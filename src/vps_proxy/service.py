"""
서비스 관리 모듈
systemd 유닛 / Docker Compose 스택의 시작, 재시작, 상태 확인
"""

import subprocess
import time
from enum import Enum
from pathlib import Path
from typing import Callable, List, Sequence

from rich.console import Console

from .errors import ServiceError
from .logger import get_logger

console = Console()


class ServiceOutcome(Enum):
    STARTED = "started"
    RESTARTED = "restarted"
    KEPT = "kept"


class ServiceManager:
    """서비스 관리 기본 클래스"""

    name = "service"

    def __init__(self, timeout: int = 120, settle_seconds: float = 2, tail_lines: int = 50):
        self.timeout = timeout
        self.settle_seconds = settle_seconds
        self.tail_lines = tail_lines
        self.logger = get_logger()

    def _run(self, cmd: List[str], check: bool = True) -> subprocess.CompletedProcess:
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ServiceError(f"{cmd[0]} 명령을 찾을 수 없습니다: {e}")
        except subprocess.TimeoutExpired:
            raise ServiceError(f"{' '.join(cmd)} 시간 초과 ({self.timeout}초)", self.logs())

        if check and result.returncode != 0:
            error_output = (result.stderr or result.stdout).strip()
            self.logger.error(f"{' '.join(cmd)} failed: {error_output}")
            raise ServiceError(f"{self.name} 명령 실패: {error_output}", self.logs())
        return result

    def prepare(self):
        """시작 전 준비 작업"""

    def is_running(self) -> bool:
        raise NotImplementedError

    def start(self):
        raise NotImplementedError

    def restart(self):
        raise NotImplementedError

    def logs(self) -> str:
        """최근 서비스 로그 (진단용)"""
        return ""

    def apply(self, should_restart: Callable[[], bool]) -> ServiceOutcome:
        """서비스 시작 또는 재시작 후 실행 상태 확인"""
        console.print(f"\n[bold cyan]{self.name} 서비스 적용 중...[/bold cyan]\n")
        self.logger.info(f"Applying service {self.name}...")

        self.prepare()

        if self.is_running():
            if not should_restart():
                console.print(f"[yellow]{self.name} 재시작을 건너뜁니다. 변경된 설정은 재시작 후 적용됩니다.[/yellow]")
                self.logger.warning(f"{self.name} left running without restart")
                return ServiceOutcome.KEPT
            self.restart()
            outcome = ServiceOutcome.RESTARTED
        else:
            self.start()
            outcome = ServiceOutcome.STARTED

        time.sleep(self.settle_seconds)

        if not self.is_running():
            self.logger.error(f"{self.name} is not running after {outcome.value}")
            raise ServiceError(f"{self.name} 서비스가 시작되지 않았습니다", self.logs())

        console.print(f"[green]✓ {self.name} 서비스 실행 중 ({outcome.value})[/green]")
        self.logger.info(f"{self.name} is running ({outcome.value})")
        return outcome


class SystemdService(ServiceManager):
    """systemd 유닛"""

    def __init__(self, unit: str, **kwargs):
        super().__init__(**kwargs)
        self.unit = unit
        self.name = unit

    def prepare(self):
        self._run(["systemctl", "daemon-reload"])
        self._run(["systemctl", "enable", self.unit])

    def is_running(self) -> bool:
        result = self._run(["systemctl", "is-active", "--quiet", self.unit], check=False)
        return result.returncode == 0

    def start(self):
        self._run(["systemctl", "start", self.unit])

    def restart(self):
        self._run(["systemctl", "restart", self.unit])

    def logs(self) -> str:
        try:
            result = subprocess.run(
                ["journalctl", "-u", self.unit, "-n", str(self.tail_lines), "--no-pager"],
                capture_output=True, text=True, timeout=30
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            self.logger.warning(f"Could not read journal for {self.unit}: {e}")
            return ""
        return result.stdout.strip()


class ComposeService(ServiceManager):
    """Docker Compose 스택"""

    def __init__(self, compose_file: Path, services: Sequence[str], **kwargs):
        super().__init__(**kwargs)
        self.compose_file = Path(compose_file)
        self.services = list(services)
        self.name = "docker compose"

    def _compose(self, *args: str) -> List[str]:
        return [
            "docker", "compose",
            "-f", str(self.compose_file),
            "--project-directory", str(self.compose_file.parent),
        ] + list(args)

    def is_running(self) -> bool:
        result = self._run(self._compose("ps", "--status", "running", "--services"), check=False)
        if result.returncode != 0:
            return False
        running = set(result.stdout.split())
        return all(service in running for service in self.services)

    def start(self):
        self._run(self._compose("up", "-d"))

    def restart(self):
        self._run(self._compose("up", "-d", "--force-recreate"))

    def logs(self) -> str:
        try:
            result = subprocess.run(
                self._compose("logs", "--tail", str(self.tail_lines), "--no-color"),
                capture_output=True, text=True, timeout=30
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            self.logger.warning(f"Could not read compose logs: {e}")
            return ""
        return result.stdout.strip()
