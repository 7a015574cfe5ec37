"""
의존성 설치 모듈
설치 여부 확인 → 없으면 설치 → 재확인 을 모든 구성요소에 동일하게 적용
"""

import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Sequence

from rich.console import Console

from .errors import DependencyError
from .logger import get_logger

console = Console()


class DependencyStatus(Enum):
    PRESENT = "present"
    INSTALLED = "installed"


@dataclass
class Capability:
    """설치가 필요한 구성요소 기술자"""
    name: str
    check: Callable[[], bool]
    install: Callable[[], None]


def ensure_dependency(capability: Capability) -> DependencyStatus:
    """구성요소가 없으면 설치 (idempotent)

    설치 실패 또는 설치 후에도 확인되지 않으면 DependencyError.
    """
    logger = get_logger()

    if capability.check():
        console.print(f"  [green]✓[/green] {capability.name}: 설치됨")
        logger.debug(f"{capability.name}: already present")
        return DependencyStatus.PRESENT

    console.print(f"[cyan]{capability.name} 설치 중...[/cyan]")
    logger.info(f"Installing {capability.name}...")

    try:
        capability.install()
    except DependencyError:
        raise
    except Exception as e:
        logger.exception(f"Failed to install {capability.name}")
        raise DependencyError(f"{capability.name} 설치 실패: {e}") from e

    if not capability.check():
        logger.error(f"{capability.name} still missing after install")
        raise DependencyError(f"{capability.name} 설치 후에도 확인되지 않습니다")

    console.print(f"  [green]✓[/green] {capability.name}: 설치 완료")
    logger.info(f"{capability.name} installed successfully")
    return DependencyStatus.INSTALLED


def ensure_all(capabilities: Sequence[Capability]) -> List[DependencyStatus]:
    """모든 구성요소를 순서대로 확인/설치 (첫 실패에서 중단)"""
    console.print("\n[bold cyan]필수 구성요소 확인 중...[/bold cyan]\n")
    return [ensure_dependency(capability) for capability in capabilities]


def run_checked(cmd, description: str, timeout: int, shell: bool = False) -> str:
    """명령 실행, 실패 시 DependencyError (stderr 포함)"""
    logger = get_logger()
    logger.debug(f"Running: {cmd}")
    try:
        result = subprocess.run(
            cmd,
            shell=shell,
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired:
        raise DependencyError(f"{description} 시간 초과 ({timeout}초)")
    except FileNotFoundError as e:
        raise DependencyError(f"{description} 실패: {e}")

    if result.returncode != 0:
        error_output = (result.stderr or result.stdout).strip()
        logger.error(f"{description} failed: {error_output}")
        raise DependencyError(f"{description} 실패: {error_output}")
    return result.stdout


def command_exists(name: str) -> Callable[[], bool]:
    """PATH에 명령이 있는지 확인하는 check 함수"""
    return lambda: shutil.which(name) is not None


def command_succeeds(cmd: List[str], timeout: int = 30) -> Callable[[], bool]:
    """명령이 0으로 종료하는지 확인하는 check 함수"""
    def check() -> bool:
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=timeout)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0
    return check


def apt_package(command: str, package: str, timeout: int) -> Capability:
    """apt-get으로 설치하는 명령"""
    def install():
        run_checked(["apt-get", "update"], "apt-get update", timeout)
        run_checked(["apt-get", "install", "-y", package], f"{package} 설치", timeout)
    return Capability(name=command, check=command_exists(command), install=install)


def docker_engine(timeout: int) -> Capability:
    """Docker 엔진 (공식 설치 스크립트)"""
    def install():
        run_checked("curl -fsSL https://get.docker.com | sh", "Docker 설치", timeout, shell=True)
        run_checked(["systemctl", "enable", "--now", "docker"], "Docker 서비스 시작", timeout)
    return Capability(name="docker", check=command_exists("docker"), install=install)


def docker_compose_plugin(timeout: int) -> Capability:
    """docker compose 플러그인"""
    def install():
        run_checked(["apt-get", "install", "-y", "docker-compose-plugin"], "docker compose 설치", timeout)
    return Capability(
        name="docker compose",
        check=command_succeeds(["docker", "compose", "version"]),
        install=install
    )


def docker_image(image: str, timeout: int) -> Capability:
    """컨테이너 이미지 (docker pull)"""
    def install():
        run_checked(["docker", "pull", image], f"{image} 이미지 다운로드", timeout)
    return Capability(
        name=image,
        check=command_succeeds(["docker", "image", "inspect", image]),
        install=install
    )
