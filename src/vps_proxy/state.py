"""
프로비저닝 상태 관리
ProvisioningState 정의, .env 기반 상태 저장소, 백업, 원자적 파일 쓰기
"""

import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from .config import FrpConfig, WireGuardConfig
from .logger import get_logger

ENV_FILE = ".env"
BACKUP_DIR = "backups"
LOCK_FILE = ".provision.lock"

# 백업/스냅샷 대상에서 제외
_SKIP_ON_BACKUP = {BACKUP_DIR, LOCK_FILE}


@dataclass
class PriorInstallation:
    """기존 설치 스냅샷"""
    values: Dict[str, str]
    backup_dir: Optional[str] = None


@dataclass
class ProvisioningState:
    """한 번의 실행 동안 모든 단계에 전달되는 상태

    렌더링되는 모든 설정 파일은 이 값만으로 결정된다.
    """
    variant: str
    install_dir: str
    domain: str = ""
    public_ip: str = ""
    auth_token: str = ""
    private_key: str = ""
    public_key: str = ""
    frp: FrpConfig = field(default_factory=FrpConfig)
    wireguard: WireGuardConfig = field(default_factory=WireGuardConfig)
    prior_installation: Optional[PriorInstallation] = None

    @property
    def wildcard_domain(self) -> str:
        return f"*.{self.domain}"

    def path(self, *parts: str) -> Path:
        """설치 디렉토리 기준 경로"""
        return Path(self.install_dir).joinpath(*parts)


def atomic_write(path: Path, content: str, mode: int = 0o644):
    """임시 파일에 쓴 뒤 rename으로 교체"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def parse_env(text: str) -> Dict[str, str]:
    """KEY=value 형식 파싱 (주석, 빈 줄 무시)"""
    values = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        try:
            value = " ".join(shlex.split(value))
        except ValueError:
            # 닫히지 않은 따옴표는 그대로 유지
            value = value.strip()
        values[key.strip()] = value
    return values


class StateStore:
    """설치 디렉토리의 .env 파일과 백업 관리"""

    def __init__(self, install_dir: str):
        self.install_dir = Path(install_dir)
        self.logger = get_logger()

    @property
    def env_path(self) -> Path:
        return self.install_dir / ENV_FILE

    def exists(self) -> bool:
        """이전 설치 여부"""
        return self.env_path.is_file()

    def load(self) -> Optional[Dict[str, str]]:
        """저장된 상태 로드 (없으면 None)"""
        if not self.exists():
            self.logger.debug(f"No persisted state at {self.env_path}")
            return None

        values = parse_env(self.env_path.read_text(encoding="utf-8"))
        self.logger.info(f"Loaded persisted state from {self.env_path} ({len(values)} keys)")
        return values

    def backup(self, now: Optional[datetime] = None) -> Path:
        """기존 파일을 타임스탬프 백업 디렉토리로 복사"""
        timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
        target = self.install_dir / BACKUP_DIR / f"backup-{timestamp}"
        target.mkdir(parents=True, exist_ok=True)

        for entry in self.install_dir.iterdir():
            if entry.name in _SKIP_ON_BACKUP:
                continue
            if entry.is_dir():
                shutil.copytree(entry, target / entry.name, dirs_exist_ok=True)
            else:
                shutil.copy2(entry, target / entry.name)

        self.logger.info(f"Backed up previous installation to {target}")
        return target
