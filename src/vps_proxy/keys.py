"""
WireGuard 키 관리 모듈
기존 키는 그대로 재사용, 재생성은 명시적으로 요청한 경우에만 수행
"""

import base64
import binascii
import subprocess
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console

from .errors import GenerationError
from .logger import get_logger
from .state import ProvisioningState, atomic_write

console = Console()

PRIVATE_KEY_FILE = "server_private.key"
PUBLIC_KEY_FILE = "server_public.key"


@dataclass
class KeyPair:
    private_key: str
    public_key: str


def is_valid_key(value: str) -> bool:
    """WireGuard 키 형식 (32바이트 base64)"""
    try:
        return len(base64.b64decode(value, validate=True)) == 32
    except (binascii.Error, ValueError):
        return False


class KeyManager:
    """키 파일 생성/재사용"""

    def __init__(self, key_dir: Path, command: str = "wg", timeout: int = 30):
        self.key_dir = Path(key_dir)
        self.command = command
        self.timeout = timeout
        self.logger = get_logger()

    @property
    def private_path(self) -> Path:
        return self.key_dir / PRIVATE_KEY_FILE

    @property
    def public_path(self) -> Path:
        return self.key_dir / PUBLIC_KEY_FILE

    def _wg(self, args: List[str], input_text: Optional[str] = None) -> str:
        """wg 명령 실행"""
        try:
            result = subprocess.run(
                [self.command] + args,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            raise GenerationError(f"{self.command} 명령을 찾을 수 없습니다 (wireguard-tools 필요)")
        except subprocess.TimeoutExpired:
            raise GenerationError(f"{self.command} {args[0]} 시간 초과")

        if result.returncode != 0:
            raise GenerationError(f"{self.command} {args[0]} 실패: {result.stderr.strip()}")
        return result.stdout.strip()

    def derive_public(self, private_key: str) -> str:
        public_key = self._wg(["pubkey"], input_text=private_key + "\n")
        if not is_valid_key(public_key):
            raise GenerationError("wg pubkey가 올바르지 않은 공개키를 반환했습니다")
        return public_key

    def generate(self) -> KeyPair:
        private_key = self._wg(["genkey"])
        if not is_valid_key(private_key):
            raise GenerationError("wg genkey가 올바르지 않은 개인키를 반환했습니다")
        return KeyPair(private_key, self.derive_public(private_key))

    def _persist(self, pair: KeyPair):
        atomic_write(self.private_path, pair.private_key + "\n", mode=0o600)
        atomic_write(self.public_path, pair.public_key + "\n", mode=0o644)

    def ensure(self, regenerate: bool = False) -> Tuple[KeyPair, bool]:
        """키 쌍 확보. (키 쌍, 새로 생성 여부) 반환"""
        if self.private_path.exists() and not regenerate:
            private_key = self.private_path.read_text(encoding="utf-8").strip()
            if not is_valid_key(private_key):
                raise GenerationError(
                    f"기존 개인키가 손상되었습니다: {self.private_path} "
                    "(--regenerate-keys로 재생성할 수 있지만 원격 피어 설정도 다시 배포해야 합니다)"
                )

            public_key = ""
            if self.public_path.exists():
                public_key = self.public_path.read_text(encoding="utf-8").strip()
            if not is_valid_key(public_key):
                # 개인키는 그대로 두고 공개키만 다시 계산
                self.logger.warning(f"Public key missing or invalid, deriving from {self.private_path}")
                public_key = self.derive_public(private_key)
                atomic_write(self.public_path, public_key + "\n", mode=0o644)

            console.print("[green]✓ 기존 WireGuard 키를 재사용합니다.[/green]")
            self.logger.info("Reusing existing WireGuard key pair (idempotent)")
            return KeyPair(private_key, public_key), False

        if regenerate:
            console.print("[yellow]⚠ WireGuard 키를 재생성합니다. 원격 피어 설정을 다시 배포해야 합니다.[/yellow]")
            self.logger.warning("Regenerating WireGuard key pair on request")

        pair = self.generate()
        self._persist(pair)
        console.print("[green]✓ WireGuard 키 생성 완료[/green]")
        self.logger.info(f"Generated WireGuard key pair in {self.key_dir}")
        return pair, True


def ensure_key_material(state: ProvisioningState, regenerate: bool = False,
                        timeout: int = 30) -> ProvisioningState:
    """상태에 키 쌍을 채운 새 상태 반환"""
    manager = KeyManager(state.path("wireguard"), timeout=timeout)
    pair, _ = manager.ensure(regenerate=regenerate)
    return replace(state, private_key=pair.private_key, public_key=pair.public_key)
