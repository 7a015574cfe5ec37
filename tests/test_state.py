"""
상태 저장소 / 잠금 테스트
"""

import json
import os
import stat
from datetime import datetime

import pytest

from vps_proxy.errors import PreconditionError
from vps_proxy.locking import InstallLock, LockTimeoutError
from vps_proxy.render import render_env
from vps_proxy.state import StateStore, atomic_write, parse_env


def test_parse_env():
    text = """# comment
DOMAIN=example.com

TOKEN="quoted value"
VPS_PUBLIC_IP='203.0.113.5'
not a pair
"""
    assert parse_env(text) == {
        "DOMAIN": "example.com",
        "TOKEN": "quoted value",
        "VPS_PUBLIC_IP": "203.0.113.5",
    }


def test_load_without_state(tmp_path):
    store = StateStore(str(tmp_path / "install"))
    assert store.exists() is False
    assert store.load() is None


def test_load_existing_state(tmp_path):
    (tmp_path / ".env").write_text("DOMAIN=example.com\nTOKEN=abc123\n", encoding="utf-8")

    store = StateStore(str(tmp_path))
    assert store.load() == {"DOMAIN": "example.com", "TOKEN": "abc123"}


def test_env_values_survive_rewrite(tmp_path):
    """따옴표나 공백이 들어간 값도 다시 읽으면 그대로"""
    values = {"DOMAIN": "example.com", "TOKEN": "'abc'", "NOTE": 'say "hi" $HOME #1'}
    (tmp_path / ".env").write_text(render_env(values), encoding="utf-8")

    assert StateStore(str(tmp_path)).load() == values


def test_backup_copies_files_except_lock_and_backups(tmp_path):
    """백업에는 잠금 파일과 이전 백업이 포함되지 않음"""
    (tmp_path / ".env").write_text("DOMAIN=example.com\n", encoding="utf-8")
    (tmp_path / "frps.toml").write_text("bindPort = 7000\n", encoding="utf-8")
    (tmp_path / "client").mkdir()
    (tmp_path / "client" / "frpc.toml").write_text("serverPort = 7000\n", encoding="utf-8")
    (tmp_path / ".provision.lock").write_text("{}", encoding="utf-8")
    (tmp_path / "backups" / "backup-old").mkdir(parents=True)

    target = StateStore(str(tmp_path)).backup(now=datetime(2024, 1, 2, 3, 4, 5))

    assert target == tmp_path / "backups" / "backup-20240102-030405"
    assert (target / ".env").read_text(encoding="utf-8") == "DOMAIN=example.com\n"
    assert (target / "frps.toml").exists()
    assert (target / "client" / "frpc.toml").exists()
    assert not (target / ".provision.lock").exists()
    assert not (target / "backups").exists()
    # 원본은 그대로
    assert (tmp_path / ".env").exists()


def test_atomic_write_sets_mode_and_replaces(tmp_path):
    path = tmp_path / "nested" / "secret.conf"
    atomic_write(path, "first\n", mode=0o600)
    atomic_write(path, "second\n", mode=0o600)

    assert path.read_text(encoding="utf-8") == "second\n"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    # 임시 파일이 남지 않아야 함
    assert [p.name for p in path.parent.iterdir()] == ["secret.conf"]


def test_install_lock_writes_metadata(tmp_path):
    lock_path = tmp_path / "install" / ".provision.lock"

    with InstallLock(lock_path, timeout=1):
        data = json.loads(lock_path.read_text(encoding="utf-8"))
        assert data["pid"] == os.getpid()

    assert lock_path.exists()


def test_install_lock_times_out_when_held(tmp_path):
    """다른 실행이 잠금을 잡고 있으면 PreconditionError"""
    lock_path = tmp_path / ".provision.lock"

    with InstallLock(lock_path, timeout=1):
        contender = InstallLock(lock_path, timeout=0.2, poll_interval=0.05)
        with pytest.raises(LockTimeoutError) as excinfo:
            contender.acquire()

    assert isinstance(excinfo.value, PreconditionError)

    # 해제 후에는 다시 획득 가능
    with InstallLock(lock_path, timeout=0.2):
        pass
