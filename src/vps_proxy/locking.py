"""
설치 디렉토리 배타 잠금
동시에 두 프로비저닝이 같은 디렉토리를 수정하지 못하도록 flock 사용
"""

import fcntl
import json
import os
import time
from pathlib import Path
from typing import Optional

from .errors import PreconditionError
from .logger import get_logger


class LockTimeoutError(PreconditionError):
    """잠금 획득 시간 초과"""


class InstallLock:
    """설치 디렉토리 잠금 (컨텍스트 매니저)"""

    def __init__(self, path: Path, timeout: float = 10.0, poll_interval: float = 0.1):
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.logger = get_logger()
        self._fd: Optional[int] = None

    def acquire(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o600)
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise LockTimeoutError(
                        f"다른 프로비저닝이 실행 중입니다: {self.path} "
                        f"({self.timeout}초 대기 후 포기)"
                    )
                time.sleep(self.poll_interval)

        # 진단용 메타데이터 (잠금 해제 후에도 파일은 남음)
        os.ftruncate(fd, 0)
        os.write(fd, json.dumps({"pid": os.getpid(), "acquired_at": time.time()}).encode("utf-8"))
        self._fd = fd
        self.logger.debug(f"Acquired install lock {self.path}")

    def release(self):
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        self.logger.debug(f"Released install lock {self.path}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
