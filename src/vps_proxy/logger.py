"""
로깅 시스템
실행별 로그 파일, 에러 로그 파일, Rich 콘솔 출력
토큰/개인키 같은 비밀값은 모든 출력에서 가려짐
"""

import logging
import os
import tempfile
from datetime import datetime
from typing import Optional, Set
from rich.logging import RichHandler
from rich.console import Console

console = Console()

DEFAULT_LOG_DIR = "/var/log/k8s-vps-proxy"
MASK = "********"


class SecretFilter(logging.Filter):
    """등록된 비밀값을 로그 레코드에서 치환"""

    def __init__(self):
        super().__init__()
        self.secrets: Set[str] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        if self.secrets:
            message = record.getMessage()
            for secret in self.secrets:
                message = message.replace(secret, MASK)
            record.msg = message
            record.args = None
        return True


def _writable_log_dir(log_dir: str) -> str:
    """로그 디렉토리 생성. 권한이 없으면 임시 디렉토리 사용"""
    try:
        os.makedirs(log_dir, exist_ok=True)
        return log_dir
    except PermissionError:
        fallback = os.path.join(tempfile.gettempdir(), "k8s-vps-proxy")
        os.makedirs(fallback, exist_ok=True)
        return fallback


class ProxyLogger:
    """프로비저너 로거"""

    def __init__(self, log_dir: str = DEFAULT_LOG_DIR, log_level: str = "INFO", debug: bool = False):
        self.log_level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)
        self.log_dir = _writable_log_dir(log_dir)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = os.path.join(self.log_dir, f"provision_{timestamp}.log")
        self.error_file = os.path.join(self.log_dir, f"error_{timestamp}.log")

        self.logger = logging.getLogger("vps_proxy")
        self.logger.setLevel(self.log_level)
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()
        for old_filter in list(self.logger.filters):
            self.logger.removeFilter(old_filter)

        self.secret_filter = SecretFilter()
        self.logger.addFilter(self.secret_filter)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        for path, level in ((self.log_file, self.log_level), (self.error_file, logging.ERROR)):
            handler = logging.FileHandler(path, encoding='utf-8')
            handler.setLevel(level)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        # 콘솔에는 경고 이상만 (진행 상황은 각 모듈이 직접 출력)
        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=False,
            show_path=debug,
            markup=False
        )
        rich_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
        self.logger.addHandler(rich_handler)

        if self.log_dir != log_dir:
            self.logger.warning(f"Cannot write to {log_dir}, logging to {self.log_dir}")

    def mask(self, secret: Optional[str]):
        """이후 로그에서 가릴 비밀값 등록"""
        if secret:
            self.secret_filter.secrets.add(secret)

    def debug(self, message: str):
        self.logger.debug(message)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def exception(self, message: str):
        """트레이스백 포함"""
        self.logger.exception(message)

    def get_log_files(self) -> dict:
        return {
            "main_log": self.log_file,
            "error_log": self.error_file,
            "log_dir": self.log_dir
        }


_logger: Optional[ProxyLogger] = None


def get_logger(log_dir: str = DEFAULT_LOG_DIR,
               log_level: str = "INFO",
               debug: bool = False) -> ProxyLogger:
    """로거 인스턴스 가져오기 (없으면 생성)"""
    global _logger
    if _logger is None:
        _logger = ProxyLogger(log_dir, log_level, debug)
    return _logger


def init_logger(log_dir: str, log_level: str, debug: bool) -> ProxyLogger:
    """설정에 따라 로거 재생성"""
    global _logger
    _logger = ProxyLogger(log_dir, log_level, debug)
    return _logger
