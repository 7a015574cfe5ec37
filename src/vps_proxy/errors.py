"""
프로비저닝 오류 정의
모든 오류는 실행 중 복구되지 않으며 CLI에서 종료 코드 1로 처리됨
"""

from typing import Optional


class ProvisionError(Exception):
    """프로비저닝 오류 기본 클래스"""

    step = "provision"


class PreconditionError(ProvisionError):
    """권한 부족, 필수 값 누락, 잘못된 입력"""

    step = "preflight"


class MissingRequiredParameter(PreconditionError):
    """모든 소스를 확인한 뒤에도 필수 파라미터가 비어 있음"""

    step = "parameters"

    def __init__(self, field: str, hint: Optional[str] = None):
        self.field = field
        message = f"필수 값이 없습니다: {field}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)


class DependencyError(ProvisionError):
    """바이너리/이미지 다운로드 또는 설치 실패"""

    step = "dependencies"


class GenerationError(ProvisionError):
    """키 또는 설정 파일 생성 실패"""

    step = "generate"


class ServiceError(ProvisionError):
    """서비스가 실행 상태에 도달하지 못함"""

    step = "service"

    def __init__(self, message: str, log_tail: str = ""):
        super().__init__(message)
        self.log_tail = log_tail
