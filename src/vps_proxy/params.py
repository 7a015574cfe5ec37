"""
파라미터 결정 모듈
명시적 입력 > 저장된 상태 > 대화형 입력 > 자동 감지 순서로 값을 병합
"""

import os
import re
from typing import Callable, Dict, Mapping, Optional, Sequence

from prompt_toolkit import prompt
from prompt_toolkit.validation import Validator, ValidationError

from .errors import MissingRequiredParameter, PreconditionError
from .logger import get_logger
from .network import is_valid_ip

FIELD_LABELS = {
    "domain": "도메인",
    "auth_token": "frp 인증 토큰",
    "public_ip": "VPS 공인 IP",
}

FIELD_HINTS = {
    "domain": "--domain 옵션 또는 DOMAIN 환경변수로 지정하세요",
    "auth_token": "--token 옵션 또는 TOKEN 환경변수로 지정하세요",
    "public_ip": "공인 IP를 감지하지 못했습니다. --vps-ip 옵션 또는 VPS_IP 환경변수로 지정하세요",
}

_DOMAIN_RE = re.compile(
    r"^(?=.{1,253}$)[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)+$"
)


def normalize_domain(value: str) -> str:
    """도메인 정규화 및 검증 (소문자, 끝의 점 제거)"""
    domain = value.strip().lower().rstrip(".")
    if not _DOMAIN_RE.match(domain):
        raise PreconditionError(f"올바른 도메인이 아닙니다: {value!r} (예: example.com)")
    return domain


def validate_parameters(values: Dict[str, str]) -> Dict[str, str]:
    """결정된 값 검증. 잘못된 값은 PreconditionError"""
    validated = dict(values)
    if validated.get("domain"):
        validated["domain"] = normalize_domain(validated["domain"])
    if validated.get("public_ip") and not is_valid_ip(validated["public_ip"]):
        raise PreconditionError(f"올바른 IP 주소가 아닙니다: {validated['public_ip']!r}")
    return validated


class DomainValidator(Validator):
    """도메인 입력 검증"""
    def validate(self, document):
        try:
            normalize_domain(document.text)
        except PreconditionError:
            raise ValidationError(message="올바른 도메인 형식이 아닙니다 (예: example.com)")


class IPValidator(Validator):
    """IP 주소 입력 검증"""
    def validate(self, document):
        if not is_valid_ip(document.text.strip()):
            raise ValidationError(message="올바른 IP 주소 형식이 아닙니다 (예: 203.0.113.5)")


class TokenValidator(Validator):
    """토큰 입력 검증"""
    def validate(self, document):
        if not document.text.strip():
            raise ValidationError(message="토큰을 입력해주세요")


VALIDATORS = {
    "domain": DomainValidator(),
    "public_ip": IPValidator(),
    "auth_token": TokenValidator(),
}


class ParameterSource:
    """파라미터 소스 인터페이스"""

    name = "source"

    def lookup(self, fields: Sequence[str]) -> Dict[str, str]:
        """요청된 필드 중 이 소스가 알고 있는 값을 반환"""
        raise NotImplementedError


class EnvSource(ParameterSource):
    """환경변수 또는 CLI 옵션으로 전달된 명시적 값"""

    name = "environment"
    ENV_NAMES = {"domain": "DOMAIN", "auth_token": "TOKEN", "public_ip": "VPS_IP"}

    def __init__(self, environ: Optional[Mapping[str, Optional[str]]] = None):
        self.environ = os.environ if environ is None else environ

    def lookup(self, fields: Sequence[str]) -> Dict[str, str]:
        found = {}
        for field_name in fields:
            value = self.environ.get(self.ENV_NAMES.get(field_name, ""))
            if value:
                found[field_name] = value
        return found


class PersistedStateSource(ParameterSource):
    """이전 실행에서 저장된 .env 값"""

    name = "persisted state"
    KEYS = {"domain": "DOMAIN", "auth_token": "TOKEN", "public_ip": "VPS_PUBLIC_IP"}

    def __init__(self, values: Optional[Mapping[str, str]]):
        self.values = values or {}

    def lookup(self, fields: Sequence[str]) -> Dict[str, str]:
        found = {}
        for field_name in fields:
            value = self.values.get(self.KEYS.get(field_name, ""))
            if value:
                found[field_name] = value
        return found


class PromptSource(ParameterSource):
    """대화형 입력 (아직 결정되지 않은 필드만 질문)"""

    name = "prompt"

    def __init__(self, fields: Sequence[str], ask: Optional[Callable[[str, str], str]] = None):
        self.fields = tuple(fields)
        self.ask = ask or self._prompt

    @staticmethod
    def _prompt(field_name: str, label: str) -> str:
        return prompt(
            f"{label}: ",
            validator=VALIDATORS.get(field_name),
            is_password=(field_name == "auth_token"),
        )

    def lookup(self, fields: Sequence[str]) -> Dict[str, str]:
        found = {}
        for field_name in fields:
            if field_name not in self.fields:
                continue
            value = self.ask(field_name, FIELD_LABELS.get(field_name, field_name))
            if value and value.strip():
                found[field_name] = value.strip()
        return found


class AutoDetectSource(ParameterSource):
    """자동 감지 (예: 공인 IP)"""

    name = "auto-detect"

    def __init__(self, detectors: Mapping[str, Callable[[], Optional[str]]]):
        self.detectors = detectors

    def lookup(self, fields: Sequence[str]) -> Dict[str, str]:
        found = {}
        for field_name in fields:
            detector = self.detectors.get(field_name)
            if detector is None:
                continue
            value = detector()
            if value:
                found[field_name] = value
        return found


def resolve_parameters(sources: Sequence[ParameterSource],
                       fields: Sequence[str],
                       required: Sequence[str]) -> Dict[str, str]:
    """우선순위 순서로 소스를 조회하여 파라미터 결정

    앞선 소스에서 결정된 필드는 뒤의 소스에 요청하지 않는다.
    필수 필드가 끝까지 비어 있으면 MissingRequiredParameter.
    """
    logger = get_logger()
    resolved: Dict[str, str] = {}

    for source in sources:
        missing = [f for f in fields if not resolved.get(f)]
        if not missing:
            break
        found = source.lookup(missing)
        for field_name in missing:
            value = (found.get(field_name) or "").strip()
            if value:
                resolved[field_name] = value
                logger.debug(f"Parameter {field_name} resolved from {source.name}")

    for field_name in required:
        if not resolved.get(field_name):
            logger.error(f"Missing required parameter: {field_name}")
            raise MissingRequiredParameter(field_name, FIELD_HINTS.get(field_name))

    return validate_parameters(resolved)
