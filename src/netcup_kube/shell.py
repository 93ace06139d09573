"""
셸 이스케이프 및 식별자 헬퍼
원격 명령 문자열, 스크립트 치환값, 파일/소켓 이름 생성에 공통으로 사용
"""

import ipaddress
import re
import string
from typing import Iterable, Mapping, Optional

from .errors import ValidationError

# 원격 스크립트에서 "값 없음"을 빈 문자열과 구분하기 위한 표식
NONE_SENTINEL = "__NONE__"

# 파일 이름 구성요소에 그대로 남길 수 있는 문자
_NAME_SAFE = frozenset(string.ascii_letters + string.digits + ".-")
# ssh ControlPath는 '%' 토큰을 해석하므로 '+'를 이스케이프 문자로 쓴다
_NAME_ESCAPE = "+"
NAME_SEPARATOR = "_"

# 큰따옴표 안에 치환되는 스크립트 값에서 금지하는 문자
_SCRIPT_UNSAFE = {
    "\n": "newline",
    "\r": "carriage return",
    "\x00": "NUL byte",
    '"': "double quote",
    "'": "single quote",
    "\\": "backslash",
    "$": "dollar sign",
    "`": "backtick",
}

# POSIX 계정 이름 (useradd 기본 NAME_REGEX)
_USERNAME_RE = re.compile(r"[a-z_][a-z0-9_-]{0,31}")
# RFC 1123 호스트 이름
_HOSTNAME_RE = re.compile(
    r"(?=.{1,253}\Z)[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*"
)


def shell_escape(value: str) -> str:
    """POSIX 셸용 작은따옴표 이스케이프"""
    return "'" + value.replace("'", "'\\''") + "'"


def build_remote_command(command: str, args: Iterable[str] = (),
                         env: Optional[Mapping[str, str]] = None) -> str:
    """환경변수 할당 + 명령 + 인자를 각각 이스케이프하여 하나의 문자열로 결합"""
    parts = []
    for key, value in (env or {}).items():
        parts.append(f"{shell_escape(key)}={shell_escape(value)}")
    parts.append(shell_escape(command))
    parts.extend(shell_escape(arg) for arg in args)
    return " ".join(parts)


def sanitize_name(value: str) -> str:
    """파일 이름에 안전한 형태로 변환 (단사 함수)

    허용 문자 이외의 모든 바이트는 '+XX' 16진 표기로 바뀐다.
    '+'와 '_' 자체도 이스케이프되므로 '_'로 구성요소를 이어붙여도 충돌하지 않는다.
    """
    out = []
    for ch in value:
        if ch in _NAME_SAFE:
            out.append(ch)
        else:
            out.extend(f"{_NAME_ESCAPE}{b:02X}" for b in ch.encode("utf-8"))
    return "".join(out)


def identity_key(*components) -> str:
    """식별자 튜플을 결정적인 파일 이름 키로 변환"""
    return NAME_SEPARATOR.join(sanitize_name(str(c)) for c in components)


def require_script_safe(name: str, value: str) -> str:
    """스크립트 템플릿에 치환될 값 검증"""
    if not value:
        raise ValidationError(f"{name} must not be empty")
    for ch, label in _SCRIPT_UNSAFE.items():
        if ch in value:
            raise ValidationError(f"{name} must not contain a {label}")
    return value


def require_username(value: str) -> str:
    """셸 단어로 그대로 쓸 수 있는 계정 이름인지 검증"""
    if not _USERNAME_RE.fullmatch(value or ""):
        raise ValidationError(
            f"invalid user name {value!r} (expected lowercase letters, digits, '_' or '-')"
        )
    return value


def require_hostname(value: str) -> str:
    """IP 주소 또는 RFC 1123 호스트 이름인지 검증"""
    try:
        ipaddress.ip_address(value)
        return value
    except ValueError:
        pass
    if not _HOSTNAME_RE.fullmatch(value or ""):
        raise ValidationError(f"invalid host {value!r} (expected a hostname or IP address)")
    return value


def display_args(args: Iterable[str]) -> str:
    """출력용 인자 결합 (공백이 있는 인자만 따옴표 처리)"""
    shown = []
    for arg in args:
        if any(c in arg for c in " \t\n"):
            shown.append('"' + arg.replace('"', '\\"') + '"')
        else:
            shown.append(arg)
    return " ".join(shown)
