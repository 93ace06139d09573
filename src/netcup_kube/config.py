"""
설정 관리 모듈
YAML/JSON 기반 도구 설정, env 파일 로더, 원격 대상(Target) 및 실행 옵션
"""

import os
import socket
import yaml
import json
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict

from .errors import PreconditionError

DEFAULT_USER = "cubeadmin"
DEFAULT_REPO_URL = "https://github.com/mfittko/netcup-kube.git"
DEFAULT_ENV_PATH = os.path.join("config", "netcup-kube.env")

REMOTE_REPO_DIR = "/home/{user}/netcup-kube"
REMOTE_BIN_PATH = "/home/{user}/netcup-kube/bin/netcup-kube"
# $TMPDIR(macOS)는 ssh ControlPath 길이 제한을 넘길 수 있다
DEFAULT_RUNTIME_DIR = "/tmp"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def load_env_file(path: str) -> Dict[str, str]:
    """KEY=value 형식의 env 파일 로드

    - 빈 줄과 '#' 주석 무시
    - 값 양끝의 같은 종류 따옴표 제거
    - ${VAR}는 한 번만 치환 (앞서 읽은 키 → 프로세스 환경변수 → 빈 문자열)
    """
    result: Dict[str, str] = {}
    with open(path, 'r', encoding='utf-8') as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith('#'):
                continue
            if '=' not in line:
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]

            result[key] = _expand_vars(value, result)
    return result


def _expand_vars(value: str, loaded: Dict[str, str]) -> str:
    out = []
    pos = 0
    while pos < len(value):
        start = value.find("${", pos)
        if start == -1:
            out.append(value[pos:])
            break
        out.append(value[pos:start])

        end = value.find("}", start + 2)
        if end == -1:
            # 닫히지 않은 참조는 그대로 둔다
            out.append(value[start:])
            break

        name = value[start + 2:end]
        if name in loaded:
            out.append(loaded[name])
        else:
            out.append(os.environ.get(name, ""))
        pos = end + 1
    return "".join(out)


@dataclass
class Target:
    """원격 대상 호스트 (호출마다 생성, 저장하지 않음)"""
    host: str = ""
    user: str = DEFAULT_USER
    user_explicit: bool = False
    pubkey_path: str = ""
    repo_url: str = DEFAULT_REPO_URL
    config_path: str = DEFAULT_ENV_PATH

    def load_config_from_env(self, path: Optional[str] = None) -> None:
        """env 파일에서 MGMT_HOST/MGMT_IP, MGMT_USER/DEFAULT_USER 보충

        명시적으로 전달된 값은 덮어쓰지 않는다.
        """
        path = path if path is not None else self.config_path
        if not path or not os.path.isfile(path):
            return

        values = load_env_file(path)

        if not self.host:
            self.host = values.get("MGMT_HOST") or values.get("MGMT_IP") or ""

        if not self.user_explicit:
            self.user = values.get("MGMT_USER") or values.get("DEFAULT_USER") or self.user

    def get_pubkey(self) -> str:
        """공개키 경로 반환 (미지정 시 기본 키 검색)"""
        if self.pubkey_path:
            if os.path.isfile(self.pubkey_path):
                return self.pubkey_path
            raise PreconditionError(f"public key not found: {self.pubkey_path}")

        home = os.path.expanduser("~")
        for name in ("id_ed25519.pub", "id_rsa.pub"):
            candidate = os.path.join(home, ".ssh", name)
            if os.path.isfile(candidate):
                self.pubkey_path = candidate
                return candidate

        user = os.environ.get("USER", "user")
        raise PreconditionError(
            "no public key found.",
            f"Generate one with: ssh-keygen -t ed25519 -C '{user}@{socket.gethostname()}'"
        )

    @property
    def remote_repo_dir(self) -> str:
        return REMOTE_REPO_DIR.format(user=self.user)

    @property
    def remote_bin_path(self) -> str:
        return REMOTE_BIN_PATH.format(user=self.user)

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}"


@dataclass
class GitOptions:
    """원격 저장소 git 동기화 옵션 (ref가 branch보다 우선)"""
    branch: str = ""
    ref: str = ""
    pull: bool = False
    pull_is_set: bool = False

    @property
    def sync_requested(self) -> bool:
        return bool(self.branch or self.ref or self.pull)


@dataclass
class RunOptions:
    """원격 실행 옵션"""
    force_tty: bool = True
    env_file: str = ""
    git: GitOptions = field(default_factory=GitOptions)
    args: List[str] = field(default_factory=list)


@dataclass
class RemoteConfig:
    """원격 호스트 기본값"""
    host: str = ""
    user: str = DEFAULT_USER
    pubkey: str = ""
    repo_url: str = DEFAULT_REPO_URL
    env_file: str = DEFAULT_ENV_PATH


@dataclass
class TunnelConfig:
    """SSH 터널 설정"""
    user: str = "ops"
    local_port: int = 6443
    remote_host: str = "127.0.0.1"
    remote_port: int = 6443


@dataclass
class ForwardConfig:
    """kubectl port-forward 설정"""
    namespace: str = "openclaw"
    label_selector: str = "app.kubernetes.io/instance=openclaw"
    fallback_service: str = "svc/openclaw"
    container: str = "main"
    app_cli: str = "/app/openclaw.mjs"
    local_port: int = 18789
    remote_port: int = 18789
    readiness_timeout: float = 3.0


@dataclass
class BuildConfig:
    """로컬 크로스 빌드 설정"""
    toolchain: str = "go"
    package: str = "./cmd/netcup-kube"
    binary: str = "netcup-kube"


@dataclass
class AgentConfig:
    """CLI 자체 설정"""
    log_dir: str = "~/.netcup-kube/logs"
    log_level: str = "INFO"
    state_dir: str = ""


class Config:
    """전체 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "~/.netcup-kube/config.yaml",
        "./config/netcup-kube.yaml",
        "./netcup-kube.yaml",
    ]

    SECTIONS = ("remote", "tunnel", "forward", "build", "agent")

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.remote = RemoteConfig()
        self.tunnel = TunnelConfig()
        self.forward = ForwardConfig()
        self.build = BuildConfig()
        self.agent = AgentConfig()

        if config_path:
            self.load(config_path)
        else:
            self._load_from_default_paths()

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        return cls(path)

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            return

        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트 (알 수 없는 키는 무시)"""
        for section in self.SECTIONS:
            values = data.get(section) or {}
            target = getattr(self, section)
            for key, value in values.items():
                if hasattr(target, key):
                    setattr(target, key, value)

    def save(self, path: Optional[str] = None):
        """설정 파일 저장"""
        save_path = path or self.config_path or self.DEFAULT_CONFIG_PATHS[0]
        save_path = os.path.expanduser(save_path)

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        data = self.to_dict()
        with open(save_path, 'w', encoding='utf-8') as f:
            if save_path.endswith('.json'):
                json.dump(data, f, indent=2)
            else:
                yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}

    def validate(self) -> List[str]:
        """설정값 검사. 문제 목록 반환 (비어 있으면 유효)"""
        problems = []
        ports = {
            "tunnel.local_port": self.tunnel.local_port,
            "tunnel.remote_port": self.tunnel.remote_port,
            "forward.local_port": self.forward.local_port,
            "forward.remote_port": self.forward.remote_port,
        }
        for name, value in ports.items():
            if not isinstance(value, int) or isinstance(value, bool) or not 0 < value <= 65535:
                problems.append(f"{name} must be a port number between 1 and 65535 (got {value!r})")

        if str(self.agent.log_level).upper() not in LOG_LEVELS:
            problems.append(f"agent.log_level must be one of {', '.join(LOG_LEVELS)} (got {self.agent.log_level!r})")

        try:
            if float(self.forward.readiness_timeout) <= 0:
                problems.append("forward.readiness_timeout must be positive")
        except (TypeError, ValueError):
            problems.append(f"forward.readiness_timeout must be a number (got {self.forward.readiness_timeout!r})")

        for name in ("remote.user", "tunnel.user", "forward.namespace"):
            section, key = name.split(".")
            if not getattr(getattr(self, section), key):
                problems.append(f"{name} must not be empty")
        return problems

    def create_sample(self, output_path: str):
        """샘플 설정 파일 생성"""
        template = """# netcup-kube CLI configuration
# ~/.netcup-kube/config.yaml 또는 ./config/netcup-kube.yaml 로 복사하여 사용하세요

# 원격 관리 노드
remote:
  host: ""            # 비워두면 env 파일의 MGMT_HOST / MGMT_IP 사용
  user: "cubeadmin"   # sudo 사용자
  pubkey: ""          # 비워두면 ~/.ssh/id_ed25519.pub, ~/.ssh/id_rsa.pub 순으로 검색
  repo_url: "https://github.com/mfittko/netcup-kube.git"
  env_file: "config/netcup-kube.env"

# kubectl 접근용 SSH 터널
tunnel:
  user: "ops"
  local_port: 6443
  remote_host: "127.0.0.1"
  remote_port: 6443

# 애플리케이션 port-forward / pod exec
forward:
  namespace: "openclaw"
  label_selector: "app.kubernetes.io/instance=openclaw"
  fallback_service: "svc/openclaw"
  container: "main"
  app_cli: "/app/openclaw.mjs"   # pod openclaw 가 node로 실행하는 CLI
  local_port: 18789
  remote_port: 18789
  readiness_timeout: 3.0

# 원격 바이너리 크로스 빌드
build:
  toolchain: "go"
  package: "./cmd/netcup-kube"
  binary: "netcup-kube"

# CLI 설정
agent:
  log_dir: "~/.netcup-kube/logs"
  log_level: "INFO"   # DEBUG, INFO, WARNING, ERROR
  state_dir: ""       # 비워두면 $XDG_RUNTIME_DIR 또는 /tmp
"""

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template)


def runtime_dir(override: str = "") -> str:
    """런타임 상태 디렉토리 ($XDG_RUNTIME_DIR, 없으면 /tmp)"""
    if override:
        return os.path.expanduser(override)
    return os.environ.get("XDG_RUNTIME_DIR") or DEFAULT_RUNTIME_DIR
