"""
SSH 터널 관리 모듈
ssh ControlMaster 소켓으로 로컬 포트 포워딩을 시작/중지/상태 확인 (idempotent)
"""

import hashlib
import os
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Optional

from .config import runtime_dir
from .errors import PortInUseError, TunnelAuthError, TunnelError
from .logger import get_logger
from .network import NetworkChecker, port_listeners
from .process import ProcessLauncher
from .shell import identity_key

AUTH_FAILURE_MARKERS = ("Permission denied", "Too many authentication failures")

CONTROL_SOCKET_PREFIX = "netcup-kube-tunnel-"
# sun_path(macOS 104바이트, NUL 포함)에서 ssh가 붙이는 임시 접미사 17자를 뺀 길이
MAX_CONTROL_PATH = 104 - 1 - 17
CONTROL_KEY_DIGEST_LEN = 12


@dataclass(frozen=True)
class TunnelIdentity:
    """터널 식별자 (user, host, local_port)"""
    user: str
    host: str
    local_port: int

    def control_socket(self, base_dir: str) -> str:
        """ControlMaster 소켓 경로 (순수 함수)

        경로가 MAX_CONTROL_PATH를 넘으면 키를 sha256 앞부분으로 줄인다.
        """
        key = identity_key(self.user, self.host, self.local_port)
        path = os.path.join(base_dir, f"{CONTROL_SOCKET_PREFIX}{key}.ctl")
        if len(path.encode("utf-8")) > MAX_CONTROL_PATH:
            digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:CONTROL_KEY_DIGEST_LEN]
            path = os.path.join(base_dir, f"{CONTROL_SOCKET_PREFIX}{digest}.ctl")
        return path


@dataclass
class TunnelStatus:
    """터널 상태 조회 결과"""
    running: bool
    socket: str
    control_output: str = ""
    port_listening: bool = False
    listeners: str = ""


class TunnelManager:
    """SSH 터널 관리 클래스 (상태는 제어 소켓에서 매번 다시 조회)"""

    def __init__(self, identity: TunnelIdentity,
                 remote_host: str = "127.0.0.1",
                 remote_port: int = 6443,
                 launcher: Optional[ProcessLauncher] = None,
                 base_dir: Optional[str] = None,
                 debug: bool = False):
        self.identity = identity
        self.remote_host = remote_host
        self.remote_port = remote_port
        self.launcher = launcher or ProcessLauncher()
        self.base_dir = base_dir or runtime_dir()
        self.debug = debug
        self.logger = get_logger()
        self.network_checker = NetworkChecker(debug)

    @property
    def control_socket(self) -> str:
        return self.identity.control_socket(self.base_dir)

    @property
    def target(self) -> str:
        return f"{self.identity.user}@{self.identity.host}"

    @property
    def description(self) -> str:
        return (f"localhost:{self.identity.local_port} -> "
                f"{self.remote_host}:{self.remote_port} via {self.target}")

    def _control(self, operation: str, capture: bool = False) -> subprocess.CompletedProcess:
        argv = ["ssh", "-S", self.control_socket, "-O", operation, self.target]
        pipe = subprocess.PIPE if capture else subprocess.DEVNULL
        return self.launcher.run(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=pipe,
            stderr=subprocess.STDOUT if capture else subprocess.DEVNULL,
        )

    def is_running(self) -> bool:
        """제어 채널에 마스터 연결이 살아있는지 확인"""
        return self._control("check").returncode == 0

    def status(self) -> TunnelStatus:
        """터널 상태 조회 (부작용 없음)"""
        result = self._control("check", capture=True)
        output = (result.stdout or "").strip()
        running = result.returncode == 0 or "Master running" in output
        listening = self.network_checker.is_port_listening(self.identity.local_port)
        return TunnelStatus(
            running=running,
            socket=self.control_socket,
            control_output=output,
            port_listening=listening,
            listeners=port_listeners(self.identity.local_port, self.launcher) if listening else "",
        )

    def start(self) -> bool:
        """터널 시작. 새로 시작했으면 True, 이미 실행 중이면 False"""
        if self.is_running():
            self.logger.info(f"Tunnel already running: {self.description}")
            return False

        if self.network_checker.is_port_listening(self.identity.local_port):
            raise PortInUseError(
                self.identity.local_port,
                "stop the existing process or choose a different --local-port",
                port_listeners(self.identity.local_port, self.launcher),
            )

        forward = f"{self.identity.local_port}:{self.remote_host}:{self.remote_port}"
        argv = [
            "ssh",
            "-M", "-S", self.control_socket,
            "-fN",
            "-L", forward,
            self.target,
            "-o", "ControlPersist=yes",
            "-o", "ExitOnForwardFailure=yes",
            "-o", "ServerAliveInterval=30",
            "-o", "ServerAliveCountMax=3",
        ]

        self.logger.info(f"Starting tunnel: {self.description}")
        # 백그라운드로 빠지는 ssh가 파이프를 잡고 있지 않도록 stderr는 임시 파일로 받는다
        with tempfile.TemporaryFile(mode="w+", encoding="utf-8") as errfile:
            result = self.launcher.run(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=errfile,
            )
            errfile.seek(0)
            stderr = errfile.read().strip()

        if result.returncode != 0:
            self.logger.error(f"Tunnel start failed ({result.returncode}): {stderr}")
            if any(marker in stderr for marker in AUTH_FAILURE_MARKERS):
                raise TunnelAuthError(
                    f"SSH authentication failed for {self.target}. "
                    f"Check that your key is authorized (netcup-kube remote provision): {stderr}"
                )
            detail = f": {stderr}" if stderr else ""
            raise TunnelError(f"failed to start tunnel {self.description} (exit {result.returncode}){detail}")

        self.logger.info(f"Started tunnel: {self.description}")
        return True

    def stop(self) -> bool:
        """터널 중지. 중지했으면 True, 실행 중이 아니었으면 False"""
        if not self.is_running():
            self.logger.info(f"No tunnel running for {self.description}")
            return False

        result = self._control("exit")
        if result.returncode != 0:
            # 마스터가 이미 사라진 경우에도 결과는 같다
            self.logger.warning(f"Control exit for {self.control_socket} returned {result.returncode}")
        self.logger.info(f"Stopped tunnel: {self.description}")
        return True
