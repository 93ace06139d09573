"""
kubectl port-forward 백그라운드 관리 모듈
PID/로그 파일로 상태를 추적하며, 상태 조회 시 죽은 프로세스는 자동 정리
"""

import os
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import runtime_dir
from .errors import PortForwardError, PortInUseError, ReadinessTimeoutError
from .logger import get_logger
from .network import NetworkChecker, port_listeners
from .process import ProcessLauncher
from .shell import identity_key

STATE_STOPPED = "stopped"
STATE_RUNNING = "running"

# 시작 직후 즉시 종료 여부를 확인하기 전 대기 시간
START_SETTLE_SECONDS = 0.2
LOG_TAIL_BYTES = 2048


@dataclass(frozen=True)
class PortForwardIdentity:
    """port-forward 식별자 (namespace, local_port)"""
    namespace: str
    local_port: int

    def paths(self, state_dir: str) -> Tuple[str, str]:
        """(PID 파일, 로그 파일) 경로 (순수 함수)"""
        base = os.path.join(state_dir, f"netcup-kube-pf-{identity_key(self.namespace, self.local_port)}")
        return f"{base}.pid", f"{base}.log"


@dataclass
class PortForwardStatus:
    """port-forward 상태"""
    state: str
    local_port: int
    pid: int = 0
    log_file: str = ""

    @property
    def running(self) -> bool:
        return self.state == STATE_RUNNING


class PortForwardManager:
    """백그라운드 kubectl port-forward 관리 클래스"""

    def __init__(self, namespace: str, target: str, local_port: int, remote_port: int,
                 launcher: Optional[ProcessLauncher] = None,
                 state_dir: Optional[str] = None,
                 debug: bool = False):
        self.identity = PortForwardIdentity(namespace, int(local_port))
        self.target = target
        self.remote_port = int(remote_port)
        self.launcher = launcher or ProcessLauncher()
        self.state_dir = state_dir or runtime_dir()
        self.debug = debug
        self.logger = get_logger()
        self.network_checker = NetworkChecker(debug)
        self.pid_file, self.log_file = self.identity.paths(self.state_dir)

    @property
    def namespace(self) -> str:
        return self.identity.namespace

    @property
    def local_port(self) -> int:
        return self.identity.local_port

    def _read_pid(self) -> int:
        try:
            with open(self.pid_file, "r", encoding="utf-8") as f:
                return int(f.read().strip() or 0)
        except FileNotFoundError:
            return 0
        except (OSError, ValueError) as e:
            self.logger.warning(f"Unreadable PID file {self.pid_file}: {e}")
            return 0

    def _write_pid(self, pid: int) -> None:
        os.makedirs(self.state_dir, exist_ok=True)
        with open(self.pid_file, "w", encoding="utf-8") as f:
            f.write(f"{pid}\n")
        os.chmod(self.pid_file, 0o600)

    def _clear_pid(self) -> None:
        try:
            os.remove(self.pid_file)
        except FileNotFoundError:
            pass

    def _log_tail(self) -> str:
        try:
            with open(self.log_file, "rb") as f:
                f.seek(0, os.SEEK_END)
                size = f.tell()
                f.seek(max(0, size - LOG_TAIL_BYTES))
                return f.read().decode("utf-8", "replace").strip()
        except OSError:
            return ""

    def status(self) -> PortForwardStatus:
        """상태 조회 (예외를 던지지 않음, 오래된 PID 파일은 제거)"""
        pid = self._read_pid()
        if pid > 0 and self.launcher.is_alive(pid):
            return PortForwardStatus(STATE_RUNNING, self.local_port, pid, self.log_file)

        if pid > 0 or os.path.exists(self.pid_file):
            self.logger.info(f"Clearing stale port-forward PID file {self.pid_file} (pid {pid})")
            self._clear_pid()
        return PortForwardStatus(STATE_STOPPED, self.local_port, log_file=self.log_file)

    def start(self) -> bool:
        """port-forward 시작. 새로 시작했으면 True, 이미 실행 중이면 False"""
        current = self.status()
        if current.running:
            self.logger.info(f"Port-forward already running (pid {current.pid}) on :{self.local_port}")
            return False

        if self.network_checker.is_port_listening(self.local_port):
            raise PortInUseError(
                self.local_port,
                "stop the existing forward or use a different local port",
                port_listeners(self.local_port, self.launcher),
            )

        os.makedirs(self.state_dir, exist_ok=True)
        argv = [
            "kubectl",
            "-n", self.namespace,
            "port-forward",
            self.target,
            f"{self.local_port}:{self.remote_port}",
        ]
        self.logger.info(f"Starting port-forward {self.namespace}/{self.target} on :{self.local_port}")
        try:
            pid = self.launcher.spawn_detached(argv, self.log_file)
        except OSError as e:
            raise PortForwardError(f"failed to launch kubectl port-forward: {e}") from e

        self._write_pid(pid)

        time.sleep(START_SETTLE_SECONDS)
        if not self.launcher.is_alive(pid):
            self._clear_pid()
            tail = self._log_tail()
            message = f"port-forward process exited immediately (pid {pid})"
            if tail:
                message = f"{message}: {tail}"
            self.logger.error(message)
            raise PortForwardError(message)

        self.logger.info(f"Port-forward running (pid {pid}), log: {self.log_file}")
        return True

    def stop(self) -> bool:
        """port-forward 중지. 중지했으면 True, 실행 중이 아니었으면 False"""
        pid = self._read_pid()
        if pid <= 0:
            self._clear_pid()
            return False

        if not self.launcher.is_alive(pid):
            self._clear_pid()
            return False

        self.logger.info(f"Stopping port-forward (pid {pid})")
        try:
            self.launcher.terminate(pid)
        except PermissionError as e:
            raise PortForwardError(f"failed to stop port-forward (pid {pid}): {e}") from e
        self._clear_pid()
        return True


def readiness_check(port: int, timeout: float, checker: Optional[NetworkChecker] = None) -> None:
    """포워딩된 포트가 제한 시간 내 연결을 받는지 확인 (프로세스 생존과 별개)"""
    checker = checker or NetworkChecker()
    if not checker.wait_for_port(port, timeout):
        raise ReadinessTimeoutError(f"port-forward on :{port} not ready after {timeout:g}s")
