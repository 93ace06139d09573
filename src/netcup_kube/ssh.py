"""
SSH 원격 클라이언트
원격 호스트와의 유일한 접점: 인자 이스케이프, 연결 옵션, 실행 결과 처리
"""

import os
import subprocess
from typing import List, Mapping, Optional, Protocol, Sequence

from .errors import RemoteCommandError
from .logger import get_logger
from .process import ProcessLauncher
from .shell import build_remote_command

IDENTITY_CANDIDATES = ("id_ed25519", "id_rsa")


class RemoteClient(Protocol):
    """원격 오케스트레이션 함수가 필요로 하는 최소 인터페이스"""

    def test_connection(self) -> None: ...

    def execute(self, command: str, args: Sequence[str] = (), force_tty: bool = False) -> None: ...

    def execute_script(self, script: str, args: Sequence[str] = ()) -> None: ...

    def upload(self, local_path: str, remote_path: str) -> None: ...

    def run_command_string(self, command: str, force_tty: bool = False) -> None: ...

    def output_command(self, command: str, args: Sequence[str] = ()) -> str: ...


def default_identity_file() -> str:
    """기본 개인키 선택 (ed25519 우선)"""
    ssh_dir = os.path.join(os.path.expanduser("~"), ".ssh")
    for name in IDENTITY_CANDIDATES:
        candidate = os.path.join(ssh_dir, name)
        if os.path.isfile(candidate):
            return candidate
    return ""


class SSHClient:
    """ssh/scp 바이너리를 호출하는 원격 클라이언트"""

    def __init__(self, host: str, user: str,
                 identity_file: Optional[str] = None,
                 launcher: Optional[ProcessLauncher] = None):
        self.host = host
        self.user = user
        self.identity_file = default_identity_file() if identity_file is None else identity_file
        self.launcher = launcher or ProcessLauncher()
        self.logger = get_logger()

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def _base_options(self) -> List[str]:
        opts = ["-o", "StrictHostKeyChecking=no"]
        if self.identity_file:
            opts.extend(["-i", self.identity_file])
        return opts

    def _ssh_argv(self, remote: Sequence[str], force_tty: bool = False,
                  extra: Sequence[str] = ()) -> List[str]:
        argv = ["ssh"] + list(extra) + self._base_options()
        if force_tty:
            argv.append("-tt")
        argv.append(self.target)
        argv.extend(remote)
        return argv

    def _check(self, argv: List[str], result: subprocess.CompletedProcess) -> None:
        if result.returncode != 0:
            stderr = result.stderr if isinstance(result.stderr, str) else ""
            self.logger.debug(f"{argv[0]} to {self.target} failed with status {result.returncode}")
            raise RemoteCommandError(argv, result.returncode, stderr)

    def execute(self, command: str, args: Sequence[str] = (), force_tty: bool = False) -> None:
        """원격 명령 실행 (각 인자를 개별 이스케이프)"""
        self.execute_with_env(command, args, None, force_tty)

    def execute_with_env(self, command: str, args: Sequence[str] = (),
                         env: Optional[Mapping[str, str]] = None,
                         force_tty: bool = False) -> None:
        """KEY=value 할당을 명령 앞에 붙여 실행 (서버측 AcceptEnv 설정에 의존하지 않음)"""
        argv = self._ssh_argv([build_remote_command(command, args, env)], force_tty)
        result = self.launcher.run(argv)
        self._check(argv, result)

    def execute_script(self, script: str, args: Sequence[str] = ()) -> None:
        """스크립트를 원격 bash 표준입력으로 전달하고 위치 인자를 붙인다"""
        argv = self._ssh_argv([build_remote_command("bash", ["-s", "--"] + list(args))])
        result = self.launcher.run(argv, input=script)
        self._check(argv, result)

    def upload(self, local_path: str, remote_path: str) -> None:
        """scp 파일 업로드 (ssh와 같은 연결 옵션 사용)"""
        argv = ["scp"] + self._base_options() + [local_path, f"{self.target}:{remote_path}"]
        result = self.launcher.run(argv, stdin=subprocess.DEVNULL)
        self._check(argv, result)

    def test_connection(self) -> None:
        """비대화형 접속 확인 (출력 없음)"""
        argv = self._ssh_argv(["true"], extra=["-o", "BatchMode=yes"])
        result = self.launcher.run(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        self._check(argv, result)

    def run_command_string(self, command: str, force_tty: bool = False) -> None:
        """이미 이스케이프된 명령 문자열 실행 (내부에서 조립한 래퍼 전용)"""
        argv = self._ssh_argv([command], force_tty)
        result = self.launcher.run(argv)
        self._check(argv, result)

    def output_command(self, command: str, args: Sequence[str] = ()) -> str:
        """원격 명령의 표준출력 반환"""
        argv = self._ssh_argv([build_remote_command(command, args)])
        result = self.launcher.run(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        self._check(argv, result)
        return result.stdout or ""

    def open_shell(self) -> int:
        """대화형 로그인 셸 (표준 입출력 상속). 셸 종료 코드 반환"""
        argv = self._ssh_argv([])
        self.logger.info(f"Opening SSH shell to {self.target}")
        return self.launcher.run(argv).returncode

    def __repr__(self) -> str:
        return f"SSHClient({self.target!r}, identity={self.identity_file or None!r})"

