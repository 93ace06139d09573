"""
외부 프로세스 실행기
ssh/scp/kubectl/go 호출을 한 곳에 모아 테스트에서 교체할 수 있게 한다
"""

import os
import shutil
import signal
import subprocess
from typing import Dict, Mapping, Optional, Sequence

from .logger import get_logger


class ProcessLauncher:
    """subprocess 기반 기본 실행기

    매니저/클라이언트 생성자에 주입되며, 테스트에서는 같은 메서드를 가진
    가짜 객체로 대체한다.
    """

    def __init__(self):
        self.logger = get_logger()

    def run(self, argv: Sequence[str], *,
            input: Optional[str] = None,
            env: Optional[Mapping[str, str]] = None,
            cwd: Optional[str] = None,
            stdin=None,
            stdout=None,
            stderr=None) -> subprocess.CompletedProcess:
        """명령 실행 후 종료까지 대기 (종료 코드로 예외를 던지지 않음)

        stdin/stdout/stderr가 None이면 부모 프로세스의 표준 입출력을 그대로 물려준다.
        """
        self.logger.command("exec", argv)
        full_env: Optional[Dict[str, str]] = None
        if env is not None:
            full_env = dict(os.environ)
            full_env.update(env)
        return subprocess.run(
            list(argv),
            input=input,
            env=full_env,
            cwd=cwd,
            stdin=stdin if input is None else None,
            stdout=stdout,
            stderr=stderr,
            text=True,
        )

    def spawn_detached(self, argv: Sequence[str], log_file: str) -> int:
        """새 세션에서 백그라운드 프로세스를 띄우고 PID 반환

        출력은 log_file에 이어 쓰며 부모가 종료되어도 살아남는다.
        """
        self.logger.command("spawn", argv, f"(log: {log_file})")
        with open(log_file, "a", encoding="utf-8") as lf:
            os.chmod(log_file, 0o600)
            proc = subprocess.Popen(
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=lf,
                stderr=lf,
                start_new_session=True,
            )
        return proc.pid

    def which(self, name: str) -> Optional[str]:
        """PATH에서 실행 파일 검색"""
        return shutil.which(name)

    def is_alive(self, pid: int) -> bool:
        """PID 생존 여부 확인 (좀비 자식은 회수 후 종료로 판단)"""
        if pid <= 0:
            return False
        try:
            reaped, _ = os.waitpid(pid, os.WNOHANG)
            if reaped == pid:
                return False
        except ChildProcessError:
            # 이 프로세스의 자식이 아님
            pass
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def terminate(self, pid: int) -> None:
        """SIGTERM 전송 (이미 종료된 프로세스는 무시)"""
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            self.logger.debug(f"process {pid} already finished")
