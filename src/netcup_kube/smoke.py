"""
원격 DRY_RUN 스모크 테스트
빌드/업로드 후 가짜 env 파일로 주요 명령을 비대화형으로 실행해 파이프라인 전체를 검증
"""

import os
import tempfile
from typing import List, Optional, Tuple
from rich.console import Console

from .config import BuildConfig, GitOptions, RunOptions, Target
from .errors import NetcupKubeError, PreconditionError, RemoteCommandError
from .logger import get_logger
from .process import ProcessLauncher
from .remote import remote_build_and_upload
from .run import run_with_client
from .ssh import RemoteClient, SSHClient

console = Console()

SMOKE_ENV = """DRY_RUN=true
DRY_RUN_WRITE_FILES=false
ENABLE_UFW=false
EDGE_PROXY=none
DASH_ENABLE=false
CONFIRM=true
"""

# join 시나리오용 더미 자격 증명
SMOKE_JOIN_ENV = SMOKE_ENV + """SERVER_URL=https://1.2.3.4:6443
TOKEN=dummytoken
"""


def _write_temp_env(content: str, prefix: str) -> str:
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=".env")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError:
        os.remove(path)
        raise
    return path


def smoke_steps(env_file: str, join_env_file: str) -> List[Tuple[str, str, List[str]]]:
    """(이름, env 파일, 인자) 순서 목록"""
    return [
        ("help", env_file, ["--help"]),
        ("dns help", env_file, ["dns", "--help"]),
        ("pair help", env_file, ["pair", "--help"]),
        ("bootstrap", env_file, ["bootstrap"]),
        ("join", join_env_file, ["join"]),
    ]


def smoke_with_client(client: RemoteClient, target: Target, opts: GitOptions, project_root: str,
                      launcher: Optional[ProcessLauncher] = None,
                      build: Optional[BuildConfig] = None) -> None:
    logger = get_logger()

    try:
        client.test_connection()
    except RemoteCommandError as e:
        raise PreconditionError(
            f"SSH connection to {target.address} failed.",
            "Run provisioning first:\n  netcup-kube remote provision",
        ) from e

    remote_build_and_upload(client, target, project_root, opts, launcher=launcher, build=build)

    env_file = _write_temp_env(SMOKE_ENV, "netcup-kube-smoke-")
    try:
        join_env_file = _write_temp_env(SMOKE_JOIN_ENV, "netcup-kube-smoke-join-")
        try:
            console.print(f"[cyan]{target.address} DRY_RUN 스모크 테스트 실행 (비대화형)[/cyan]")
            for name, step_env, args in smoke_steps(env_file, join_env_file):
                console.print(f"  [bold]smoke:[/bold] {name}")
                logger.info(f"Smoke step: {name}")
                # 프롬프트에서 멈추지 않도록 TTY 없이 실행
                step_opts = RunOptions(force_tty=False, env_file=step_env, args=list(args))
                try:
                    run_with_client(client, target, step_opts)
                except NetcupKubeError as e:
                    raise NetcupKubeError(f"smoke test '{name}' failed: {e}") from e
        finally:
            os.remove(join_env_file)
    finally:
        os.remove(env_file)

    console.print("[green]✓ 스모크 테스트 완료 (DRY_RUN)[/green]")
    logger.info("Smoke test complete")


def smoke(target: Target, opts: GitOptions, project_root: str,
          client: Optional[RemoteClient] = None,
          launcher: Optional[ProcessLauncher] = None,
          build: Optional[BuildConfig] = None) -> None:
    """원격 관리 노드에서 안전한 DRY_RUN 스모크 테스트 실행"""
    if not target.host:
        raise PreconditionError("missing host")
    launcher = launcher or ProcessLauncher()
    client = client or SSHClient(target.host, target.user, launcher=launcher)
    smoke_with_client(client, target, opts, project_root, launcher=launcher, build=build)
