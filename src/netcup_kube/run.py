"""
원격 명령 실행
사전 점검 → (선택) git 동기화 → (선택) env 파일 업로드 → sudo 래퍼로 원격 바이너리 실행
"""

import os
from typing import Optional
from rich.console import Console

from .config import RunOptions, Target
from .errors import (
    NetcupKubeError,
    PreconditionError,
    RemoteCommandError,
    UnsupportedCommandError,
    ValidationError,
)
from .logger import get_logger
from .process import ProcessLauncher
from .remote import remote_git_sync
from .shell import NONE_SENTINEL, display_args, shell_escape
from .ssh import RemoteClient, SSHClient

console = Console()

# 원격 실행은 주요 라이프사이클 명령으로 제한한다.
# 원격 CLI에 최상위 명령이 추가되면 이 목록도 함께 갱신할 것.
SUPPORTED_COMMANDS = ("bootstrap", "join", "pair", "dns", "install", "ssh", "help", "-h", "--help")

REMOTE_ENV_PATH = "/tmp/netcup-kube-remote.env.{pid}"

RUNNER_SCRIPT = """set -euo pipefail
env_file="${1:-}"
bin="${2:-}"
shift 2 || true

if [[ "${env_file}" != "__NONE__" && -n "${env_file}" ]]; then
  set -a
  # shellcheck disable=SC1090
  source "${env_file}"
  set +a
fi

exec "${bin}" "$@"
"""


def validate_command(args) -> None:
    """원격 실행 허용 목록 검사 (원격 호출 전)"""
    if not args:
        raise ValidationError("missing netcup-kube command arguments")
    if args[0] not in SUPPORTED_COMMANDS:
        raise UnsupportedCommandError(
            f"unsupported netcup-kube command for remote run: {args[0]} "
            f"(supported: {', '.join(SUPPORTED_COMMANDS)})"
        )


def ensure_user_access(client: RemoteClient, target: Target) -> None:
    """사용자 계정 SSH 키 접속 확인"""
    try:
        client.test_connection()
    except RemoteCommandError as e:
        raise PreconditionError(
            f"SSH key does not work for {target.address}.",
            "Run provisioning first (uses root once):\n  netcup-kube remote provision",
        ) from e


def ensure_remote_repo(client: RemoteClient, target: Target) -> None:
    """원격 저장소 존재 확인"""
    try:
        client.execute("test", ["-d", target.remote_repo_dir])
    except RemoteCommandError as e:
        raise PreconditionError(
            f"remote repo not found at {target.address}:{target.remote_repo_dir}",
            "Run provisioning first:\n  netcup-kube remote provision",
        ) from e


def ensure_remote_binary(client: RemoteClient, target: Target) -> None:
    """원격 바이너리 실행 가능 여부 확인"""
    try:
        client.execute("test", ["-x", target.remote_bin_path])
    except RemoteCommandError as e:
        raise PreconditionError(
            f"remote netcup-kube binary not found or not executable: "
            f"{target.address}:{target.remote_bin_path}",
            "Build/upload it first:\n  netcup-kube remote build",
        ) from e


def build_runner_command(remote_env: str, remote_bin: str, args) -> str:
    """sudo bash -lc 래퍼 명령 문자열 조립

    러너 스크립트, env 경로, 바이너리 경로, 사용자 인자를 각각 이스케이프하므로
    원격 셸에서 토큰이 추가로 분리되지 않고 원래 argv가 그대로 전달된다.
    """
    parts = ["sudo", "-E", "bash", "-lc", shell_escape(RUNNER_SCRIPT), "bash",
             shell_escape(remote_env), shell_escape(remote_bin)]
    parts.extend(shell_escape(arg) for arg in args)
    return " ".join(parts)


def cleanup_remote_env(client: RemoteClient, remote_env: str, force_tty: bool) -> None:
    """원격 임시 env 파일 삭제 (실패해도 경고만 남김)"""
    if remote_env == NONE_SENTINEL:
        return
    try:
        client.execute("sudo", ["rm", "-f", remote_env], force_tty)
    except RemoteCommandError as e:
        get_logger().warning(f"failed to clean up remote env file {remote_env}: {e}")


def run_with_client(client: RemoteClient, target: Target, opts: RunOptions) -> None:
    logger = get_logger()

    validate_command(opts.args)
    if opts.env_file and not os.path.isfile(opts.env_file):
        raise PreconditionError(f"--env-file not found: {opts.env_file}")

    ensure_user_access(client, target)
    ensure_remote_repo(client, target)

    if opts.git.sync_requested:
        try:
            remote_git_sync(client, target.remote_repo_dir, opts.git)
        except RemoteCommandError as e:
            raise NetcupKubeError(f"git sync failed on {target.address}: {e}") from e

    ensure_remote_binary(client, target)

    remote_env = NONE_SENTINEL
    if opts.env_file:
        remote_env = REMOTE_ENV_PATH.format(pid=os.getpid())
        console.print(f"[cyan]env 파일 업로드: {target.address}:{remote_env}[/cyan]")
        try:
            client.upload(opts.env_file, remote_env)
        except RemoteCommandError as e:
            raise NetcupKubeError(f"failed to upload env file: {e}") from e

    try:
        command = build_runner_command(remote_env, target.remote_bin_path, opts.args)
        console.print(f"[cyan]{target.address} 에서 실행: netcup-kube {display_args(opts.args)}[/cyan]",
                      markup=True, highlight=False)
        logger.info(f"Running on {target.address}: netcup-kube {display_args(opts.args)}")
        try:
            client.run_command_string(command, opts.force_tty)
        except RemoteCommandError as e:
            raise NetcupKubeError(f"remote command failed on {target.address}: {e}") from e
    finally:
        cleanup_remote_env(client, remote_env, opts.force_tty)


def run(target: Target, opts: RunOptions,
        client: Optional[RemoteClient] = None,
        launcher: Optional[ProcessLauncher] = None) -> None:
    """원격 호스트에서 netcup-kube 명령 실행"""
    client = client or SSHClient(target.host, target.user, launcher=launcher)
    run_with_client(client, target, opts)
