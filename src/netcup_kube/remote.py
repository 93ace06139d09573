"""
원격 실행 엔진 - git 동기화, 아키텍처 감지, 크로스 빌드 및 업로드
원격 호스트에는 빌드 도구 없이 정적 바이너리만 올린다
"""

import os
import posixpath
import shutil
import tempfile
from typing import List, Optional
from rich.console import Console

from .config import BuildConfig, GitOptions, Target
from .errors import (
    LocalBuildError,
    NetcupKubeError,
    RemoteCommandError,
    ToolchainMissingError,
    UnsupportedArchitectureError,
)
from .logger import get_logger
from .process import ProcessLauncher
from .shell import NONE_SENTINEL
from .ssh import RemoteClient

console = Console()

ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

GIT_SYNC_SCRIPT = r"""set -euo pipefail
repo="${1:?repo dir required}"
branch="${2:-__NONE__}"
ref="${3:-__NONE__}"
pull="${4:-true}"

[[ "${branch}" == "__NONE__" ]] && branch=""
[[ "${ref}" == "__NONE__" ]] && ref=""

cd "${repo}"
git fetch --all -p

if [[ -n "${ref}" ]]; then
  echo "[remote] checkout ref: ${ref}"
  git checkout --detach "${ref}"
elif [[ -n "${branch}" ]]; then
  echo "[remote] checkout branch: ${branch}"
  if git show-ref --verify --quiet "refs/heads/${branch}"; then
    git checkout "${branch}"
  else
    if ! git show-ref --verify --quiet "refs/remotes/origin/${branch}"; then
      echo "[remote] ERROR: origin/${branch} not found" >&2
      exit 1
    fi
    git checkout -b "${branch}" --track "origin/${branch}"
  fi
fi

if [[ -n "${branch}" && -z "${ref}" ]]; then
  git branch --set-upstream-to="origin/${branch}" "${branch}" >/dev/null 2>&1 || true
fi

if [[ "${pull}" == "true" && -z "${ref}" ]]; then
  if [[ -n "${branch}" ]]; then
    echo "[remote] pull: origin ${branch} (ff-only)"
    git pull --ff-only origin "${branch}"
  else
    echo "[remote] NOTE: --pull requested but no --branch/--ref provided; skipping pull." >&2
  fi
fi
"""


def git_sync_args(repo_dir: str, opts: GitOptions) -> List[str]:
    """git 동기화 스크립트 위치 인자 (빈 값은 __NONE__ 표식으로 전달)"""
    return [
        repo_dir,
        opts.branch or NONE_SENTINEL,
        opts.ref or NONE_SENTINEL,
        "true" if opts.pull else "false",
    ]


def remote_git_sync(client: RemoteClient, repo_dir: str, opts: GitOptions) -> None:
    """원격 저장소 fetch 후 ref/branch checkout, branch일 때만 ff-only pull"""
    logger = get_logger()
    if opts.ref and opts.branch:
        logger.warning(f"--ref {opts.ref} overrides --branch {opts.branch}")
    if opts.pull and not opts.branch:
        logger.warning("--pull has no effect without --branch; skipping pull")

    logger.info(f"Syncing remote repo {repo_dir} (branch={opts.branch or '-'}, "
                f"ref={opts.ref or '-'}, pull={opts.pull})")
    client.execute_script(GIT_SYNC_SCRIPT, git_sync_args(repo_dir, opts))


def map_architecture(machine: str) -> str:
    """uname -m 결과를 빌드 아키텍처로 변환"""
    arch = machine.strip()
    try:
        return ARCH_MAP[arch]
    except KeyError:
        raise UnsupportedArchitectureError(f"unsupported remote architecture: {arch!r}") from None


def detect_remote_arch(client: RemoteClient) -> str:
    """원격 CPU 아키텍처 감지"""
    try:
        output = client.output_command("uname", ["-m"])
    except RemoteCommandError as e:
        raise NetcupKubeError(f"failed to detect remote architecture: {e}") from e
    return map_architecture(output)


def local_build(launcher: ProcessLauncher, project_root: str, out: str, goarch: str,
                build: BuildConfig) -> None:
    """정적 링크 바이너리 로컬 크로스 빌드"""
    argv = [build.toolchain, "build", "-o", out, build.package]
    result = launcher.run(
        argv,
        cwd=project_root,
        env={"CGO_ENABLED": "0", "GOOS": "linux", "GOARCH": goarch},
    )
    if result.returncode != 0:
        raise LocalBuildError(argv, result.returncode)


def remote_build_and_upload(client: RemoteClient, target: Target, project_root: str,
                            opts: GitOptions,
                            launcher: Optional[ProcessLauncher] = None,
                            build: Optional[BuildConfig] = None) -> str:
    """원격 아키텍처용 바이너리를 로컬에서 빌드하여 업로드. 원격 경로 반환"""
    launcher = launcher or ProcessLauncher()
    build = build or BuildConfig()
    logger = get_logger()

    # 원격 호출 전에 로컬 도구부터 확인
    if launcher.which(build.toolchain) is None:
        raise ToolchainMissingError(
            f"missing local '{build.toolchain}' toolchain.",
            "Install Go 1.23+ and retry",
        )

    if opts.sync_requested:
        try:
            remote_git_sync(client, target.remote_repo_dir, opts)
        except RemoteCommandError as e:
            raise NetcupKubeError(f"git sync failed on {target.address}: {e}") from e

    goarch = detect_remote_arch(client)

    tmp_dir = tempfile.mkdtemp(prefix="netcup-kube")
    try:
        out = os.path.join(tmp_dir, build.binary)
        console.print(f"[cyan]로컬 빌드: {build.binary} linux/{goarch}[/cyan]")
        logger.info(f"Building {build.package} for linux/{goarch} in {project_root}")
        local_build(launcher, project_root, out, goarch, build)

        remote_bin = target.remote_bin_path
        console.print(f"[cyan]업로드: {out} -> {target.address}:{remote_bin}[/cyan]")
        logger.info(f"Uploading {out} to {target.address}:{remote_bin}")

        try:
            client.execute("install", ["-d", "-m", "0755", posixpath.dirname(remote_bin)])
        except RemoteCommandError as e:
            raise NetcupKubeError(f"failed to create remote bin directory: {e}") from e

        try:
            client.upload(out, remote_bin)
        except RemoteCommandError as e:
            raise NetcupKubeError(f"upload failed: {e}") from e

        try:
            client.execute("chmod", ["+x", remote_bin])
        except RemoteCommandError as e:
            raise NetcupKubeError(f"chmod failed: {e}") from e
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)

    console.print(f"[green]✓ 원격 CLI: {remote_bin}[/green]")
    logger.info(f"Remote binary ready at {target.address}:{remote_bin}")
    return remote_bin
