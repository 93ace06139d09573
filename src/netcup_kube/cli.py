"""
CLI 메인 인터페이스
Click 및 Rich 기반 netcup-kube 운영 CLI
"""

import functools
import json
import os
import sys
import click
import yaml
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import Config, GitOptions, RunOptions, Target, load_env_file, runtime_dir
from .errors import NetcupKubeError, PreconditionError, ReadinessTimeoutError
from .kube import KubeResolver
from .logger import init_logger, get_logger
from .network import NetworkChecker
from .portforward import PortForwardManager, readiness_check
from .process import ProcessLauncher
from .provision import provision
from .remote import remote_build_and_upload, remote_git_sync
from .run import run_with_client
from .smoke import smoke
from .ssh import RemoteClient, SSHClient
from .tunnel import TunnelIdentity, TunnelManager

console = Console()
err_console = Console(stderr=True)

DEFAULT_ENV_FILES = (os.path.join("config", "netcup-kube.env"), ".env")


@dataclass
class CliContext:
    """명령 간에 공유되는 실행 컨텍스트"""
    config: Optional[Config] = None
    debug: bool = False
    launcher: Optional[ProcessLauncher] = None
    client_factory: Optional[Callable[[str, str], RemoteClient]] = None
    remote_flags: Dict[str, Optional[str]] = field(default_factory=dict)

    def client(self, host: str, user: str) -> RemoteClient:
        if self.client_factory is not None:
            return self.client_factory(host, user)
        return SSHClient(host, user, launcher=self.launcher)


def handle_errors(func):
    """NetcupKubeError를 사용자 메시지로 출력하고 종료 코드 1로 끝냄"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except NetcupKubeError as e:
            get_logger().error(str(e))
            err_console.print(f"[red]✗ 오류: {escape(str(e))}[/red]")
            sys.exit(1)
        except KeyboardInterrupt:
            err_console.print("\n[yellow]사용자에 의해 중단되었습니다.[/yellow]")
            get_logger().warning("Interrupted by user")
            sys.exit(130)
    return wrapper


def find_project_root() -> str:
    """scripts/main.sh 가 있는 프로젝트 루트 탐색"""
    marker = os.path.join("scripts", "main.sh")

    cwd = os.getcwd()
    if os.path.isfile(os.path.join(cwd, marker)):
        return cwd

    # bin/ 에서 실행한 경우
    if os.path.basename(cwd) == "bin":
        parent = os.path.dirname(cwd)
        if os.path.isfile(os.path.join(parent, marker)):
            return parent

    exe_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
    candidate = os.path.dirname(exe_dir)
    if os.path.isfile(os.path.join(candidate, marker)):
        return candidate

    raise PreconditionError(
        "could not locate project root: scripts/main.sh not found in current directory or expected locations",
        "Run this command from the netcup-kube checkout.",
    )


def load_tunnel_env(env_file: str = "", no_env: bool = False) -> Dict[str, str]:
    """터널/포워드용 env 파일 로드 (명시한 파일이 없으면 오류, 기본 파일은 선택)"""
    if no_env:
        return {}
    if env_file:
        if not os.path.isfile(env_file):
            raise PreconditionError(f"env file not found: {env_file}")
        return load_env_file(env_file)
    for candidate in DEFAULT_ENV_FILES:
        if os.path.isfile(candidate):
            return load_env_file(candidate)
    return {}


def _lookup(env_values: Dict[str, str], *names: str) -> str:
    """프로세스 환경변수 → env 파일 순서로 첫 번째 값 반환"""
    for name in names:
        value = os.environ.get(name) or env_values.get(name)
        if value:
            return value
    return ""


def _port_value(name: str, value) -> int:
    """env/설정에서 읽은 포트 값을 정수로 변환 (잘못된 값은 PreconditionError)"""
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise PreconditionError(f"{name} must be a port number (got {value!r})") from None
    if not 0 < port < 65536:
        raise PreconditionError(f"{name} must be between 1 and 65535 (got {port})")
    return port


def resolve_ssh_endpoint(state: CliContext, env_values: Dict[str, str],
                         host: str = "", user: str = ""):
    """관리 노드 SSH 호스트/사용자 결정 (TUNNEL_* > MGMT_* > 설정 파일)"""
    host = host or _lookup(env_values, "TUNNEL_HOST", "MGMT_HOST", "MGMT_IP") or state.config.remote.host
    if not host:
        raise PreconditionError(
            "no host provided and no TUNNEL_HOST/MGMT_HOST found in config",
            "Pass --host or set TUNNEL_HOST in config/netcup-kube.env",
        )
    user = user or _lookup(env_values, "TUNNEL_USER", "MGMT_USER") or state.config.tunnel.user
    return host, user


def build_tunnel_manager(state: CliContext, env_values: Dict[str, str],
                         host: str = "", user: str = "",
                         local_port: Optional[int] = None,
                         remote_host: str = "",
                         remote_port: Optional[int] = None) -> TunnelManager:
    """플래그 > 환경변수/env 파일 > 설정 파일 순으로 터널 매니저 구성"""
    tcfg = state.config.tunnel
    host, user = resolve_ssh_endpoint(state, env_values, host, user)
    if local_port is None:
        local_port = _port_value("TUNNEL_LOCAL_PORT", _lookup(env_values, "TUNNEL_LOCAL_PORT") or tcfg.local_port)
    remote_host = remote_host or _lookup(env_values, "TUNNEL_REMOTE_HOST") or tcfg.remote_host
    if remote_port is None:
        remote_port = _port_value("TUNNEL_REMOTE_PORT", _lookup(env_values, "TUNNEL_REMOTE_PORT") or tcfg.remote_port)

    return TunnelManager(
        TunnelIdentity(user, host, int(local_port)),
        remote_host=remote_host,
        remote_port=int(remote_port),
        launcher=state.launcher,
        base_dir=runtime_dir(state.config.agent.state_dir),
        debug=state.debug,
    )


def build_target(state: CliContext) -> Target:
    """remote 그룹 플래그 > env 파일 > 설정 파일 순으로 대상 구성"""
    flags = state.remote_flags
    rcfg = state.config.remote

    target = Target(
        host=flags.get("host") or "",
        user=rcfg.user,
        pubkey_path=flags.get("pubkey") or rcfg.pubkey,
        repo_url=flags.get("repo") or rcfg.repo_url,
        config_path=flags.get("env_config") or rcfg.env_file,
    )
    # --user 는 실제로 지정된 경우에만 명시값으로 취급
    if flags.get("user"):
        target.user = flags["user"]
        target.user_explicit = True

    try:
        target.load_config_from_env()
    except OSError as e:
        raise PreconditionError(f"failed to load config: {e}") from e

    if not target.host:
        target.host = rcfg.host
    if not target.host:
        raise PreconditionError(
            "no host provided and no MGMT_HOST/MGMT_IP found in config",
            "Pass --host or set MGMT_HOST in config/netcup-kube.env",
        )
    return target


def git_options(func):
    """--branch / --ref / --pull 옵션 공통 데코레이터"""
    func = click.option('--pull/--no-pull', default=None, help='최신 변경 사항 pull (ff-only)')(func)
    func = click.option('--ref', default='', help='Git ref (커밋/태그)')(func)
    func = click.option('--branch', default='', help='Git 브랜치')(func)
    return func


def make_git_options(branch: str, ref: str, pull: Optional[bool]) -> GitOptions:
    return GitOptions(branch=branch, ref=ref, pull=bool(pull), pull_is_set=pull is not None)


def require_connection(client: RemoteClient) -> None:
    try:
        client.test_connection()
    except NetcupKubeError as e:
        raise PreconditionError(
            "SSH connection failed.",
            "Run provisioning first:\n  netcup-kube remote provision",
        ) from e


@click.group()
@click.version_option(version=__version__)
@click.option('--config-file', '-c', 'config_file', type=click.Path(exists=True), help='설정 파일 경로 (YAML/JSON)')
@click.option('--debug', is_flag=True, help='디버그 모드')
@click.pass_context
def cli(ctx, config_file, debug):
    """netcup-kube 운영 CLI

    원격 관리 노드 프로비저닝, 빌드/업로드, 원격 실행, kubectl 터널 및 port-forward를 관리합니다.
    """
    state = ctx.ensure_object(CliContext)
    state.debug = state.debug or debug

    if state.config is None:
        try:
            state.config = Config(config_file)
        except (yaml.YAMLError, json.JSONDecodeError, OSError) as e:
            err_console.print(f"[red]✗ 설정 파일 오류: {escape(str(e))}[/red]")
            sys.exit(1)

    init_logger(state.config.agent.log_dir, state.config.agent.log_level, state.debug)
    if state.launcher is None:
        state.launcher = ProcessLauncher()
    get_logger().debug(f"Invoked: {ctx.invoked_subcommand} (debug={state.debug})")


@cli.command()
@click.argument('output', type=click.Path(), default='./netcup-kube.yaml')
@click.pass_obj
def init(state: CliContext, output):
    """샘플 설정 파일 생성"""
    state.config.create_sample(output)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output}[/green]")
    console.print("[cyan]설정 파일을 편집한 후 다음 명령어로 확인하세요:[/cyan]")
    console.print(f"[cyan]  netcup-kube -c {output} validate[/cyan]")


@cli.command()
@click.pass_obj
def validate(state: CliContext):
    """설정 파일 유효성 검사"""
    cfg = state.config
    problems = cfg.validate()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")

    table.add_row("설정 파일", escape(cfg.config_path or "(기본값)"))
    table.add_row("원격 호스트", escape(cfg.remote.host) if cfg.remote.host else "[yellow]env 파일 사용[/yellow]")
    table.add_row("원격 사용자", escape(cfg.remote.user))
    table.add_row("터널", f"{cfg.tunnel.user} localhost:{cfg.tunnel.local_port} -> "
                          f"{cfg.tunnel.remote_host}:{cfg.tunnel.remote_port}")
    table.add_row("port-forward", f"{cfg.forward.namespace} localhost:{cfg.forward.local_port} -> "
                                  f"{cfg.forward.remote_port}")
    table.add_row("빌드 도구", escape(cfg.build.toolchain))
    table.add_row("로그 디렉토리", escape(cfg.agent.log_dir))
    console.print(table)

    if problems:
        for problem in problems:
            console.print(f"[red]✗ {escape(problem)}[/red]")
        sys.exit(1)
    console.print("[green]✓ 설정 파일이 유효합니다.[/green]")


# ---------------------------------------------------------------------------
# remote
# ---------------------------------------------------------------------------

@cli.group()
@click.option('--host', default='', help='원격 호스트 또는 IP')
@click.option('--user', default=None, help='원격 sudo 사용자 (기본값: cubeadmin)')
@click.option('--pubkey', default='', help='SSH 공개키 경로')
@click.option('--repo', default='', help='저장소 URL')
@click.option('--config', 'env_config', default='', help='env 파일 경로 (기본값: config/netcup-kube.env)')
@click.pass_obj
def remote(state: CliContext, host, user, pubkey, repo, env_config):
    """원격 관리 노드 작업"""
    state.remote_flags = {
        "host": host,
        "user": user,
        "pubkey": pubkey,
        "repo": repo,
        "env_config": env_config,
    }


@remote.command("provision")
@click.pass_obj
@handle_errors
def remote_provision(state: CliContext):
    """root로 한 번 접속하여 sudo 사용자와 저장소를 준비"""
    target = build_target(state)
    provision(target, client=state.client(target.host, "root"), launcher=state.launcher)


@remote.command("git")
@git_options
@click.pass_obj
@handle_errors
def remote_git(state: CliContext, branch, ref, pull):
    """원격 저장소 동기화 (기본: pull)"""
    target = build_target(state)
    client = state.client(target.host, target.user)
    require_connection(client)

    opts = make_git_options(branch, ref, pull)
    # 단독 git 명령은 기본적으로 pull
    if not opts.pull_is_set:
        opts.pull = True
        opts.pull_is_set = True

    remote_git_sync(client, target.remote_repo_dir, opts)
    console.print(f"[green]✓ {target.address}:{target.remote_repo_dir} 동기화 완료[/green]")


@remote.command("build")
@git_options
@click.pass_obj
@handle_errors
def remote_build(state: CliContext, branch, ref, pull):
    """원격 아키텍처용으로 로컬 크로스 빌드 후 업로드"""
    target = build_target(state)
    client = state.client(target.host, target.user)
    require_connection(client)
    project_root = find_project_root()

    remote_build_and_upload(client, target, project_root, make_git_options(branch, ref, pull),
                            launcher=state.launcher, build=state.config.build)


@remote.command("smoke")
@git_options
@click.pass_obj
@handle_errors
def remote_smoke(state: CliContext, branch, ref, pull):
    """원격 관리 노드에서 DRY_RUN 스모크 테스트 실행"""
    target = build_target(state)
    project_root = find_project_root()
    smoke(target, make_git_options(branch, ref, pull), project_root,
          client=state.client(target.host, target.user),
          launcher=state.launcher, build=state.config.build)


@remote.command("run", context_settings={"ignore_unknown_options": True,
                                         "allow_interspersed_args": False})
@click.option('--no-tty', is_flag=True, help='TTY 강제 할당 안 함 (기본: 프롬프트용 TTY 할당)')
@click.option('--env-file', default='', help='실행 전에 업로드하여 source 할 env 파일')
@git_options
@click.argument('args', nargs=-1, type=click.UNPROCESSED)
@click.pass_context
@handle_errors
def remote_run(ctx, no_tty, env_file, branch, ref, pull, args):
    """원격 호스트에서 netcup-kube 명령 실행

    \b
    예시:
      netcup-kube remote run bootstrap
      netcup-kube remote run --env-file ./config/netcup-kube.env bootstrap
      netcup-kube remote run --branch main bootstrap
      netcup-kube remote run --no-tty -- dns --help
    """
    state: CliContext = ctx.obj
    args = list(args)
    if not args or args[0] in ("help", "-h", "--help"):
        click.echo(ctx.get_help())
        return

    opts = RunOptions(
        force_tty=not no_tty,
        env_file=env_file,
        git=make_git_options(branch, ref, pull),
        args=args,
    )
    # --branch 는 명시적 --no-pull 이 없으면 pull 을 포함한다
    if opts.git.branch and not opts.git.pull_is_set:
        opts.git.pull = True

    target = build_target(state)
    run_with_client(state.client(target.host, target.user), target, opts)


# ---------------------------------------------------------------------------
# tunnel
# ---------------------------------------------------------------------------

@cli.command()
@click.argument('action', type=click.Choice(["start", "stop", "status"]), default="start", required=False)
@click.option('--host', default='', help='SSH 호스트')
@click.option('--user', default='', help='SSH 사용자 (기본값: ops)')
@click.option('--local-port', type=int, default=None, help='로컬 포트 (기본값: 6443)')
@click.option('--remote-host', default='', help='원격 전달 호스트 (기본값: 127.0.0.1)')
@click.option('--remote-port', type=int, default=None, help='원격 전달 포트 (기본값: 6443)')
@click.option('--env-file', default='', help='env 파일 경로')
@click.option('--no-env', is_flag=True, help='env 파일 로드 안 함')
@click.pass_obj
@handle_errors
def tunnel(state: CliContext, action, host, user, local_port, remote_host, remote_port, env_file, no_env):
    """kubectl 접근용 SSH 터널 관리 (start | stop | status)"""
    env_values = load_tunnel_env(env_file, no_env)
    mgr = build_tunnel_manager(state, env_values, host, user, local_port, remote_host, remote_port)

    if action == "start":
        if mgr.start():
            console.print(f"[green]✓ SSH 터널 시작: {mgr.description}[/green]")
        else:
            console.print(f"[yellow]SSH 터널이 이미 실행 중입니다: {mgr.description}[/yellow]")
        console.print(f"[cyan]  제어 소켓: {mgr.control_socket}[/cyan]")

    elif action == "stop":
        if mgr.stop():
            console.print(f"[green]✓ SSH 터널 중지: {mgr.target}[/green]")
        else:
            console.print(f"[yellow]실행 중인 SSH 터널이 없습니다: {mgr.target}[/yellow]")

    else:
        status = mgr.status()
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("항목", style="cyan")
        table.add_column("값")
        table.add_row("상태", "[green]running[/green]" if status.running else "[red]stopped[/red]")
        table.add_row("터널", escape(mgr.description))
        table.add_row("제어 소켓", escape(status.socket))
        table.add_row("로컬 포트 수신", "예" if status.port_listening else "아니오")
        if status.listeners:
            table.add_row("수신 프로세스", escape(status.listeners))
        if status.control_output:
            table.add_row("제어 응답", escape(status.control_output))
        if status.running:
            _, api_msg = NetworkChecker(state.debug).probe_kube_api("127.0.0.1", mgr.identity.local_port)
            table.add_row("Kubernetes API", api_msg)
        console.print(table)
        if not status.running:
            sys.exit(1)


@cli.command("ssh")
@click.option('--host', default='', help='SSH 호스트 (기본값: $TUNNEL_HOST 또는 $MGMT_HOST)')
@click.option('--user', default='', help='SSH 사용자 (기본값: $TUNNEL_USER, $MGMT_USER 또는 ops)')
@click.option('--env-file', default='', help='env 파일 경로')
@click.option('--no-env', is_flag=True, help='env 파일 로드 안 함')
@click.pass_obj
@handle_errors
def ssh_shell(state: CliContext, host, user, env_file, no_env):
    """관리 노드에 대화형 SSH 셸 접속"""
    env_values = load_tunnel_env(env_file, no_env)
    host, user = resolve_ssh_endpoint(state, env_values, host, user)

    console.print(f"[cyan]{escape(user)}@{escape(host)} SSH 셸 접속 중...[/cyan]")
    returncode = SSHClient(host, user, launcher=state.launcher).open_shell()
    if returncode != 0:
        sys.exit(returncode)


# ---------------------------------------------------------------------------
# forward
# ---------------------------------------------------------------------------

def _forward_config(state: CliContext, namespace: str, local_port: Optional[int],
                    remote_port: Optional[int]):
    fcfg = state.config.forward
    if namespace:
        fcfg.namespace = namespace
    if local_port is not None:
        fcfg.local_port = local_port
    if remote_port is not None:
        fcfg.remote_port = remote_port
    return fcfg


def _port_forward_manager(state: CliContext, fcfg, target: str = "") -> PortForwardManager:
    return PortForwardManager(
        fcfg.namespace,
        target or fcfg.fallback_service,
        fcfg.local_port,
        fcfg.remote_port,
        launcher=state.launcher,
        state_dir=runtime_dir(state.config.agent.state_dir),
        debug=state.debug,
    )


def kube_api_endpoint():
    """kubeconfig 대상 API 주소 (KUBERNETES_SERVICE_HOST/PORT, 기본 127.0.0.1:6443)"""
    host = os.environ.get("KUBERNETES_SERVICE_HOST") or "127.0.0.1"
    port = _port_value("KUBERNETES_SERVICE_PORT", os.environ.get("KUBERNETES_SERVICE_PORT") or 6443)
    return host, port


@cli.group()
@click.option('--namespace', '-n', default='', help='Kubernetes 네임스페이스 (기본값: openclaw)')
@click.option('--local-port', type=int, default=None, help='로컬 포트 (기본값: 18789)')
@click.option('--remote-port', type=int, default=None, help='원격 포트 (기본값: 18789)')
@click.pass_obj
def forward(state: CliContext, namespace, local_port, remote_port):
    """백그라운드 kubectl port-forward 관리"""
    _forward_config(state, namespace, local_port, remote_port)


@forward.command("start")
@click.option('--tunnel-host', default='', help='SSH 터널 호스트 (기본값: $TUNNEL_HOST 또는 $MGMT_HOST)')
@click.option('--tunnel-user', default='', help='SSH 터널 사용자 (기본값: $TUNNEL_USER 또는 ops)')
@click.option('--tunnel-local-port', type=int, default=None, help='SSH 터널 로컬 포트')
@click.option('--tunnel-remote-host', default='', help='SSH 터널 원격 호스트')
@click.option('--tunnel-remote-port', type=int, default=None, help='SSH 터널 원격 포트')
@click.pass_obj
@handle_errors
def forward_start(state: CliContext, tunnel_host, tunnel_user, tunnel_local_port,
                  tunnel_remote_host, tunnel_remote_port):
    """Kubernetes API 확인 → (필요시) 터널 시작 → 서비스 조회 → port-forward 시작"""
    logger = get_logger()
    fcfg = state.config.forward
    checker = NetworkChecker(state.debug)
    api_host, api_port = kube_api_endpoint()

    reachable, _ = checker.probe_kube_api(api_host, api_port)
    if not reachable:
        env_values = load_tunnel_env()
        try:
            mgr = build_tunnel_manager(state, env_values, tunnel_host, tunnel_user,
                                       tunnel_local_port, tunnel_remote_host, tunnel_remote_port)
        except PreconditionError as e:
            raise PreconditionError(
                "kube API is unreachable and no tunnel host configured",
                "Set TUNNEL_HOST or pass --tunnel-host",
            ) from e

        if not mgr.is_running():
            console.print(f"[yellow]Kubernetes API에 접근할 수 없어 SSH 터널을 시작합니다 ({mgr.target})...[/yellow]")
            logger.info(f"Kube API unreachable; starting SSH tunnel via {mgr.target}")
            mgr.start()

        reachable, _ = checker.probe_kube_api(api_host, api_port)
        if not reachable:
            raise NetcupKubeError(
                "kube API still unreachable after starting SSH tunnel; check tunnel config and kubeconfig"
            )

    resolver = KubeResolver.from_config(fcfg, state.launcher)
    service = resolver.resolve_service()

    pf = _port_forward_manager(state, fcfg, service)
    if not pf.start():
        console.print("[yellow]port-forward가 이미 실행 중입니다.[/yellow]")

    status = pf.status()
    if status.running:
        console.print(f"[green]✓ port-forward 실행 중: localhost:{fcfg.local_port} -> "
                      f"{resolver.port_forward_target(service)} (namespace {fcfg.namespace}, pid {status.pid})[/green]")
        console.print(f"[cyan]  로그: {status.log_file}[/cyan]")
        try:
            readiness_check(fcfg.local_port, fcfg.readiness_timeout, checker)
        except ReadinessTimeoutError as e:
            err_console.print(f"[yellow]⚠ port-forward는 시작되었지만 로컬 포트가 아직 준비되지 않았습니다: {escape(str(e))}[/yellow]")
            logger.warning(f"Port-forward started but not ready: {e}")


@forward.command("stop")
@click.pass_obj
@handle_errors
def forward_stop(state: CliContext):
    """백그라운드 port-forward 중지"""
    fcfg = state.config.forward
    pf = _port_forward_manager(state, fcfg)
    if pf.stop():
        console.print(f"[green]✓ port-forward 중지 (namespace: {fcfg.namespace}, port: {fcfg.local_port})[/green]")
    else:
        console.print(f"[yellow]실행 중인 port-forward가 없습니다 (namespace: {fcfg.namespace}, port: {fcfg.local_port})[/yellow]")


@forward.command("status")
@click.pass_obj
@handle_errors
def forward_status(state: CliContext):
    """port-forward 상태 조회"""
    fcfg = state.config.forward
    status = _port_forward_manager(state, fcfg).status()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")
    table.add_row("상태", f"[green]{status.state}[/green]" if status.running else f"[red]{status.state}[/red]")
    table.add_row("네임스페이스", escape(fcfg.namespace))
    table.add_row("포트", str(fcfg.local_port))
    if status.pid > 0:
        table.add_row("PID", str(status.pid))
    if status.log_file:
        table.add_row("로그", escape(status.log_file))
    console.print(table)

    if not status.running:
        sys.exit(1)


# ---------------------------------------------------------------------------
# pod
# ---------------------------------------------------------------------------

@cli.group()
@click.option('--namespace', '-n', default='', help='Kubernetes 네임스페이스 (기본값: openclaw)')
@click.pass_obj
def pod(state: CliContext, namespace):
    """메인 파드 명령 실행"""
    if namespace:
        state.config.forward.namespace = namespace


@pod.command("exec", context_settings={"ignore_unknown_options": True,
                                       "allow_interspersed_args": False})
@click.argument('command', nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
@handle_errors
def pod_exec(state: CliContext, command):
    """메인 컨테이너에서 셸 명령 실행 (sh -lc)"""
    resolver = KubeResolver.from_config(state.config.forward, state.launcher)
    returncode = resolver.run_shell(list(command))
    if returncode != 0:
        sys.exit(returncode)


@pod.command("shell")
@click.pass_obj
@handle_errors
def pod_shell(state: CliContext):
    """메인 컨테이너에 대화형 셸 접속"""
    resolver = KubeResolver.from_config(state.config.forward, state.launcher)
    returncode = resolver.open_shell()
    if returncode != 0:
        sys.exit(returncode)


@pod.command("logs", context_settings={"ignore_unknown_options": True,
                                       "allow_interspersed_args": False})
@click.argument('args', nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
@handle_errors
def pod_logs(state: CliContext, args):
    """메인 파드 로그 조회 (플래그는 kubectl logs 로 전달, 예: --follow, --tail 100)"""
    resolver = KubeResolver.from_config(state.config.forward, state.launcher)
    returncode = resolver.logs(list(args))
    if returncode != 0:
        sys.exit(returncode)


@pod.command("openclaw", context_settings={"ignore_unknown_options": True,
                                           "allow_interspersed_args": False})
@click.argument('args', nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
@handle_errors
def pod_openclaw(state: CliContext, args):
    """메인 컨테이너에서 OpenClaw CLI 실행

    \b
    예시:
      netcup-kube pod openclaw status
      netcup-kube pod openclaw security audit --deep
    """
    resolver = KubeResolver.from_config(state.config.forward, state.launcher)
    returncode = resolver.run_app_cli(list(args))
    if returncode != 0:
        sys.exit(returncode)


def _ok(value: bool) -> str:
    return "[green]ok[/green]" if value else "[red]not ok[/red]"


@pod.command("status")
@click.pass_obj
@handle_errors
def pod_status(state: CliContext):
    """터널, Kubernetes API, port-forward, 서비스/파드 통합 상태"""
    fcfg = state.config.forward
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")

    # 터널은 호스트가 설정된 경우에만 확인
    env_values = load_tunnel_env()
    tunnel_running = False
    if _lookup(env_values, "TUNNEL_HOST", "MGMT_HOST", "MGMT_IP") or state.config.remote.host:
        mgr = build_tunnel_manager(state, env_values)
        tunnel_running = mgr.is_running()
        detail = f" ({escape(mgr.description)})" if tunnel_running else ""
        table.add_row("tunnel", _ok(tunnel_running) + detail)
    else:
        table.add_row("tunnel", "[yellow]unconfigured (set TUNNEL_HOST to enable)[/yellow]")

    api_reachable, _ = NetworkChecker(state.debug).probe_kube_api(*kube_api_endpoint())
    table.add_row("kube-api", _ok(api_reachable))

    pf_status = _port_forward_manager(state, fcfg).status()
    pf_row = pf_status.state
    if pf_status.pid > 0:
        pf_row = f"{pf_row} (pid {pf_status.pid})"
    table.add_row("port-forward", pf_row)

    resolver = KubeResolver.from_config(fcfg, state.launcher)
    service = resolver.resolve_service()
    table.add_row("service", escape(service))

    try:
        resolver.resolve_pod()
        pod_found = True
    except NetcupKubeError as e:
        get_logger().debug(f"Pod lookup failed: {e}")
        pod_found = False
    table.add_row("pod", "found" if pod_found else "[red]not found[/red]")

    healthy = (api_reachable or tunnel_running) and pf_status.running and pod_found
    table.add_row("healthy", _ok(healthy))
    console.print(table)

    if not healthy:
        raise NetcupKubeError("OpenClaw is not fully healthy")


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()
