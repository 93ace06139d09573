"""
CLI 명령 테스트 (Click CliRunner)
"""

import os
import pytest
import yaml
from click.testing import CliRunner
from netcup_kube.cli import CliContext, cli
from netcup_kube.config import Config
from netcup_kube.network import NetworkChecker


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """기본 설정/env 파일이 없는 작업 디렉토리"""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work


@pytest.fixture
def state(workdir, tmp_path, launcher, remote_client):
    config = Config()
    config.agent.log_dir = str(tmp_path / "logs")
    connections = []

    def factory(host, user):
        connections.append((host, user))
        return remote_client

    ctx = CliContext(config=config, launcher=launcher, client_factory=factory)
    ctx.connections = connections
    return ctx


def invoke(state, args):
    return CliRunner().invoke(cli, args, obj=state)


def test_init_creates_sample(state, workdir):
    """샘플 설정 파일 생성"""
    result = invoke(state, ["init", "sample.yaml"])

    assert result.exit_code == 0
    with open(workdir / "sample.yaml") as f:
        data = yaml.safe_load(f)
    assert data["forward"]["namespace"] == "openclaw"


def test_validate_defaults(state):
    """기본 설정은 유효"""
    result = invoke(state, ["validate"])
    assert result.exit_code == 0


def test_validate_reports_problems(workdir, tmp_path):
    """잘못된 포트는 종료 코드 1"""
    path = workdir / "bad.yaml"
    path.write_text(yaml.safe_dump({
        "tunnel": {"local_port": 70000},
        "agent": {"log_dir": str(tmp_path / "logs")},
    }))

    result = CliRunner().invoke(cli, ["-c", str(path), "validate"], obj=CliContext())
    assert result.exit_code == 1
    assert "tunnel.local_port" in result.output


def test_remote_run_without_host(state, remote_client):
    """호스트가 없으면 원격 호출 없이 실패"""
    result = invoke(state, ["remote", "run", "bootstrap"])

    assert result.exit_code == 1
    assert remote_client.calls == []


def test_remote_run_unsupported_command(state, remote_client):
    """허용되지 않은 명령"""
    result = invoke(state, ["remote", "--host", "203.0.113.10", "run", "frobnicate"])

    assert result.exit_code == 1
    assert remote_client.calls == []


def test_remote_run_help_is_local(state, remote_client):
    """인자 없이 실행하면 로컬 도움말만 출력"""
    result = invoke(state, ["remote", "--host", "203.0.113.10", "run"])

    assert result.exit_code == 0
    assert "--no-tty" in result.output
    assert remote_client.calls == []


def test_remote_run_branch_implies_pull(state, remote_client):
    """--branch 는 pull 포함, 기본은 TTY 할당"""
    result = invoke(state, ["remote", "--host", "203.0.113.10", "run", "--branch", "main", "bootstrap"])

    assert result.exit_code == 0, result.output
    assert state.connections == [("203.0.113.10", "cubeadmin")]
    sync = next(call for call in remote_client.calls if call[0] == "execute_script")
    assert sync[2] == ["/home/cubeadmin/netcup-kube", "main", "__NONE__", "true"]
    run = remote_client.calls[-1]
    assert run[0] == "run_command_string"
    assert run[2] is True
    assert run[1].endswith("'bootstrap'")


def test_remote_run_no_tty_no_pull(state, remote_client):
    """--no-tty / --no-pull 과 원격 인자 전달"""
    result = invoke(state, ["remote", "--host", "203.0.113.10", "run", "--no-tty",
                            "--branch", "main", "--no-pull", "dns", "--help"])

    assert result.exit_code == 0, result.output
    sync = next(call for call in remote_client.calls if call[0] == "execute_script")
    assert sync[2][-1] == "false"
    run = remote_client.calls[-1]
    assert run[2] is False
    assert run[1].endswith("'dns' '--help'")


def test_remote_git_pulls_by_default(state, remote_client):
    """remote git 은 기본적으로 pull"""
    result = invoke(state, ["remote", "--host", "203.0.113.10", "--user", "alice", "git"])

    assert result.exit_code == 0, result.output
    assert remote_client.calls[-1][2] == ["/home/alice/netcup-kube", "__NONE__", "__NONE__", "true"]


def test_remote_target_from_env_file(state, remote_client, workdir):
    """env 파일의 MGMT_HOST / MGMT_USER 사용"""
    env_path = workdir / "mgmt.env"
    env_path.write_text("MGMT_HOST=198.51.100.7\nMGMT_USER=bob\n")

    result = invoke(state, ["remote", "--config", str(env_path), "git", "--no-pull"])

    assert result.exit_code == 0, result.output
    assert state.connections == [("198.51.100.7", "bob")]
    assert remote_client.calls[-1][2] == ["/home/bob/netcup-kube", "__NONE__", "__NONE__", "false"]


def test_remote_build_outside_project(state, remote_client):
    """프로젝트 루트를 찾지 못하면 실패"""
    result = invoke(state, ["remote", "--host", "203.0.113.10", "build"])

    assert result.exit_code == 1
    assert "upload" not in remote_client.names()


def test_tunnel_requires_host(state):
    """터널 호스트 없음"""
    result = invoke(state, ["tunnel", "start", "--no-env"])
    assert result.exit_code == 1


def test_tunnel_start_and_status(state, launcher, free_port):
    """터널 시작 후 상태 조회 (중지 상태면 종료 코드 1)"""
    launcher.respond("-O check", returncode=255, stdout="Control socket connect: No such file")
    args = ["--host", "mgmt.example.com", "--no-env", "--local-port", str(free_port)]

    result = invoke(state, ["tunnel", "start"] + args)
    assert result.exit_code == 0, result.output
    start = next(argv for argv in launcher.argvs() if "-M" in argv)
    assert f"{free_port}:127.0.0.1:6443" in start
    assert "ops@mgmt.example.com" in start

    result = invoke(state, ["tunnel", "status"] + args)
    assert result.exit_code == 1
    assert "stopped" in result.output


def test_tunnel_host_from_env_file(state, launcher, workdir, free_port, monkeypatch):
    """env 파일의 TUNNEL_HOST, 환경변수의 TUNNEL_USER 사용"""
    launcher.respond("-O check", returncode=255)
    env_path = workdir / "tunnel.env"
    env_path.write_text(f"TUNNEL_HOST=10.0.0.5\nTUNNEL_USER=fromfile\nTUNNEL_LOCAL_PORT={free_port}\n")
    monkeypatch.setenv("TUNNEL_USER", "fromenv")

    result = invoke(state, ["tunnel", "start", "--env-file", str(env_path)])

    assert result.exit_code == 0, result.output
    start = next(argv for argv in launcher.argvs() if "-M" in argv)
    assert "fromenv@10.0.0.5" in start


@pytest.mark.parametrize("name,value", [
    ("TUNNEL_LOCAL_PORT", "abc"),
    ("TUNNEL_REMOTE_PORT", "6443x"),
    ("TUNNEL_LOCAL_PORT", "70000"),
])
def test_tunnel_invalid_port_env(state, launcher, monkeypatch, name, value):
    """숫자가 아닌 포트 환경변수는 트레이스백 없이 종료 코드 1"""
    monkeypatch.setenv(name, value)

    result = invoke(state, ["tunnel", "status", "--host", "h", "--no-env"])

    assert result.exit_code == 1
    assert not isinstance(result.exception, ValueError)
    assert name in result.output
    assert launcher.calls == []


def test_tunnel_missing_env_file(state):
    """명시한 env 파일이 없으면 실패"""
    result = invoke(state, ["tunnel", "status", "--env-file", "missing.env"])
    assert result.exit_code == 1


def test_forward_status_stopped(state):
    """실행 중인 port-forward 없음"""
    result = invoke(state, ["forward", "status"])
    assert result.exit_code == 1
    assert "stopped" in result.output

    result = invoke(state, ["forward", "stop"])
    assert result.exit_code == 0


def test_forward_start_without_tunnel_host(state, free_port, monkeypatch):
    """API 접근 불가 + 터널 호스트 없음"""
    monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "127.0.0.1")
    monkeypatch.setenv("KUBERNETES_SERVICE_PORT", str(free_port))

    result = invoke(state, ["forward", "start"])

    assert result.exit_code == 1
    assert "TUNNEL_HOST" in result.output


def test_forward_lifecycle(state, launcher, free_port, monkeypatch):
    """API 접근 가능 시 터널 없이 port-forward 시작 → 상태 → 중지"""
    monkeypatch.setattr(NetworkChecker, "probe_kube_api", lambda self, *args, **kwargs: (True, "ok"))
    launcher.respond("get svc", stdout="openclaw-gateway")
    state.config.forward.readiness_timeout = 0.2

    result = invoke(state, ["forward", "--local-port", str(free_port), "start"])
    assert result.exit_code == 0, result.output

    argv, log_file = launcher.spawned[0]
    assert argv == ["kubectl", "-n", "openclaw", "port-forward", "svc/openclaw-gateway",
                    f"{free_port}:18789"]
    assert not any("-M" in a for a in launcher.argvs())

    result = invoke(state, ["forward", "status"])
    assert result.exit_code == 0
    assert "running" in result.output

    result = invoke(state, ["forward", "stop"])
    assert result.exit_code == 0
    assert launcher.terminated == [40001]
    assert not os.path.exists(log_file.replace(".log", ".pid"))


def test_pod_exec(state, launcher):
    """pod exec 는 원격 종료 코드로 끝남"""
    launcher.respond("get pod", stdout="openclaw-0")
    launcher.respond(" exec ", returncode=2)

    result = invoke(state, ["pod", "-n", "apps", "exec", "ls", "-la"])

    assert result.exit_code == 2
    assert launcher.argvs()[-1] == ["kubectl", "-n", "apps", "exec", "-c", "main", "openclaw-0",
                                    "--", "sh", "-lc", "ls -la"]


def test_pod_shell_without_pod(state, launcher):
    """파드가 없으면 종료 코드 1"""
    launcher.respond("get pod", stdout="")
    result = invoke(state, ["pod", "shell"])
    assert result.exit_code == 1


def test_ssh_shell(state, launcher):
    """관리 노드 대화형 셸 (셸 종료 코드 전달)"""
    launcher.respond("ops@mgmt.example.com", returncode=5)

    result = invoke(state, ["ssh", "--host", "mgmt.example.com", "--no-env"])

    assert result.exit_code == 5
    assert launcher.argvs() == [["ssh", "-o", "StrictHostKeyChecking=no", "ops@mgmt.example.com"]]


def test_ssh_shell_defaults_from_env(state, launcher, monkeypatch):
    """MGMT_HOST / MGMT_USER 사용"""
    monkeypatch.setenv("MGMT_HOST", "198.51.100.7")
    monkeypatch.setenv("MGMT_USER", "bob")

    result = invoke(state, ["ssh", "--no-env"])

    assert result.exit_code == 0, result.output
    assert launcher.argvs()[-1][-1] == "bob@198.51.100.7"


def test_ssh_shell_requires_host(state, launcher):
    """호스트가 없으면 ssh 실행 없이 실패"""
    result = invoke(state, ["ssh", "--no-env"])

    assert result.exit_code == 1
    assert "TUNNEL_HOST" in result.output
    assert launcher.calls == []


def test_tunnel_status_shows_listeners(state, launcher, listening_port):
    """로컬 포트를 점유한 프로세스 표시"""
    launcher.tools["lsof"] = "/usr/sbin/lsof"
    launcher.respond("-O check", returncode=255)
    launcher.respond("lsof", stdout="COMMAND   PID USER\nkubectl 4242 ops\n")

    result = invoke(state, ["tunnel", "status", "--host", "mgmt.example.com", "--no-env",
                            "--local-port", str(listening_port)])

    assert result.exit_code == 1
    assert "kubectl 4242" in result.output
    assert ["lsof", "-nP", f"-iTCP:{listening_port}", "-sTCP:LISTEN"] in launcher.argvs()


def test_pod_logs_passthrough(state, launcher):
    """pod logs 플래그는 kubectl logs 로 그대로 전달"""
    launcher.respond("get pod", stdout="openclaw-0")

    result = invoke(state, ["pod", "logs", "--tail", "100", "-f"])

    assert result.exit_code == 0, result.output
    assert launcher.argvs()[-1] == ["kubectl", "-n", "openclaw", "logs", "openclaw-0", "--tail", "100", "-f"]


def test_pod_openclaw_runs_app_cli(state, launcher):
    """pod openclaw 는 메인 컨테이너에서 node CLI 실행"""
    launcher.respond("get pod", stdout="openclaw-0")

    result = invoke(state, ["pod", "-n", "apps", "openclaw", "security", "audit", "--deep"])

    assert result.exit_code == 0, result.output
    assert launcher.argvs()[-1] == ["kubectl", "-n", "apps", "exec", "-c", "main", "openclaw-0", "--",
                                    "node", "--no-warnings", "/app/openclaw.mjs",
                                    "security", "audit", "--deep"]


def test_pod_openclaw_requires_subcommand(state, launcher):
    """하위 명령이 없으면 사용법 오류"""
    result = invoke(state, ["pod", "openclaw"])

    assert result.exit_code == 2
    assert launcher.calls == []


def test_pod_status_unhealthy(state, launcher, monkeypatch):
    """터널 미설정 + API 접근 불가 + port-forward 없음"""
    monkeypatch.setattr(NetworkChecker, "probe_kube_api", lambda self, *args, **kwargs: (False, "down"))
    launcher.respond("get pod", stdout="")

    result = invoke(state, ["pod", "status"])

    assert result.exit_code == 1
    assert "unconfigured" in result.output
    assert "not ok" in result.output
    assert "not found" in result.output
    assert "not fully healthy" in result.output


def test_pod_status_healthy(state, launcher, free_port, monkeypatch):
    """API 접근 가능 + port-forward 실행 중 + 파드 존재"""
    monkeypatch.setattr(NetworkChecker, "probe_kube_api", lambda self, *args, **kwargs: (True, "ok"))
    launcher.respond("get svc", stdout="openclaw-gateway")
    launcher.respond("get pod", stdout="openclaw-0")
    state.config.forward.readiness_timeout = 0.2

    result = invoke(state, ["forward", "--local-port", str(free_port), "start"])
    assert result.exit_code == 0, result.output

    result = invoke(state, ["pod", "status"])

    assert result.exit_code == 0, result.output
    assert "svc/openclaw-gateway" in result.output
    assert "running (pid 40001)" in result.output
    assert "not ok" not in result.output
