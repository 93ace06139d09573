"""
원격 명령 실행 테스트
"""

import os
import shlex
import pytest
from netcup_kube.config import GitOptions, RunOptions
from netcup_kube.errors import (
    NetcupKubeError,
    PreconditionError,
    UnsupportedCommandError,
    ValidationError,
)
from netcup_kube.run import RUNNER_SCRIPT, SUPPORTED_COMMANDS, build_runner_command, run_with_client

BIN = "/home/cubeadmin/netcup-kube/bin/netcup-kube"
REMOTE_ENV = f"/tmp/netcup-kube-remote.env.{os.getpid()}"


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / "bootstrap.env"
    path.write_text("BASE_DOMAIN=example.com\n")
    return str(path)


def runner_argv(client):
    command = next(call[1] for call in client.calls if call[0] == "run_command_string")
    return shlex.split(command)


def test_supported_commands():
    """허용 목록"""
    assert set(SUPPORTED_COMMANDS) == {"bootstrap", "join", "pair", "dns", "install",
                                       "ssh", "help", "-h", "--help"}


@pytest.mark.parametrize("args", [["frobnicate"], ["rm", "-rf", "/"], ["--version"]])
def test_unsupported_command_makes_no_calls(remote_client, target, args):
    """허용되지 않은 명령은 원격 호출 전에 거부"""
    with pytest.raises(UnsupportedCommandError):
        run_with_client(remote_client, target, RunOptions(args=args))
    assert remote_client.calls == []


def test_missing_args(remote_client, target):
    """인자 없음"""
    with pytest.raises(ValidationError):
        run_with_client(remote_client, target, RunOptions(args=[]))
    assert remote_client.calls == []


def test_missing_env_file(remote_client, target, tmp_path):
    """로컬 env 파일 없음"""
    opts = RunOptions(args=["bootstrap"], env_file=str(tmp_path / "missing.env"))
    with pytest.raises(PreconditionError) as exc_info:
        run_with_client(remote_client, target, opts)
    assert "--env-file not found" in str(exc_info.value)
    assert remote_client.calls == []


def test_run_without_env(remote_client, target):
    """사전 점검 후 sudo 래퍼로 실행"""
    run_with_client(remote_client, target, RunOptions(args=["dns", "--help"]))

    assert remote_client.calls[:3] == [
        ("test_connection",),
        ("execute", "test", ["-d", "/home/cubeadmin/netcup-kube"], False),
        ("execute", "test", ["-x", BIN], False),
    ]
    assert remote_client.calls[3][0] == "run_command_string"
    assert remote_client.calls[3][2] is True
    assert len(remote_client.calls) == 4
    assert runner_argv(remote_client) == ["sudo", "-E", "bash", "-lc", RUNNER_SCRIPT, "bash",
                                          "__NONE__", BIN, "dns", "--help"]


def test_run_preserves_arguments(remote_client, target):
    """공백과 셸 메타문자가 있는 인자도 그대로 전달"""
    args = ["dns", "--domain", "a b; rm -rf /", "it's"]
    run_with_client(remote_client, target, RunOptions(args=args, force_tty=False))

    assert runner_argv(remote_client)[-4:] == args
    assert remote_client.calls[-1][2] is False


def test_run_with_env_file(remote_client, target, env_file):
    """env 파일 업로드 후 실행하고 정리"""
    run_with_client(remote_client, target, RunOptions(args=["bootstrap"], env_file=env_file))

    names = remote_client.names()
    assert names == ["test_connection", "execute", "execute", "upload", "run_command_string", "execute"]
    assert remote_client.calls[3] == ("upload", env_file, REMOTE_ENV)
    assert runner_argv(remote_client)[6:] == [REMOTE_ENV, BIN, "bootstrap"]
    assert remote_client.calls[-1] == ("execute", "sudo", ["rm", "-f", REMOTE_ENV], True)


def test_env_cleanup_after_failure(make_client, target, env_file):
    """원격 실행이 실패해도 env 파일 정리"""
    client = make_client(fail={"run_command_string": True})

    with pytest.raises(NetcupKubeError):
        client_opts = RunOptions(args=["bootstrap"], env_file=env_file)
        run_with_client(client, target, client_opts)
    assert client.calls[-1] == ("execute", "sudo", ["rm", "-f", REMOTE_ENV], True)


def test_env_cleanup_failure_is_only_warning(make_client, target, env_file):
    """정리 실패는 경고만 남김"""
    client = make_client(fail={"execute": lambda command, args, tty: command == "sudo"})

    run_with_client(client, target, RunOptions(args=["bootstrap"], env_file=env_file))
    assert client.names()[-2:] == ["run_command_string", "execute"]


def test_ssh_key_not_working(make_client, target):
    """사용자 키 접속 실패 시 provision 안내"""
    client = make_client(fail={"test_connection": True})

    with pytest.raises(PreconditionError) as exc_info:
        run_with_client(client, target, RunOptions(args=["bootstrap"]))
    assert "SSH key does not work for cubeadmin@203.0.113.10" in str(exc_info.value)
    assert "netcup-kube remote provision" in str(exc_info.value)


def test_repo_missing(make_client, target):
    """원격 저장소 없음"""
    client = make_client(fail={"execute": lambda command, args, tty: args[0] == "-d"})

    with pytest.raises(PreconditionError) as exc_info:
        run_with_client(client, target, RunOptions(args=["bootstrap"]))
    assert "remote repo not found" in str(exc_info.value)
    assert "run_command_string" not in client.names()


def test_binary_missing(make_client, target):
    """원격 바이너리 없음"""
    client = make_client(fail={"execute": lambda command, args, tty: args[0] == "-x"})

    with pytest.raises(PreconditionError) as exc_info:
        run_with_client(client, target, RunOptions(args=["bootstrap"]))
    assert "netcup-kube remote build" in str(exc_info.value)
    assert "run_command_string" not in client.names()


def test_git_sync_before_binary_check(remote_client, target):
    """git 옵션이 있으면 저장소 확인 후 동기화"""
    opts = RunOptions(args=["bootstrap"], git=GitOptions(branch="main", pull=True))
    run_with_client(remote_client, target, opts)

    names = remote_client.names()
    assert names[:4] == ["test_connection", "execute", "execute_script", "execute"]
    assert remote_client.calls[2][2] == ["/home/cubeadmin/netcup-kube", "main", "__NONE__", "true"]


def test_build_runner_command_escapes_paths():
    """env 경로와 바이너리 경로도 이스케이프"""
    command = build_runner_command("/tmp/env file", "/opt/bin/netcup kube", ["join"])
    assert shlex.split(command)[6:] == ["/tmp/env file", "/opt/bin/netcup kube", "join"]
