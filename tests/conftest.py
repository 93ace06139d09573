"""
공통 테스트 픽스처
외부 프로세스와 원격 호스트는 모두 가짜 객체로 대체한다
"""

import socket
import subprocess
import pytest

from netcup_kube.config import Target
from netcup_kube.errors import RemoteCommandError
from netcup_kube.logger import init_logger


class FakeLauncher:
    """ProcessLauncher 대역: 호출을 기록하고 규칙에 따라 결과를 돌려준다"""

    def __init__(self):
        self.calls = []
        self.rules = []
        self.tools = {"go": "/usr/local/go/bin/go", "kubectl": "/usr/bin/kubectl"}
        self.alive = set()
        self.spawned = []
        self.terminated = []
        self.next_pid = 40001
        self.spawn_alive = True

    def respond(self, fragment, returncode=0, stdout="", stderr=""):
        """argv를 공백으로 이은 문자열에 fragment가 포함되면 해당 결과 반환"""
        self.rules.append((fragment, returncode, stdout, stderr))

    def run(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append((argv, kwargs))
        joined = " ".join(argv)
        for fragment, returncode, stdout, stderr in self.rules:
            if fragment in joined:
                err_target = kwargs.get("stderr")
                if stderr and hasattr(err_target, "write"):
                    err_target.write(stderr)
                return subprocess.CompletedProcess(argv, returncode, stdout, stderr)
        return subprocess.CompletedProcess(argv, 0, "", "")

    def spawn_detached(self, argv, log_file):
        pid = self.next_pid
        self.next_pid += 1
        self.spawned.append((list(argv), log_file))
        if self.spawn_alive:
            self.alive.add(pid)
        return pid

    def which(self, name):
        return self.tools.get(name)

    def is_alive(self, pid):
        return pid in self.alive

    def terminate(self, pid):
        self.terminated.append(pid)
        self.alive.discard(pid)

    def argvs(self):
        return [argv for argv, _ in self.calls]


class FakeRemoteClient:
    """RemoteClient 대역

    fail: {메서드 이름: True 또는 (인자들을 받는) 판별 함수}
    """

    def __init__(self, arch="x86_64\n", fail=None):
        self.arch = arch
        self.fail = dict(fail or {})
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        rule = self.fail.get(name)
        if rule is True or (callable(rule) and rule(*args)):
            raise RemoteCommandError([name], 1, f"{name} failed")

    def test_connection(self):
        self._record("test_connection")

    def execute(self, command, args=(), force_tty=False):
        self._record("execute", command, list(args), force_tty)

    def execute_script(self, script, args=()):
        self._record("execute_script", script, list(args))

    def upload(self, local_path, remote_path):
        self._record("upload", local_path, remote_path)

    def run_command_string(self, command, force_tty=False):
        self._record("run_command_string", command, force_tty)

    def output_command(self, command, args=()):
        self._record("output_command", command, list(args))
        return self.arch

    def names(self):
        return [call[0] for call in self.calls]


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """HOME/런타임 디렉토리/로그를 테스트 임시 디렉토리로 격리"""
    home = tmp_path / "home"
    home.mkdir()
    runtime = tmp_path / "run"
    runtime.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(runtime))
    for name in ("ROOT_PASS", "TUNNEL_HOST", "TUNNEL_USER", "TUNNEL_LOCAL_PORT",
                 "TUNNEL_REMOTE_HOST", "TUNNEL_REMOTE_PORT", "MGMT_HOST", "MGMT_IP",
                 "MGMT_USER", "KUBERNETES_SERVICE_HOST", "KUBERNETES_SERVICE_PORT"):
        monkeypatch.delenv(name, raising=False)
    init_logger(str(tmp_path / "logs"), "DEBUG")
    return tmp_path


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def remote_client():
    return FakeRemoteClient()


@pytest.fixture
def make_client():
    """실패 규칙을 지정한 FakeRemoteClient 생성자"""
    return FakeRemoteClient


@pytest.fixture
def target():
    return Target(host="203.0.113.10", user="cubeadmin")


@pytest.fixture
def free_port():
    """사용 중이지 않은 로컬 포트"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def listening_port():
    """연결을 받는 로컬 포트 (테스트 동안 유지)"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()
