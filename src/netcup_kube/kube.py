"""
Kubernetes 워크로드 조회 모듈
레이블 셀렉터 기반 서비스/파드 검색, port-forward 대상 구성, 메인 컨테이너 exec
"""

import subprocess
from typing import List, Optional, Sequence
from rich.console import Console

from .config import ForwardConfig
from .errors import NetcupKubeError
from .logger import get_logger
from .process import ProcessLauncher

console = Console()

JSONPATH_FIRST_NAME = "jsonpath={.items[0].metadata.name}"
DEFAULT_APP_CLI = "/app/openclaw.mjs"


class KubeResolver:
    """kubectl 기반 서비스/파드 조회 클래스"""

    def __init__(self, namespace: str, label_selector: str, fallback_service: str,
                 remote_port: int, container: str = "main",
                 launcher: Optional[ProcessLauncher] = None,
                 app_cli: str = DEFAULT_APP_CLI):
        self.namespace = namespace
        self.label_selector = label_selector
        self.fallback_service = fallback_service
        self.remote_port = remote_port
        self.container = container
        self.app_cli = app_cli
        self.launcher = launcher or ProcessLauncher()
        self.logger = get_logger()

    @classmethod
    def from_config(cls, cfg: ForwardConfig, launcher: Optional[ProcessLauncher] = None) -> "KubeResolver":
        return cls(cfg.namespace, cfg.label_selector, cfg.fallback_service,
                   cfg.remote_port, cfg.container, launcher, cfg.app_cli)

    def _first_name(self, kind: str):
        return self.launcher.run(
            ["kubectl", "-n", self.namespace, "get", kind,
             "-l", self.label_selector, "-o", JSONPATH_FIRST_NAME],
            stdout=subprocess.PIPE, stderr=subprocess.PIPE,
        )

    def resolve_service(self) -> str:
        """레이블로 서비스 검색, 실패하면 대체 서비스 반환"""
        result = self._first_name("svc")
        name = (result.stdout or "").strip() if result.returncode == 0 else ""
        if name:
            self.logger.debug(f"Resolved service svc/{name} in {self.namespace}")
            return f"svc/{name}"

        self.logger.info(f"No service matched {self.label_selector} in {self.namespace}; "
                         f"using {self.fallback_service}")
        return self.fallback_service

    def resolve_pod(self) -> str:
        """레이블로 메인 파드 검색 (없으면 오류)"""
        result = self._first_name("pod")
        if result.returncode != 0:
            raise NetcupKubeError(
                f"failed to list pods in namespace {self.namespace}: {(result.stderr or '').strip()}"
            )
        name = (result.stdout or "").strip()
        if not name:
            raise NetcupKubeError(
                f"no pod found with label {self.label_selector} in namespace {self.namespace}"
            )
        return name

    def port_forward_target(self, service: str) -> str:
        return f"{service}:{self.remote_port}"

    def exec_argv(self, pod: str, command: Sequence[str], interactive: bool = False) -> List[str]:
        argv = ["kubectl", "-n", self.namespace, "exec"]
        if interactive:
            argv.append("-it")
        argv.extend(["-c", self.container, pod, "--"])
        argv.extend(command)
        return argv

    def exec_in_pod(self, command: Sequence[str], interactive: bool = False) -> int:
        """메인 파드 컨테이너에서 명령 실행 후 종료 코드 반환"""
        pod = self.resolve_pod()
        argv = self.exec_argv(pod, command, interactive)
        self.logger.info(f"Executing in {self.namespace}/{pod}: {' '.join(command)}")
        result = self.launcher.run(argv)
        return result.returncode

    def run_shell(self, command_words: Sequence[str]) -> int:
        """sh -lc 로 셸 명령 실행 (인자는 공백으로 이어 붙임)"""
        if not command_words:
            raise NetcupKubeError("missing shell command")
        return self.exec_in_pod(["sh", "-lc", " ".join(command_words)])

    def open_shell(self) -> int:
        """메인 컨테이너에 대화형 셸 접속"""
        console.print(f"[cyan]{self.namespace} 네임스페이스 파드에 셸 접속 중...[/cyan]")
        return self.exec_in_pod(["sh"], interactive=True)

    def logs_argv(self, pod: str, args: Sequence[str] = ()) -> List[str]:
        return ["kubectl", "-n", self.namespace, "logs", pod] + list(args)

    def logs(self, args: Sequence[str] = ()) -> int:
        """메인 파드 로그 조회 (kubectl logs 플래그는 그대로 전달)"""
        pod = self.resolve_pod()
        self.logger.info(f"Fetching logs from {self.namespace}/{pod}")
        return self.launcher.run(self.logs_argv(pod, args)).returncode

    def run_app_cli(self, args: Sequence[str]) -> int:
        """메인 컨테이너에서 애플리케이션 CLI(node) 실행"""
        if not args:
            raise NetcupKubeError("missing openclaw subcommand")
        return self.exec_in_pod(["node", "--no-warnings", self.app_cli] + list(args))
