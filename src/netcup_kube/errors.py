"""
예외 정의
모든 예외는 NetcupKubeError를 상속하며 CLI에서 한 번에 처리된다
"""

from typing import Optional, Sequence


class NetcupKubeError(Exception):
    """netcup-kube 기본 예외"""


class RemoteCommandError(NetcupKubeError):
    """외부 명령(ssh/scp 등)이 0이 아닌 종료 코드로 끝남"""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip() if stderr else ""
        message = f"{self.command[0]} exited with status {returncode}"
        if self.stderr:
            message = f"{message}: {self.stderr}"
        super().__init__(message)


class PreconditionError(NetcupKubeError):
    """선행 조건 미충족. remediation에 해결 명령을 담는다"""

    def __init__(self, message: str, remediation: Optional[str] = None):
        self.remediation = remediation
        if remediation:
            message = f"{message}\n{remediation}"
        super().__init__(message)


class ToolchainMissingError(PreconditionError):
    """로컬 빌드 도구 없음"""


class LocalBuildError(NetcupKubeError):
    """로컬 크로스 빌드 실패 (원격 호출과 무관)"""

    def __init__(self, command: Sequence[str], returncode: int):
        self.command = list(command)
        self.returncode = returncode
        super().__init__(f"local build failed: {' '.join(self.command)} exited with status {returncode}")


class ValidationError(NetcupKubeError):
    """로컬 입력값 검증 실패 (원격 호출 전에 발생)"""


class UnsupportedCommandError(ValidationError):
    """원격 실행 허용 목록에 없는 명령"""


class UnsupportedArchitectureError(NetcupKubeError):
    """지원하지 않는 원격 CPU 아키텍처"""


class PortInUseError(NetcupKubeError):
    """로컬 포트를 다른 프로세스가 사용 중"""

    def __init__(self, port: int, hint: str = "", listeners: str = ""):
        self.port = port
        self.listeners = listeners
        message = f"localhost:{port} is already in use"
        if hint:
            message = f"{message}; {hint}"
        if listeners:
            message = f"{message}\nlisten:\n{listeners}"
        super().__init__(message)


class TunnelError(NetcupKubeError):
    """SSH 터널 시작 실패"""


class TunnelAuthError(TunnelError):
    """SSH 터널 인증 실패"""


class PortForwardError(NetcupKubeError):
    """port-forward 시작/중지 실패"""


class ReadinessTimeoutError(PortForwardError):
    """포워딩된 포트가 제한 시간 내에 연결을 받지 않음"""
