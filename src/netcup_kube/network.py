"""
네트워크 연결성 체크 모듈
로컬 포트 점유 확인, TCP 준비 상태 대기, Kubernetes API 헬스 프로브
"""

import socket
import subprocess
import time
import warnings
import requests
import urllib3
from typing import Tuple
from .logger import get_logger

DIAL_TIMEOUT = 0.5
READY_POLL_INTERVAL = 0.2


class NetworkChecker:
    """네트워크 연결성 확인 클래스"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.logger = get_logger()

    def check_port(self, host: str, port: int, timeout: float = DIAL_TIMEOUT) -> Tuple[bool, str]:
        """포트 연결 테스트"""
        try:
            self.logger.debug(f"Checking port {host}:{port}...")
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.settimeout(timeout)
                result = sock.connect_ex((host, int(port)))

            if result == 0:
                self.logger.debug(f"{host}:{port} is open")
                return True, f"✓ {host}:{port} 연결 성공"
            else:
                self.logger.debug(f"{host}:{port} is closed")
                return False, f"✗ {host}:{port} 연결 실패"

        except socket.gaierror:
            self.logger.error(f"Cannot resolve {host}")
            return False, f"✗ {host} 호스트를 찾을 수 없습니다"
        except (OSError, OverflowError, ValueError) as e:
            self.logger.debug(f"Port check error: {str(e)}")
            return False, f"✗ 포트 테스트 오류: {str(e)}"

    def is_port_listening(self, port: int) -> bool:
        """localhost 포트가 연결을 받는지 확인"""
        try:
            port = int(port)
        except (TypeError, ValueError):
            return False
        if port <= 0 or port > 65535:
            return False
        listening, _ = self.check_port("127.0.0.1", port)
        return listening

    def wait_for_port(self, port: int, timeout: float) -> bool:
        """제한 시간 동안 포트 연결을 재시도"""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.is_port_listening(port):
                return True
            time.sleep(READY_POLL_INTERVAL)
        return False

    def probe_kube_api(self, host: str = "127.0.0.1", port: int = 6443, timeout: float = 2.0) -> Tuple[bool, str]:
        """Kubernetes API /livez 프로브 (5xx 미만이면 도달 가능)"""
        url = f"https://{host}:{port}/livez"
        try:
            self.logger.debug(f"Probing Kubernetes API at {url}...")
            with warnings.catch_warnings():
                # 터널 뒤 API 서버는 자체 서명 인증서를 사용한다
                warnings.simplefilter("ignore", urllib3.exceptions.InsecureRequestWarning)
                response = requests.get(url, timeout=timeout, verify=False)
            if response.status_code < 500:
                self.logger.debug(f"Kubernetes API reachable (status: {response.status_code})")
                return True, f"✓ Kubernetes API 응답 ({response.status_code})"
            else:
                self.logger.warning(f"Kubernetes API error: {response.status_code}")
                return False, f"✗ Kubernetes API 오류: {response.status_code}"
        except requests.exceptions.ConnectionError:
            self.logger.debug("Kubernetes API connection failed")
            return False, "✗ Kubernetes API 연결 실패"
        except requests.exceptions.Timeout:
            self.logger.debug("Kubernetes API timeout")
            return False, "✗ Kubernetes API 타임아웃"



def port_listeners(port: int, launcher) -> str:
    """로컬 포트에서 수신 중인 프로세스 정보 (lsof, 없으면 ss). 알 수 없으면 빈 문자열"""
    candidates = []
    if launcher.which("lsof"):
        candidates.append(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN"])
    if launcher.which("ss"):
        candidates.append(["ss", "-ltnp", f"( sport = :{port} )"])

    for argv in candidates:
        result = launcher.run(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        output = (result.stdout or "").strip()
        if result.returncode == 0 and output:
            return output
    return ""
