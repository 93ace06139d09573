"""
로깅 시스템
파일 및 콘솔 로깅, 디버그 모드 지원
"""

import logging
import os
from datetime import datetime
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console

console = Console(stderr=True)

DEFAULT_LOG_DIR = "~/.netcup-kube/logs"


class OperatorLogger:
    """운영자 CLI 로거"""

    def __init__(self, log_dir: str = DEFAULT_LOG_DIR, log_level: str = "INFO", debug: bool = False):
        self.log_dir = os.path.expanduser(log_dir)
        self.log_level = logging.DEBUG if debug else getattr(logging, str(log_level).upper(), logging.INFO)
        self.debug_mode = debug

        # 로그 디렉토리 생성
        os.makedirs(self.log_dir, exist_ok=True)

        # 로그 파일 경로
        timestamp = datetime.now().strftime("%Y%m%d")
        self.log_file = os.path.join(self.log_dir, f"netcup-kube_{timestamp}.log")
        self.error_file = os.path.join(self.log_dir, f"error_{timestamp}.log")

        # 로거 설정
        self.logger = logging.getLogger("netcup_kube")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        # 기존 핸들러 제거
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()

        # 파일 핸들러 (명령 실행 이력은 항상 DEBUG로 남긴다)
        file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        self.logger.addHandler(file_handler)

        # 에러 파일 핸들러
        error_handler = logging.FileHandler(self.error_file, encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        self.logger.addHandler(error_handler)

        # 콘솔 핸들러 (Rich)
        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=False,
            show_path=debug
        )
        rich_handler.setLevel(self.log_level if debug else max(self.log_level, logging.WARNING))
        self.logger.addHandler(rich_handler)

    def debug(self, message: str):
        self.logger.debug(message)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def command(self, kind: str, argv, suffix: str = ""):
        """외부 명령 기록 (여러 줄 인자는 첫 줄만 남김)"""
        shown = []
        for arg in argv:
            arg = str(arg)
            if "\n" in arg:
                arg = arg.split("\n", 1)[0] + " ..."
            shown.append(arg)
        message = f"{kind}: {' '.join(shown)}"
        if suffix:
            message = f"{message} {suffix}"
        self.logger.debug(message)


# 글로벌 로거 인스턴스
_logger: Optional[OperatorLogger] = None


def get_logger() -> OperatorLogger:
    """로거 인스턴스 가져오기"""
    global _logger
    if _logger is None:
        _logger = OperatorLogger()
    return _logger


def init_logger(log_dir: str = DEFAULT_LOG_DIR, log_level: str = "INFO", debug: bool = False) -> OperatorLogger:
    """로거 초기화"""
    global _logger
    _logger = OperatorLogger(log_dir, log_level, debug)
    return _logger
