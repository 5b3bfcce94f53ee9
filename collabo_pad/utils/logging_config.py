"""
collabo-pad 로깅 설정

- 개발: 컬러 콘솔
- 운영/파일: 한 줄 JSON (channel_id, breaker 등 extra 필드 포함)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# LogRecord 기본 속성
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# 라운드트립마다 DEBUG를 찍는 라이브러리
_NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "redis", "asyncio")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """한 줄 JSON 포매터"""

    def __init__(self, service: Optional[str] = None):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _utc_now(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if self.service:
            payload["service"] = self.service
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # logger.info(..., extra={"channel_id": ...})
        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """레벨별 ANSI 컬러 콘솔 포매터"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)

        plain = record.levelname
        record.levelname = f"{color}{plain:<8}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # 파일 핸들러가 같은 레코드를 다시 포맷함
            record.levelname = plain


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_output: bool = False,
    service_name: str = "collabo_pad",
) -> None:
    """
    루트 로거 초기화 (기존 핸들러 교체)

    Args:
        level: 로그 레벨 이름
        log_file: JSON 로그 파일 경로 (선택)
        json_output: 콘솔도 JSON으로 출력
        service_name: JSON 로그의 service 필드
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JSONFormatter(service_name) if json_output else ColoredFormatter())
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter(service_name))
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Logging initialized: service={service_name}, level={level.upper()}")


def get_logger(name: str) -> logging.Logger:
    """모듈 로거 (보통 __name__)"""
    return logging.getLogger(name)
