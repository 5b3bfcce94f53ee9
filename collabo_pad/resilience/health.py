"""
저장소 헬스체크

헬스체크 프로브를 재시도 정책으로 실행하고 결과를 구조화하여 반환합니다.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict

from collabo_pad.resilience.errors import ErrorKind, DatabaseError, handle_database_error
from collabo_pad.resilience.retry import with_retry


@dataclass
class HealthCheckResult:
    """헬스체크 결과"""

    healthy: bool
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리 변환"""
        return {"healthy": self.healthy, "details": self.details}


async def check_database_health(
    health_check: Callable[[], Awaitable[bool]],
    timeout: float = 5.0,
    retries: int = 2,
    retry_delay: float = 0.1,
) -> HealthCheckResult:
    """
    헬스체크 프로브 실행

    Args:
        health_check: True/False를 반환하는 비동기 프로브 (예: PING)
        timeout: 프로브 1회당 타임아웃 (초)
        retries: 첫 시도 이후 추가 재시도 횟수
        retry_delay: 재시도 기본 대기 시간 (초)

    Returns:
        HealthCheckResult: 실패 시 details["error"]에 DatabaseError JSON 포함
    """
    attempts = retries + 1

    async def probe() -> bool:
        try:
            return await asyncio.wait_for(health_check(), timeout=timeout)
        except asyncio.TimeoutError:
            raise DatabaseError(
                f"Health check timed out after {timeout}s",
                ErrorKind.TIMEOUT_ERROR,
                {"timeout": timeout},
            )

    try:
        healthy = await with_retry(probe, max_attempts=attempts, base_delay=retry_delay)
        return HealthCheckResult(
            healthy=bool(healthy),
            details={
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "attempts": attempts,
                "timeout": timeout,
            },
        )
    except Exception as e:
        return HealthCheckResult(
            healthy=False,
            details={
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "error": handle_database_error(e).to_dict(),
                "attempts": attempts,
                "timeout": timeout,
            },
        )
