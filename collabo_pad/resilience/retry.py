"""
재시도 실행기

일시적 에러(CONNECTION / TIMEOUT / INTERNAL)를 지수 백오프로 재시도합니다.
최종 실패는 항상 분류된 DatabaseError로 변환되어 호출자에게 전달됩니다.

대기 시간:
    base_delay, base_delay * multiplier, ... (max_delay 상한)
"""

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar

from collabo_pad.resilience.circuit_breaker import CircuitBreakerOpenError
from collabo_pad.resilience.errors import DatabaseError, handle_database_error

T = TypeVar("T")

logger = logging.getLogger(__name__)

ShouldRetry = Callable[[DatabaseError, int], bool]


@dataclass(frozen=True)
class RetryOptions:
    """
    재시도 옵션

    Attributes:
        max_attempts: 최대 시도 횟수 (첫 시도 포함)
        base_delay: 첫 재시도 전 대기 시간 (초)
        backoff_multiplier: 재시도마다 곱할 배수
        max_delay: 대기 시간 상한 (초)
        should_retry: (분류된 에러, 시도 번호) → 재시도 여부. None이면 일시적 에러만 재시도
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0
    should_retry: Optional[ShouldRetry] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    @classmethod
    def from_settings(cls, settings=None, **overrides: Any) -> "RetryOptions":
        """AppSettings 기본값으로 옵션 생성"""
        if settings is None:
            from collabo_pad.config.app_settings import get_settings
            settings = get_settings()
        options = cls(**settings.get_retry_config())
        return replace(options, **overrides) if overrides else options

    def next_delay(self, current_delay: float) -> float:
        """다음 재시도 대기 시간 계산"""
        return min(current_delay * self.backoff_multiplier, self.max_delay)

    def wants_retry(self, error: DatabaseError, attempt: int) -> bool:
        """재시도 여부 판단"""
        if attempt >= self.max_attempts:
            return False
        if self.should_retry is not None:
            return self.should_retry(error, attempt)
        return error.is_transient()


DEFAULT_RETRY_OPTIONS = RetryOptions()


def _resolve(options: Optional[RetryOptions], overrides: dict) -> RetryOptions:
    options = options or DEFAULT_RETRY_OPTIONS
    return replace(options, **overrides) if overrides else options


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **overrides: Any,
) -> T:
    """
    비동기 작업을 재시도 정책에 따라 실행

    Args:
        operation: 인자 없는 비동기 함수
        options: 재시도 옵션 (None이면 기본값)
        sleep: 대기 함수 (테스트 주입용)
        **overrides: options 필드 개별 오버라이드 (예: max_attempts=5)

    Returns:
        작업 반환 값

    Raises:
        DatabaseError: 재시도 불가 에러이거나 시도 횟수를 모두 소진한 경우
        CircuitBreakerOpenError: 서킷이 열려 있는 경우 (재시도하지 않음)
    """
    opts = _resolve(options, overrides)
    current_delay = opts.base_delay

    for attempt in range(1, opts.max_attempts + 1):
        try:
            return await operation()
        except CircuitBreakerOpenError:
            raise
        except Exception as e:
            error = handle_database_error(e)
            if not opts.wants_retry(error, attempt):
                if error is not e:
                    raise error from e
                raise

            logger.warning(
                f"Attempt {attempt}/{opts.max_attempts} failed ({error.code}): {error.message}, "
                f"retrying in {current_delay:.2f}s..."
            )
            await sleep(current_delay)
            current_delay = opts.next_delay(current_delay)

    # max_attempts >= 1 이므로 도달하지 않음
    raise DatabaseError("Retry loop exited without result")


def with_retry_sync(
    operation: Callable[[], T],
    options: Optional[RetryOptions] = None,
    sleep: Callable[[float], Any] = time.sleep,
    **overrides: Any,
) -> T:
    """동기 작업용 with_retry (마이그레이션/관계형 저장소 호출용)"""
    opts = _resolve(options, overrides)
    current_delay = opts.base_delay

    for attempt in range(1, opts.max_attempts + 1):
        try:
            return operation()
        except CircuitBreakerOpenError:
            raise
        except Exception as e:
            error = handle_database_error(e)
            if not opts.wants_retry(error, attempt):
                if error is not e:
                    raise error from e
                raise

            logger.warning(
                f"Attempt {attempt}/{opts.max_attempts} failed ({error.code}): {error.message}, "
                f"retrying in {current_delay:.2f}s..."
            )
            sleep(current_delay)
            current_delay = opts.next_delay(current_delay)

    raise DatabaseError("Retry loop exited without result")


def retryable(options: Optional[RetryOptions] = None, **overrides: Any):
    """
    재시도 데코레이터 (비동기 함수용)

    Usage:
        @retryable(max_attempts=5, base_delay=0.5)
        async def read_history(channel_id):
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_retry(lambda: func(*args, **kwargs), options, **overrides)
        return wrapper
    return decorator
