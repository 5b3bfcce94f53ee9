"""
서킷 브레이커 (Circuit Breaker) 패턴 구현

외부 저장소(Redis, PostgreSQL) 장애 시 연쇄적 실패를 방지하기 위해
일정 횟수 이상 실패하면 reset_timeout 동안 호출을 즉시 거부합니다.

상태 전환:
    CLOSED → OPEN: 실패 카운트가 threshold 도달 시
    OPEN → HALF_OPEN: reset_timeout 경과 후 첫 호출 시
    HALF_OPEN → CLOSED: 시험 호출 성공 시 (failure_count = 0)
    HALF_OPEN → OPEN: 시험 호출 실패 시

상태는 인스턴스별로만 관리되며 프로세스 간에 공유되지 않습니다.
"""

import functools
import logging
import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar("T")


logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """서킷 브레이커 상태"""
    CLOSED = "CLOSED"       # 정상 상태, 요청 전달
    OPEN = "OPEN"           # 차단 상태, 요청 거부
    HALF_OPEN = "HALF_OPEN" # 복구 시도, 단일 시험 요청


class CircuitBreakerOpenError(Exception):
    """
    서킷 브레이커가 OPEN 상태일 때 발생하는 예외

    저장소 에러가 아닌 "일시적으로 사용 불가" 상태를 나타내며,
    재시도 계층은 이 예외를 재시도하지 않습니다.
    """

    def __init__(
        self,
        message: str = "Circuit breaker is OPEN",
        name: Optional[str] = None,
        failure_count: int = 0,
        retry_after: float = 0.0,
    ) -> None:
        self.message = message
        self.name = name
        self.failure_count = failure_count
        self.retry_after = retry_after
        super().__init__(self.message)


class CircuitBreaker:
    """
    서킷 브레이커

    Args:
        name: 보호 대상 리소스 이름 (로그/통계 식별용)
        failure_threshold: OPEN 전환 실패 임계값 (기본값: 5)
        reset_timeout: OPEN 상태 유지 시간 (초, 기본값: 60)
        clock: 단조 증가 시계 함수 (테스트 주입용)

    Usage:
        breaker = CircuitBreaker("redis", failure_threshold=5, reset_timeout=60)

        try:
            result = await breaker.execute(lambda: client.xrange(key))
        except CircuitBreakerOpenError:
            # 서킷이 OPEN 상태, 잠시 후 다시 시도
            ...
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if reset_timeout < 0:
            raise ValueError("reset_timeout must not be negative")

        self.name = name
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._clock = clock

        # 상태 관리 (동일 인스턴스 동시 호출 보호)
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._half_open_trial = False  # HALF_OPEN 시험 호출 진행 중

        # 모니터링
        self._total_calls = 0
        self._total_successes = 0
        self._total_failures = 0
        self._total_rejections = 0

    @property
    def state(self) -> CircuitState:
        """현재 상태 반환"""
        return self._state

    @property
    def failure_count(self) -> int:
        """현재 실패 카운트 반환"""
        return self._failure_count

    @property
    def last_failure_time(self) -> Optional[float]:
        """마지막 실패 시각 (clock 기준)"""
        return self._last_failure_time

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def reset_timeout(self) -> float:
        return self._reset_timeout

    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        서킷 브레이커를 통해 비동기 작업 실행

        Args:
            operation: 인자 없는 비동기 함수

        Returns:
            작업 반환 값

        Raises:
            CircuitBreakerOpenError: 서킷이 OPEN 상태일 때 (operation 미호출)
            Exception: 작업 실패 시 원본 예외
        """
        was_half_open = self._before_call()
        try:
            result = await operation()
        except Exception:
            self._on_failure(was_half_open)
            raise
        except BaseException:
            # 취소된 시험 호출은 결과 없이 슬롯만 반환
            self._release_trial(was_half_open)
            raise
        self._on_success(was_half_open)
        return result

    def execute_sync(self, operation: Callable[[], T]) -> T:
        """동기 작업 실행 (execute와 동일한 상태 전환)"""
        was_half_open = self._before_call()
        try:
            result = operation()
        except Exception:
            self._on_failure(was_half_open)
            raise
        except BaseException:
            # 취소된 시험 호출은 결과 없이 슬롯만 반환
            self._release_trial(was_half_open)
            raise
        self._on_success(was_half_open)
        return result

    def _before_call(self) -> bool:
        """
        호출 전 상태 확인

        HALF_OPEN에서는 시험 호출 하나만 통과시키고,
        시험이 끝날 때까지 다른 호출은 거부합니다.

        Returns:
            이번 호출이 HALF_OPEN 시험 호출인지 여부
        """
        with self._lock:
            self._total_calls += 1

            if self._state == CircuitState.OPEN:
                elapsed = self._elapsed_since_failure()
                if elapsed <= self._reset_timeout:
                    raise self._reject(max(self._reset_timeout - elapsed, 0.0))
                logger.info(f"Circuit breaker [{self.name}]: OPEN → HALF_OPEN transition")
                self._state = CircuitState.HALF_OPEN
                self._half_open_trial = False

            if self._state != CircuitState.HALF_OPEN:
                return False

            if self._half_open_trial:
                raise self._reject(0.0)
            self._half_open_trial = True
            return True

    def _reject(self, retry_after: float) -> CircuitBreakerOpenError:
        """거부 기록 후 raise할 예외 생성 (lock 보유 상태에서 호출)"""
        self._total_rejections += 1
        logger.warning(
            f"Circuit breaker [{self.name}] is {self._state.value}, blocking call "
            f"(failures: {self._failure_count}, retry after {retry_after:.1f}s)"
        )
        return CircuitBreakerOpenError(
            f"Circuit breaker [{self.name}] is {self._state.value} - operation not allowed",
            name=self.name,
            failure_count=self._failure_count,
            retry_after=retry_after,
        )

    def _release_trial(self, was_half_open: bool) -> None:
        if was_half_open:
            with self._lock:
                self._half_open_trial = False

    def _elapsed_since_failure(self) -> float:
        if self._last_failure_time is None:
            return float("inf")
        return self._clock() - self._last_failure_time

    def _on_success(self, was_half_open: bool) -> None:
        """성공 처리"""
        with self._lock:
            if was_half_open:
                self._half_open_trial = False
            self._total_successes += 1

            if was_half_open and self._state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit breaker [{self.name}]: HALF_OPEN → CLOSED transition (success)")
                self._state = CircuitState.CLOSED
                self._failure_count = 0
            else:
                self._failure_count = max(0, self._failure_count - 1)

    def _on_failure(self, was_half_open: bool = False) -> None:
        """실패 처리"""
        with self._lock:
            if was_half_open:
                self._half_open_trial = False
            self._total_failures += 1
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit breaker [{self.name}]: HALF_OPEN → OPEN transition (failure)")
                self._state = CircuitState.OPEN
            elif self._failure_count >= self._failure_threshold and self._state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit breaker [{self.name}]: failure threshold "
                    f"({self._failure_threshold}) reached, transitioning to OPEN"
                )
                self._state = CircuitState.OPEN

    def get_stats(self) -> Dict[str, Any]:
        """
        서킷 브레이커 통계 정보 반환

        Returns:
            통계 정보 딕셔너리
        """
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self._failure_threshold,
            "reset_timeout": self._reset_timeout,
            "last_failure_time": self._last_failure_time,
            "total_calls": self._total_calls,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "total_rejections": self._total_rejections,
        }

    def reset(self) -> None:
        """서킷 브레이커 상태 리셋 (테스트 또는 수동 복구용)"""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._half_open_trial = False
        logger.info(f"Circuit breaker [{self.name}]: Manually reset to CLOSED")


class CircuitBreakerRegistry:
    """
    이름 기반 서킷 브레이커 레지스트리

    모듈 전역 싱글톤이 아니라 애플리케이션/테스트마다 명시적으로 생성하여 주입합니다.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default_threshold = failure_threshold
        self._default_reset_timeout = reset_timeout
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings=None) -> "CircuitBreakerRegistry":
        """AppSettings 기본값으로 레지스트리 생성"""
        if settings is None:
            from collabo_pad.config.app_settings import get_settings
            settings = get_settings()
        return cls(**settings.get_circuit_breaker_config())

    def get_or_create(
        self,
        name: str,
        failure_threshold: Optional[int] = None,
        reset_timeout: Optional[float] = None,
    ) -> CircuitBreaker:
        """
        이름으로 서킷 브레이커 조회 또는 생성

        Args:
            name: 리소스 이름 (예: "redis", "postgres")
            failure_threshold: 실패 임계값 (None이면 레지스트리 기본값)
            reset_timeout: OPEN 유지 시간 (None이면 레지스트리 기본값)

        Returns:
            CircuitBreaker 인스턴스
        """
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=failure_threshold or self._default_threshold,
                    reset_timeout=(
                        reset_timeout if reset_timeout is not None else self._default_reset_timeout
                    ),
                    clock=self._clock,
                )
            return self._breakers[name]

    def get(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def get_all_states(self) -> Dict[str, str]:
        """모든 서킷 브레이커 상태 반환"""
        return {name: breaker.state.value for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        """모든 서킷 브레이커 리셋"""
        for breaker in self._breakers.values():
            breaker.reset()


def with_circuit_breaker(breaker: CircuitBreaker):
    """
    서킷 브레이커 데코레이터 (비동기 함수용)

    Usage:
        @with_circuit_breaker(registry.get_or_create("redis"))
        async def load_history(channel_id):
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await breaker.execute(lambda: func(*args, **kwargs))
        return wrapper
    return decorator
