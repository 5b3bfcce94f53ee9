"""
Resilience 패턴 모듈

에러 분류, 재시도 정책, 서킷 브레이커 등 회복 탄력성 패턴을 구현합니다.
Redis / PostgreSQL 호출은 모두 이 계층을 거쳐 DatabaseError로 변환됩니다.
"""

from collabo_pad.resilience.errors import (
    ErrorKind,
    DatabaseError,
    ERROR_HTTP_STATUS,
    classify,
    handle_database_error,
    create_database_error,
    is_database_error,
    is_transient_error,
)
from collabo_pad.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    CircuitBreakerOpenError,
    CircuitBreakerRegistry,
    with_circuit_breaker,
)
from collabo_pad.resilience.retry import (
    RetryOptions,
    with_retry,
    with_retry_sync,
    retryable,
)
from collabo_pad.resilience.health import (
    HealthCheckResult,
    check_database_health,
)

__all__ = [
    "ErrorKind",
    "DatabaseError",
    "ERROR_HTTP_STATUS",
    "classify",
    "handle_database_error",
    "create_database_error",
    "is_database_error",
    "is_transient_error",
    "CircuitBreaker",
    "CircuitState",
    "CircuitBreakerOpenError",
    "CircuitBreakerRegistry",
    "with_circuit_breaker",
    "RetryOptions",
    "with_retry",
    "with_retry_sync",
    "retryable",
    "HealthCheckResult",
    "check_database_health",
]
