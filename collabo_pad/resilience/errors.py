"""
데이터 저장소 에러 분류 체계

Redis / PostgreSQL 호출에서 발생한 원시 예외를 안정적인 ErrorKind 코드로 분류하고
DatabaseError 형태로 변환합니다. 회복 탄력성 계층 바깥으로는 DatabaseError만 전달됩니다.

분류 순서 (먼저 일치하는 규칙 적용):
    1. 구조화된 SQLSTATE 코드 (pgcode)
    2. 메시지 텍스트 (대소문자 무시): timeout → connection → permission → not found
    3. UNKNOWN_ERROR
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """에러 분류 코드 (외부 계층이 의존하는 안정 문자열)"""
    # 연결 에러
    CONNECTION_ERROR = "CONNECTION_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"

    # 쿼리 에러
    QUERY_ERROR = "QUERY_ERROR"
    SYNTAX_ERROR = "SYNTAX_ERROR"

    # 데이터 검증 에러
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"

    # 권한 에러
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # 시스템 에러
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# 재시도로 해소될 수 있는 에러
TRANSIENT_KINDS = frozenset({
    ErrorKind.CONNECTION_ERROR,
    ErrorKind.TIMEOUT_ERROR,
    ErrorKind.INTERNAL_ERROR,
})

# 외부 계층(API 응답) 매핑용 HTTP 상태 코드
ERROR_HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.CONNECTION_ERROR: 503,
    ErrorKind.TIMEOUT_ERROR: 504,
    ErrorKind.QUERY_ERROR: 500,
    ErrorKind.SYNTAX_ERROR: 500,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE_ENTRY: 409,
    ErrorKind.FOREIGN_KEY_VIOLATION: 409,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.INTERNAL_ERROR: 500,
    ErrorKind.UNKNOWN_ERROR: 500,
}

# PostgreSQL SQLSTATE → (ErrorKind, 메시지 접두사)
_PG_CODE_MAP: Dict[str, tuple] = {
    "23505": (ErrorKind.DUPLICATE_ENTRY, "Duplicate entry"),          # unique_violation
    "23503": (ErrorKind.FOREIGN_KEY_VIOLATION, "Foreign key violation"),  # foreign_key_violation
    "23502": (ErrorKind.VALIDATION_ERROR, "Validation error"),        # not_null_violation
    "23514": (ErrorKind.VALIDATION_ERROR, "Validation error"),        # check_violation
    "42703": (ErrorKind.QUERY_ERROR, "Query error"),                  # undefined_column
    "42883": (ErrorKind.QUERY_ERROR, "Query error"),                  # undefined_function
    "42501": (ErrorKind.PERMISSION_DENIED, "Permission denied"),      # insufficient_privilege
}

_TIMEOUT_PHRASES = ("timeout", "timed out")
_CONNECTION_PHRASES = ("connection", "connect", "econnrefused", "enotfound")
_PERMISSION_PHRASES = ("permission denied", "access denied")
_NOT_FOUND_PHRASES = ("not found",)


class DatabaseError(Exception):
    """
    구조화된 저장소 에러

    생성 후 변경되지 않으며, to_dict()로 JSON 직렬화 가능한 형태를 제공합니다.

    Attributes:
        kind: 에러 분류 코드
        message: 에러 메시지
        details: 부가 컨텍스트 (JSON 직렬화 가능한 값)
        timestamp: 생성 시각 (UTC)
    """

    name = "DatabaseError"

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = ErrorKind(kind)
        self.details = details
        self.timestamp = datetime.now(timezone.utc)

    @property
    def code(self) -> str:
        """안정 문자열 코드"""
        return self.kind.value

    @property
    def http_status(self) -> int:
        """외부 계층용 HTTP 상태 코드"""
        return ERROR_HTTP_STATUS[self.kind]

    def is_transient(self) -> bool:
        """재시도로 해소될 수 있는 에러인지 확인"""
        return is_transient_error(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        """API 응답용 딕셔너리 변환"""
        return {
            "name": self.name,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        return f"<DatabaseError(code={self.code}, message={self.message!r})>"


def is_database_error(error: Any) -> bool:
    """DatabaseError 인스턴스 여부 확인"""
    return isinstance(error, DatabaseError)


def is_transient_error(kind: ErrorKind) -> bool:
    """재시도 대상 에러 코드인지 확인"""
    return ErrorKind(kind) in TRANSIENT_KINDS


def create_database_error(
    message: str,
    kind: ErrorKind = ErrorKind.UNKNOWN_ERROR,
    details: Optional[Dict[str, Any]] = None,
) -> DatabaseError:
    """컨텍스트를 포함한 DatabaseError 생성"""
    return DatabaseError(message, kind, details)


def _extract_pg_code(error: Any) -> Optional[str]:
    """
    예외에서 SQLSTATE 코드 추출

    psycopg2 예외는 pgcode를, SQLAlchemy DBAPIError는 orig.pgcode를 가집니다.
    """
    for candidate in (error, getattr(error, "orig", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None)
        if isinstance(code, str) and code in _PG_CODE_MAP:
            return code
    return None


def _error_message(error: Any) -> str:
    if error is None:
        return "Unknown database error"
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(error)
    return text or type(error).__name__


def _match_message(message: str) -> Optional[tuple]:
    lower = message.lower()
    # "connection timeout"은 연결 에러가 아닌 타임아웃으로 분류되어야 함
    if any(phrase in lower for phrase in _TIMEOUT_PHRASES):
        return ErrorKind.TIMEOUT_ERROR, "Timeout error"
    if any(phrase in lower for phrase in _CONNECTION_PHRASES):
        return ErrorKind.CONNECTION_ERROR, "Connection error"
    if any(phrase in lower for phrase in _PERMISSION_PHRASES):
        return ErrorKind.PERMISSION_DENIED, "Permission denied"
    if any(phrase in lower for phrase in _NOT_FOUND_PHRASES):
        return ErrorKind.NOT_FOUND, None
    return None


def classify(error: Any) -> ErrorKind:
    """
    원시 예외를 ErrorKind로 분류

    Args:
        error: 임의의 예외 (또는 에러 객체)

    Returns:
        ErrorKind: 분류 결과. DatabaseError는 기존 kind를 그대로 반환
    """
    if isinstance(error, DatabaseError):
        return error.kind

    pg_code = _extract_pg_code(error)
    if pg_code:
        return _PG_CODE_MAP[pg_code][0]

    matched = _match_message(_error_message(error))
    if matched:
        return matched[0]
    return ErrorKind.UNKNOWN_ERROR


def handle_database_error(error: Any) -> DatabaseError:
    """
    원시 예외를 DatabaseError로 변환

    이미 DatabaseError인 경우 그대로 반환합니다 (멱등).

    Args:
        error: 임의의 예외

    Returns:
        DatabaseError: 분류된 에러
    """
    if isinstance(error, DatabaseError):
        return error

    message = _error_message(error)
    details = {
        "original_error": message,
        "original_type": type(error).__name__,
    }

    pg_code = _extract_pg_code(error)
    if pg_code:
        kind, prefix = _PG_CODE_MAP[pg_code]
        details["pg_code"] = pg_code
        converted = DatabaseError(f"{prefix}: {message}", kind, details)
    else:
        matched = _match_message(message)
        if matched:
            kind, prefix = matched
            text = f"{prefix}: {message}" if prefix else message
            converted = DatabaseError(text, kind, details)
        else:
            converted = DatabaseError(message, ErrorKind.UNKNOWN_ERROR, details)

    if isinstance(error, BaseException):
        converted.__cause__ = error
    return converted
