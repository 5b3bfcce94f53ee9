"""
에러 분류기 테스트

- SQLSTATE 코드 분류
- 메시지 휴리스틱 분류 순서 (timeout → connection → permission → not found)
- DatabaseError 직렬화 / 멱등 변환
"""

import json

import pytest
from sqlalchemy.exc import IntegrityError

from collabo_pad.resilience.errors import (
    ERROR_HTTP_STATUS,
    DatabaseError,
    ErrorKind,
    classify,
    create_database_error,
    handle_database_error,
    is_database_error,
    is_transient_error,
)


class PgError(Exception):
    """psycopg2 예외처럼 pgcode를 가진 예외"""

    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


class TestClassifyPgCodes:
    """SQLSTATE 코드 기반 분류"""

    @pytest.mark.parametrize("pgcode,expected", [
        ("23505", ErrorKind.DUPLICATE_ENTRY),
        ("23503", ErrorKind.FOREIGN_KEY_VIOLATION),
        ("23502", ErrorKind.VALIDATION_ERROR),
        ("23514", ErrorKind.VALIDATION_ERROR),
        ("42703", ErrorKind.QUERY_ERROR),
        ("42883", ErrorKind.QUERY_ERROR),
        ("42501", ErrorKind.PERMISSION_DENIED),
    ])
    def test_known_codes(self, pgcode, expected):
        assert classify(PgError("boom", pgcode)) == expected

    def test_code_wins_over_message(self):
        """코드가 있으면 메시지에 'timeout'이 있어도 코드 우선"""
        error = PgError("duplicate key after timeout", "23505")
        assert classify(error) == ErrorKind.DUPLICATE_ENTRY

    def test_sqlalchemy_wrapped_orig(self):
        """SQLAlchemy DBAPIError의 orig.pgcode 사용"""
        orig = PgError('duplicate key value violates unique constraint "topics_pkey"', "23505")
        wrapped = IntegrityError("INSERT INTO topics ...", {}, orig)

        converted = handle_database_error(wrapped)

        assert converted.kind == ErrorKind.DUPLICATE_ENTRY
        assert converted.message.startswith("Duplicate entry: ")
        assert converted.details["pg_code"] == "23505"

    def test_unknown_code_falls_back_to_message(self):
        assert classify(PgError("connection reset", "08006")) == ErrorKind.CONNECTION_ERROR


class TestClassifyMessages:
    """메시지 휴리스틱 분류"""

    @pytest.mark.parametrize("message,expected", [
        ("Query timeout exceeded", ErrorKind.TIMEOUT_ERROR),
        ("operation timed out", ErrorKind.TIMEOUT_ERROR),
        ("connect ECONNREFUSED 127.0.0.1:6379", ErrorKind.CONNECTION_ERROR),
        ("getaddrinfo ENOTFOUND redis", ErrorKind.CONNECTION_ERROR),
        ("Connection closed by server", ErrorKind.CONNECTION_ERROR),
        ("permission denied for table topics", ErrorKind.PERMISSION_DENIED),
        ("Access denied", ErrorKind.PERMISSION_DENIED),
        ("Topic not found", ErrorKind.NOT_FOUND),
        ("something odd happened", ErrorKind.UNKNOWN_ERROR),
    ])
    def test_message_heuristics(self, message, expected):
        assert classify(Exception(message)) == expected

    def test_connection_timeout_is_timeout(self):
        """'connection timeout'은 TIMEOUT_ERROR (timeout 규칙이 먼저)"""
        assert classify(Exception("connection timeout")) == ErrorKind.TIMEOUT_ERROR

    def test_non_exception_input(self):
        assert classify("ECONNREFUSED") == ErrorKind.CONNECTION_ERROR
        assert classify(None) == ErrorKind.UNKNOWN_ERROR


class TestHandleDatabaseError:
    """원시 예외 → DatabaseError 변환"""

    def test_idempotent_for_database_error(self):
        original = DatabaseError("x", ErrorKind.NOT_FOUND)
        assert handle_database_error(original) is original
        assert classify(original) == ErrorKind.NOT_FOUND

    def test_prefix_and_details(self):
        raw = ConnectionError("Connection refused")
        converted = handle_database_error(raw)

        assert converted.kind == ErrorKind.CONNECTION_ERROR
        assert converted.message == "Connection error: Connection refused"
        assert converted.details == {
            "original_error": "Connection refused",
            "original_type": "ConnectionError",
        }
        assert converted.__cause__ is raw

    def test_not_found_keeps_message(self):
        converted = handle_database_error(Exception("Stream not found"))
        assert converted.kind == ErrorKind.NOT_FOUND
        assert converted.message == "Stream not found"

    def test_unknown_keeps_message(self):
        converted = handle_database_error(ValueError("weird"))
        assert converted.kind == ErrorKind.UNKNOWN_ERROR
        assert converted.message == "weird"


class TestDatabaseError:
    """DatabaseError 구조"""

    def test_to_dict_shape(self):
        error = create_database_error("Topic not found", ErrorKind.NOT_FOUND, {"id": "abc"})
        data = error.to_dict()

        assert data["name"] == "DatabaseError"
        assert data["message"] == "Topic not found"
        assert data["code"] == "NOT_FOUND"
        assert data["details"] == {"id": "abc"}
        assert "T" in data["timestamp"]
        # JSON 직렬화 가능
        assert json.loads(json.dumps(data))["code"] == "NOT_FOUND"

    def test_default_kind_unknown(self):
        assert DatabaseError("x").code == "UNKNOWN_ERROR"

    def test_http_status(self):
        assert DatabaseError("x", ErrorKind.NOT_FOUND).http_status == 404
        assert DatabaseError("x", ErrorKind.DUPLICATE_ENTRY).http_status == 409
        assert DatabaseError("x", ErrorKind.CONNECTION_ERROR).http_status == 503
        assert set(ERROR_HTTP_STATUS) == set(ErrorKind)

    def test_transient_kinds(self):
        assert is_transient_error(ErrorKind.CONNECTION_ERROR)
        assert is_transient_error(ErrorKind.TIMEOUT_ERROR)
        assert is_transient_error(ErrorKind.INTERNAL_ERROR)
        assert not is_transient_error(ErrorKind.VALIDATION_ERROR)
        assert not is_transient_error(ErrorKind.UNKNOWN_ERROR)

    def test_is_database_error(self):
        assert is_database_error(DatabaseError("x"))
        assert not is_database_error(Exception("x"))
        assert not is_database_error({"code": "NOT_FOUND"})
