"""
Mock 객체 모음

실제 Redis / PostgreSQL 없이 테스트할 수 있도록 인메모리 Mock을 제공합니다.

사용 가능한 Mock:
- MockRedisStreams: Redis Stream 명령 Mock (xadd / xrange / xdel / xinfo_stream ...)
- MockCatalogEngine: pg_proc / pg_trigger 카탈로그를 흉내내는 SQLAlchemy 엔진 Mock
- MockNotifyConnection: psycopg2 LISTEN 연결 Mock
"""

from tests.mocks.mock_redis_streams import MockRedisStreams
from tests.mocks.mock_catalog import MockCatalogEngine, MockCatalogConnection
from tests.mocks.mock_notify import MockNotifyConnection, MockNotify

__all__ = [
    "MockRedisStreams",
    "MockCatalogEngine",
    "MockCatalogConnection",
    "MockNotifyConnection",
    "MockNotify",
]
