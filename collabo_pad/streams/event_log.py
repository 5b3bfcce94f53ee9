"""
Redis Stream 기반 이벤트 로그

키(채널)별로 순서가 보장되는 append-only 필드 맵 로그입니다.
엔트리 id와 순서, 페이지네이션은 Redis가 보장하며 이 계층은 락을 사용하지 않습니다.

이 클라이언트는 에러를 분류하거나 재시도하지 않습니다.
재시도/서킷 브레이커 조합은 호출자(ChannelTopicLog 등)의 책임입니다.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import redis.asyncio as aioredis
from redis.asyncio import Redis

from collabo_pad.resilience.errors import DatabaseError, ErrorKind
from collabo_pad.streams.models import ClearResult, LogEntry, StreamInfo

logger = logging.getLogger(__name__)

FieldValue = Union[str, int, float, bool, None]

# XRANGE 전체 범위
RANGE_START = "-"
RANGE_END = "+"


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return _to_text(value)


def encode_fields(fields: Mapping[str, FieldValue]) -> Dict[str, str]:
    """
    저장 전 필드 인코딩

    None과 빈 문자열 값은 제거하고 나머지는 문자열로 변환합니다.
    False / 0 은 "false" / "0" 으로 보존됩니다.

    Args:
        fields: 원본 필드 맵

    Returns:
        삽입 순서를 유지한 문자열 필드 맵
    """
    encoded: Dict[str, str] = {}
    for key, value in fields.items():
        if value is None or (isinstance(value, str) and value == ""):
            continue
        encoded[_to_text(key)] = _stringify(value)
    return encoded


def decode_fields(raw: Union[Mapping[Any, Any], Sequence[Any], None]) -> Dict[str, str]:
    """
    저장된 엔트리 필드 디코딩

    Redis 원시 응답은 [key1, value1, key2, value2, ...] 형태의 평탄한 시퀀스입니다.
    길이가 홀수이면(부분 기록) 마지막 키의 값은 빈 문자열로 채웁니다.
    클라이언트가 이미 매핑으로 파싱한 경우 그대로 문자열화합니다.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return {_to_text(k): _to_text(v) for k, v in raw.items()}

    items = list(raw)
    decoded: Dict[str, str] = {}
    for i in range(0, len(items), 2):
        key = _to_text(items[i])
        decoded[key] = _to_text(items[i + 1]) if i + 1 < len(items) else ""
    return decoded


def decode_entry(raw: Any) -> Optional[LogEntry]:
    """(id, fields) 원시 엔트리를 LogEntry로 변환"""
    if not raw:
        return None
    entry_id, fields = raw[0], raw[1] if len(raw) > 1 else None
    return LogEntry(id=_to_text(entry_id), fields=decode_fields(fields))


def _pairs_to_dict(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, Mapping):
        return {_to_text(k): v for k, v in raw.items()}
    items = list(raw or [])
    return {_to_text(items[i]): items[i + 1] for i in range(0, len(items) - 1, 2)}


class EventLog:
    """
    Redis Stream 이벤트 로그 클라이언트

    ## 사용 예시
    ```python
    log = EventLog("redis://localhost:6379/0")
    await log.connect()

    entry_id = await log.append("channel:abc:topics", {"content": "hello"})
    entries = await log.range("channel:abc:topics", count=50)
    await log.clear("channel:abc:topics")
    ```
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        client: Optional[Redis] = None,
        connect_timeout: float = 10.0,
    ):
        """
        Args:
            redis_url: Redis 연결 URL
            client: 이미 생성된 Redis 클라이언트 (테스트/공유 연결용)
            connect_timeout: 연결 타임아웃 (초)
        """
        self._redis_url = redis_url
        self._client: Optional[Redis] = client
        self._connect_timeout = connect_timeout
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings=None) -> "EventLog":
        """AppSettings 기반 인스턴스 생성"""
        if settings is None:
            from collabo_pad.config.app_settings import get_settings
            settings = get_settings()
        return cls(settings.redis_url, connect_timeout=settings.redis_connect_timeout)

    async def connect(self) -> Redis:
        """
        Redis 연결

        Returns:
            연결된 Redis 클라이언트

        Raises:
            redis.exceptions.ConnectionError: 연결 실패 시 (원시 예외)
        """
        if self._client is not None:
            return self._client

        client = aioredis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=self._connect_timeout,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            await client.aclose()
            raise

        self._client = client
        self._owns_client = True
        logger.info(f"Event log connected: {self._redis_url}")
        return client

    async def disconnect(self) -> None:
        """연결 해제 (직접 생성한 클라이언트만 닫음)"""
        if self._client is None:
            return
        try:
            if self._owns_client:
                await self._client.aclose()
                logger.info("Event log disconnected")
        finally:
            self._client = None

    def is_connected(self) -> bool:
        """연결 상태"""
        return self._client is not None

    def _require_client(self) -> Redis:
        if self._client is None:
            raise DatabaseError(
                "Redis client not initialized",
                ErrorKind.CONNECTION_ERROR,
                {"redis_url": self._redis_url},
            )
        return self._client

    @staticmethod
    def _require(key: str, entry_id: Optional[str] = None, check_id: bool = False) -> None:
        if not key or (check_id and not entry_id):
            raise DatabaseError(
                "Stream key and entry id are required" if check_id else "Stream key is required",
                ErrorKind.VALIDATION_ERROR,
                {"key": key, "entry_id": entry_id},
            )

    async def append(self, key: str, fields: Mapping[str, FieldValue]) -> str:
        """
        엔트리 추가 (XADD key * ...)

        필터링 후 필드가 하나도 없으면 Redis 클라이언트의 거부 에러가 그대로 전달됩니다.

        Args:
            key: 로그 키
            fields: 필드 맵 (None/빈 문자열 값은 제거)

        Returns:
            새 엔트리 id
        """
        self._require(key)
        client = self._require_client()

        encoded = encode_fields(fields)
        entry_id = await client.xadd(key, encoded)
        entry_id = _to_text(entry_id) if entry_id is not None else ""
        logger.debug(f"Appended {entry_id} to {key} ({len(encoded)} fields)")
        return entry_id

    async def range(
        self,
        key: str,
        start: str = RANGE_START,
        end: str = RANGE_END,
        count: Optional[int] = None,
    ) -> List[LogEntry]:
        """
        범위 조회 (XRANGE), id 오름차순

        Args:
            key: 로그 키
            start: 시작 id (포함, 기본값 "-")
            end: 끝 id (포함, 기본값 "+")
            count: 최대 건수 (순서는 유지)

        Returns:
            LogEntry 리스트. 범위에 엔트리가 없으면 빈 리스트
        """
        self._require(key)
        client = self._require_client()

        raw = await client.xrange(key, min=start, max=end, count=count)
        entries = [entry for entry in (decode_entry(item) for item in raw or []) if entry]
        logger.debug(f"Read {len(entries)} entries from {key} [{start}, {end}]")
        return entries

    async def length(self, key: str) -> int:
        """엔트리 수 (XLEN). 키가 없으면 0"""
        self._require(key)
        client = self._require_client()
        return int(await client.xlen(key))

    async def info(self, key: str) -> Optional[StreamInfo]:
        """
        스트림 요약 정보 (XINFO STREAM)

        Returns:
            StreamInfo, 키가 없으면 None
        """
        self._require(key)
        client = self._require_client()

        if not await client.exists(key):
            return None

        raw = _pairs_to_dict(await client.xinfo_stream(key))
        return StreamInfo(
            length=int(raw.get("length", 0)),
            radix_tree_keys=int(raw.get("radix-tree-keys", 0)),
            radix_tree_nodes=int(raw.get("radix-tree-nodes", 0)),
            last_generated_id=_to_text(raw.get("last-generated-id", "")),
            consumer_group_count=int(raw.get("groups", 0)),
            first_entry=decode_entry(raw.get("first-entry")),
            last_entry=decode_entry(raw.get("last-entry")),
        )

    async def delete(self, key: str, entry_id: str) -> int:
        """
        엔트리 삭제 (XDEL), 멱등

        Returns:
            삭제된 건수 (0 또는 1)
        """
        self._require(key, entry_id, check_id=True)
        client = self._require_client()

        deleted = int(await client.xdel(key, entry_id))
        logger.debug(f"Deleted {entry_id} from {key}: {deleted}")
        return deleted

    async def update(self, key: str, entry_id: str, fields: Mapping[str, FieldValue]) -> str:
        """
        엔트리 교체 (삭제 후 추가)

        원자적이지 않습니다. 새 엔트리는 로그 끝에 새 id로 추가되며
        삭제된 엔트리의 id/위치와는 관계가 없습니다.

        Returns:
            새 엔트리 id

        Raises:
            DatabaseError(NOT_FOUND): 삭제된 엔트리가 없을 때 (추가하지 않음)
        """
        deleted = await self.delete(key, entry_id)
        if deleted == 0:
            raise DatabaseError(
                f"Entry to update not found: {entry_id}",
                ErrorKind.NOT_FOUND,
                {"key": key, "entry_id": entry_id},
            )

        new_id = await self.append(key, fields)
        logger.debug(f"Replaced {entry_id} with {new_id} in {key}")
        return new_id

    async def clear(self, key: str) -> ClearResult:
        """
        키 전체 삭제

        Returns:
            ClearResult.CLEARED 또는 키가 없었으면 ClearResult.WAS_ABSENT
        """
        self._require(key)
        client = self._require_client()

        # DEL 반환값으로 판단 (EXISTS 후 DEL 사이 경합 없음)
        if not await client.delete(key):
            return ClearResult.WAS_ABSENT

        logger.info(f"Cleared stream {key}")
        return ClearResult.CLEARED
