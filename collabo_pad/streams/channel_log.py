"""
채널 토픽 로그 서비스

채널별 토픽 이벤트 히스토리를 EventLog에 저장합니다.
모든 Redis 호출은 재시도 정책과 "redis" 서킷 브레이커를 거칩니다.

키 규칙: channel:{channel_id}:topics
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

from collabo_pad.resilience.circuit_breaker import CircuitBreaker
from collabo_pad.resilience.errors import DatabaseError, ErrorKind
from collabo_pad.resilience.retry import RetryOptions, with_retry
from collabo_pad.streams.event_log import RANGE_END, RANGE_START, EventLog
from collabo_pad.streams.models import ClearResult, LogEntry, StreamInfo

T = TypeVar("T")

logger = logging.getLogger(__name__)

CHANNEL_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
# Stream 엔트리 id: "<ms>" 또는 "<ms>-<seq>"
MESSAGE_ID_PATTERN = re.compile(r"\d+(-\d+)?")

# JSON 텍스트로 저장되는 토픽 필드
_JSON_FIELDS = ("metadata", "tags")
# 숫자로 복원되는 토픽 필드
_NUMERIC_FIELDS = ("timestamp", "x", "y", "w", "h")


def channel_topics_key(channel_id: str) -> str:
    """채널 토픽 로그 키 생성"""
    validate_channel_id(channel_id)
    return f"channel:{channel_id}:topics"


def validate_channel_id(channel_id: str) -> None:
    """채널 ID는 영문/숫자/밑줄/하이픈만 허용"""
    if not channel_id or not CHANNEL_ID_PATTERN.fullmatch(channel_id):
        raise DatabaseError(
            f"Invalid channel id: {channel_id!r}",
            ErrorKind.VALIDATION_ERROR,
            {"channel_id": channel_id},
        )


def validate_message_id(message_id: str) -> None:
    """엔트리 id 형식 확인 (저장소 호출 전)"""
    if not message_id or not MESSAGE_ID_PATTERN.fullmatch(message_id):
        raise DatabaseError(
            f"Invalid message id: {message_id!r}",
            ErrorKind.VALIDATION_ERROR,
            {"message_id": message_id},
        )


def topic_to_fields(topic: Mapping[str, Any]) -> Dict[str, Any]:
    """토픽 dict를 로그 필드로 변환 (dict/list 값은 JSON 텍스트)"""
    fields: Dict[str, Any] = {}
    for key, value in topic.items():
        if isinstance(value, (dict, list, tuple)):
            fields[key] = json.dumps(value, ensure_ascii=False)
        else:
            fields[key] = value
    return fields


def _parse_number(value: str) -> Any:
    try:
        number = float(value)
    except ValueError:
        return value
    return int(number) if number.is_integer() else number


def entry_to_topic(entry: LogEntry) -> Dict[str, Any]:
    """로그 엔트리를 토픽 dict로 복원"""
    topic: Dict[str, Any] = {"message_id": entry.id}
    for key, value in entry.fields.items():
        if key in _JSON_FIELDS:
            try:
                topic[key] = json.loads(value)
            except json.JSONDecodeError:
                topic[key] = value
        elif key in _NUMERIC_FIELDS:
            topic[key] = _parse_number(value)
        else:
            topic[key] = value
    return topic


@dataclass
class ChannelTopics:
    """채널 토픽 조회 결과"""
    channel_id: str
    topics: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    last_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topics": self.topics,
            "total": self.total,
            "channel_id": self.channel_id,
            "last_id": self.last_id,
        }


class ChannelTopicLog:
    """
    채널 토픽 로그

    Args:
        event_log: EventLog 인스턴스
        breaker: Redis 보호용 서킷 브레이커
        retry_options: 재시도 옵션
        history_limit: 히스토리 조회 기본 최대 건수
    """

    def __init__(
        self,
        event_log: EventLog,
        breaker: CircuitBreaker,
        retry_options: Optional[RetryOptions] = None,
        history_limit: int = 50,
    ):
        self._log = event_log
        self._breaker = breaker
        self._retry_options = retry_options or RetryOptions()
        self._history_limit = history_limit

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """재시도(바깥) + 서킷 브레이커(안쪽)로 실행"""
        return await with_retry(
            lambda: self._breaker.execute(operation),
            self._retry_options,
        )

    async def publish_topic(self, channel_id: str, topic: Mapping[str, Any]) -> str:
        """
        토픽 이벤트 추가

        Args:
            channel_id: 채널 ID
            topic: 토픽 데이터 (timestamp가 없으면 현재 시각 ms)

        Returns:
            새 엔트리 id
        """
        key = channel_topics_key(channel_id)
        fields = topic_to_fields(topic)
        fields.setdefault("channel_id", channel_id)
        if fields.get("timestamp") in (None, ""):
            fields["timestamp"] = int(time.time() * 1000)

        entry_id = await self._call(lambda: self._log.append(key, fields))
        logger.info(f"Topic published to {key}: {entry_id}")
        return entry_id

    async def get_channel_topics(
        self,
        channel_id: str,
        start: str = RANGE_START,
        end: str = RANGE_END,
        count: Optional[int] = None,
    ) -> ChannelTopics:
        """
        채널 토픽 히스토리 조회 (id 오름차순)

        Args:
            channel_id: 채널 ID
            start: 시작 id
            end: 끝 id
            count: 최대 건수 (None이면 history_limit)
        """
        key = channel_topics_key(channel_id)
        limit = count if count is not None else self._history_limit

        entries = await self._call(lambda: self._log.range(key, start, end, limit))
        total = await self._call(lambda: self._log.length(key))

        return ChannelTopics(
            channel_id=channel_id,
            topics=[entry_to_topic(entry) for entry in entries],
            total=total,
            last_id=entries[-1].id if entries else None,
        )

    async def get_new_topics(
        self,
        channel_id: str,
        since_timestamp: int,
        count: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        since_timestamp 이후에 추가된 토픽 조회 (오름차순)

        Stream id 앞부분이 밀리초 시각이므로 "{since_timestamp + 1}-0"부터 조회합니다.
        """
        key = channel_topics_key(channel_id)
        start = f"{int(since_timestamp) + 1}-0"

        entries = await self._call(lambda: self._log.range(key, start, RANGE_END, count))
        topics = [entry_to_topic(entry) for entry in entries]
        return [
            topic for topic in topics
            if not isinstance(topic.get("timestamp"), (int, float))
            or topic["timestamp"] > since_timestamp
        ]

    async def update_topic(self, channel_id: str, message_id: str, topic: Mapping[str, Any]) -> str:
        """
        토픽 엔트리 교체 (삭제 후 추가)

        삭제와 추가를 각각 재시도합니다. 추가만 실패해 다시 시도할 때
        삭제가 반복되지 않으므로 NOT_FOUND로 바뀌지 않습니다.

        Raises:
            DatabaseError(NOT_FOUND): 교체할 엔트리가 없을 때 (추가하지 않음)
        """
        key = channel_topics_key(channel_id)
        validate_message_id(message_id)
        fields = topic_to_fields(topic)

        deleted = await self._call(lambda: self._log.delete(key, message_id))
        if deleted == 0:
            raise DatabaseError(
                f"Topic to update not found: {message_id}",
                ErrorKind.NOT_FOUND,
                {"channel_id": channel_id, "message_id": message_id},
            )

        new_id = await self._call(lambda: self._log.append(key, fields))
        logger.info(f"Topic {message_id} replaced with {new_id} in {key}")
        return new_id

    async def delete_topic(self, channel_id: str, message_id: str) -> int:
        """토픽 엔트리 삭제 (0 또는 1)"""
        key = channel_topics_key(channel_id)
        validate_message_id(message_id)
        return await self._call(lambda: self._log.delete(key, message_id))

    async def clear_channel(self, channel_id: str) -> ClearResult:
        """채널 토픽 로그 전체 삭제"""
        key = channel_topics_key(channel_id)
        result = await self._call(lambda: self._log.clear(key))
        logger.info(f"Channel {channel_id} log {result.value}")
        return result

    async def channel_info(self, channel_id: str) -> Optional[StreamInfo]:
        """채널 토픽 로그 요약 (없으면 None)"""
        key = channel_topics_key(channel_id)
        return await self._call(lambda: self._log.info(key))
