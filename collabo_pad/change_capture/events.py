"""
변경 이벤트 모델

topics 테이블 트리거가 pg_notify로 발행하는 페이로드와
이를 소비하는 ChangeFeed 인터페이스를 정의합니다.

페이로드는 식별 정보만 담으며 토픽 내용은 포함하지 않습니다:
    {"type": "INSERT", "id": "...", "channelId": "...", "parentId": null, "timestamp": 1700000000}
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from collabo_pad.resilience.errors import DatabaseError, ErrorKind
from collabo_pad.streams.channel_log import validate_channel_id

CHANNEL_PREFIX = "topic_channel_"


class ChangeType(str, Enum):
    """행 변경 유형 (TG_OP)"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    # trigger_topic_notification()으로 수동 발행
    MANUAL = "MANUAL"


def notification_channel(channel_id: str) -> str:
    """채널 ID의 알림 채널명 (topic_channel_{channel_id})"""
    validate_channel_id(channel_id)
    return f"{CHANNEL_PREFIX}{channel_id}"


@dataclass(frozen=True)
class ChangeEvent:
    """topics 행 변경 알림"""
    type: ChangeType
    id: str
    channel_id: str
    parent_id: Optional[str] = None
    timestamp: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "channelId": self.channel_id,
            "parentId": self.parent_id,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload())

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ChangeEvent":
        try:
            parent_id = payload.get("parentId")
            return cls(
                type=ChangeType(payload["type"]),
                id=str(payload["id"]),
                channel_id=str(payload["channelId"]),
                parent_id=str(parent_id) if parent_id is not None else None,
                timestamp=int(payload.get("timestamp") or 0),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise DatabaseError(
                f"Invalid change notification payload: {e}",
                ErrorKind.VALIDATION_ERROR,
                {"payload": payload},
            ) from e

    @classmethod
    def from_json(cls, text: str) -> "ChangeEvent":
        """pg_notify 페이로드 파싱"""
        try:
            payload = json.loads(text)
        except (TypeError, json.JSONDecodeError) as e:
            raise DatabaseError(
                f"Change notification is not valid JSON: {e}",
                ErrorKind.VALIDATION_ERROR,
                {"payload": text},
            ) from e
        if not isinstance(payload, dict):
            raise DatabaseError(
                "Change notification must be a JSON object",
                ErrorKind.VALIDATION_ERROR,
                {"payload": text},
            )
        return cls.from_payload(payload)


class ChangeFeed(ABC):
    """
    변경 이벤트 소비자 인터페이스

    LISTEN/NOTIFY 세부 사항과 소비자(SSE 릴레이 등)를 분리합니다.
    """

    @abstractmethod
    def on_row_changed(self, event: ChangeEvent) -> None:
        """행 변경 알림 수신"""
