"""
이벤트 로그 데이터 모델
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ClearResult(str, Enum):
    """clear() 결과"""
    CLEARED = "cleared"
    WAS_ABSENT = "was-absent"


@dataclass(frozen=True)
class LogEntry:
    """
    로그 엔트리

    id는 저장소가 부여하며 키 내에서 단조 증가합니다 (페이지네이션 커서로 사용).
    """
    id: str
    fields: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "data": dict(self.fields)}


@dataclass(frozen=True)
class StreamInfo:
    """스트림 요약 정보 (XINFO STREAM)"""
    length: int
    last_generated_id: str
    consumer_group_count: int
    radix_tree_keys: int = 0
    radix_tree_nodes: int = 0
    first_entry: Optional[LogEntry] = None
    last_entry: Optional[LogEntry] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "length": self.length,
            "radix_tree_keys": self.radix_tree_keys,
            "radix_tree_nodes": self.radix_tree_nodes,
            "last_generated_id": self.last_generated_id,
            "groups": self.consumer_group_count,
            "first_entry": self.first_entry.to_dict() if self.first_entry else None,
            "last_entry": self.last_entry.to_dict() if self.last_entry else None,
        }
