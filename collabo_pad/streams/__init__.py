"""
Redis Stream 이벤트 로그 모듈

- EventLog: 키별 append-only 로그 클라이언트
- ChannelTopicLog: 재시도/서킷 브레이커를 적용한 채널 토픽 로그 서비스
"""

from collabo_pad.streams.models import ClearResult, LogEntry, StreamInfo
from collabo_pad.streams.event_log import (
    EventLog,
    encode_fields,
    decode_fields,
    decode_entry,
)
from collabo_pad.streams.channel_log import (
    ChannelTopicLog,
    ChannelTopics,
    channel_topics_key,
    validate_channel_id,
    validate_message_id,
)

__all__ = [
    "ClearResult",
    "LogEntry",
    "StreamInfo",
    "EventLog",
    "encode_fields",
    "decode_fields",
    "decode_entry",
    "ChannelTopicLog",
    "ChannelTopics",
    "channel_topics_key",
    "validate_channel_id",
    "validate_message_id",
]
