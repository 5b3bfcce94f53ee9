"""
topics 변경 감지 모듈

PostgreSQL 트리거 + pg_notify 기반 변경 알림 계약과 설치 도구,
LISTEN 리스너를 제공합니다.
"""

from collabo_pad.change_capture.events import (
    ChangeType,
    ChangeEvent,
    ChangeFeed,
    notification_channel,
)
from collabo_pad.change_capture.triggers import (
    FUNCTION_NAME,
    TRIGGER_NAME,
    SetupReport,
    create_trigger_function,
    create_topic_change_trigger,
    generate_trigger_setup_script,
    generate_complete_notification_setup,
    generate_migration_safe_setup,
    cleanup_triggers,
    setup_topic_notifications,
    teardown_topic_notifications,
)
from collabo_pad.change_capture.listener import PgNotifyListener

__all__ = [
    "ChangeType",
    "ChangeEvent",
    "ChangeFeed",
    "notification_channel",
    "FUNCTION_NAME",
    "TRIGGER_NAME",
    "SetupReport",
    "create_trigger_function",
    "create_topic_change_trigger",
    "generate_trigger_setup_script",
    "generate_complete_notification_setup",
    "generate_migration_safe_setup",
    "cleanup_triggers",
    "setup_topic_notifications",
    "teardown_topic_notifications",
    "PgNotifyListener",
]
