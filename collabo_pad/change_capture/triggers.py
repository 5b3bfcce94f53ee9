"""
topics 변경 알림 트리거

topics 테이블의 INSERT / UPDATE / DELETE를 topic_channel_{channel_id}
채널의 pg_notify 이벤트로 변환하는 함수/트리거 SQL과 설치 도구입니다.

- SQL 생성 함수: 함수, 트리거, 전체 스크립트, 마이그레이션용 DO 블록, 정리 스크립트,
  유틸리티 함수, 인덱스, 뷰
- setup_topic_notifications(): pg_proc / pg_trigger 확인 후 없는 객체만 생성 (멱등)
- teardown_topic_notifications(): 트리거, 함수 순으로 제거
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from collabo_pad.resilience.circuit_breaker import CircuitBreaker
from collabo_pad.resilience.retry import RetryOptions, with_retry_sync

logger = logging.getLogger(__name__)

FUNCTION_NAME = "notify_topic_change"
TRIGGER_NAME = "topic_change_trigger"
TABLE_NAME = "topics"

# 동시 배포 직렬화용 advisory lock 키
SETUP_LOCK_KEY = 727001


def create_trigger_function() -> str:
    """
    알림 함수 SQL

    행은 NEW(INSERT/UPDATE) 또는 OLD(DELETE)에서 가져옵니다.
    pg_notify 실패는 WARNING으로 낮춰 행 쓰기를 중단시키지 않습니다.
    """
    return f"""
CREATE OR REPLACE FUNCTION {FUNCTION_NAME}()
RETURNS TRIGGER AS $fn$
DECLARE
  topic_row RECORD;
BEGIN
  IF TG_OP = 'DELETE' THEN
    topic_row := OLD;
  ELSE
    topic_row := NEW;
  END IF;

  BEGIN
    PERFORM pg_notify(
      'topic_channel_' || topic_row.channel_id,
      json_build_object(
        'type', TG_OP,
        'id', topic_row.id,
        'channelId', topic_row.channel_id,
        'parentId', topic_row.parent_id,
        'timestamp', EXTRACT(EPOCH FROM NOW())::BIGINT
      )::text
    );
  EXCEPTION WHEN OTHERS THEN
    RAISE WARNING '{FUNCTION_NAME} failed for topic %: %', topic_row.id, SQLERRM;
  END;

  RETURN topic_row;
END;
$fn$ LANGUAGE plpgsql
""".strip()


def create_topic_change_trigger() -> str:
    """트리거 SQL"""
    return f"""
CREATE TRIGGER {TRIGGER_NAME}
AFTER INSERT OR UPDATE OR DELETE ON {TABLE_NAME}
FOR EACH ROW
EXECUTE FUNCTION {FUNCTION_NAME}()
""".strip()


def generate_trigger_setup_script() -> str:
    """함수 + 트리거 설치 스크립트"""
    return (
        "-- Topic change notifications\n"
        f"{create_trigger_function()};\n\n"
        f"{create_topic_change_trigger()};"
    )


def cleanup_triggers() -> str:
    """트리거, 함수 순서의 정리 스크립트"""
    return (
        f"DROP TRIGGER IF EXISTS {TRIGGER_NAME} ON {TABLE_NAME};\n"
        f"DROP FUNCTION IF EXISTS {FUNCTION_NAME}();"
    )


def notification_utility_statements() -> List[str]:
    """
    알림 유틸리티 함수

    - trigger_topic_notification(topic_id): 토픽 1건 수동 알림 (MANUAL), 존재 여부 반환
    - get_notification_stats(channel_id): 채널 토픽 수 / 최근 1시간 생성 수
    """
    manual_notify = """
CREATE OR REPLACE FUNCTION trigger_topic_notification(topic_id UUID)
RETURNS BOOLEAN AS $fn$
DECLARE
  topic_record RECORD;
BEGIN
  SELECT id, channel_id, parent_id INTO topic_record
  FROM topics
  WHERE id = topic_id;

  IF NOT FOUND THEN
    RETURN FALSE;
  END IF;

  PERFORM pg_notify(
    'topic_channel_' || topic_record.channel_id,
    json_build_object(
      'type', 'MANUAL',
      'id', topic_record.id,
      'channelId', topic_record.channel_id,
      'parentId', topic_record.parent_id,
      'timestamp', EXTRACT(EPOCH FROM NOW())::BIGINT
    )::text
  );
  RETURN TRUE;
END;
$fn$ LANGUAGE plpgsql
""".strip()

    stats = """
CREATE OR REPLACE FUNCTION get_notification_stats(p_channel_id TEXT)
RETURNS JSON AS $fn$
DECLARE
  total_topics INTEGER;
  recent_topics INTEGER;
BEGIN
  SELECT COUNT(*) INTO total_topics
  FROM topics t
  WHERE t.channel_id = p_channel_id;

  SELECT COUNT(*) INTO recent_topics
  FROM topics t
  WHERE t.channel_id = p_channel_id
    AND t.created_at > NOW() - INTERVAL '1 hour';

  RETURN json_build_object(
    'channelId', p_channel_id,
    'totalTopics', total_topics,
    'recentTopics', recent_topics,
    'asOf', NOW()
  );
END;
$fn$ LANGUAGE plpgsql
""".strip()
    return [manual_notify, stats]


def notification_index_statements() -> List[str]:
    """채널/부모 기준 조회용 인덱스"""
    return [
        "CREATE INDEX IF NOT EXISTS idx_topics_channel_updated "
        "ON topics USING btree (channel_id, updated_at DESC)",
        "CREATE INDEX IF NOT EXISTS idx_topics_channel_created_desc "
        "ON topics USING btree (channel_id, created_at DESC)",
        "CREATE INDEX IF NOT EXISTS idx_topics_parent_created "
        "ON topics USING btree (parent_id, created_at DESC)",
    ]


def notification_view_statements() -> List[str]:
    """알림 페이로드 형식의 topic_notifications 뷰"""
    return ["""
CREATE OR REPLACE VIEW topic_notifications AS
SELECT
  id,
  channel_id AS "channelId",
  parent_id AS "parentId",
  user_id AS "userId",
  username,
  content,
  x,
  y,
  w,
  h,
  metadata,
  tags,
  created_at AS "createdAt",
  updated_at AS "updatedAt",
  EXTRACT(EPOCH FROM updated_at)::BIGINT AS "lastModified"
FROM topics
""".strip()]


def extra_statements() -> List[str]:
    """유틸리티 함수 + 인덱스 + 뷰 (모두 재실행 가능)"""
    return (
        notification_utility_statements()
        + notification_index_statements()
        + notification_view_statements()
    )


def generate_complete_notification_setup() -> str:
    """함수, 트리거, 유틸리티, 인덱스, 뷰 전체 스크립트"""
    parts = [generate_trigger_setup_script()]
    parts.extend(f"{statement};" for statement in extra_statements())
    parts.append(
        "-- LISTEN topic_channel_<channel_id>;\n"
        "-- SELECT trigger_topic_notification('<topic_id>');\n"
        "-- SELECT get_notification_stats('<channel_id>');"
    )
    return "\n\n".join(parts)


def generate_migration_safe_setup() -> str:
    """
    이미 있는 객체는 건너뛰는 마이그레이션용 스크립트

    함수 본문은 $fn$, DO 블록은 $do$, EXECUTE 문자열은 $body$ 태그를 사용합니다.
    """
    extras = ";\n\n".join(extra_statements())
    return f"""
SELECT pg_advisory_xact_lock({SETUP_LOCK_KEY});

DO $do$
BEGIN
  IF NOT EXISTS (SELECT 1 FROM pg_proc WHERE proname = '{FUNCTION_NAME}') THEN
    EXECUTE $body$
{create_trigger_function()}
$body$;
    RAISE NOTICE 'Created {FUNCTION_NAME} function';
  END IF;
END
$do$;

DO $do$
BEGIN
  IF NOT EXISTS (SELECT 1 FROM pg_trigger WHERE tgname = '{TRIGGER_NAME}' AND tgrelid = '{TABLE_NAME}'::regclass) THEN
    EXECUTE $body$
{create_topic_change_trigger()}
$body$;
    RAISE NOTICE 'Created {TRIGGER_NAME}';
  END IF;
END
$do$;

{extras};
""".strip()


@dataclass
class SetupReport:
    """설치 결과"""
    function_created: bool
    trigger_created: bool
    extras_applied: bool = False

    def to_dict(self):
        return {
            "function_created": self.function_created,
            "trigger_created": self.trigger_created,
            "extras_applied": self.extras_applied,
        }


def function_exists(conn: Connection) -> bool:
    """pg_proc에 알림 함수가 있는지 확인"""
    row = conn.execute(
        text("SELECT 1 FROM pg_proc WHERE proname = :name"),
        {"name": FUNCTION_NAME},
    ).first()
    return row is not None


def trigger_exists(conn: Connection) -> bool:
    """pg_trigger에 알림 트리거가 있는지 확인"""
    row = conn.execute(
        text(
            "SELECT 1 FROM pg_trigger WHERE tgname = :name "
            f"AND tgrelid = '{TABLE_NAME}'::regclass AND NOT tgisinternal"
        ),
        {"name": TRIGGER_NAME},
    ).first()
    return row is not None


def install_notifications(conn: Connection, include_extras: bool = True) -> SetupReport:
    """
    열린 트랜잭션 안에서 알림 객체 설치

    pg_advisory_xact_lock으로 동시 설치를 직렬화한 뒤 없는 객체만 생성합니다.
    """
    conn.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": SETUP_LOCK_KEY})

    function_created = False
    if function_exists(conn):
        logger.info(f"Function {FUNCTION_NAME} already exists, skipping")
    else:
        conn.execute(text(create_trigger_function()))
        function_created = True
        logger.info(f"Created function {FUNCTION_NAME}")

    trigger_created = False
    if trigger_exists(conn):
        logger.info(f"Trigger {TRIGGER_NAME} already exists, skipping")
    else:
        conn.execute(text(create_topic_change_trigger()))
        trigger_created = True
        logger.info(f"Created trigger {TRIGGER_NAME} on {TABLE_NAME}")

    if include_extras:
        for statement in extra_statements():
            conn.execute(text(statement))

    return SetupReport(
        function_created=function_created,
        trigger_created=trigger_created,
        extras_applied=include_extras,
    )


def remove_notifications(conn: Connection) -> None:
    """열린 트랜잭션 안에서 트리거, 함수 순으로 제거"""
    conn.execute(text(f"DROP TRIGGER IF EXISTS {TRIGGER_NAME} ON {TABLE_NAME}"))
    conn.execute(text(f"DROP FUNCTION IF EXISTS {FUNCTION_NAME}()"))
    logger.info(f"Dropped {TRIGGER_NAME} and {FUNCTION_NAME}")


def setup_topic_notifications(
    engine: Engine,
    include_extras: bool = True,
    breaker: Optional[CircuitBreaker] = None,
    retry_options: Optional[RetryOptions] = None,
) -> SetupReport:
    """
    알림 함수/트리거 설치 (멱등)

    Args:
        engine: SQLAlchemy 엔진
        include_extras: 유틸리티 함수/인덱스/뷰 포함 여부
        breaker: PostgreSQL 서킷 브레이커 (None이면 브레이커 없이 실행)
        retry_options: 재시도 옵션

    Returns:
        SetupReport
    """
    def run() -> SetupReport:
        with engine.begin() as conn:
            return install_notifications(conn, include_extras=include_extras)

    operation = (lambda: breaker.execute_sync(run)) if breaker else run
    report = with_retry_sync(operation, retry_options)
    logger.info(f"Topic notifications ready: {report.to_dict()}")
    return report


def teardown_topic_notifications(
    engine: Engine,
    breaker: Optional[CircuitBreaker] = None,
    retry_options: Optional[RetryOptions] = None,
) -> None:
    """알림 트리거/함수 제거 (없으면 아무 것도 하지 않음)"""
    def run() -> None:
        with engine.begin() as conn:
            remove_notifications(conn)

    operation = (lambda: breaker.execute_sync(run)) if breaker else run
    with_retry_sync(operation, retry_options)
