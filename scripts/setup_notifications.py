#!/usr/bin/env python3
"""
collabo-pad - Topic Notification Setup Script

topics 테이블 변경 알림 함수/트리거 설치, 제거, SQL 출력

Usage:
    python scripts/setup_notifications.py setup            # 설치 (멱등)
    python scripts/setup_notifications.py setup --core     # 함수/트리거만 설치
    python scripts/setup_notifications.py teardown         # 제거
    python scripts/setup_notifications.py print-sql --kind migration
"""

import argparse
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from collabo_pad.change_capture.triggers import (  # noqa: E402
    cleanup_triggers,
    generate_complete_notification_setup,
    generate_migration_safe_setup,
    generate_trigger_setup_script,
    setup_topic_notifications,
    teardown_topic_notifications,
)
from collabo_pad.config.app_settings import get_settings  # noqa: E402
from collabo_pad.database.session import create_db_engine  # noqa: E402
from collabo_pad.resilience.circuit_breaker import CircuitBreakerRegistry  # noqa: E402
from collabo_pad.resilience.errors import DatabaseError  # noqa: E402
from collabo_pad.resilience.retry import RetryOptions  # noqa: E402
from collabo_pad.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)

SQL_KINDS = {
    "setup": generate_trigger_setup_script,
    "complete": generate_complete_notification_setup,
    "migration": generate_migration_safe_setup,
    "cleanup": cleanup_triggers,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Topic change notification tooling")
    parser.add_argument("--database-url", help="PostgreSQL URL (기본값: 설정의 DATABASE_URL)")

    sub = parser.add_subparsers(dest="command", required=True)

    setup = sub.add_parser("setup", help="알림 함수/트리거 설치")
    setup.add_argument("--core", action="store_true", help="유틸리티 함수/인덱스/뷰 제외")

    sub.add_parser("teardown", help="알림 트리거/함수 제거")

    print_sql = sub.add_parser("print-sql", help="SQL 스크립트 출력")
    print_sql.add_argument("--kind", choices=sorted(SQL_KINDS), default="complete")
    return parser


def main(argv=None) -> int:
    """명령 실행, 종료 코드 반환"""
    args = build_parser().parse_args(argv)

    if args.command == "print-sql":
        print(SQL_KINDS[args.kind]())
        return 0

    settings = get_settings()
    setup_logging(level=settings.log_level, json_output=settings.log_json)

    engine = create_db_engine(args.database_url)
    breaker = CircuitBreakerRegistry.from_settings(settings).get_or_create("postgres")
    retry_options = RetryOptions.from_settings(settings)

    try:
        if args.command == "setup":
            report = setup_topic_notifications(
                engine,
                include_extras=not args.core,
                breaker=breaker,
                retry_options=retry_options,
            )
            logger.info(f"✅ Setup complete: {report.to_dict()}")
        else:
            teardown_topic_notifications(engine, breaker=breaker, retry_options=retry_options)
            logger.info("✅ Teardown complete")
    except DatabaseError as e:
        logger.error(f"❌ {args.command} failed: [{e.code}] {e.message}")
        return 1
    finally:
        engine.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
