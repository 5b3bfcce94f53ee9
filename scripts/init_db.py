#!/usr/bin/env python3
"""
collabo-pad - Database Initialization Script

topics 테이블 생성 및 변경 알림 트리거 설치

Usage:
    python scripts/init_db.py                  # 테이블 + 알림 설치
    python scripts/init_db.py --skip-notify    # 테이블만 생성
"""

import argparse
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import text  # noqa: E402

from collabo_pad.database.models import Topic  # noqa: E402
from collabo_pad.database.session import create_db_engine, init_db  # noqa: E402
from collabo_pad.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    """데이터베이스 초기화 실행"""
    parser = argparse.ArgumentParser(description="Create topics table and notification trigger")
    parser.add_argument("--database-url", help="PostgreSQL URL (기본값: 설정의 DATABASE_URL)")
    parser.add_argument("--skip-notify", action="store_true", help="알림 함수/트리거 설치 생략")
    args = parser.parse_args(argv)

    setup_logging()
    engine = create_db_engine(args.database_url)
    try:
        logger.info("🔧 데이터베이스 초기화 시작...")

        # 연결 테스트
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info(f"✅ 데이터베이스 연결 성공: {engine.url.render_as_string(hide_password=True)}")

        report = init_db(engine, install_notifications=not args.skip_notify)

        logger.info(f"✅ 데이터베이스 초기화 완료! table={Topic.__tablename__}")
        if report is not None:
            logger.info(f"📋 알림 설치 결과: {report.to_dict()}")
        return 0

    except Exception as e:
        logger.error(f"❌ 데이터베이스 초기화 실패: {e}")
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
