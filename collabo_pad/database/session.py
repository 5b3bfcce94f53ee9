"""
collabo-pad - Database Configuration
PostgreSQL 엔진/세션 설정
"""

import logging
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from collabo_pad.config.app_settings import get_settings

logger = logging.getLogger(__name__)

# Base 모델
Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    엔진 생성

    Args:
        database_url: PostgreSQL URL (None이면 설정값)
    """
    url = database_url or get_settings().database_url
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,
        echo=False,
    )


def get_engine() -> Engine:
    """공유 엔진 (최초 호출 시 생성)"""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """공유 SessionFactory"""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine(),
        )
    return _session_factory


def get_db_session() -> Iterator[Session]:
    """
    데이터베이스 세션 생성 (Dependency Injection용)

    Yields:
        Session: SQLAlchemy 세션
    """
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None, install_notifications: bool = True):
    """
    데이터베이스 초기화
    - 테이블 생성
    - topics 변경 알림 함수/트리거 설치 (멱등)
    """
    from collabo_pad.change_capture.triggers import setup_topic_notifications
    from collabo_pad.database.models import Topic  # noqa: F401  (메타데이터 등록)

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    if install_notifications:
        return setup_topic_notifications(engine)
    return None


def dispose_engine() -> None:
    """공유 엔진 정리"""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
