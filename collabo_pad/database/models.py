"""
collabo-pad - Database Models
SQLAlchemy 2.0 기반 ORM 모델 정의
"""

import uuid
from datetime import datetime

from sqlalchemy import ARRAY, JSON, Column, DateTime, Index, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID

from collabo_pad.database.session import Base


class Topic(Base):
    """
    보드 토픽

    변경 알림 트리거는 id / channel_id / parent_id 만 사용합니다.
    """
    __tablename__ = "topics"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel_id = Column(Text, nullable=False)
    parent_id = Column(UUID(as_uuid=True), nullable=True)  # 부모 토픽 (계층)

    user_id = Column(Text, nullable=False)
    username = Column(Text, nullable=False)
    content = Column(Text, nullable=False)

    # 보드 위 좌표/크기
    x = Column(Numeric(10, 2), nullable=True)
    y = Column(Numeric(10, 2), nullable=True)
    w = Column(Numeric(10, 2), nullable=True)
    h = Column(Numeric(10, 2), nullable=True)

    metadata_ = Column("metadata", JSON, nullable=True)
    tags = Column(ARRAY(Text), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_topics_channel_id", "channel_id"),
        Index("idx_topics_parent_id", "parent_id"),
        Index("idx_topics_user_id", "user_id"),
        Index("idx_topics_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<Topic(id={self.id}, channel_id={self.channel_id}, parent_id={self.parent_id})>"
