"""
데이터베이스 세션 / 모델 테스트
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from collabo_pad.database import session as db_session
from collabo_pad.database.models import Topic
from collabo_pad.database.session import Base, init_db


class TestTopicModel:
    """topics 테이블 정의"""

    def test_trigger_columns(self):
        columns = Topic.__table__.columns

        assert Topic.__tablename__ == "topics"
        assert columns["id"].primary_key
        assert not columns["channel_id"].nullable
        assert columns["parent_id"].nullable

    def test_metadata_column_name(self):
        """metadata는 Declarative 예약어라 속성명은 metadata_"""
        assert "metadata" in Topic.__table__.columns
        assert Topic.__table__.columns["metadata"] is Topic.metadata_.property.columns[0]

    def test_postgres_ddl(self):
        ddl = str(CreateTable(Topic.__table__).compile(dialect=postgresql.dialect()))

        assert "id UUID NOT NULL" in ddl
        assert "tags TEXT[]" in ddl
        assert "x NUMERIC(10, 2)" in ddl

    def test_registered_in_metadata(self):
        assert "topics" in Base.metadata.tables


class TestInitDb:
    """init_db()"""

    def test_creates_tables_and_installs_notifications(self):
        engine = MagicMock()
        with patch.object(Base.metadata, "create_all") as create_all, \
                patch("collabo_pad.change_capture.triggers.setup_topic_notifications",
                      return_value="report") as setup:
            result = init_db(engine)

        create_all.assert_called_once_with(bind=engine)
        setup.assert_called_once_with(engine)
        assert result == "report"

    def test_skip_notifications(self):
        engine = MagicMock()
        with patch.object(Base.metadata, "create_all"), \
                patch("collabo_pad.change_capture.triggers.setup_topic_notifications") as setup:
            assert init_db(engine, install_notifications=False) is None

        setup.assert_not_called()


class TestEngine:
    """공유 엔진"""

    @pytest.fixture(autouse=True)
    def reset_engine(self):
        db_session.dispose_engine()
        yield
        db_session.dispose_engine()

    def test_engine_from_settings(self):
        with patch("collabo_pad.database.session.create_engine") as create_engine:
            engine = db_session.get_engine()

        assert engine is create_engine.return_value
        assert db_session.get_engine() is engine
        url = create_engine.call_args.args[0]
        assert url.startswith("postgresql://")
        assert create_engine.call_args.kwargs["pool_pre_ping"] is True

    def test_session_closed(self):
        with patch("collabo_pad.database.session.create_engine"), \
                patch("collabo_pad.database.session.sessionmaker") as sessionmaker:
            generator = db_session.get_db_session()
            session = next(generator)
            generator.close()

        assert session is sessionmaker.return_value.return_value
        session.close.assert_called_once()
