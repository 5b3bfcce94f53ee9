"""
PgNotifyListener 테스트

psycopg2 연결 대신 MockNotifyConnection을 주입합니다.
"""

import json
import threading
from unittest.mock import MagicMock, patch

import pytest

from collabo_pad.change_capture.events import ChangeEvent, ChangeFeed, ChangeType
from collabo_pad.change_capture.listener import PgNotifyListener, to_libpq_dsn
from collabo_pad.resilience.errors import DatabaseError, ErrorKind


class RecordingFeed(ChangeFeed):
    """수신 이벤트 기록용 피드"""

    def __init__(self):
        self.events = []

    def on_row_changed(self, event):
        self.events.append(event)


class BrokenFeed(ChangeFeed):
    def on_row_changed(self, event):
        raise RuntimeError("relay down")


def payload(**overrides):
    event = ChangeEvent(ChangeType.INSERT, "t1", "general", None, 1700000000)
    data = event.to_payload()
    data.update(overrides)
    return json.dumps(data)


@pytest.fixture
def listener(notify_connection):
    return PgNotifyListener(connection=notify_connection, poll_interval=0.01)


@pytest.fixture
def ready_select():
    """select.select가 항상 읽기 가능을 반환하도록 패치"""
    with patch("collabo_pad.change_capture.listener.select.select",
               side_effect=lambda r, w, x, t: (r, [], [])) as mocked:
        yield mocked


class TestSubscribe:
    """구독 / 해제"""

    def test_listen_once_per_channel(self, listener, notify_connection):
        first, second = RecordingFeed(), RecordingFeed()

        channel = listener.subscribe("general", first)
        listener.subscribe("general", second)

        assert channel == "topic_channel_general"
        assert listener.channels == ["topic_channel_general"]
        assert len(notify_connection.statements) == 1
        assert "topic_channel_general" in repr(notify_connection.statements[0])

    def test_unlisten_after_last_feed(self, listener, notify_connection):
        first, second = RecordingFeed(), RecordingFeed()
        listener.subscribe("general", first)
        listener.subscribe("general", second)

        listener.unsubscribe("general", first)
        assert len(notify_connection.statements) == 1

        listener.unsubscribe("general", second)
        assert listener.channels == []
        assert "UNLISTEN" in repr(notify_connection.statements[-1])

    def test_subscribe_requires_connection(self):
        listener = PgNotifyListener("postgresql://localhost/db")
        with pytest.raises(DatabaseError) as exc_info:
            listener.subscribe("general", RecordingFeed())
        assert exc_info.value.kind == ErrorKind.CONNECTION_ERROR

    def test_connect_requires_url(self):
        with pytest.raises(DatabaseError) as exc_info:
            PgNotifyListener().connect()
        assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR


class TestDispatch:
    """알림 전달"""

    def test_poll_dispatches_events(self, listener, notify_connection, ready_select):
        feed = RecordingFeed()
        listener.subscribe("general", feed)
        notify_connection.push("topic_channel_general", payload())
        notify_connection.push("topic_channel_general", payload(type="UPDATE"))

        handled = listener.poll()

        assert handled == 2
        assert [e.type for e in feed.events] == [ChangeType.INSERT, ChangeType.UPDATE]
        assert feed.events[0].id == "t1"

    def test_poll_without_ready_socket(self, listener, notify_connection):
        with patch("collabo_pad.change_capture.listener.select.select", return_value=([], [], [])):
            assert listener.poll() == 0
        assert notify_connection.poll_count == 0

    def test_handler_failure_is_isolated(self, listener):
        good = RecordingFeed()
        listener.subscribe("general", BrokenFeed())
        listener.subscribe("general", good)

        delivered = listener.dispatch("topic_channel_general", payload())

        assert delivered == 1
        assert len(good.events) == 1

    def test_malformed_payload_dropped(self, listener):
        feed = RecordingFeed()
        listener.subscribe("general", feed)

        assert listener.dispatch("topic_channel_general", "{broken") == 0
        assert feed.events == []

    def test_unsubscribed_channel_ignored(self, listener):
        assert listener.dispatch("topic_channel_other", payload()) == 0

    def test_run_until_stopped(self, listener, notify_connection, ready_select):
        feed = RecordingFeed()
        listener.subscribe("general", feed)
        notify_connection.push("topic_channel_general", payload())
        stop = threading.Event()

        def stop_after_first(*args):
            stop.set()
            return ([notify_connection], [], [])

        ready_select.side_effect = stop_after_first
        listener.run(stop)

        assert len(feed.events) == 1


class TestLifecycle:
    """연결 수명"""

    def test_connect_uses_autocommit(self):
        conn = MagicMock()
        with patch("collabo_pad.change_capture.listener.psycopg2.connect", return_value=conn) as connect:
            listener = PgNotifyListener("postgresql+psycopg2://u:p@db:5432/collabo")
            assert listener.connect() is conn

        connect.assert_called_once_with("postgresql://u:p@db:5432/collabo")
        conn.set_isolation_level.assert_called_once()

        listener.close()
        conn.close.assert_called_once()

    def test_injected_connection_not_closed(self, listener, notify_connection):
        listener.close()
        assert not notify_connection.closed

    def test_to_libpq_dsn(self):
        assert to_libpq_dsn("postgresql://u:p@localhost:9198/db") == "postgresql://u:p@localhost:9198/db"
