"""
PostgreSQL LISTEN 리스너

psycopg2 autocommit 연결로 topic_channel_* 채널을 LISTEN하고,
수신한 알림을 ChangeEvent로 파싱하여 등록된 ChangeFeed에 전달합니다.

핸들러 예외는 로그로 남기고 리스너 루프로 전파하지 않습니다.
"""

import logging
import select
import threading
from collections import defaultdict
from typing import Dict, List, Optional

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy.engine import make_url

from collabo_pad.change_capture.events import ChangeEvent, ChangeFeed, notification_channel
from collabo_pad.resilience.errors import DatabaseError, ErrorKind

logger = logging.getLogger(__name__)


def to_libpq_dsn(database_url: str) -> str:
    """SQLAlchemy URL(postgresql+psycopg2://...)을 libpq URI로 변환"""
    url = make_url(database_url)
    return url.set(drivername="postgresql").render_as_string(hide_password=False)


class PgNotifyListener:
    """
    topics 변경 알림 리스너

    ## 사용 예시
    ```python
    listener = PgNotifyListener(settings.database_url)
    listener.connect()
    listener.subscribe("general", feed)

    stop = threading.Event()
    listener.run(stop)
    ```
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        connection=None,
        poll_interval: float = 1.0,
    ):
        """
        Args:
            database_url: PostgreSQL URL (connection이 없을 때 사용)
            connection: 이미 생성된 psycopg2 연결 (테스트/공유 연결용)
            poll_interval: select 대기 시간 (초)
        """
        self._database_url = database_url
        self._conn = connection
        self._owns_connection = connection is None
        self._poll_interval = poll_interval
        self._feeds: Dict[str, List[ChangeFeed]] = defaultdict(list)

    def connect(self):
        """LISTEN 전용 autocommit 연결 생성"""
        if self._conn is not None:
            return self._conn
        if not self._database_url:
            raise DatabaseError(
                "Database URL is required for the notification listener",
                ErrorKind.VALIDATION_ERROR,
            )

        conn = psycopg2.connect(to_libpq_dsn(self._database_url))
        conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        self._conn = conn
        self._owns_connection = True
        logger.info("Notification listener connected")
        return conn

    def close(self) -> None:
        """연결 종료 (직접 생성한 연결만 닫음)"""
        if self._conn is None:
            return
        try:
            if self._owns_connection:
                self._conn.close()
                logger.info("Notification listener closed")
        finally:
            self._conn = None
            self._feeds.clear()

    @property
    def channels(self) -> List[str]:
        """LISTEN 중인 알림 채널 목록"""
        return list(self._feeds.keys())

    def _require_connection(self):
        if self._conn is None:
            raise DatabaseError(
                "Notification listener is not connected",
                ErrorKind.CONNECTION_ERROR,
            )
        return self._conn

    def _execute(self, statement) -> None:
        with self._require_connection().cursor() as cursor:
            cursor.execute(statement)

    def subscribe(self, channel_id: str, feed: ChangeFeed) -> str:
        """
        채널 구독

        채널의 첫 구독자일 때만 LISTEN을 실행합니다.

        Returns:
            알림 채널명 (topic_channel_{channel_id})
        """
        channel = notification_channel(channel_id)
        if channel not in self._feeds:
            self._execute(sql.SQL("LISTEN {}").format(sql.Identifier(channel)))
            logger.info(f"Listening on {channel}")
        if feed not in self._feeds[channel]:
            self._feeds[channel].append(feed)
        return channel

    def unsubscribe(self, channel_id: str, feed: ChangeFeed) -> None:
        """채널 구독 해제. 마지막 구독자가 빠지면 UNLISTEN"""
        channel = notification_channel(channel_id)
        feeds = self._feeds.get(channel)
        if not feeds or feed not in feeds:
            return

        feeds.remove(feed)
        if not feeds:
            del self._feeds[channel]
            self._execute(sql.SQL("UNLISTEN {}").format(sql.Identifier(channel)))
            logger.info(f"Stopped listening on {channel}")

    def dispatch(self, channel: str, payload: str) -> int:
        """
        알림 1건을 구독 중인 피드에 전달

        Returns:
            정상 처리한 피드 수
        """
        feeds = list(self._feeds.get(channel, ()))
        if not feeds:
            return 0

        try:
            event = ChangeEvent.from_json(payload)
        except DatabaseError as e:
            logger.warning(f"Dropping malformed notification on {channel}: {e.message}")
            return 0

        delivered = 0
        for feed in feeds:
            try:
                feed.on_row_changed(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Change feed {type(feed).__name__} failed for {event.type.value} {event.id}: {e}",
                    exc_info=True,
                )
        return delivered

    def poll(self, timeout: Optional[float] = None) -> int:
        """
        대기 중인 알림 처리

        Args:
            timeout: select 대기 시간 (None이면 poll_interval)

        Returns:
            처리한 알림 수
        """
        conn = self._require_connection()
        wait = self._poll_interval if timeout is None else timeout

        ready, _, _ = select.select([conn], [], [], wait)
        if not ready:
            return 0

        conn.poll()
        handled = 0
        while conn.notifies:
            notify = conn.notifies.pop(0)
            self.dispatch(notify.channel, notify.payload)
            handled += 1
        return handled

    def run(self, stop_event: threading.Event) -> None:
        """stop_event가 설정될 때까지 poll 반복"""
        self.connect()
        logger.info(f"Notification listener started ({len(self._feeds)} channels)")
        while not stop_event.is_set():
            self.poll()
        logger.info("Notification listener stopped")
