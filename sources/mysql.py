"""
MySQL binlog client implementation.

Streams row events with pymysqlreplication in a background thread, converts
them into ChangeEvents and pushes them into the event sink.

The MySQL server must run with:
- log_bin = ON
- binlog_format = ROW
- binlog_row_image = FULL

The reader account needs REPLICATION SLAVE and REPLICATION CLIENT.
"""

import logging
import re
import threading
from typing import Any, Callable, Optional

import pymysql
from pymysqlreplication import BinLogStreamReader
from pymysqlreplication.event import GtidEvent, XidEvent
from pymysqlreplication.gtid import Gtid, GtidSet
from pymysqlreplication.row_event import (
    DeleteRowsEvent,
    UpdateRowsEvent,
    WriteRowsEvent,
)

from core.database import connect_with_retry
from core.error_sanitizer import sanitize_for_log
from core.exceptions import ConfigurationError, StreamFault
from core.models import ChangeEvent, EventType, Position
from sources.base import BaseBinlogClient, BinlogClientSettings

logger = logging.getLogger(__name__)

# First event offset of every binlog file (after the magic header)
BINLOG_START_OFFSET = 4

DETECTING_INTERVAL_SECONDS = 3

STOP_JOIN_TIMEOUT_SECONDS = 10


def _connection_settings(
    host: str, port: int, username: str, password: str, charset: str = "utf8mb4"
) -> dict[str, Any]:
    return {
        "host": host,
        "port": port,
        "user": username,
        "password": password,
        "charset": charset,
    }


def list_binary_logs(connect: Callable[[], Any]) -> list[str]:
    """Return the binlog file names currently present on the server, oldest first."""
    conn = connect_with_retry(connect, description="MySQL binlog index")
    try:
        with conn.cursor() as cursor:
            cursor.execute("SHOW BINARY LOGS")
            return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()


class BinlogJournalValidator:
    """Checks binlog file existence with SHOW BINARY LOGS."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        connect: Optional[Callable[[], Any]] = None,
    ):
        self._host = host
        self._port = port
        if connect is None:
            settings = _connection_settings(host, port, username, password)

            def connect():
                return pymysql.connect(connect_timeout=10, **settings)

        self._connect = connect

    def exists(self, journal_name: str) -> bool:
        """
        Check whether `journal_name` is still available on the server.

        Raises:
            ConfigurationError: If the binlog index cannot be read
        """
        try:
            journals = list_binary_logs(self._connect)
        except pymysql.MySQLError as e:
            raise ConfigurationError(
                f"Unable to list binary logs on {self._host}:{self._port}: {sanitize_for_log(e)}",
                {"journal_name": journal_name},
            ) from e

        found = journal_name in journals
        if not found:
            logger.error(
                f"Binlog file {journal_name} not found on {self._host}:{self._port}, "
                f"available: {journals}"
            )
        return found


class TableRegexFilter:
    """
    Comma-separated regex filter matched against `schema.table`.

    Matching is case-insensitive and must cover the whole qualified name.
    """

    def __init__(self, filter_regex: Optional[str]):
        self._source = filter_regex or ""
        self._patterns = [
            re.compile(p.strip(), re.IGNORECASE)
            for p in self._source.split(",")
            if p.strip()
        ]

    def __bool__(self) -> bool:
        return bool(self._patterns)

    def matches(self, schema: str, table: str) -> bool:
        if not self._patterns:
            return True
        name = f"{schema}.{table}"
        return any(p.fullmatch(name) for p in self._patterns)


class MySQLBinlogClient(BaseBinlogClient):
    """
    Binlog client backed by pymysqlreplication.

    Starts from the given position (journal/offset, timestamp or GTID set) or
    from the server's current head, and streams until stopped or failed.
    """

    ROW_EVENTS = {
        WriteRowsEvent: EventType.INSERT,
        UpdateRowsEvent: EventType.UPDATE,
        DeleteRowsEvent: EventType.DELETE,
    }

    def __init__(self, settings: BinlogClientSettings, sink, position_observer, alarm_observer):
        super().__init__(settings, sink, position_observer, alarm_observer)
        self._filter = TableRegexFilter(settings.filter_regex)
        self._stream: Optional[BinLogStreamReader] = None
        self._thread: Optional[threading.Thread] = None
        self._detect_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        # Committed transactions only; the open transaction is kept apart
        self._executed = self._restored_gtid_set(settings.start_position)
        self._pending_gtid: Optional[Gtid] = None

    @staticmethod
    def _restored_gtid_set(position: Optional[Position]) -> GtidSet:
        text = position.gtid if position else None
        try:
            return GtidSet(text)
        except ValueError as e:
            raise ConfigurationError(f"Invalid GTID set: {text!r}", {"gtid": text}) from e

    def _connect(self):
        s = self._settings
        return pymysql.connect(
            connect_timeout=10,
            **_connection_settings(s.host, s.port, s.username, s.password, s.charset),
        )

    def _stream_arguments(self) -> dict[str, Any]:
        """Translate the start position into BinLogStreamReader arguments."""
        s = self._settings
        only_events = list(self.ROW_EVENTS)
        if s.gtid_mode:
            only_events.extend([GtidEvent, XidEvent])

        kwargs: dict[str, Any] = {
            "connection_settings": _connection_settings(
                s.host, s.port, s.username, s.password, s.charset
            ),
            "server_id": s.server_id,
            "blocking": True,
            "resume_stream": True,
            "only_events": only_events,
        }

        position = s.start_position
        if position is None:
            return kwargs

        if s.gtid_mode and position.gtid:
            kwargs["auto_position"] = position.gtid
        elif position.journal_name:
            kwargs["log_file"] = position.journal_name
            kwargs["log_pos"] = max(position.offset, BINLOG_START_OFFSET)
        elif position.timestamp:
            # Resolve by time: read from the oldest journal and skip older events
            journals = list_binary_logs(self._connect)
            if not journals:
                raise ConfigurationError("No binary logs exist on the server")
            kwargs["log_file"] = journals[0]
            kwargs["log_pos"] = BINLOG_START_OFFSET
            kwargs["skip_to_timestamp"] = position.timestamp / 1000

        return kwargs

    def start(self) -> None:
        with self._lock:
            if self.is_running():
                self._logger.warning("Binlog client already running")
                return

            s = self._settings
            if s.parallel or not s.enable_tsdb:
                self._logger.debug(
                    f"parallel={s.parallel}, bufferSize={s.buffer_size}, "
                    f"parallelThreadSize={s.parallel_thread_size}, enableTsdb={s.enable_tsdb} "
                    f"are not used by the pymysqlreplication client"
                )

            self._stop_event.clear()
            self._stream = BinLogStreamReader(**self._stream_arguments())
            self._thread = threading.Thread(
                target=self._run, name=f"binlog-client-{s.server_id}", daemon=True
            )
            self._thread.start()

            if s.detecting_enable:
                self._detect_thread = threading.Thread(
                    target=self._detect, name=f"binlog-detect-{s.server_id}", daemon=True
                )
                self._detect_thread.start()

            self._logger.info(
                f"Binlog client started on {s.host}:{s.port} (server_id={s.server_id}, "
                f"filter={s.filter_regex!r}, start={s.start_position})"
            )

    def _run(self) -> None:
        stream = self._stream
        try:
            for binlog_event in stream:
                if self._stop_event.is_set():
                    break

                if isinstance(binlog_event, GtidEvent):
                    self._begin_transaction(binlog_event.gtid)
                    continue

                if isinstance(binlog_event, XidEvent):
                    self._commit_transaction(stream, binlog_event)
                    continue

                if not self._handle_rows_event(stream, binlog_event):
                    break
        except Exception as e:
            if self._stop_event.is_set():
                self._logger.debug(f"Binlog stream closed during stop: {sanitize_for_log(e)}")
            else:
                message = f"Binlog stream failed: {sanitize_for_log(e)}"
                self._alarm_observer(message)
                self._sink.fail(StreamFault(message, {"error_type": type(e).__name__}))
        finally:
            self._close_stream()
            self._logger.info("Binlog client delivery thread exited")

    def _event_type(self, binlog_event) -> Optional[EventType]:
        for event_class, event_type in self.ROW_EVENTS.items():
            if isinstance(binlog_event, event_class):
                return event_type
        return None

    def _handle_rows_event(self, stream: BinLogStreamReader, binlog_event) -> bool:
        event_type = self._event_type(binlog_event)
        if event_type is None:
            return True

        position = Position(
            journal_name=stream.log_file or "",
            offset=binlog_event.packet.log_pos,
            timestamp=int(binlog_event.timestamp * 1000),
            gtid=self._gtid_text(),
            server_id=binlog_event.packet.server_id,
        )

        if self._filter.matches(binlog_event.schema, binlog_event.table):
            for row in binlog_event.rows:
                if event_type == EventType.UPDATE:
                    before, after = row.get("before_values", {}), row.get("after_values", {})
                elif event_type == EventType.INSERT:
                    before, after = {}, row.get("values", {})
                else:
                    before, after = row.get("values", {}), {}

                event = ChangeEvent(
                    event_type=event_type,
                    schema=binlog_event.schema,
                    table=binlog_event.table,
                    before=before,
                    after=after,
                    timestamp=position.timestamp,
                    position=position,
                )
                if not self._sink.push(event):
                    return False

        self._position_observer(position)
        return True

    def _begin_transaction(self, gtid: str) -> None:
        """
        Open the transaction `uuid:N`.

        N joins the executed set only once the transaction commits. A source
        UUID seen for the first time is assumed executed up to N-1.
        """
        self._flush_pending_gtid()
        try:
            pending = Gtid(gtid)
        except ValueError:
            self._logger.warning(f"Ignoring malformed GTID {gtid!r}")
            return

        number = pending.intervals[0][0]
        if number > 1 and all(g.sid != pending.sid for g in self._executed.gtids):
            self._executed = self._executed + Gtid(f"{pending.sid}:1-{number - 1}")
        self._pending_gtid = pending

    def _flush_pending_gtid(self) -> None:
        # DDL transactions end without an XID; the next GTID closes them
        pending, self._pending_gtid = self._pending_gtid, None
        if pending is not None and pending not in self._executed:
            self._executed = self._executed + pending

    def _gtid_text(self) -> Optional[str]:
        return str(self._executed) or None

    def _commit_transaction(self, stream: BinLogStreamReader, binlog_event) -> None:
        self._flush_pending_gtid()
        self._position_observer(
            Position(
                journal_name=stream.log_file or "",
                offset=binlog_event.packet.log_pos,
                timestamp=int(binlog_event.timestamp * 1000),
                gtid=self._gtid_text(),
                server_id=binlog_event.packet.server_id,
            )
        )

    def _detect(self) -> None:
        """Periodically run the detecting SQL and raise an alarm when it fails."""
        sql = self._settings.detecting_sql
        while not self._stop_event.wait(DETECTING_INTERVAL_SECONDS):
            try:
                conn = self._connect()
                try:
                    with conn.cursor() as cursor:
                        cursor.execute(sql)
                        cursor.fetchall()
                finally:
                    conn.close()
            except (pymysql.MySQLError, OSError) as e:
                self._alarm_observer(f"Detecting SQL '{sql}' failed: {sanitize_for_log(e)}")

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.close()
        except Exception as e:
            self._logger.debug(f"Error closing binlog stream: {sanitize_for_log(e)}")

    def stop(self) -> None:
        with self._lock:
            if self._stop_event.is_set() and not self.is_running():
                return
            self._stop_event.set()
            self._close_stream()

            for thread in (self._thread, self._detect_thread):
                if thread is not None and thread is not threading.current_thread():
                    thread.join(timeout=STOP_JOIN_TIMEOUT_SECONDS)

            self._thread = None
            self._detect_thread = None
            self._logger.info("Binlog client stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
