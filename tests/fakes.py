"""Test doubles for the binlog reader tests."""

import time
from unittest.mock import MagicMock

import pymysql

from core.models import ChangeEvent, EventType, Position
from sources.base import BaseBinlogClient


class FakeBinlogClient(BaseBinlogClient):
    """In-memory binlog client; tests drive it through `emit`."""

    def __init__(self, settings, sink, position_observer, alarm_observer):
        super().__init__(settings, sink, position_observer, alarm_observer)
        self.start_calls = 0
        self.stop_calls = 0
        self._running = False

    def start(self) -> None:
        self.start_calls += 1
        self._running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self._running = False

    def is_running(self) -> bool:
        return self._running

    def emit(self, event: ChangeEvent) -> None:
        """Deliver one event the way a real client does: push, then advance."""
        self._sink.push(event)
        self._position_observer(event.position)


class FakeClientFactory:
    """Client factory recording every client it builds."""

    def __init__(self):
        self.clients: list[FakeBinlogClient] = []

    def __call__(self, settings, sink, position_observer, alarm_observer):
        client = FakeBinlogClient(settings, sink, position_observer, alarm_observer)
        self.clients.append(client)
        return client


class FakeJournalValidator:
    """Journal validator backed by a fixed set of binlog file names."""

    def __init__(self, journals=("mysql-bin.000001",)):
        self.journals = set(journals)
        self.checked: list[str] = []

    def exists(self, journal_name: str) -> bool:
        self.checked.append(journal_name)
        return journal_name in self.journals


def make_event(offset: int, event_type: EventType = EventType.INSERT, **after) -> ChangeEvent:
    return ChangeEvent(
        event_type=event_type,
        schema="shop",
        table="orders",
        after=after or {"id": offset},
        timestamp=1700000000000 + offset,
        position=Position(journal_name="mysql-bin.000001", offset=offset),
    )


def make_connection(execute_side_effect=None, fetchone=None):
    """Mock pymysql connection whose cursor runs `execute_side_effect`."""
    cursor = MagicMock()
    cursor.execute.side_effect = execute_side_effect
    cursor.fetchall.return_value = ()
    cursor.fetchone.return_value = fetchone

    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn, cursor


def denied(table: str) -> pymysql.err.OperationalError:
    return pymysql.err.OperationalError(
        1142, f"SELECT command denied to user 'reader'@'%' for table '{table}'"
    )




def wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False
