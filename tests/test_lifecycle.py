"""Unit tests for the reader lifecycle controller."""

import dataclasses
import threading
import time

import pytest

from core.exceptions import (
    BinlogReaderException,
    ConfigurationError,
    StreamFault,
    TablePermissionError,
)
from core.lifecycle import LifecycleController
from core.models import CheckpointState, LifecycleState, Position
from tests.fakes import FakeJournalValidator, make_event


@pytest.fixture
def make_controller(binlog_config, client_factory, journal_validator, authority_checker):
    def factory(config=None, **kwargs):
        options = {
            "client_factory": client_factory,
            "journal_validator": journal_validator,
            "authority_checker": authority_checker,
            "poll_interval_ms": 10,
        }
        options.update(kwargs)
        return LifecycleController(config or binlog_config, **options)

    return factory


class TestPrepare:
    def test_tables_are_probed(self, make_controller, authority_checker):
        controller = make_controller()

        table_filter = controller.prepare()

        assert table_filter.filter == "shop.orders"
        authority_checker.check.assert_called_once_with(None, ["shop.orders"])
        assert controller.state == LifecycleState.AUTHORITY_CHECKED

    def test_whole_database_probes_schema(self, make_controller, binlog_config, authority_checker):
        config = dataclasses.replace(binlog_config, tables=())
        controller = make_controller(config)

        table_filter = controller.prepare()

        assert table_filter.filter == "shop\\..*"
        authority_checker.check.assert_called_once_with("shop", None)

    def test_without_jdbc_url(self, make_controller, binlog_config, authority_checker):
        config = dataclasses.replace(binlog_config, jdbc_url=None)
        controller = make_controller(config)

        table_filter = controller.prepare()

        assert table_filter.filter == ""
        authority_checker.check.assert_not_called()

    def test_authority_failure(self, make_controller, authority_checker, client_factory):
        authority_checker.check.side_effect = TablePermissionError("denied", ["shop.orders"])
        controller = make_controller()

        with pytest.raises(TablePermissionError):
            controller.open()

        assert controller.state == LifecycleState.FAILED
        assert client_factory.clients == []

    def test_malformed_jdbc_url(self, make_controller, binlog_config):
        controller = make_controller(dataclasses.replace(binlog_config, jdbc_url="jdbc:mysql://h"))

        with pytest.raises(ConfigurationError):
            controller.prepare()

        assert controller.state == LifecycleState.FAILED


class TestOpen:
    def test_open_starts_client(self, make_controller, client_factory):
        controller = make_controller()

        controller.open()

        assert controller.state == LifecycleState.STREAMING
        assert len(client_factory.clients) == 1
        client = client_factory.clients[0]
        assert client.start_calls == 1
        assert client.settings.filter_regex == "shop.orders"
        assert client.settings.server_id == 4242
        assert client.settings.start_position is None
        controller.close()

    def test_missing_checkpoint_journal(self, make_controller, client_factory):
        checkpoint = CheckpointState(Position(journal_name="bin.000005", offset=4096))
        controller = make_controller(
            checkpoint=checkpoint, journal_validator=FakeJournalValidator(journals=())
        )

        with pytest.raises(ConfigurationError, match="bin.000005"):
            controller.open()

        assert controller.state == LifecycleState.FAILED
        assert client_factory.clients == []

    def test_resumes_from_checkpoint(self, make_controller, binlog_config, client_factory):
        checkpointed = Position(journal_name="mysql-bin.000001", offset=4096)
        config = dataclasses.replace(
            binlog_config, start={"journalName": "mysql-bin.000001", "position": 4}
        )
        controller = make_controller(config, checkpoint=CheckpointState(checkpointed))

        controller.open()

        assert controller.start_position == checkpointed
        assert client_factory.clients[0].settings.start_position == checkpointed
        assert controller.checkpoint() == CheckpointState(checkpointed)
        controller.close()

    def test_open_twice_is_rejected(self, make_controller):
        controller = make_controller()
        controller.open()

        with pytest.raises(BinlogReaderException):
            controller.open()

        controller.close()


class TestStreaming:
    def test_next_returns_records_and_checkpoint_follows(self, make_controller, client_factory):
        controller = make_controller()
        controller.open()
        client = client_factory.clients[0]

        for offset in (120, 240, 360):
            client.emit(make_event(offset))

        records = [controller.next(timeout=1) for _ in range(3)]

        assert [r["after"]["id"] for r in records] == [120, 240, 360]
        assert controller.checkpoint().position.offset == 240
        controller.ack()
        assert controller.checkpoint().position.offset == 360
        assert controller.reached_end() is False
        controller.close()

    def test_checkpoint_excludes_unhandled_events(self, make_controller, client_factory):
        controller = make_controller()
        controller.open()
        client = client_factory.clients[0]

        for offset in range(100, 106):
            client.emit(make_event(offset))
        assert controller.next(timeout=1)["after"]["id"] == 100
        controller.ack()
        controller.close()

        assert controller.checkpoint().position.offset == 100

    def test_next_timeout_is_not_extended(self, make_controller):
        controller = make_controller(poll_interval_ms=2000)
        controller.open()

        started = time.monotonic()
        assert controller.next(timeout=0.1) is None

        assert time.monotonic() - started < 1
        controller.close()

    def test_checkpoint_disabled(self, make_controller, client_factory):
        controller = make_controller(restore_enabled=False)
        controller.open()
        client_factory.clients[0].emit(make_event(120))

        assert controller.checkpoint() is None
        controller.close()

    def test_stream_fault(self, make_controller, client_factory):
        controller = make_controller()
        controller.open()
        client_factory.clients[0]._sink.fail(StreamFault("Binlog stream failed: lost"))

        with pytest.raises(StreamFault):
            controller.next(timeout=1)

        assert controller.state == LifecycleState.FAILED
        with pytest.raises(StreamFault):
            controller.next(timeout=1)
        controller.close()


class TestClose:
    def test_close_is_idempotent(self, make_controller, client_factory):
        controller = make_controller()
        controller.open()

        controller.close()
        controller.close()

        assert client_factory.clients[0].stop_calls == 1
        assert controller.state == LifecycleState.STOPPED

    def test_sink_closed_before_client_stops(self, make_controller, client_factory):
        controller = make_controller()
        controller.open()
        client = client_factory.clients[0]
        sink_closed_at_stop = []
        client.stop = lambda: sink_closed_at_stop.append(client._sink.closed)

        controller.close()

        assert sink_closed_at_stop == [True]

    def test_close_before_open(self, make_controller):
        controller = make_controller()

        controller.close()

        assert controller.state == LifecycleState.STOPPED
        assert controller.next(timeout=0.1) is None

    def test_close_releases_blocked_next(self, make_controller):
        controller = make_controller()
        result = []

        consumer = threading.Thread(target=lambda: result.append(controller.next()))
        consumer.start()
        assert consumer.is_alive()

        controller.close()
        consumer.join(timeout=2)

        assert not consumer.is_alive()
        assert result == [None]

    def test_close_releases_streaming_next(self, make_controller):
        controller = make_controller()
        controller.open()
        result = []

        consumer = threading.Thread(target=lambda: result.append(controller.next()))
        consumer.start()

        controller.close()
        consumer.join(timeout=2)

        assert result == [None]
