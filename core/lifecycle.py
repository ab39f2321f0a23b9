"""
Binlog reader lifecycle.

Wires filter construction, the authority check, start position resolution,
the event sink and the binlog client together, and snapshots checkpoints.

State machine:

    IDLE -> AUTHORITY_CHECKED -> STREAMING -> STOPPED
    IDLE -> FAILED, AUTHORITY_CHECKED -> FAILED, STREAMING -> FAILED
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

from core.authority import AuthorityChecker
from core.error_sanitizer import sanitize_for_log
from core.event_sink import DEFAULT_POLL_INTERVAL_MS, EventSink
from core.exceptions import BinlogReaderException, StreamFault
from core.filters import build_table_filter, database_from_jdbc_url
from core.models import (
    BinlogConfig,
    CheckpointState,
    LifecycleState,
    Position,
    TableFilterSpec,
)
from core.position import JournalValidator, PositionResolver
from sources.base import BaseBinlogClient, BinlogClientSettings

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., BaseBinlogClient]


def _default_client_factory(settings, sink, position_observer, alarm_observer):
    from sources.mysql import MySQLBinlogClient

    return MySQLBinlogClient(settings, sink, position_observer, alarm_observer)


def _default_journal_validator(config: BinlogConfig) -> JournalValidator:
    from sources.mysql import BinlogJournalValidator

    return BinlogJournalValidator(
        config.host, config.port, config.username, config.password
    )


class LifecycleController:
    """
    Drives one binlog reader from preflight checks to shutdown.

    The consumer thread calls `next()`; the binlog client's delivery thread
    feeds the event sink. Nothing else is shared between the two.
    """

    def __init__(
        self,
        config: BinlogConfig,
        checkpoint: Optional[CheckpointState] = None,
        restore_enabled: bool = True,
        split_index: int = 0,
        client_factory: Optional[ClientFactory] = None,
        journal_validator: Optional[JournalValidator] = None,
        authority_checker: Optional[AuthorityChecker] = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ):
        """
        Initialize lifecycle controller.

        Args:
            config: Reader configuration
            checkpoint: Checkpoint restored by the task, if any
            restore_enabled: Whether checkpoints are produced
            split_index: Index of the split this controller serves
            client_factory: Builds the binlog client (settings, sink, observers)
            journal_validator: Checks binlog file existence on resume
            authority_checker: Preflight permission checker
            poll_interval_ms: Wake-up interval of blocking sink calls
        """
        self._config = config
        self._checkpoint = checkpoint
        self._restore_enabled = restore_enabled
        self._split_index = split_index
        self._client_factory = client_factory or _default_client_factory
        self._journal_validator = journal_validator
        self._authority_checker = authority_checker or AuthorityChecker(config)
        self._poll_interval_ms = poll_interval_ms

        self._state = LifecycleState.IDLE
        self._state_lock = threading.Lock()
        self._ready = threading.Event()

        self._table_filter: Optional[TableFilterSpec] = None
        self._start_position: Optional[Position] = None
        self._sink: Optional[EventSink] = None
        self._client: Optional[BaseBinlogClient] = None
        self._last_error: Optional[BaseException] = None
        self._logger = logging.getLogger(f"{__name__}.Split_{split_index}")

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def split_index(self) -> int:
        return self._split_index

    @property
    def table_filter(self) -> Optional[TableFilterSpec]:
        return self._table_filter

    @property
    def start_position(self) -> Optional[Position]:
        return self._start_position

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def client(self) -> Optional[BaseBinlogClient]:
        return self._client

    def _transition(self, target: LifecycleState) -> None:
        with self._state_lock:
            self._logger.info(f"State {self._state.value} -> {target.value}")
            self._state = target

    def _fail(self, error: BaseException) -> None:
        self._last_error = error
        self._transition(LifecycleState.FAILED)
        self._ready.set()

    def prepare(self) -> TableFilterSpec:
        """
        Build the table filter and run the authority check.

        Moves IDLE -> AUTHORITY_CHECKED.
        """
        if self._state != LifecycleState.IDLE:
            raise BinlogReaderException(
                f"Cannot prepare reader in state {self._state.value}"
            )

        self._logger.info("binlog configure...")
        try:
            if self._config.jdbc_url:
                database = database_from_jdbc_url(self._config.jdbc_url)
                table_filter = build_table_filter(database, self._config.tables)
                if self._config.tables:
                    self._authority_checker.check(None, table_filter.probe_targets)
                else:
                    self._authority_checker.check(database, None)
            else:
                self._logger.warning(
                    "No jdbcUrl configured, skipping table filter and authority check"
                )
                table_filter = TableFilterSpec(filter="", probe_targets=[])
        except Exception as e:
            self._fail(e)
            raise

        self._table_filter = table_filter
        self._transition(LifecycleState.AUTHORITY_CHECKED)
        return table_filter

    def open(self) -> None:
        """
        Run the preflight checks and start streaming.

        Moves IDLE -> AUTHORITY_CHECKED -> STREAMING, or to FAILED on error.
        """
        if self._state == LifecycleState.IDLE:
            self.prepare()

        if self._state != LifecycleState.AUTHORITY_CHECKED:
            raise BinlogReaderException(
                f"Cannot open reader in state {self._state.value}"
            )

        self._logger.info(f"binlog open split number:{self._split_index} start...")
        self._logger.info(f"binlog config:{self._config!r}")

        try:
            validator = self._journal_validator or _default_journal_validator(self._config)
            resolver = PositionResolver(validator)
            self._start_position = resolver.resolve(self._checkpoint, self._config.start)

            self._sink = EventSink(
                capacity=self._config.buffer_size,
                categories=self._config.categories,
                paving_data=self._config.paving_data,
                initial_position=self._start_position,
                poll_interval_ms=self._poll_interval_ms,
            )

            self._client = self._client_factory(
                self._client_settings(),
                self._sink,
                self._sink.advance_position,
                self.on_alarm,
            )
            self._client.start()
        except Exception as e:
            self._logger.error(f"Failed to start binlog reader: {sanitize_for_log(e)}")
            if self._sink is not None:
                self._sink.close()
            self._fail(e)
            raise

        self._transition(LifecycleState.STREAMING)
        self._ready.set()

    def _client_settings(self) -> BinlogClientSettings:
        cfg = self._config
        return BinlogClientSettings(
            host=cfg.host,
            port=cfg.port,
            username=cfg.username,
            password=cfg.password,
            server_id=cfg.slave_id,
            charset=cfg.mysql_charset,
            gtid_mode=cfg.gtid_mode,
            filter_regex=self._table_filter.filter if self._table_filter else None,
            start_position=self._start_position,
            detecting_enable=cfg.detecting_enable,
            detecting_sql=cfg.detecting_sql,
            enable_tsdb=cfg.enable_tsdb,
            parallel=cfg.parallel,
            buffer_size=cfg.buffer_size,
            parallel_thread_size=cfg.parallel_thread_size,
        )

    def on_alarm(self, message: str) -> None:
        """Alarm observer handed to the binlog client."""
        self._logger.error(f"binlog alarm: {message}")

    def next(self, timeout: Optional[float] = None) -> Optional[dict[str, Any]]:
        """
        Return the next change record.

        Blocks until the reader is streaming; a reader that never streams
        (non-zero split) blocks until it is closed.

        Args:
            timeout: Optional maximum wait in seconds for the next event

        Returns:
            The next record, or None once the reader is closed (or on timeout)

        Raises:
            StreamFault: If the binlog client failed
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self._ready.wait(timeout):
            return None

        if self._state == LifecycleState.FAILED and self._last_error is not None:
            if isinstance(self._last_error, StreamFault):
                raise self._last_error
            return None

        if self._sink is None:
            return None

        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        try:
            return self._sink.take_record(remaining)
        except StreamFault as e:
            self._fail(e)
            raise

    def ack(self) -> None:
        """Mark the record last returned by `next()` as handled."""
        if self._sink is not None:
            self._sink.ack()

    def reached_end(self) -> bool:
        """A binlog stream never ends."""
        return False

    def checkpoint(self) -> Optional[CheckpointState]:
        """
        Snapshot the position of the last handled event.

        Events still queued or not yet acknowledged are never covered.

        Returns:
            CheckpointState, or None when checkpointing is disabled or the
            reader never streamed
        """
        if not self._restore_enabled:
            self._logger.debug("return None for checkpoint state")
            return None

        if self._sink is None:
            return None

        return CheckpointState(position=self._sink.checkpoint_position)

    def close(self) -> None:
        """
        Release the sink and stop the binlog client.

        The sink is closed first so a delivery thread blocked on a full
        queue is released before the client joins it.

        Safe to call in any state and more than once.
        """
        if self._sink is not None:
            self._sink.close()

        client, self._client = self._client, None
        if client is not None:
            client.stop()
            self._logger.info(
                f"binlog close, position:{self._sink.checkpoint_position if self._sink else None}"
            )

        if self._state not in (LifecycleState.STOPPED, LifecycleState.FAILED):
            self._transition(LifecycleState.STOPPED)

        self._ready.set()
