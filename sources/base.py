"""
Abstract base class for binlog clients.

Provides the interface the lifecycle controller drives: a client is built with
its settings, an event sink and two observers, then started and stopped.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional
import logging

from core.event_sink import EventSink
from core.models import Position

logger = logging.getLogger(__name__)

# Called with the position following each delivered event
PositionObserver = Callable[[Position], None]

# Called with a human-readable message when the client hits a problem
AlarmObserver = Callable[[str], None]


@dataclass(frozen=True)
class BinlogClientSettings:
    """Everything a binlog client needs to connect and filter."""

    host: str
    port: int
    username: str
    password: str
    server_id: int
    charset: str = "utf8mb4"
    gtid_mode: bool = False
    filter_regex: Optional[str] = None
    start_position: Optional[Position] = None
    detecting_enable: bool = False
    detecting_sql: str = "SELECT 1"
    enable_tsdb: bool = True
    parallel: bool = True
    buffer_size: int = 256
    parallel_thread_size: int = 2


class BaseBinlogClient(ABC):
    """
    Abstract base class for binlog clients.

    Implementations decode the binlog wire protocol, push ChangeEvents into
    the sink, report positions to the position observer and report faults
    through the alarm observer and `EventSink.fail`.
    """

    def __init__(
        self,
        settings: BinlogClientSettings,
        sink: EventSink,
        position_observer: PositionObserver,
        alarm_observer: AlarmObserver,
    ):
        """
        Initialize base client.

        Args:
            settings: Connection, filter and start settings
            sink: Event sink receiving decoded change events
            position_observer: Receives the position after each event
            alarm_observer: Receives alarm messages
        """
        self._settings = settings
        self._sink = sink
        self._position_observer = position_observer
        self._alarm_observer = alarm_observer
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def settings(self) -> BinlogClientSettings:
        """Get client settings."""
        return self._settings

    @abstractmethod
    def start(self) -> None:
        """
        Start streaming in the background.

        Returns once the delivery thread is running.
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """
        Stop streaming.

        Must be idempotent.
        """
        pass

    @abstractmethod
    def is_running(self) -> bool:
        """
        Check whether the client is streaming.

        Returns:
            True while the delivery thread is alive
        """
        pass
