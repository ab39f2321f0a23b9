"""
Data models for the binlog reader.

Dataclass representations of the reader configuration, binlog coordinates,
checkpoint state and change events.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from core.exceptions import ConfigurationError


class EventType(str, Enum):
    """Row change operation kind."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class LifecycleState(str, Enum):
    """Reader lifecycle state."""
    IDLE = "IDLE"
    AUTHORITY_CHECKED = "AUTHORITY_CHECKED"
    STREAMING = "STREAMING"
    STOPPED = "STOPPED"
    FAILED = "FAILED"


# Java charset names used in job files mapped to MySQL charset names
_CHARSET_ALIASES = {
    "utf-8": "utf8mb4",
    "utf8": "utf8mb4",
    "utf8mb4": "utf8mb4",
    "iso-8859-1": "latin1",
    "latin1": "latin1",
    "gbk": "gbk",
    "gb2312": "gb2312",
    "us-ascii": "ascii",
}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", ""):
        return False
    raise ConfigurationError(f"Option '{key}' must be a boolean, got {value!r}")


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"Option '{key}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Option '{key}' must be an integer, got {value!r}", {"option": key}
        )


def _default_slave_id() -> int:
    return random.randint(1000, 2**31 - 1)


@dataclass(frozen=True)
class Position:
    """
    Binlog coordinate.

    Attributes:
        journal_name: Binlog file name, empty when unspecified
        offset: Byte offset within journal_name
        timestamp: Event timestamp in epoch millis, used to resume by time
        gtid: Executed GTID set, used in GTID mode
        server_id: Server id of the MySQL instance that wrote the event
    """
    journal_name: str = ""
    offset: int = 0
    timestamp: int = 0
    gtid: Optional[str] = None
    server_id: Optional[int] = None

    def __post_init__(self):
        if self.offset < 0:
            raise ValueError(f"Binlog offset must be non-negative, got {self.offset}")

    @property
    def has_journal(self) -> bool:
        return bool(self.journal_name)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the keys of the `start` option."""
        data: dict[str, Any] = {
            "journalName": self.journal_name,
            "position": self.offset,
            "timestamp": self.timestamp,
        }
        if self.gtid:
            data["gtid"] = self.gtid
        if self.server_id is not None:
            data["serverId"] = self.server_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        """Create Position from a `start` map or a serialized checkpoint."""
        server_id = data.get("serverId")
        offset = _as_int(data.get("position") or 0, "position")
        if offset < 0:
            raise ConfigurationError(
                f"Binlog position must be non-negative, got {offset}",
                {"option": "position"},
            )
        return cls(
            journal_name=data.get("journalName") or "",
            offset=offset,
            timestamp=_as_int(data.get("timestamp") or 0, "timestamp"),
            gtid=data.get("gtid") or None,
            server_id=_as_int(server_id, "serverId") if server_id is not None else None,
        )


@dataclass(frozen=True)
class CheckpointState:
    """Checkpoint snapshot persisted by the task, holding one Position."""
    position: Optional[Position] = None

    def to_dict(self) -> dict[str, Any]:
        return {"position": self.position.to_dict() if self.position else None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CheckpointState":
        if not data or not data.get("position"):
            return cls(position=None)
        return cls(position=Position.from_dict(data["position"]))


@dataclass
class ChangeEvent:
    """
    One decoded row mutation.

    Attributes:
        event_type: INSERT, UPDATE or DELETE
        schema: Source schema name
        table: Source table name
        before: Column values before the change (UPDATE, DELETE)
        after: Column values after the change (INSERT, UPDATE)
        timestamp: Event timestamp in epoch millis
        position: Binlog position immediately following this event
    """
    event_type: EventType
    schema: str
    table: str
    before: dict[str, Any] = field(default_factory=dict)
    after: dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0
    position: Optional[Position] = None

    @property
    def qualified_table(self) -> str:
        return f"{self.schema}.{self.table}"

    def to_record(self, paving: bool = False) -> dict[str, Any]:
        """
        Render the event for consumers.

        With paving enabled the nested before/after maps are flattened into
        `before_<column>` / `after_<column>` keys.
        """
        record: dict[str, Any] = {
            "type": self.event_type.value,
            "schema": self.schema,
            "table": self.table,
            "ts": self.timestamp,
        }
        if paving:
            for column, value in self.before.items():
                record[f"before_{column}"] = value
            for column, value in self.after.items():
                record[f"after_{column}"] = value
        else:
            record["before"] = dict(self.before)
            record["after"] = dict(self.after)
        return record


@dataclass(frozen=True)
class TableFilterSpec:
    """Table inclusion filter derived from the configured tables."""
    filter: str
    probe_targets: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class InputSplit:
    """Split descriptor handed out to the parallel readers."""
    index: int
    total: int


@dataclass(frozen=True)
class BinlogConfig:
    """Reader job configuration (the `reader.parameter` block of a job file)."""
    host: str
    username: str
    password: str = ""
    port: int = 3306
    jdbc_url: Optional[str] = None
    tables: tuple[str, ...] = ()
    cat: str = ""
    start: dict[str, Any] = field(default_factory=dict)
    slave_id: int = field(default_factory=_default_slave_id)
    gtid_mode: bool = False
    connection_charset: str = "UTF-8"
    enable_tsdb: bool = True
    parallel: bool = True
    buffer_size: int = 256
    parallel_thread_size: int = 2
    detecting_enable: bool = True
    detecting_sql: str = "SELECT 1"
    paving_data: bool = False

    @property
    def categories(self) -> list[str]:
        """Upper-cased category filter; empty accepts every event type."""
        if not self.cat:
            return []
        return [c.strip().upper() for c in self.cat.split(",") if c.strip()]

    @property
    def mysql_charset(self) -> str:
        """Connection charset translated to its MySQL name."""
        key = self.connection_charset.strip().lower()
        return _CHARSET_ALIASES.get(key, key.replace("-", ""))

    def __repr__(self) -> str:
        return (
            f"BinlogConfig(host={self.host!r}, port={self.port}, "
            f"username={self.username!r}, jdbc_url={self.jdbc_url!r}, "
            f"tables={list(self.tables)}, cat={self.cat!r}, start={self.start}, "
            f"slave_id={self.slave_id}, gtid_mode={self.gtid_mode})"
        )

    @classmethod
    def from_dict(cls, data: dict) -> "BinlogConfig":
        """Create BinlogConfig from the job option map."""
        for key in ("host", "username"):
            if not data.get(key):
                raise ConfigurationError(
                    f"Missing required option '{key}'", {"option": key}
                )

        tables = data.get("table") or []
        if isinstance(tables, str):
            tables = [t.strip() for t in tables.split(",") if t.strip()]

        start = data.get("start") or {}
        if not isinstance(start, dict):
            raise ConfigurationError("Option 'start' must be a map", {"option": "start"})

        kwargs: dict[str, Any] = {
            "host": data["host"],
            "username": data["username"],
            "password": data.get("password") or "",
            "port": _as_int(data.get("port", 3306), "port"),
            "jdbc_url": data.get("jdbcUrl"),
            "tables": tuple(tables),
            "cat": data.get("cat") or "",
            "start": dict(start),
            "gtid_mode": _as_bool(data.get("gtidMode", False), "gtidMode"),
            "connection_charset": data.get("connectionCharset") or "UTF-8",
            "enable_tsdb": _as_bool(data.get("enableTsdb", True), "enableTsdb"),
            "parallel": _as_bool(data.get("parallel", True), "parallel"),
            "buffer_size": _as_int(data.get("bufferSize", 256), "bufferSize"),
            "parallel_thread_size": _as_int(
                data.get("parallelThreadSize", 2), "parallelThreadSize"
            ),
            "detecting_enable": _as_bool(
                data.get("detectingEnable", True), "detectingEnable"
            ),
            "detecting_sql": data.get("detectingSql") or "SELECT 1",
            "paving_data": _as_bool(data.get("pavingData", False), "pavingData"),
        }
        if data.get("slaveId") is not None:
            kwargs["slave_id"] = _as_int(data["slaveId"], "slaveId")

        if kwargs["buffer_size"] < 1:
            raise ConfigurationError("Option 'bufferSize' must be positive")

        return cls(**kwargs)
