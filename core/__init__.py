# Core module
# Note: The lifecycle, task and checkpoint modules pull in the binlog client
# and Redis stacks. Import them lazily so models and filters stay light.

from core.models import (
    BinlogConfig,
    ChangeEvent,
    CheckpointState,
    EventType,
    InputSplit,
    LifecycleState,
    Position,
    TableFilterSpec,
)
from core.exceptions import (
    BinlogReaderException,
    ConfigurationError,
    TransientConnectionError,
    TablePermissionError,
    StreamFault,
)
from core.filters import build_table_filter, format_table_name
from core.position import PositionResolver
from core.event_sink import EventSink

__all__ = [
    # Models
    "BinlogConfig",
    "ChangeEvent",
    "CheckpointState",
    "EventType",
    "InputSplit",
    "LifecycleState",
    "Position",
    "TableFilterSpec",
    # Exceptions
    "BinlogReaderException",
    "ConfigurationError",
    "TransientConnectionError",
    "TablePermissionError",
    "StreamFault",
    # Reader building blocks
    "build_table_filter",
    "format_table_name",
    "PositionResolver",
    "EventSink",
]


def __getattr__(name: str):
    """Lazy import for modules that require the binlog client or Redis."""
    if name == "AuthorityChecker":
        from core.authority import AuthorityChecker
        return AuthorityChecker
    elif name == "LifecycleController":
        from core.lifecycle import LifecycleController
        return LifecycleController
    elif name == "SplitCoordinator":
        from core.splits import SplitCoordinator
        return SplitCoordinator
    elif name == "BinlogReaderTask":
        from core.task import BinlogReaderTask
        return BinlogReaderTask
    elif name == "FileCheckpointStore":
        from core.checkpoint_store import FileCheckpointStore
        return FileCheckpointStore
    elif name == "RedisCheckpointStore":
        from core.checkpoint_store import RedisCheckpointStore
        return RedisCheckpointStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
