"""
Split layout for parallel readers.

The execution layout asks for one split per declared parallelism, but only
one replication client may run against a given server id. Every split is
created, and only split 0 ever starts the binlog client.
"""

import logging
from typing import Callable, Optional

from core.exceptions import ConfigurationError
from core.lifecycle import LifecycleController
from core.models import InputSplit

logger = logging.getLogger(__name__)

READER_SPLIT_INDEX = 0

ControllerFactory = Callable[[InputSplit], LifecycleController]


class SplitCoordinator:
    """Creates splits and opens the single active reader."""

    def __init__(self, controller_factory: ControllerFactory):
        """
        Initialize split coordinator.

        Args:
            controller_factory: Builds the LifecycleController for a split
        """
        self._controller_factory = controller_factory
        self._started: list[int] = []

    @property
    def started_splits(self) -> list[int]:
        """Indexes of the splits that started a binlog client."""
        return list(self._started)

    def create_splits(self, total: int) -> list[InputSplit]:
        """
        Create `total` splits numbered 0..total-1.

        Raises:
            ConfigurationError: If total is less than one
        """
        if total < 1:
            raise ConfigurationError(
                f"Split count must be at least 1, got {total}", {"total": total}
            )
        return [InputSplit(index=i, total=total) for i in range(total)]

    def open_split(self, split: InputSplit) -> LifecycleController:
        """
        Open the reader for `split`.

        Split 0 runs the full lifecycle startup; any other split gets an
        un-opened controller whose `next()` blocks until it is closed.
        """
        controller = self._controller_factory(split)

        if split.index != READER_SPLIT_INDEX:
            logger.info(f"binlog open split number:{split.index} abort...")
            return controller

        controller.open()
        self._started.append(split.index)
        return controller

    def is_reader(self, split: Optional[InputSplit]) -> bool:
        return split is not None and split.index == READER_SPLIT_INDEX
