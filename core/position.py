"""
Start position resolution.

Decides where the binlog client starts reading: confirmed checkpoint progress
first, then user-configured start coordinates, otherwise the server's head.
"""

import logging
from typing import Any, Optional, Protocol

from core.exceptions import ConfigurationError
from core.models import CheckpointState, Position

logger = logging.getLogger(__name__)


class JournalValidator(Protocol):
    """Checks that a binlog file is still present on the server."""

    def exists(self, journal_name: str) -> bool:
        ...


class PositionResolver:
    """Resolves the binlog start position on (re)start."""

    def __init__(self, validator: JournalValidator):
        self._validator = validator

    def resolve(
        self,
        checkpoint: Optional[CheckpointState],
        configured_start: Optional[dict[str, Any]],
    ) -> Optional[Position]:
        """
        Resolve the start position.

        Args:
            checkpoint: Restored checkpoint state, if any
            configured_start: The `start` option (journalName, timestamp, position)

        Returns:
            Start Position, or None to start from the server's current head

        Raises:
            ConfigurationError: If the resolved journal file no longer exists
        """
        position: Optional[Position] = None

        if checkpoint is not None and checkpoint.position is not None:
            position = checkpoint.position
            logger.info(f"Resuming from checkpoint position {position.to_dict()}")
        elif configured_start:
            position = Position.from_dict(configured_start)
            logger.info(f"Starting from configured position {position.to_dict()}")
        else:
            logger.info("No start position, reading from the server's current head")
            return None

        self._check_journal(position.journal_name)
        return position

    def _check_journal(self, journal_name: str) -> None:
        if not journal_name:
            return
        if not self._validator.exists(journal_name):
            raise ConfigurationError(
                f"Can't find journalName: {journal_name}",
                {"journal_name": journal_name},
            )
