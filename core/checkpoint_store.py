"""
Checkpoint persistence.

Stores the latest CheckpointState of a reader job so a restarted job resumes
from confirmed progress. Two backends: a JSON file per job and a Redis key
per job.
"""

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import redis

from core.exceptions import BinlogReaderException
from core.models import CheckpointState

logger = logging.getLogger(__name__)

# Retry constants for Redis operations
_MAX_RETRIES = 3
_RETRY_BACKOFF_BASE = 0.5  # seconds


class CheckpointStore(ABC):
    """Durable storage for one job's checkpoint."""

    @abstractmethod
    def load(self) -> Optional[CheckpointState]:
        """Return the last saved checkpoint, or None if there is none."""
        pass

    @abstractmethod
    def save(self, state: CheckpointState) -> None:
        """Persist `state`, replacing the previous checkpoint."""
        pass

    def close(self) -> None:
        """Release backend resources."""


class FileCheckpointStore(CheckpointStore):
    """
    Checkpoint stored as a JSON document on disk.

    Writes go to a temporary file that is atomically renamed over the
    previous checkpoint.
    """

    def __init__(self, path: str):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[CheckpointState]:
        if not self._path.exists():
            logger.info(f"No checkpoint found at {self._path}")
            return None

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BinlogReaderException(
                f"Failed to read checkpoint {self._path}: {e}", {"path": str(self._path)}
            ) from e

        state = CheckpointState.from_dict(data)
        logger.info(f"Loaded checkpoint from {self._path}: {state.to_dict()}")
        return state

    def save(self, state: CheckpointState) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self._path)
        logger.debug(f"Checkpoint saved to {self._path}: {state.to_dict()}")


class RedisCheckpointStore(CheckpointStore):
    """Checkpoint stored as a JSON string under `{prefix}:{job_name}`."""

    def __init__(
        self,
        job_name: str,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "binlog:checkpoint",
    ):
        """
        Initialize Redis checkpoint store.

        Args:
            job_name: Reader job name, part of the key
            redis_url: Redis connection URL
            key_prefix: Prefix for checkpoint keys
        """
        self._redis = redis.Redis.from_url(
            redis_url,
            decode_responses=False,
            socket_connect_timeout=5,
            socket_timeout=10,
            retry_on_timeout=True,
        )
        self._key = f"{key_prefix}:{job_name}"
        self._logger = logging.getLogger(f"{__name__}.RedisCheckpointStore")

    @property
    def key(self) -> str:
        return self._key

    def _with_retry(self, operation, *args):
        last_error: Optional[Exception] = None
        for attempt in range(_MAX_RETRIES):
            try:
                return operation(*args)
            except (redis.ConnectionError, redis.TimeoutError) as e:
                last_error = e
                if attempt < _MAX_RETRIES - 1:
                    delay = _RETRY_BACKOFF_BASE * (2**attempt)
                    self._logger.warning(
                        f"Redis operation failed (attempt {attempt + 1}/{_MAX_RETRIES}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    time.sleep(delay)
        raise BinlogReaderException(
            f"Redis checkpoint operation failed after {_MAX_RETRIES} attempts: {last_error}",
            {"key": self._key},
        ) from last_error

    def load(self) -> Optional[CheckpointState]:
        raw = self._with_retry(self._redis.get, self._key)
        if raw is None:
            self._logger.info(f"No checkpoint found under {self._key}")
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        state = CheckpointState.from_dict(json.loads(raw))
        self._logger.info(f"Loaded checkpoint from {self._key}: {state.to_dict()}")
        return state

    def save(self, state: CheckpointState) -> None:
        self._with_retry(self._redis.set, self._key, json.dumps(state.to_dict()))

    def close(self) -> None:
        try:
            self._redis.close()
        except redis.RedisError as e:
            self._logger.warning(f"Error closing Redis connection: {e}")
