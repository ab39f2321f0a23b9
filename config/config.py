"""
Configuration management for the binlog reader service.

Loads environment variables and provides configuration access. The reader job
options themselves live in a JSON job file (see `load_job_options`).
"""

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
import logging

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class ReaderConfig:
    """Reader task configuration."""

    job_file: Optional[str] = None
    job_name: str = "binlog"
    parallelism: int = 1
    poll_interval_ms: int = 500
    checkpoint_interval_ms: int = 10000
    restore_enabled: bool = True


@dataclass
class CheckpointConfig:
    """Checkpoint storage configuration."""

    backend: str = "file"
    storage_path: str = "./tmp/checkpoints"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "binlog:checkpoint"

    def get_checkpoint_file(self, job_name: str) -> str:
        """Get checkpoint file path for a specific job."""
        path = Path(self.storage_path)
        path.mkdir(parents=True, exist_ok=True)
        return str(path / f"{job_name}.json")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json_format: bool = False


@dataclass
class ServerConfig:
    """API Server configuration."""

    host: str = "0.0.0.0"
    port: int = 8001


@dataclass
class Config:
    """
    Central configuration for the binlog reader service.

    Loads configuration from environment variables with sensible defaults.
    """

    reader: ReaderConfig = field(default_factory=ReaderConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            reader=ReaderConfig(
                job_file=os.getenv("READER_JOB_FILE"),
                job_name=os.getenv("READER_JOB_NAME", "binlog"),
                parallelism=int(os.getenv("READER_PARALLELISM", "1")),
                poll_interval_ms=int(os.getenv("READER_POLL_INTERVAL_MS", "500")),
                checkpoint_interval_ms=int(
                    os.getenv("READER_CHECKPOINT_INTERVAL_MS", "10000")
                ),
                restore_enabled=_env_bool("READER_RESTORE_ENABLED", "true"),
            ),
            checkpoint=CheckpointConfig(
                backend=os.getenv("CHECKPOINT_BACKEND", "file").lower(),
                storage_path=os.getenv("CHECKPOINT_STORAGE_PATH", "./tmp/checkpoints"),
                redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
                key_prefix=os.getenv("CHECKPOINT_KEY_PREFIX", "binlog:checkpoint"),
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                format=os.getenv(
                    "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                ),
                json_format=_env_bool("LOG_JSON", "false"),
            ),
            server=ServerConfig(
                host=os.getenv("SERVER_HOST", "0.0.0.0"),
                port=int(os.getenv("SERVER_PORT", "8001")),
            ),
        )


def load_job_options(path: str) -> dict[str, Any]:
    """
    Load reader options from a JSON job file.

    Accepts either the bare option map or a job document where the options sit
    under `reader.parameter`.

    Raises:
        ConfigurationError: If the file cannot be read or is not a JSON object
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Failed to load job file {path}: {e}", {"path": path})

    if not isinstance(document, dict):
        raise ConfigurationError(f"Job file {path} must contain a JSON object")

    reader = document.get("reader")
    if isinstance(reader, dict) and isinstance(reader.get("parameter"), dict):
        return reader["parameter"]
    return document


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get singleton configuration instance.

    Uses lru_cache to ensure only one Config instance exists.
    """
    return Config.from_env()
