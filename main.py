#!/usr/bin/env python3
"""
Binlog Reader - Main Entry Point

Checkpointed MySQL binlog change-data-capture source.

Configuration via environment variables:
    READER_JOB_FILE - Required: JSON file with the reader options
    READER_JOB_NAME - Job name, used for checkpoint keys
    CHECKPOINT_BACKEND - Checkpoint storage (file/redis)
    DEBUG           - Enable debug logging (true/false)
    LOG_LEVEL       - Logging level (DEBUG, INFO, WARNING, ERROR)
    LOG_JSON        - Emit JSON log lines (true/false)
"""

import json
import logging
import os
import sys
import threading
from typing import Any

from pythonjsonlogger import jsonlogger

from config.config import Config, get_config, load_job_options
from core.checkpoint_store import (
    CheckpointStore,
    FileCheckpointStore,
    RedisCheckpointStore,
)
from core.error_sanitizer import sanitize_for_log
from core.exceptions import ConfigurationError
from core.models import BinlogConfig
from core.task import BinlogReaderTask
from server import register_task, run_server


def setup_logging() -> None:
    """Configure logging based on environment and config."""
    config = get_config()

    # Check for DEBUG environment variable
    debug = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
    level = logging.DEBUG if debug else getattr(logging, config.logging.level.upper())

    # Records go to stdout, logs to stderr
    handler = logging.StreamHandler(sys.stderr)
    if config.logging.json_format:
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    else:
        handler.setFormatter(logging.Formatter(config.logging.format))

    logging.basicConfig(level=level, handlers=[handler])

    # Reduce noise from some libraries
    logging.getLogger("pymysqlreplication").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_checkpoint_store(config: Config) -> CheckpointStore:
    """Create the checkpoint store selected by CHECKPOINT_BACKEND."""
    job_name = config.reader.job_name
    backend = config.checkpoint.backend

    if backend == "file":
        return FileCheckpointStore(config.checkpoint.get_checkpoint_file(job_name))
    if backend == "redis":
        return RedisCheckpointStore(
            job_name,
            redis_url=config.checkpoint.redis_url,
            key_prefix=config.checkpoint.key_prefix,
        )
    raise ConfigurationError(
        f"Unknown checkpoint backend: {backend}", {"backend": backend}
    )


def write_record(record: dict[str, Any]) -> None:
    """Write one change record as a JSON line to stdout."""
    sys.stdout.write(json.dumps(record, default=str) + "\n")
    sys.stdout.flush()


def main() -> int:
    """Main entry point."""
    setup_logging()
    logger = logging.getLogger(__name__)
    config = get_config()

    if not config.reader.job_file:
        logger.error("READER_JOB_FILE is not set")
        return 2

    store = None
    task = None

    try:
        binlog_config = BinlogConfig.from_dict(load_job_options(config.reader.job_file))
        store = build_checkpoint_store(config)

        task = BinlogReaderTask(
            job_name=config.reader.job_name,
            config=binlog_config,
            store=store,
            record_handler=write_record,
            parallelism=config.reader.parallelism,
            checkpoint_interval_ms=config.reader.checkpoint_interval_ms,
            restore_enabled=config.reader.restore_enabled,
            poll_interval_ms=config.reader.poll_interval_ms,
            register_signals=True,
        )
        register_task(task)

        # Start API Server in a separate thread
        server_thread = threading.Thread(
            target=run_server,
            args=(config.server.host, config.server.port),
            daemon=True,
        )
        server_thread.start()

        logger.info(f"Starting binlog reader job {config.reader.job_name}")
        logger.info("Press Ctrl+C to shutdown gracefully")
        task.run()
        return 0

    except KeyboardInterrupt:
        logger.info("Shutdown requested via KeyboardInterrupt")
        if task:
            task.stop()
        return 0
    except ConfigurationError as e:
        logger.error(f"Configuration error: {sanitize_for_log(e)}")
        return 2
    except Exception as e:
        logger.error(f"Fatal error: {sanitize_for_log(e)}", exc_info=True)
        return 1
    finally:
        register_task(None)
        if store:
            store.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    sys.exit(main())
