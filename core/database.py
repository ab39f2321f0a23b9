"""
Database connection utilities for the binlog reader.

Parses JDBC URLs and opens short-lived MySQL connections with bounded retry.
Connections are scoped: callers get them through `mysql_connection` which
always closes them.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, Optional, TypeVar
from urllib.parse import parse_qs, urlparse

import pymysql

from core.error_sanitizer import sanitize_for_log, sanitize_url
from core.exceptions import ConfigurationError, TransientConnectionError
from core.models import BinlogConfig

logger = logging.getLogger(__name__)

JDBC_MYSQL_PREFIX = "jdbc:mysql://"
DEFAULT_MYSQL_PORT = 3306

# Retry budget for the preflight connection
RETRY_TIMES = 3
SLEEP_TIME_MS = 2000

T = TypeVar("T")


@dataclass(frozen=True)
class JdbcUrl:
    """Parsed `jdbc:mysql://host[:port]/database[?options]` URL."""

    host: str
    port: int
    database: str
    params: dict[str, str] = field(default_factory=dict)


def parse_jdbc_url(url: Optional[str]) -> JdbcUrl:
    """
    Parse a MySQL JDBC URL.

    Args:
        url: JDBC URL, e.g. jdbc:mysql://localhost:3306/shop?useSSL=false

    Returns:
        Parsed JdbcUrl

    Raises:
        ConfigurationError: If the URL is not a MySQL JDBC URL or names no database
    """
    if not url or not url.lower().startswith(JDBC_MYSQL_PREFIX):
        raise ConfigurationError(
            f"Malformed jdbcUrl '{sanitize_url(url)}', expected {JDBC_MYSQL_PREFIX}host:port/database",
            {"jdbc_url": sanitize_url(url)},
        )

    parsed = urlparse(url[len("jdbc:"):])
    try:
        host = parsed.hostname
        port = parsed.port or DEFAULT_MYSQL_PORT
    except ValueError as e:
        raise ConfigurationError(
            f"Malformed jdbcUrl '{sanitize_url(url)}': {e}",
            {"jdbc_url": sanitize_url(url)},
        )

    database = parsed.path.rsplit("/", 1)[-1] if parsed.path else ""
    if not host or not database:
        raise ConfigurationError(
            f"Malformed jdbcUrl '{sanitize_url(url)}', host and database are required",
            {"jdbc_url": sanitize_url(url)},
        )

    params = {key: values[-1] for key, values in parse_qs(parsed.query).items()}
    return JdbcUrl(host=host, port=port, database=database, params=params)


def connection_kwargs(config: BinlogConfig) -> dict[str, Any]:
    """
    Build pymysql connection arguments for the configured JDBC URL.

    Falls back to host/port from the config when no JDBC URL is set.
    """
    kwargs: dict[str, Any] = {
        "user": config.username,
        "password": config.password,
        "charset": config.mysql_charset,
        "connect_timeout": 10,
    }
    if config.jdbc_url:
        jdbc = parse_jdbc_url(config.jdbc_url)
        kwargs.update(host=jdbc.host, port=jdbc.port, database=jdbc.database)
    else:
        kwargs.update(host=config.host, port=config.port)
    return kwargs


def connect_with_retry(
    connect: Callable[[], T],
    retry_times: int = RETRY_TIMES,
    sleep_ms: int = SLEEP_TIME_MS,
    description: str = "MySQL",
) -> T:
    """
    Call `connect` until it succeeds or the retry budget is exhausted.

    The delay between attempts is fixed.

    Args:
        connect: Zero-argument connection factory
        retry_times: Maximum number of attempts
        sleep_ms: Delay between attempts in milliseconds
        description: Target description used in log and error messages

    Returns:
        Whatever `connect` returns

    Raises:
        TransientConnectionError: If every attempt failed
    """
    last_error: Optional[BaseException] = None

    for attempt in range(retry_times):
        try:
            return connect()
        except (pymysql.MySQLError, OSError) as e:
            last_error = e
            if attempt < retry_times - 1:
                logger.warning(
                    f"Failed to connect to {description} (attempt {attempt + 1}/{retry_times}): "
                    f"{sanitize_for_log(e)}. Retrying in {sleep_ms / 1000:.1f}s..."
                )
                time.sleep(sleep_ms / 1000)
            else:
                logger.error(
                    f"Failed to connect to {description} after {retry_times} attempts: "
                    f"{sanitize_for_log(e)}"
                )

    raise TransientConnectionError(
        f"Failed to connect to {description} after {retry_times} attempts: "
        f"{sanitize_for_log(last_error) if last_error else 'no attempt made'}",
        {"attempts": retry_times},
    ) from last_error


@contextmanager
def mysql_connection(
    config: BinlogConfig,
    connect: Optional[Callable[[], Any]] = None,
) -> Generator[Any, None, None]:
    """
    Context manager yielding a retried MySQL connection.

    Usage:
        with mysql_connection(config) as conn:
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")

    Args:
        config: Reader configuration
        connect: Optional connection factory, defaults to pymysql.connect
    """
    if connect is None:
        kwargs = connection_kwargs(config)

        def connect():
            return pymysql.connect(**kwargs)

    conn = connect_with_retry(
        connect, description=sanitize_url(config.jdbc_url) or config.host
    )
    try:
        yield conn
    finally:
        try:
            conn.close()
        except pymysql.MySQLError as e:
            logger.warning(f"Error closing MySQL connection: {sanitize_for_log(e)}")
