"""
Preflight permission checks for the binlog reader.

Verifies, before any streaming starts, that the configured account holds the
replication privilege and can read the targeted tables.
"""

import logging
from typing import Any, Callable, Iterable, Optional

import pymysql

from core.database import mysql_connection
from core.error_sanitizer import sanitize_for_log, sanitize_url
from core.exceptions import ConfigurationError, TablePermissionError
from core.filters import format_table_name
from core.models import BinlogConfig

logger = logging.getLogger(__name__)

# Only succeeds for accounts with REPLICATION CLIENT
AUTHORITY_REPLICATION_TEMPLATE = "SHOW MASTER STATUS"

AUTHORITY_TEMPLATE = "SELECT count(1) FROM {} LIMIT 1"

QUERY_SCHEMA_TABLE_TEMPLATE = (
    "SELECT TABLE_NAME FROM information_schema.TABLES WHERE TABLE_SCHEMA = %s LIMIT 1"
)


class AuthorityChecker:
    """
    Validates replication and read privileges of the reader account.

    One connection is opened (with retry) per check and always released.
    """

    def __init__(
        self,
        config: BinlogConfig,
        connect: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize authority checker.

        Args:
            config: Reader configuration
            connect: Optional connection factory, defaults to pymysql.connect
        """
        self._config = config
        self._connect = connect

    def check(
        self,
        schema: Optional[str] = None,
        tables: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Check replication privilege and SELECT privilege on the probe set.

        Args:
            schema: Schema whose first table is added to the probe set
            tables: Schema-qualified tables to probe

        Raises:
            TransientConnectionError: If no connection could be opened
            ConfigurationError: If the account lacks the replication privilege
            TablePermissionError: If one or more tables cannot be read
        """
        probe_set = list(tables or [])

        with mysql_connection(self._config, self._connect) as conn:
            with conn.cursor() as cursor:
                self._check_replication(cursor)

                if schema:
                    table = self._first_table(cursor, schema)
                    if table:
                        probe_set.append(format_table_name(schema, table))

                if not probe_set:
                    logger.info("No tables to probe, authority check passed")
                    return

                self._check_tables(cursor, probe_set)

        logger.info(f"Authority check passed for tables: {probe_set}")

    def _check_replication(self, cursor) -> None:
        try:
            cursor.execute(AUTHORITY_REPLICATION_TEMPLATE)
            cursor.fetchall()
        except pymysql.MySQLError as e:
            message = (
                f"jdbcUrl [{sanitize_url(self._config.jdbc_url)}] make sure that the database "
                f"configuration is correct and user [{self._config.username}] has right "
                f"permissions, for example REPLICATION SLAVE, REPLICATION CLIENT: "
                f"{sanitize_for_log(e)}"
            )
            logger.error(message)
            raise ConfigurationError(
                message,
                {
                    "jdbc_url": sanitize_url(self._config.jdbc_url),
                    "username": self._config.username,
                },
            ) from e

    def _first_table(self, cursor, schema: str) -> Optional[str]:
        try:
            cursor.execute(QUERY_SCHEMA_TABLE_TEMPLATE, (schema,))
            row = cursor.fetchone()
        except pymysql.MySQLError as e:
            message = (
                f"checkSourceAuthority error, url [{sanitize_url(self._config.jdbc_url)}] "
                f"userName [{self._config.username}]: {sanitize_for_log(e)}"
            )
            logger.error(message)
            raise ConfigurationError(message, {"schema": schema}) from e

        if not row:
            logger.warning(f"Schema '{schema}' has no tables to probe")
            return None
        return row[0]

    def _check_tables(self, cursor, probe_set: list[str]) -> None:
        failed_tables: list[str] = []
        first_error: Optional[pymysql.MySQLError] = None

        for table in probe_set:
            try:
                cursor.execute(AUTHORITY_TEMPLATE.format(table))
                cursor.fetchall()
            except pymysql.MySQLError as e:
                failed_tables.append(table)
                if first_error is None:
                    first_error = e

        if failed_tables:
            message = (
                f"user [{self._config.username}] is not granted table "
                f"[{','.join(failed_tables)}] select permission: "
                f"{sanitize_for_log(first_error)}"
            )
            logger.error(message)
            raise TablePermissionError(message, failed_tables) from first_error
