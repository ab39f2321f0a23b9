"""
Table filter construction.

Turns the configured table patterns into the regex filter handed to the binlog
client and into the minimal set of tables probed for read permission.

Filter syntax: comma-separated regular expressions matched against
`schema.table`, for example:

    .*\\..*                 every table of every schema
    shop\\..*               every table of schema shop
    shop\\.order.*          tables of shop starting with "order"
    shop\\..*,crm.contact   several rules combined
"""

from typing import Optional, Sequence

from core.database import parse_jdbc_url
from core.models import TableFilterSpec

SCHEMA_SPLIT = "."


def format_table_name(schema: str, table: str) -> str:
    """
    Qualify `table` with `schema` unless it already contains a schema separator.

    A table name that contains "." is passed through unchanged even when the
    part before the dot is not a schema.
    """
    if SCHEMA_SPLIT in table:
        return table
    return f"{schema}{SCHEMA_SPLIT}{table}"


def database_from_jdbc_url(jdbc_url: Optional[str]) -> str:
    """Extract the database (schema) name from a MySQL JDBC URL."""
    return parse_jdbc_url(jdbc_url).database


def build_table_filter(database: str, tables: Optional[Sequence[str]]) -> TableFilterSpec:
    """
    Build the table filter for `database`.

    Args:
        database: Schema named by the JDBC URL
        tables: Configured table patterns, bare or schema-qualified

    Returns:
        TableFilterSpec with the comma-joined filter and one probe table per schema
    """
    if not tables:
        # No explicit tables: everything in the schema, the schema itself is probed
        return TableFilterSpec(filter=f"{database}\\..*", probe_targets=[])

    qualified = [format_table_name(database, t) for t in tables]

    # Grants are assumed schema-scoped, so one table per schema is enough
    checked: dict[str, str] = {}
    for table in qualified:
        checked.setdefault(table.split(SCHEMA_SPLIT)[0], table)

    return TableFilterSpec(filter=",".join(qualified), probe_targets=list(checked.values()))
