"""
Database Module for Settlement - Dialects
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Capability table for the SQL dialects the server knows how to talk to.
Anything that differs between database products is looked up here rather
than branched on at the call site.

:copyright: (c) 2024-present Settlement contributors
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class Dialect(Enum):
    MYSQL = 'mysql'
    POSTGRESQL = 'postgresql'
    SQLITE = 'sqlite'
    ORACLE = 'oracle'  # recognized, but no bundled driver
    UNKNOWN = 'unknown'


# Ways to check whether a table column exists
PROBE_LIMIT = 'limit'
PROBE_CATALOG = 'catalog'


@dataclass(frozen=True)
class DialectCapabilities:
    dialect: Dialect
    default_driver: Optional[str]
    default_url: Optional[str]
    url_prefixes: Tuple[str, ...]
    driver_markers: Tuple[str, ...]
    column_probe: str = PROBE_LIMIT
    can_drop_column: bool = True
    supports_use_statement: bool = True

    def column_probe_sql(self, table: str, column: str) -> str:
        """SQL that succeeds (or counts > 0) only if ``table.column`` exists."""
        if self.column_probe == PROBE_CATALOG:
            return (
                "SELECT COUNT(*) FROM user_tab_columns "
                f"WHERE table_name = '{table.upper()}' AND column_name = '{column.upper()}'"
            )
        return f"SELECT {column} FROM {table} LIMIT 1"

    def add_column_ddl(self, table: str, column: str, sql_type: str) -> str:
        if self.dialect is Dialect.ORACLE:
            return f"ALTER TABLE {table} ADD ({column} {sql_type})"
        return f"ALTER TABLE {table} ADD COLUMN {column} {sql_type}"

    def drop_column_ddl(self, table: str, column: str) -> str:
        return f"ALTER TABLE {table} DROP COLUMN {column}"


DIALECT_CAPABILITIES: Dict[Dialect, DialectCapabilities] = {
    Dialect.MYSQL: DialectCapabilities(
        dialect=Dialect.MYSQL,
        default_driver='mariadb',
        default_url='mysql://localhost/socdata',
        url_prefixes=('mysql:', 'mariadb:'),
        driver_markers=('mysql', 'mariadb'),
    ),
    Dialect.POSTGRESQL: DialectCapabilities(
        dialect=Dialect.POSTGRESQL,
        default_driver='psycopg2',
        default_url='postgresql://localhost/socdata',
        url_prefixes=('postgresql:', 'postgres:'),
        driver_markers=('postgres', 'psycopg'),
        supports_use_statement=False,
    ),
    Dialect.SQLITE: DialectCapabilities(
        dialect=Dialect.SQLITE,
        default_driver='sqlite3',
        default_url='sqlite:socdata.sqlite',
        url_prefixes=('sqlite:',),
        driver_markers=('sqlite',),
        # Added columns can't be dropped reliably; operators restore from backup
        can_drop_column=False,
        supports_use_statement=False,
    ),
    Dialect.ORACLE: DialectCapabilities(
        dialect=Dialect.ORACLE,
        default_driver=None,
        default_url=None,
        url_prefixes=(),
        driver_markers=('oracle',),
        column_probe=PROBE_CATALOG,
        supports_use_statement=False,
    ),
    Dialect.UNKNOWN: DialectCapabilities(
        dialect=Dialect.UNKNOWN,
        default_driver=None,
        default_url=None,
        url_prefixes=(),
        driver_markers=(),
    ),
}

_DETECTION_ORDER = (Dialect.POSTGRESQL, Dialect.SQLITE, Dialect.MYSQL)


def capabilities_for(dialect: Dialect) -> DialectCapabilities:
    return DIALECT_CAPABILITIES[dialect]


def dialect_from_url(url: str) -> Optional[Dialect]:
    """Dialect named by the URL's scheme prefix, or None if unrecognized."""
    lowered = url.lower()
    for dialect in _DETECTION_ORDER:
        if lowered.startswith(DIALECT_CAPABILITIES[dialect].url_prefixes):
            return dialect
    return None


def dialect_from_driver(driver: str) -> Dialect:
    """Dialect implied by a driver identifier substring; ORACLE or UNKNOWN otherwise."""
    lowered = driver.lower()
    for dialect in _DETECTION_ORDER:
        if any(marker in lowered for marker in DIALECT_CAPABILITIES[dialect].driver_markers):
            return dialect
    if 'oracle' in lowered:
        return Dialect.ORACLE
    return Dialect.UNKNOWN
