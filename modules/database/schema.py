"""
Database Module for Settlement - Schema Catalog
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Schema version detection and the version-correct SQL text for every
logical operation the server performs.

:copyright: (c) 2024-present Settlement contributors
"""

from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet, Optional

from .dialects import PROBE_CATALOG
from .errors import SchemaStateError

if TYPE_CHECKING:
    from .base import DatabaseConnection


# Original schema, before any extra tables/fields
SCHEMA_VERSION_ORIGINAL = 1000

# Adds users.nickname_lc and its unique index users__l
SCHEMA_VERSION_1200 = 1200

SCHEMA_VERSION_LATEST = SCHEMA_VERSION_1200


class Operation(str, Enum):
    CREATE_ACCOUNT = 'create-account'
    RECORD_LOGIN = 'record-login'
    USER_EXISTS = 'user-exists-by-name'
    USER_PASSWORD = 'user-password-by-name'
    USER_BY_HOST = 'user-by-host'
    UPDATE_LAST_LOGIN = 'update-last-login'
    UPDATE_PASSWORD = 'update-password'
    SAVE_GAME = 'save-game-result'
    ROBOT_PARAMS = 'robot-params-by-name'
    COUNT_USERS = 'count-users'
    ALL_NICKNAMES = 'all-nicknames'
    BACKFILL_NICKNAME_LC = 'backfill-nickname-lc'


# Statement text per operation, keyed by the first schema version it applies to.
# Placeholders are written as '?' and rendered for the driver's paramstyle.
_STATEMENTS: Dict[Operation, Dict[int, str]] = {
    Operation.CREATE_ACCOUNT: {
        SCHEMA_VERSION_ORIGINAL:
            "INSERT INTO users(nickname,host,password,email,lastlogin) VALUES (?,?,?,?,?)",
        SCHEMA_VERSION_1200:
            "INSERT INTO users(nickname,host,password,email,lastlogin,nickname_lc) VALUES (?,?,?,?,?,?)",
    },
    Operation.RECORD_LOGIN: {
        SCHEMA_VERSION_ORIGINAL: "INSERT INTO logins(nickname,host,lastlogin) VALUES (?,?,?)",
    },
    Operation.USER_EXISTS: {
        SCHEMA_VERSION_ORIGINAL: "SELECT nickname FROM users WHERE nickname = ?",
        SCHEMA_VERSION_1200: "SELECT nickname FROM users WHERE nickname_lc = ?",
    },
    Operation.USER_PASSWORD: {
        SCHEMA_VERSION_ORIGINAL: "SELECT nickname,password FROM users WHERE nickname = ?",
        SCHEMA_VERSION_1200: "SELECT nickname,password FROM users WHERE nickname_lc = ?",
    },
    Operation.USER_BY_HOST: {
        SCHEMA_VERSION_ORIGINAL: "SELECT nickname FROM users WHERE host = ?",
    },
    Operation.UPDATE_LAST_LOGIN: {
        SCHEMA_VERSION_ORIGINAL: "UPDATE users SET lastlogin = ? WHERE nickname = ?",
    },
    Operation.UPDATE_PASSWORD: {
        SCHEMA_VERSION_ORIGINAL: "UPDATE users SET password = ? WHERE nickname = ?",
        SCHEMA_VERSION_1200: "UPDATE users SET password = ? WHERE nickname_lc = ?",
    },
    Operation.SAVE_GAME: {
        SCHEMA_VERSION_ORIGINAL:
            "INSERT INTO games(gamename,player1,player2,player3,player4,"
            "score1,score2,score3,score4,starttime) VALUES (?,?,?,?,?,?,?,?,?,?)",
    },
    Operation.ROBOT_PARAMS: {
        SCHEMA_VERSION_ORIGINAL:
            "SELECT maxgamelength,maxeta,etabonusfactor,adversarialfactor,leaderadversarialfactor,"
            "devcardmultiplier,threatmultiplier,strategytype,tradeflag "
            "FROM robotparams WHERE robotname = ?",
    },
    Operation.COUNT_USERS: {
        SCHEMA_VERSION_ORIGINAL: "SELECT COUNT(*) FROM users",
    },
    Operation.ALL_NICKNAMES: {
        SCHEMA_VERSION_ORIGINAL: "SELECT nickname FROM users",
    },
    Operation.BACKFILL_NICKNAME_LC: {
        SCHEMA_VERSION_ORIGINAL: "UPDATE users SET nickname_lc = ? WHERE nickname = ?",
    },
}

# Tables whose absence means "no data" rather than an error, with a column to probe
PROBED_TABLES = {
    'users': 'nickname',
    'robotparams': 'robotname',
}


def render_placeholders(sql: str, paramstyle: str) -> str:
    """Rewrite '?' placeholders for a DB-API ``paramstyle``."""
    if paramstyle == 'qmark':
        return sql
    if paramstyle in ('format', 'pyformat'):
        return sql.replace('?', '%s')

    # numeric and named: positional binds ':1', ':2', ...
    pieces = sql.split('?')
    rendered = pieces[0]
    for n, piece in enumerate(pieces[1:], start=1):
        rendered += f":{n}{piece}"
    return rendered


def statement_text(operation: Operation, version: int) -> str:
    """Raw ('?' placeholder) SQL for ``operation`` at schema ``version``."""
    variants = _STATEMENTS[operation]
    applicable = [v for v in variants if v <= version]
    if not applicable:
        raise KeyError(f"No statement for {operation.value} at schema version {version}")
    return variants[max(applicable)]


class PreparedQuerySet:
    """The SQL text bound to each operation for one schema version and driver."""

    def __init__(self, version: int, paramstyle: str = 'qmark'):
        self.version = version
        self.paramstyle = paramstyle
        self._statements = {
            op: render_placeholders(statement_text(op, version), paramstyle)
            for op in Operation
        }

    def statement_for(self, operation: Operation) -> str:
        try:
            return self._statements[Operation(operation)]
        except (KeyError, ValueError):
            raise KeyError(f"Unknown query operation: {operation!r}") from None

    def __len__(self):
        return len(self._statements)


class SchemaCatalog:
    """
    Tracks what the connected database looks like.

    Owned by a :class:`~modules.database.base.DatabaseConnection`, which calls
    :meth:`refresh` after every successful connect or reconnect so the query
    set always matches the detected schema version.
    """

    def __init__(self, db_connection: 'DatabaseConnection'):
        self.db = db_connection
        self.logger = db_connection.logger
        self._version: Optional[int] = None
        self._queries: Optional[PreparedQuerySet] = None
        self._tables: FrozenSet[str] = frozenset()

    @property
    def version(self) -> Optional[int]:
        """Detected schema version, or None if not connected."""
        return self._version

    @property
    def queries(self) -> Optional[PreparedQuerySet]:
        return self._queries

    def refresh(self) -> int:
        """Re-probe the database and rebuild the prepared query set."""
        version = self.detect_version()
        self._tables = frozenset(
            table for table, column in PROBED_TABLES.items()
            if self.does_column_exist(table, column)
        )
        self._queries = PreparedQuerySet(version, self.db.driver.paramstyle)
        self.logger.info(
            f"Schema version {version} detected; tables present: {sorted(self._tables)}"
        )
        return version

    def clear(self) -> None:
        self._version = None
        self._queries = None
        self._tables = frozenset()

    def detect_version(self) -> int:
        if self.does_column_exist('users', 'nickname_lc'):
            self._version = SCHEMA_VERSION_1200
        else:
            self._version = SCHEMA_VERSION_ORIGINAL
        return self._version

    def does_column_exist(self, table: str, column: str) -> bool:
        """
        Check whether ``table.column`` exists in the connected database.

        Any failure of the probe reads as "doesn't exist".

        Raises:
            SchemaStateError: if there is no open connection
        """
        conn = self.db.handle
        if conn is None:
            raise SchemaStateError("Not connected to the database")

        sql = self.db.capabilities.column_probe_sql(table, column)
        self.db.db_logger.log_query(sql)
        cursor = None
        try:
            cursor = conn.cursor()
            cursor.execute(sql)
            row = cursor.fetchone()
            if self.db.capabilities.column_probe == PROBE_CATALOG:
                return bool(row and row[0])
            return True
        except Exception as e:
            self.logger.debug(f"Column probe {table}.{column} failed, treating as absent: {e}")
            self.db.rollback_quietly()
            return False
        finally:
            if cursor is not None:
                try:
                    cursor.close()
                except Exception as e:
                    self.logger.debug(f"Ignoring cursor close failure: {e}")

    def has_table(self, table: str) -> bool:
        return table in self._tables

    def is_latest(self) -> bool:
        """
        Does the connected database have the latest schema?

        Raises:
            SchemaStateError: if not connected
        """
        if not self.db.is_initialized or self._version is None:
            raise SchemaStateError("Not connected to the database")
        return self._version == SCHEMA_VERSION_LATEST

    def statement_for(self, operation: Operation) -> str:
        """
        SQL text for ``operation`` at the detected version.

        Raises:
            SchemaStateError: if not connected
            KeyError: if ``operation`` is not a known operation
        """
        if self._queries is None:
            raise SchemaStateError("Not connected to the database")
        return self._queries.statement_for(operation)
