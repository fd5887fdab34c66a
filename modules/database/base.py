"""
Database Module for Settlement - Base Components
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

The connection manager and the base class for table repositories.

:copyright: (c) 2024-present Settlement contributors
"""

from contextlib import contextmanager
from typing import Any, List, Optional, Sequence, Tuple

from modules.logging_config import DatabaseLogger
from .config import DatabaseConfig, ResolvedTarget, resolve_target
from .dialects import Dialect, DialectCapabilities, capabilities_for
from .drivers import Driver, load_driver
from .errors import (
    ConnectivityError, DatabaseError, QueryError, SchemaStateError
)
from .schema import Operation, SchemaCatalog
from .script_runner import ScriptRunner


class DatabaseConnection:
    """
    Owns the single live database connection.

    Holds the connection handle, the cached credentials, the error flag and
    the schema catalog. Callers don't need to reconnect themselves: after a
    failed statement sets the error flag, the next :meth:`ensure_connected`
    closes and reopens the connection once.

    Not thread-safe; callers serialize access.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.db_logger = DatabaseLogger()
        self.logger = self.db_logger.logger

        self.target: Optional[ResolvedTarget] = None
        self.driver: Optional[Driver] = None
        self.catalog = SchemaCatalog(self)

        self._conn = None
        self._user: Optional[str] = None
        self._password: Optional[str] = None
        self._error = False
        self._initialized = False
        self._in_transaction = False
        self.connect_count = 0

    # Connection state

    @property
    def handle(self):
        """The live DB-API connection, or None."""
        return self._conn

    @property
    def is_initialized(self) -> bool:
        return self._initialized and self._conn is not None

    @property
    def error_pending(self) -> bool:
        return self._error

    @property
    def dialect(self) -> Optional[Dialect]:
        return self.target.dialect if self.target else None

    @property
    def capabilities(self) -> DialectCapabilities:
        return capabilities_for(self.dialect or Dialect.UNKNOWN)

    @property
    def schema_version(self) -> Optional[int]:
        return self.catalog.version

    # Lifecycle

    def initialize(self) -> None:
        """
        Load the driver, connect, run the setup script if configured, and
        detect the schema version.

        Raises:
            ConfigurationError: inconsistent URL/driver/dialect settings
            ConnectivityError: driver can't be loaded or the connect fails
            ScriptError: the setup script can't be read or one of its statements fails
        """
        self._initialized = False
        self.target = resolve_target(self.config)
        self.logger.info(
            f"Using {self.target.dialect.value} database via driver {self.target.driver}"
        )

        self.driver = load_driver(self.target.driver, self.config.driver_path)
        self._connect(self.config.user, self.config.password, self.config.setup_script)

    def _connect(self, user: str, password: str, setup_script: Optional[str] = None) -> None:
        """Open a new connection, then re-detect the schema and rebuild the query set."""
        self.db_logger.log_connection(f"opening {self.target.url}")
        try:
            conn = self.driver.connect(self.target.url, user, password)
        except Exception as e:
            self.db_logger.log_error('connect', e)
            raise ConnectivityError(f"Unable to connect to {self.target.url}: {e}") from e

        self._conn = conn
        self._error = False
        self._user = user
        self._password = password
        self.connect_count += 1

        if setup_script:
            ScriptRunner(self).run(setup_script)

        self.catalog.refresh()
        self._initialized = True

    def ensure_connected(self) -> bool:
        """
        Make sure the connection is usable, reconnecting if an earlier
        operation failed.

        Returns:
            False if never initialized or shut down, True otherwise

        Raises:
            ConnectivityError: if the reconnect attempt fails; the error flag
                stays set so the next call tries again
        """
        if self._conn is None:
            return False
        if not self._error:
            return True

        self.logger.warning("Reconnecting to the database after an earlier error")
        self._close_quietly()
        self.catalog.clear()
        self._initialized = False
        self._connect(self._user, self._password)
        return True

    def mark_error(self) -> None:
        """Flag the connection for reconnect on the next operation."""
        self._error = True

    def cleanup(self, for_shutdown: bool = False) -> None:
        """
        Close the connection.

        Args:
            for_shutdown: If True, forget the connection so no reconnect is
                attempted later. Otherwise the next :meth:`ensure_connected`
                reopens it.
        """
        if self._conn is None:
            return

        self.catalog.clear()
        self._initialized = False
        try:
            self.db_logger.log_connection('closing')
            self._conn.close()
        except Exception as e:
            self._error = True
            self.db_logger.log_error('cleanup', e)
            raise DatabaseError(f"Failed to close the database connection: {e}") from e
        finally:
            if for_shutdown:
                self._conn = None

        if not for_shutdown:
            self._error = True

    def _close_quietly(self) -> None:
        try:
            self._conn.close()
        except Exception as e:
            self.logger.debug(f"Ignoring close failure on broken connection: {e}")

    def rollback_quietly(self) -> None:
        """Roll back the open transaction, if the driver has one; log failures."""
        if self._conn is None:
            return
        try:
            self._conn.rollback()
        except Exception as e:
            self.logger.debug(f"Rollback failed: {e}")

    def health_check(self) -> bool:
        """Check database connection health."""
        try:
            if not self.ensure_connected():
                return False
            self.execute("SELECT 1", fetch='one')
            return True
        except DatabaseError:
            return False

    # Statement execution

    @contextmanager
    def transaction(self):
        """
        Run a block as one transaction.

        Autocommit is suspended for the block and restored afterwards. The
        block's statements are committed together on success and rolled back
        if it raises.
        """
        conn = self._conn
        if conn is None:
            raise SchemaStateError("Not connected to the database")

        was_autocommit = getattr(conn, 'autocommit', None) is True
        if was_autocommit:
            conn.autocommit = False
        else:
            try:
                conn.commit()  # end any previous implicit transaction
            except self.driver.error as e:
                self.logger.debug(f"Commit before transaction failed: {e}")

        self._in_transaction = True
        try:
            yield conn
            conn.commit()
        except Exception:
            self.rollback_quietly()
            raise
        finally:
            self._in_transaction = False
            if was_autocommit:
                try:
                    conn.autocommit = True
                except self.driver.error as e:
                    self.mark_error()
                    self.logger.warning(f"Could not restore autocommit: {e}")

    def execute(self, sql: str, params: Sequence[Any] = (), fetch: Optional[str] = None):
        """
        Execute one statement on the live connection.

        Args:
            sql: Statement text, already in the driver's paramstyle
            params: Bind parameters
            fetch: ``'one'`` or ``'all'`` for queries; None for writes,
                which commit unless inside :meth:`transaction`

        Returns:
            The fetched row(s), or the affected row count for writes

        Raises:
            QueryError: on any driver error; the error flag is set first
        """
        self.db_logger.log_query(sql, tuple(params))
        cursor = None
        try:
            cursor = self._conn.cursor()
            cursor.execute(sql, tuple(params))
            if fetch == 'one':
                return cursor.fetchone()
            if fetch == 'all':
                return cursor.fetchall()
            if not self._in_transaction:
                self._conn.commit()
            return cursor.rowcount
        except self.driver.error as e:
            self.mark_error()
            self.db_logger.log_error('execute', e)
            raise QueryError(f"Query execution failed: {e}") from e
        finally:
            self._close_cursor(cursor)

    def execute_many(self, sql: str, rows: List[Tuple]) -> int:
        """Execute one statement for each parameter tuple in ``rows``, as one batch."""
        self.db_logger.log_query(sql, (f"<{len(rows)} rows>",))
        cursor = None
        try:
            cursor = self._conn.cursor()
            cursor.executemany(sql, rows)
            if not self._in_transaction:
                self._conn.commit()
            return len(rows)
        except self.driver.error as e:
            self.mark_error()
            self.db_logger.log_error('execute_many', e)
            raise QueryError(f"Batch execution failed: {e}") from e
        finally:
            self._close_cursor(cursor)

    def _close_cursor(self, cursor) -> None:
        if cursor is None:
            return
        try:
            cursor.close()
        except Exception as e:
            self.logger.debug(f"Ignoring cursor close failure: {e}")


class BaseRepository:
    """Base class for all database repositories."""

    def __init__(self, db_connection: DatabaseConnection, table_name: str):
        self.db = db_connection
        self.table = table_name
        self.logger = db_connection.logger

    @property
    def catalog(self) -> SchemaCatalog:
        return self.db.catalog

    def _connected(self) -> bool:
        """Reconnect if needed; False means no database is in use."""
        return self.db.ensure_connected()

    def _table_present(self) -> bool:
        return self.catalog.has_table(self.table)

    def _execute_query(self, operation: Operation, params: Tuple = ()) -> int:
        """Execute a statement that modifies data (INSERT, UPDATE, DELETE)."""
        result = self.db.execute(self.catalog.statement_for(operation), params)
        self.logger.debug(f"{operation.value} executed, affected rows: {result}")
        return result

    def _fetch_one(self, operation: Operation, params: Tuple = ()) -> Optional[Tuple]:
        """Execute a query that returns a single row."""
        result = self.db.execute(self.catalog.statement_for(operation), params, fetch='one')
        self.logger.debug(f"{operation.value} executed, result: {'found' if result else 'not found'}")
        return result

    def _fetch_all(self, operation: Operation, params: Tuple = ()) -> List[Tuple]:
        """Execute a query that returns multiple rows."""
        results = self.db.execute(self.catalog.statement_for(operation), params, fetch='all')
        self.logger.debug(f"{operation.value} executed, returned {len(results)} rows")
        return results

    def _fetch_scalar(self, operation: Operation, params: Tuple = ()) -> Any:
        """Execute a query that returns a single value."""
        result = self._fetch_one(operation, params)
        if result:
            return result[0]
        return None
