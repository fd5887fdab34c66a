"""
Database Module for Settlement - Schema Migrations
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Upgrades a connected database to the latest schema version.

1000 -> 1200 adds ``users.nickname_lc`` (filled from ``nickname``) and the
unique index ``users__l``, which makes nicknames unique regardless of case.

:copyright: (c) 2024-present Settlement contributors
"""

from enum import Enum
from typing import Dict, List, Optional, Set

from modules.logging_config import get_logger, log_function_call
from .base import DatabaseConnection
from .errors import (
    DatabaseError, MigrationExecutionError, MigrationPrecheckError, SchemaStateError
)
from .repositories import UsersRepository
from .schema import SCHEMA_VERSION_1200, SCHEMA_VERSION_LATEST, Operation

logger = get_logger('settlement.database.migrations')

DEFAULT_BATCH_SIZE = 100

NICKNAME_LC_TYPE = 'VARCHAR(20)'

RENAME_INSTRUCTIONS = (
    "\nTo upgrade, the nicknames must be changed to be unique when lowercase.\n"
    "Contact each user and determine new nicknames, then for each user run this SQL:\n"
    "  BEGIN;\n"
    "  UPDATE users SET nickname='newnick' WHERE nickname='oldnick';\n"
    "  UPDATE logins SET nickname='newnick' WHERE nickname='oldnick';\n"
    "  UPDATE games SET player1='newnick' WHERE player1='oldnick';\n"
    "  UPDATE games SET player2='newnick' WHERE player2='oldnick';\n"
    "  UPDATE games SET player3='newnick' WHERE player3='oldnick';\n"
    "  UPDATE games SET player4='newnick' WHERE player4='oldnick';\n"
    "  COMMIT;\n"
    "Then, retry the DB schema upgrade.\n"
)


class MigrationState(Enum):
    NOT_NEEDED = 'not-needed'
    PRECHECK_FAILED = 'precheck-failed'
    IN_PROGRESS = 'in-progress'
    COMMITTED = 'committed'
    ROLLED_BACK = 'rolled-back'


def build_precheck_report(collisions: Dict[str, List[str]]) -> str:
    """Operator-facing description of nickname collisions and how to fix them."""
    lines = ["These groups of users' nicknames collide with each other when lowercase:"]
    for names in collisions.values():
        lines.append('[' + ', '.join(names) + ']')
    return '\n'.join(lines) + '\n' + RENAME_INSTRUCTIONS


class MigrationEngine:
    """
    Runs schema upgrades on a :class:`~modules.database.base.DatabaseConnection`.

    Example:
        engine = MigrationEngine(db.connection)
        engine.upgrade()   # raises on failure; engine.state tells where it stopped
    """

    def __init__(self, db_connection: DatabaseConnection,
                 batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.db = db_connection
        self.users = UsersRepository(db_connection)
        self.batch_size = batch_size
        self.state: Optional[MigrationState] = None

    @property
    def capabilities(self):
        return self.db.capabilities

    @log_function_call(logger)
    def upgrade(self) -> MigrationState:
        """
        Upgrade the schema to the latest version.

        Returns:
            ``MigrationState.COMMITTED``

        Raises:
            SchemaStateError: if not connected, or already at the latest version
            MigrationPrecheckError: if existing data blocks the upgrade; nothing is changed
            MigrationExecutionError: if a step failed; the changes are compensated
                where the dialect allows it
        """
        self.db.ensure_connected()
        if self.db.catalog.is_latest():
            self.state = MigrationState.NOT_NEEDED
            raise SchemaStateError(
                f"Schema is already at the latest version ({SCHEMA_VERSION_LATEST})"
            )

        if self.db.schema_version < SCHEMA_VERSION_1200:
            self._upgrade_to_1200()

        self.db.catalog.refresh()
        self.state = MigrationState.COMMITTED
        logger.info(f"Schema upgrade completed: now at version {self.db.schema_version}")
        return self.state

    def precheck_1200(self, all_names: Optional[Set[str]] = None) -> Dict[str, List[str]]:
        """
        Nicknames that would collide under the 1200 unique index.

        Raises:
            MigrationPrecheckError: if any exist
        """
        collisions = self.users.find_duplicate_case_insensitive_names(all_names)
        if collisions:
            self.state = MigrationState.PRECHECK_FAILED
            report = build_precheck_report(collisions)
            logger.error(report)
            raise MigrationPrecheckError(report, collisions)
        return collisions

    def _upgrade_to_1200(self) -> None:
        all_names: Set[str] = set()
        self.precheck_1200(all_names)

        self.state = MigrationState.IN_PROGRESS
        added = False
        try:
            self.db.execute(self.capabilities.add_column_ddl('users', 'nickname_lc', NICKNAME_LC_TYPE))
            added = True

            if all_names:
                self._backfill_nickname_lc(sorted(all_names))

            self.db.execute("CREATE UNIQUE INDEX users__l ON users(nickname_lc)")
        except DatabaseError as e:
            logger.error(f"Problem occurred during schema upgrade, will attempt to roll back: {e}")
            compensated = self._compensate_1200() if added else True
            self.state = MigrationState.ROLLED_BACK

            if compensated:
                message = f"Schema upgrade failed and was rolled back: {e}"
            else:
                message = (
                    f"Schema upgrade failed: {e}. Could not completely roll back "
                    "the failed upgrade: restore the database from backup"
                )
                logger.critical(message)
            raise MigrationExecutionError(message, e, compensated) from e

    def _backfill_nickname_lc(self, names: List[str]) -> None:
        """
        Fill ``nickname_lc`` for every existing user, in batches, as one
        transaction. Lowercasing is done here rather than with SQL ``lower()``,
        which is ASCII-only on some dialects.
        """
        sql = self.db.catalog.statement_for(Operation.BACKFILL_NICKNAME_LC)
        rows = [(name.lower(), name) for name in names]

        with self.db.transaction():
            for start in range(0, len(rows), self.batch_size):
                batch = rows[start:start + self.batch_size]
                self.db.execute_many(sql, batch)
                logger.debug(f"Backfilled nickname_lc batch of {len(batch)} rows")

        logger.info(f"Backfilled nickname_lc for {len(rows)} users")

    def _compensate_1200(self) -> bool:
        """Drop the added column. False if the dialect can't or the drop fails."""
        if not self.capabilities.can_drop_column:
            logger.warning(
                f"{self.db.dialect.value} cannot drop the added nickname_lc column"
            )
            return False

        try:
            self.db.execute(self.capabilities.drop_column_ddl('users', 'nickname_lc'))
            return True
        except DatabaseError as e:
            logger.error(f"Rollback of nickname_lc column failed: {e}")
            return False
