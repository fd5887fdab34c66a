"""
Database Module for Settlement - SQL Script Runner
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Runs a line-oriented SQL setup script, such as ``sql/tables.sql``, one
statement at a time against the open connection.

Script format:

- blank lines and lines starting with ``--`` are skipped
- a line starting with whitespace or ``)`` continues the previous statement
- any other line starts a new statement
- a trailing ``;`` is dropped when the statement is executed
- ``USE`` lines are skipped for dialects that have no such statement

:copyright: (c) 2024-present Settlement contributors
"""

from typing import TYPE_CHECKING, Iterable, List

from .errors import ScriptError

if TYPE_CHECKING:
    from .base import DatabaseConnection


def _is_continuation(line: str) -> bool:
    return line[:1].isspace() or line.startswith(')')


def parse_lines(lines: Iterable[str], skip_use: bool = False) -> List[str]:
    """
    Split script lines into statements.

    A continuation line is appended to the statement after a newline, with
    its leading whitespace collapsed to one space.

    >>> parse_lines(["CREATE TABLE x (\\n", "  id INT\\n", ");\\n"])
    ['CREATE TABLE x (\\n id INT\\n);']
    """
    statements: List[str] = []
    current = None

    for raw in lines:
        line = raw.rstrip('\r\n')
        stripped = line.strip()
        if not stripped or stripped.startswith('--'):
            continue
        if skip_use and stripped.upper().startswith('USE '):
            continue

        if current is not None and _is_continuation(line):
            if line[:1].isspace():
                line = ' ' + line.lstrip()
            current += '\n' + line.rstrip()
        else:
            if current is not None:
                statements.append(current)
            current = line.strip()

    if current is not None:
        statements.append(current)

    return statements


class ScriptRunner:
    """Runs SQL scripts on a :class:`~modules.database.base.DatabaseConnection`."""

    def __init__(self, db_connection: 'DatabaseConnection'):
        self.db = db_connection
        self.logger = db_connection.logger

    def parse(self, lines: Iterable[str]) -> List[str]:
        return parse_lines(lines, skip_use=not self.db.capabilities.supports_use_statement)

    def run(self, path: str) -> int:
        """
        Execute every statement in the script at ``path``, in order.

        Returns:
            Number of statements executed

        Raises:
            ScriptError: if the file can't be read or a statement fails;
                statements before the failing one stay applied
        """
        self.logger.info(f"Running SQL script {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                statements = self.parse(f)
        except OSError as e:
            raise ScriptError(f"Unable to read SQL script {path}: {e}") from e

        try:
            cursor = self.db.handle.cursor()
        except self.db.driver.error as e:
            self.db.db_logger.log_error('script', e)
            raise ScriptError(f"SQL script {path} failed: no cursor: {e}") from e

        try:
            for statement in statements:
                self.db.db_logger.log_query(statement)
                try:
                    cursor.execute(statement.rstrip(';').rstrip())
                except self.db.driver.error as e:
                    self.db.db_logger.log_error('script', e)
                    raise ScriptError(
                        f"SQL script {path} failed: {e}", statement=statement
                    ) from e
            try:
                self.db.handle.commit()
            except self.db.driver.error as e:
                self.db.db_logger.log_error('script', e)
                raise ScriptError(f"SQL script {path} failed on commit: {e}") from e
        finally:
            cursor.close()

        self.logger.info(f"SQL script {path} complete: {len(statements)} statements")
        return len(statements)
