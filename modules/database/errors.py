"""
Database Module for Settlement - Errors
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Exception hierarchy for the persistence layer.

:copyright: (c) 2024-present Settlement contributors
"""

from typing import Dict, List, Optional


class DatabaseError(Exception):
    """Custom exception for database operations."""
    pass


class ConfigurationError(DatabaseError):
    """The URL/driver/dialect settings are inconsistent or incomplete."""
    pass


class ConnectivityError(DatabaseError):
    """Driver not loadable, connection refused, or credentials rejected."""
    pass


class QueryError(DatabaseError):
    """A statement failed to execute. The connection is flagged for reconnect."""
    pass


class ValidationError(DatabaseError, ValueError):
    """Malformed input caught before touching the database."""
    pass


class SchemaStateError(DatabaseError, RuntimeError):
    """Operation not valid in the current connection or schema state."""
    pass


class ScriptError(DatabaseError):
    """A setup script could not be read, or one of its statements failed."""

    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.statement = statement


class MigrationPrecheckError(DatabaseError):
    """
    Data in the database blocks a schema upgrade.

    ``collisions`` maps each lowercase nickname to the stored nicknames that
    collide on it; ``report`` is the remediation text to show the operator.
    """

    def __init__(self, report: str, collisions: Dict[str, List[str]]):
        super().__init__(report)
        self.report = report
        self.collisions = collisions


class MigrationExecutionError(DatabaseError):
    """
    A schema upgrade step failed.

    ``original`` is the failure that stopped the upgrade. ``compensated`` is
    True when the partial change was rolled back, False when the operator must
    restore the database from a backup.
    """

    def __init__(self, message: str, original: Exception, compensated: bool):
        super().__init__(message)
        self.original = original
        self.compensated = compensated
