"""
Database Module for Settlement
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Persistence layer for the Settlement game server: user accounts, logins,
game results and robot parameters, across MySQL/MariaDB, PostgreSQL and
SQLite, with schema version detection and upgrades.

:copyright: (c) 2024-present Settlement contributors
"""

__title__ = 'settlement database'
__author__ = 'Settlement contributors'
__license__ = 'None'
__version__ = '1.2.0'
__copyright__ = 'Copyright 2024-present Settlement contributors'

# Main imports
from .database import Database
from .base import BaseRepository, DatabaseConnection
from .config import DatabaseConfig
from .errors import (
    ConfigurationError, ConnectivityError, DatabaseError, MigrationExecutionError,
    MigrationPrecheckError, QueryError, SchemaStateError, ScriptError, ValidationError
)
from .migrations import MigrationEngine, MigrationState
from .models import GameResult, RobotParameters, SeatResult
from .repositories import (
    GamesRepository, LoginsRepository, RobotParamsRepository, UsersRepository
)
from .schema import SCHEMA_VERSION_1200, SCHEMA_VERSION_LATEST, SCHEMA_VERSION_ORIGINAL
from .startup import Completed, Failed, Ready, initialize_database

# Make the Database class available as the main export
__all__ = [
    'Database',
    'DatabaseConfig',
    'DatabaseConnection',
    'BaseRepository',
    'DatabaseError',
    'ConfigurationError',
    'ConnectivityError',
    'QueryError',
    'ValidationError',
    'SchemaStateError',
    'ScriptError',
    'MigrationPrecheckError',
    'MigrationExecutionError',
    'MigrationEngine',
    'MigrationState',
    'GameResult',
    'SeatResult',
    'RobotParameters',
    'UsersRepository',
    'LoginsRepository',
    'GamesRepository',
    'RobotParamsRepository',
    'SCHEMA_VERSION_ORIGINAL',
    'SCHEMA_VERSION_1200',
    'SCHEMA_VERSION_LATEST',
    'Ready',
    'Completed',
    'Failed',
    'initialize_database',
]

# Prevent direct execution
if __name__ == '__main__':
    print('This is not a standalone module.')
    raise SystemExit
