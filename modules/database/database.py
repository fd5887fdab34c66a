"""
Database Module for Settlement - Main Database Class
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Main database interface that provides access to all repositories.

:copyright: (c) 2024-present Settlement contributors
"""

from datetime import datetime
from typing import Dict, List, Optional

from .base import DatabaseConnection
from .config import DatabaseConfig
from .migrations import MigrationEngine, MigrationState
from .models import GameResult, RobotParameters
from .repositories import (
    GamesRepository, LoginsRepository, RobotParamsRepository, UsersRepository
)


class Database:
    """
    Main database interface for the Settlement server.

    Provides access to all repository classes and handles setup and
    schema upgrades.

    Example:
        config = DatabaseConfig.from_env()

        db = Database(config)
        db.initialize()

        # Access repositories
        nickname = db.users.authenticate('alice', 'secret')
        db.games.save_game_result(game)
    """

    def __init__(self, config: DatabaseConfig, connection: Optional[DatabaseConnection] = None):
        """
        Set up the connection manager and repositories; doesn't connect yet.

        Args:
            config: Database settings
            connection: Connection manager to use instead of a new one
        """
        self.config = config
        self.connection = connection or DatabaseConnection(config)

        # Initialize repositories
        self.users = UsersRepository(self.connection)
        self.logins = LoginsRepository(self.connection)
        self.games = GamesRepository(self.connection)
        self.robot_params = RobotParamsRepository(self.connection)

        # Initialize migration engine
        self.migrations = MigrationEngine(self.connection)

    def initialize(self) -> None:
        """Connect, run the setup script if configured, and detect the schema."""
        self.connection.initialize()

    @property
    def is_initialized(self) -> bool:
        return self.connection.is_initialized

    @property
    def schema_version(self) -> Optional[int]:
        return self.connection.schema_version

    def is_schema_latest(self) -> bool:
        return self.connection.catalog.is_latest()

    def upgrade_schema(self) -> MigrationState:
        return self.migrations.upgrade()

    def health_check(self) -> bool:
        """Check if database connection is healthy."""
        return self.connection.health_check()

    def get_stats(self) -> Dict[str, Optional[int]]:
        """Get database statistics."""
        return {
            'schema_version': self.schema_version,
            'users': self.users.count_users(),
            'connects': self.connection.connect_count,
        }

    def cleanup(self, for_shutdown: bool = False) -> None:
        self.connection.cleanup(for_shutdown)

    # Convenience methods for the server's common operations
    def lookup_user(self, name: str) -> Optional[str]:
        return self.users.lookup_user(name)

    def authenticate(self, name: str, password: str) -> Optional[str]:
        return self.users.authenticate(name, password)

    def create_account(self, name: str, host: str, password: str,
                       email: Optional[str] = None, created_at: Optional[datetime] = None) -> bool:
        return self.users.create_account(name, host, password, email, created_at or datetime.now())

    def record_login(self, name: str, host: str, when: Optional[datetime] = None) -> bool:
        return self.logins.record_login(name, host, when or datetime.now())

    def save_game_result(self, game: GameResult) -> bool:
        """
        Save a finished game's scores, unless saving is turned off.

        Returns:
            True if saved; False if disabled or not connected
        """
        if not self.config.save_games:
            self.connection.logger.debug(f"Not saving game {game.name}: game saving is disabled")
            return False
        return self.games.save_game_result(game)

    def retrieve_robot_params(self, robot_name: str) -> Optional[RobotParameters]:
        return self.robot_params.retrieve_robot_params(robot_name)

    def count_users(self) -> int:
        return self.users.count_users()

    def find_duplicate_case_insensitive_names(self) -> Dict[str, List[str]]:
        return self.users.find_duplicate_case_insensitive_names()
