"""
Database Repositories for Settlement
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Individual repository classes for each database table.

:copyright: (c) 2024-present Settlement contributors
"""

from datetime import datetime
from typing import Dict, List, Optional, Set

from .base import BaseRepository
from .errors import SchemaStateError, ValidationError
from .models import GameResult, RobotParameters
from .schema import SCHEMA_VERSION_1200, Operation
from .seat_folding import fold_seats

PASSWORD_MAX_LENGTH = 20


class UsersRepository(BaseRepository):
    """Repository for users table."""

    def __init__(self, db_connection):
        super().__init__(db_connection, 'users')

    def _lookup_key(self, name: str) -> str:
        """Search key for ``name``: lowercased once the schema has nickname_lc."""
        version = self.catalog.version
        if version is not None and version >= SCHEMA_VERSION_1200:
            return name.lower()
        return name

    def lookup_user(self, name: str) -> Optional[str]:
        """
        Get a user's nickname as stored in the database.

        Matching is case-insensitive once the schema has ``nickname_lc``.

        Returns:
            The stored nickname, or None if not found or not connected
        """
        if name is None:
            raise ValidationError("User name is required")
        if not self._connected():
            return None

        return self._fetch_scalar(Operation.USER_EXISTS, (self._lookup_key(name),))

    def authenticate(self, name: str, password: str) -> Optional[str]:
        """
        Check a user's password.

        A name with no account (or no database at all) authenticates only
        with an empty password.

        Returns:
            The stored nickname (or ``name`` if there's no account) on
            success, None on a password mismatch
        """
        stored_password = None
        if self._connected():
            row = self._fetch_one(Operation.USER_PASSWORD, (self._lookup_key(name),))
            if row:
                name, stored_password = row[0], row[1]

        if stored_password is None:
            ok = password == ""
        else:
            ok = stored_password == password

        return name if ok else None

    def get_user_from_host(self, host: str) -> Optional[str]:
        """Get the nickname of the account created from ``host``."""
        if not self._connected():
            return None
        return self._fetch_scalar(Operation.USER_BY_HOST, (host,))

    def create_account(self, name: str, host: str, password: str,
                       email: Optional[str], created_at: datetime) -> bool:
        """
        Create a new account.

        The caller checks the name isn't taken; a unique-constraint
        violation surfaces as a QueryError.

        Returns:
            True if created, False if not connected
        """
        if name is None:
            raise ValidationError("User name is required")
        if not self._connected():
            return False

        params = [name, host, password, email, created_at]
        if self.catalog.version >= SCHEMA_VERSION_1200:
            params.append(name.lower())

        self._execute_query(Operation.CREATE_ACCOUNT, tuple(params))
        self.logger.info(f"Created account {name} from {host}")
        return True

    def update_last_login(self, name: str, when: datetime) -> bool:
        """Update a user's last login time."""
        if not self._connected():
            return False
        self._execute_query(Operation.UPDATE_LAST_LOGIN, (when, name))
        return True

    def update_password(self, name: str, new_password: str) -> bool:
        """
        Change a user's password.

        Raises:
            ValidationError: if ``name`` is None, or ``new_password`` is empty
                or longer than 20 characters
        """
        if name is None:
            raise ValidationError("User name is required")
        if not new_password or len(new_password) > PASSWORD_MAX_LENGTH:
            raise ValidationError(
                f"Password must be 1 to {PASSWORD_MAX_LENGTH} characters long"
            )
        if not self._connected():
            return False

        self._execute_query(Operation.UPDATE_PASSWORD, (new_password, self._lookup_key(name)))
        self.logger.info(f"Password updated for {name}")
        return True

    def count_users(self) -> int:
        """Count user accounts; -1 if not connected or there's no users table."""
        if not self._connected():
            return -1
        if not self._table_present():
            return -1

        count = self._fetch_scalar(Operation.COUNT_USERS)
        return int(count) if count is not None else -1

    def find_duplicate_case_insensitive_names(
            self, all_names: Optional[Set[str]] = None) -> Dict[str, List[str]]:
        """
        Find nicknames which differ only in case.

        Args:
            all_names: If given, every nickname read is added to this set

        Returns:
            Lowercase name mapped to the stored names sharing it, in the
            order read; empty if there are no duplicates

        Raises:
            SchemaStateError: if not connected
        """
        if not self._connected():
            raise SchemaStateError("Not connected to the database")

        first_seen: Dict[str, str] = {}
        duplicates: Dict[str, List[str]] = {}
        for (name,) in self._fetch_all(Operation.ALL_NICKNAMES):
            key = name.lower()
            if key in first_seen:
                duplicates.setdefault(key, [first_seen[key]]).append(name)
            else:
                first_seen[key] = name
            if all_names is not None:
                all_names.add(name)

        return duplicates


class LoginsRepository(BaseRepository):
    """Repository for logins table."""

    def __init__(self, db_connection):
        super().__init__(db_connection, 'logins')

    def record_login(self, name: str, host: str, when: datetime) -> bool:
        """Record a successful login."""
        if not self._connected():
            return False
        self._execute_query(Operation.RECORD_LOGIN, (name, host, when))
        return True


class GamesRepository(BaseRepository):
    """Repository for games table."""

    def __init__(self, db_connection):
        super().__init__(db_connection, 'games')

    def save_game_result(self, game: GameResult) -> bool:
        """
        Record a finished game's players and scores.

        Games with more than four seats are folded into the table's four
        player slots first.

        Returns:
            True if saved, False if not connected
        """
        if not self._connected():
            return False

        names, scores = fold_seats(game)
        self._execute_query(
            Operation.SAVE_GAME,
            (game.name, *names, *scores, game.start_time)
        )
        self.logger.debug(f"Saved result of game {game.name}")
        return True


class RobotParamsRepository(BaseRepository):
    """Repository for robotparams table."""

    def __init__(self, db_connection):
        super().__init__(db_connection, 'robotparams')

    def retrieve_robot_params(self, robot_name: str) -> Optional[RobotParameters]:
        """Get a robot's tuning parameters; None if it has none or there's no table."""
        if not self._connected():
            return None
        if not self._table_present():
            return None

        row = self._fetch_one(Operation.ROBOT_PARAMS, (robot_name,))
        if not row:
            return None

        return RobotParameters(
            max_game_length=int(row[0]),
            max_eta=int(row[1]),
            eta_bonus_factor=float(row[2]),
            adversarial_factor=float(row[3]),
            leader_adversarial_factor=float(row[4]),
            dev_card_multiplier=float(row[5]),
            threat_multiplier=float(row[6]),
            strategy_type=int(row[7]),
            trade_flag=int(row[8]),
        )
