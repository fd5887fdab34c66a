"""
Database Module for Settlement - Startup
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Brings the database up at server start, including the one-shot utility
modes (setup script, schema upgrade, password reset) which do their job
and then ask the server to exit.

:copyright: (c) 2024-present Settlement contributors
"""

from dataclasses import dataclass
from getpass import getpass
from typing import Callable, Optional, Union

from modules.logging_config import get_logger
from .config import DatabaseConfig
from .database import Database
from .errors import DatabaseError, ValidationError
from .schema import SCHEMA_VERSION_LATEST

logger = get_logger('settlement.startup')


@dataclass
class Ready:
    """Database is connected; the server should carry on starting."""

    db: Database


@dataclass
class Completed:
    """A one-shot mode finished; the server should exit cleanly."""

    message: str


@dataclass
class Failed:
    """Startup failed; the server should exit with an error."""

    error: Exception


StartupOutcome = Union[Ready, Completed, Failed]


def reset_password(db: Database, username: str, prompt: Callable[[str], str] = getpass) -> str:
    """
    Ask for a user's new password twice and store it.

    Returns:
        Completion message

    Raises:
        ValidationError: unknown user, entries don't match, or bad length
    """
    nickname = db.users.lookup_user(username)
    if nickname is None:
        raise ValidationError(f"Password reset: user not found: {username}")

    first = prompt(f"Enter the new password for {nickname}: ")
    second = prompt("Confirm the new password: ")
    if first != second:
        raise ValidationError("Password reset: the passwords do not match")

    db.users.update_password(nickname, first)
    return f"The password for user {nickname} has been changed."


def initialize_database(config: DatabaseConfig,
                        prompt: Callable[[str], str] = getpass,
                        db: Optional[Database] = None) -> StartupOutcome:
    """
    Connect to the database and run any one-shot mode the config asks for.

    Args:
        config: Database settings
        prompt: Reads a password without echo; used by the password reset mode
        db: Database to use instead of a new one

    Returns:
        ``Ready`` for normal startup, ``Completed`` after a one-shot mode,
        ``Failed`` if anything went wrong
    """
    db = db or Database(config)

    try:
        db.initialize()
    except DatabaseError as e:
        logger.error(f"Could not initialize the database: {e}")
        _shutdown_quietly(db)
        return Failed(e)

    logger.info(f"Database initialized, schema version {db.schema_version}")

    if not config.one_shot_mode:
        if not db.is_schema_latest():
            logger.warning(
                f"Database schema upgrade is recommended: version {db.schema_version} "
                f"is older than {SCHEMA_VERSION_LATEST}. Set DB_UPGRADE_SCHEMA=true "
                "and restart to upgrade."
            )
        return Ready(db)

    try:
        if config.setup_script:
            message = f"DB setup script {config.setup_script} was successful."
        elif config.upgrade_schema:
            if db.is_schema_latest():
                message = f"Schema is already at the latest version ({SCHEMA_VERSION_LATEST})."
            else:
                db.upgrade_schema()
                message = f"DB schema upgrade was successful: now at version {db.schema_version}."
        else:
            message = reset_password(db, config.password_reset_user, prompt)
    except DatabaseError as e:
        logger.error(f"Database utility mode failed: {e}")
        _shutdown_quietly(db)
        return Failed(e)

    logger.info(message)
    _shutdown_quietly(db)
    return Completed(message)


def _shutdown_quietly(db: Database) -> None:
    try:
        db.cleanup(for_shutdown=True)
    except DatabaseError as e:
        logger.warning(f"Error closing the database: {e}")
