"""
Settlement server database entry point.

Brings up the database from ``DB_*`` settings in the environment or
``.env``. Utility modes (``DB_SCRIPT_SETUP``, ``DB_UPGRADE_SCHEMA``,
``DB_PW_RESET``) run their task and exit.
"""

import sys

from dotenv import load_dotenv

from modules.database import (
    Completed, DatabaseConfig, DatabaseError, Failed, Ready, initialize_database
)
from modules.logging_config import get_logger

load_dotenv()

# Initialize centralized logging
logger = get_logger('settlement.main')
VERSION = '1.2.0'


def main() -> int:
    logger.info(f'Starting Settlement database v{VERSION}...')

    config = DatabaseConfig.from_env()
    outcome = initialize_database(config)

    if isinstance(outcome, Completed):
        logger.info(outcome.message)
        return 0

    if isinstance(outcome, Failed):
        logger.critical(f'Database startup failed: {outcome.error}')
        return 1

    if isinstance(outcome, Ready):
        db = outcome.db
        try:
            stats = db.get_stats()
        except DatabaseError as e:
            logger.error(f"Could not read database stats: {e}")
            return 1
        finally:
            db.cleanup(for_shutdown=True)
        logger.info(
            f"Database ready: schema version {stats['schema_version']}, "
            f"{stats['users']} users"
        )
        return 0

    logger.error(f'Unexpected startup outcome: {outcome!r}')
    return 1


if __name__ == '__main__':
    sys.exit(main())
