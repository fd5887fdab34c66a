"""
Database Module for Settlement - Configuration
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Connection settings, read from the environment (``.env`` supported).

:copyright: (c) 2024-present Settlement contributors
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .dialects import (
    Dialect, capabilities_for, dialect_from_driver, dialect_from_url
)
from .errors import ConfigurationError


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'y', 'on')


def _env_str(name: str) -> Optional[str]:
    """Environment value, with empty strings treated as unset."""
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return None
    return value.strip()


@dataclass
class DatabaseConfig:
    """
    Settings for connecting to the game server's user database.

    Example:
        config = DatabaseConfig(user='socuser', password='socpass',
                                url='postgresql://dbhost/socdata')
    """

    user: str = 'socuser'
    password: str = field(default='', repr=False)
    url: Optional[str] = None
    driver: Optional[str] = None
    driver_path: Optional[str] = None
    dialect: Optional[str] = None
    setup_script: Optional[str] = None
    upgrade_schema: bool = False
    save_games: bool = True
    password_reset_user: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'DatabaseConfig':
        """
        Build a config from ``DB_*`` environment variables.

        Args:
            env_file: Optional dotenv file to load first; defaults to ``.env``
        """
        load_dotenv(env_file)

        return cls(
            user=_env_str('DB_USER') or 'socuser',
            password=os.getenv('DB_PASS', ''),
            url=_env_str('DB_URL'),
            driver=_env_str('DB_DRIVER'),
            driver_path=_env_str('DB_DRIVER_PATH'),
            dialect=_env_str('DB_DIALECT'),
            setup_script=_env_str('DB_SCRIPT_SETUP'),
            upgrade_schema=_env_flag('DB_UPGRADE_SCHEMA'),
            save_games=_env_flag('DB_SAVE_GAMES', default=True),
            password_reset_user=_env_str('DB_PW_RESET'),
        )

    @property
    def one_shot_mode(self) -> bool:
        """True if startup should run a utility task and then exit."""
        return bool(self.setup_script or self.upgrade_schema or self.password_reset_user)


@dataclass(frozen=True)
class ResolvedTarget:
    """Where and how to connect, after defaults and detection are applied."""

    dialect: Dialect
    driver: str
    url: str


def resolve_target(config: DatabaseConfig) -> ResolvedTarget:
    """
    Work out dialect, driver and URL from whichever of them the config gives.

    Raises:
        ConfigurationError: if only one of URL/driver is given and the other
            can't be inferred from it, or the dialect name is unknown
    """
    if config.dialect:
        try:
            dialect = Dialect(config.dialect.lower())
        except ValueError:
            raise ConfigurationError(f"Unknown database dialect: {config.dialect}") from None
        caps = capabilities_for(dialect)
        driver = config.driver or caps.default_driver
        url = config.url or caps.default_url
        if not driver or not url:
            raise ConfigurationError(
                f"Dialect {dialect.value} needs both DB_URL and DB_DRIVER to be set"
            )
        return ResolvedTarget(dialect, driver, url)

    mysql = capabilities_for(Dialect.MYSQL)

    if config.url:
        if config.driver:
            return ResolvedTarget(dialect_from_driver(config.driver), config.driver, config.url)

        dialect = dialect_from_url(config.url)
        if dialect is None:
            raise ConfigurationError(
                f"URL is set, but driver is not, and the URL prefix is not recognized: {config.url}"
            )
        return ResolvedTarget(dialect, capabilities_for(dialect).default_driver, config.url)

    if config.driver:
        dialect = dialect_from_driver(config.driver)
        caps = capabilities_for(dialect)
        if caps.default_url is None:
            raise ConfigurationError(
                f"Driver is set, but URL is not, and no default URL is known for: {config.driver}"
            )
        return ResolvedTarget(dialect, config.driver, caps.default_url)

    return ResolvedTarget(Dialect.MYSQL, mysql.default_driver, mysql.default_url)
