"""
Shared fixtures for database tests.

These fixtures provide SQLite-backed databases at both schema generations:
- ``legacy_db_path``: original (1000) tables, no nickname_lc
- ``latest_config``: an empty file set up from the bundled tables.sql (1200)
"""

import os
import sqlite3
import tempfile
from pathlib import Path

import pytest

# Keep log files out of the working tree; read once when logging is first configured
os.environ.setdefault('LOG_DIR', tempfile.mkdtemp(prefix='settlement-logs-'))

from modules.database import Database, DatabaseConfig  # noqa: E402

TABLES_SQL = Path(__file__).resolve().parent.parent / 'modules' / 'database' / 'sql' / 'tables.sql'

LEGACY_TABLES = (
    "CREATE TABLE users (nickname VARCHAR(20) NOT NULL, host VARCHAR(50) NOT NULL, "
    "password VARCHAR(20) NOT NULL, email VARCHAR(50), lastlogin DATE, PRIMARY KEY (nickname))",
    "CREATE TABLE logins (nickname VARCHAR(20) NOT NULL, host VARCHAR(50) NOT NULL, lastlogin DATE)",
    "CREATE TABLE games (gamename VARCHAR(20) NOT NULL, player1 VARCHAR(20), player2 VARCHAR(20), "
    "player3 VARCHAR(20), player4 VARCHAR(20), score1 SMALLINT, score2 SMALLINT, score3 SMALLINT, "
    "score4 SMALLINT, starttime TIMESTAMP NOT NULL)",
)

ROBOTPARAMS_TABLE = (
    "CREATE TABLE robotparams (robotname VARCHAR(20) NOT NULL, maxgamelength INT, maxeta INT, "
    "etabonusfactor FLOAT, adversarialfactor FLOAT, leaderadversarialfactor FLOAT, "
    "devcardmultiplier FLOAT, threatmultiplier FLOAT, strategytype INT, starttime TIMESTAMP, "
    "endtime TIMESTAMP, gameswon INT, gameslost INT, tradeflag SMALLINT, PRIMARY KEY (robotname))"
)


def sqlite_url(path) -> str:
    return f"sqlite:{path}"


def run_sql(path, *statements, params=None):
    """Run statements on the file directly, outside the code under test."""
    conn = sqlite3.connect(str(path))
    try:
        for statement in statements:
            if params is not None:
                conn.executemany(statement, params)
            else:
                conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


def query_sql(path, statement):
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute(statement).fetchall()
    finally:
        conn.close()


@pytest.fixture
def db_path(tmp_path):
    """Path of a not-yet-created SQLite database file."""
    return tmp_path / 'socdata.sqlite'


@pytest.fixture
def legacy_db_path(db_path):
    """A database with the original schema (version 1000)."""
    run_sql(db_path, *LEGACY_TABLES)
    return db_path


@pytest.fixture
def legacy_config(legacy_db_path):
    return DatabaseConfig(url=sqlite_url(legacy_db_path))


@pytest.fixture
def latest_config(db_path):
    """Config that creates the latest tables from tables.sql on first connect."""
    return DatabaseConfig(url=sqlite_url(db_path), setup_script=str(TABLES_SQL))


@pytest.fixture
def legacy_db(legacy_config):
    db = Database(legacy_config)
    db.initialize()
    yield db
    db.cleanup(for_shutdown=True)


@pytest.fixture
def latest_db(latest_config, db_path):
    db = Database(latest_config)
    db.initialize()
    yield db
    db.cleanup(for_shutdown=True)
