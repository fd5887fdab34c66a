"""
Tests for startup outcomes and the one-shot utility modes
"""
import logging

import pytest

import app
from conftest import TABLES_SQL, query_sql, run_sql, sqlite_url
from modules.database import (
    SCHEMA_VERSION_1200, Completed, ConfigurationError, ConnectivityError, DatabaseConfig,
    Database, Failed, MigrationPrecheckError, QueryError, Ready, ScriptError, ValidationError,
    initialize_database
)


def prompt_with(*answers):
    replies = iter(answers)
    return lambda message: next(replies)


def test_normal_startup_is_ready(latest_db, db_path):
    latest_db.cleanup(for_shutdown=True)

    outcome = initialize_database(DatabaseConfig(url=sqlite_url(db_path)))

    assert isinstance(outcome, Ready)
    assert outcome.db.schema_version == SCHEMA_VERSION_1200
    outcome.db.cleanup(for_shutdown=True)


def test_startup_warns_when_schema_is_old(legacy_config, caplog):
    with caplog.at_level(logging.WARNING, logger='settlement.startup'):
        outcome = initialize_database(legacy_config)

    assert isinstance(outcome, Ready)
    assert 'upgrade is recommended' in caplog.text
    outcome.db.cleanup(for_shutdown=True)


def test_setup_script_mode_completes(db_path):
    outcome = initialize_database(DatabaseConfig(url=sqlite_url(db_path), setup_script=str(TABLES_SQL)))

    assert isinstance(outcome, Completed)
    assert 'setup script' in outcome.message
    tables = {row[0] for row in query_sql(db_path, "SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert tables == {'users', 'logins', 'games', 'robotparams'}


def test_setup_script_failure(db_path, tmp_path):
    script = tmp_path / 'broken.sql'
    script.write_text("CREATE TABLE (;\n")

    outcome = initialize_database(DatabaseConfig(url=sqlite_url(db_path), setup_script=str(script)))

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, ScriptError)


def test_upgrade_mode_completes(legacy_config, legacy_db_path):
    legacy_config.upgrade_schema = True

    outcome = initialize_database(legacy_config)

    assert isinstance(outcome, Completed)
    assert 'nickname_lc' in [row[1] for row in query_sql(legacy_db_path, "PRAGMA table_info(users)")]


def test_upgrade_mode_precheck_failure(legacy_config, legacy_db_path):
    run_sql(legacy_db_path, "INSERT INTO users(nickname, host, password) VALUES (?, 'h', 'pw')",
            params=[('jtest2',), ('JTest2',)])
    legacy_config.upgrade_schema = True

    outcome = initialize_database(legacy_config)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, MigrationPrecheckError)


def test_upgrade_mode_at_latest_completes(latest_config, db_path):
    initialize_database(latest_config)
    config = DatabaseConfig(url=sqlite_url(db_path), upgrade_schema=True)

    outcome = initialize_database(config)

    assert isinstance(outcome, Completed)
    assert 'already at the latest' in outcome.message


def test_password_reset_mode(latest_db, db_path):
    latest_db.create_account('Alice', 'h', 'secret', None)
    latest_db.cleanup(for_shutdown=True)
    config = DatabaseConfig(url=sqlite_url(db_path), password_reset_user='alice')

    outcome = initialize_database(config, prompt=prompt_with('n3wpass', 'n3wpass'))

    assert isinstance(outcome, Completed)
    assert query_sql(db_path, "SELECT password FROM users WHERE nickname = 'Alice'") == [('n3wpass',)]


@pytest.mark.parametrize('user, answers, error', [
    ('alice', ('one', 'two'), ValidationError),
    ('nobody', ('pw', 'pw'), ValidationError),
    ('alice', ('x' * 21, 'x' * 21), ValidationError),
])
def test_password_reset_failures(latest_db, db_path, user, answers, error):
    latest_db.create_account('Alice', 'h', 'secret', None)
    latest_db.cleanup(for_shutdown=True)
    config = DatabaseConfig(url=sqlite_url(db_path), password_reset_user=user)

    outcome = initialize_database(config, prompt=prompt_with(*answers))

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, error)


def test_unavailable_driver_fails(db_path):
    outcome = initialize_database(DatabaseConfig(url=sqlite_url(db_path), driver='no_such_settlement_driver'))

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, ConnectivityError)


def test_bad_configuration_fails():
    outcome = initialize_database(DatabaseConfig(url='derby:socdata'))

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, ConfigurationError)


class TestEntryPoint:

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ('DB_USER', 'DB_PASS', 'DB_URL', 'DB_DRIVER', 'DB_DRIVER_PATH', 'DB_DIALECT',
                     'DB_SCRIPT_SETUP', 'DB_UPGRADE_SCHEMA', 'DB_SAVE_GAMES', 'DB_PW_RESET'):
            monkeypatch.delenv(name, raising=False)

    def test_ready_exits_zero(self, legacy_db_path, monkeypatch):
        monkeypatch.setenv('DB_URL', sqlite_url(legacy_db_path))

        assert app.main() == 0

    def test_completed_exits_zero(self, db_path, monkeypatch):
        monkeypatch.setenv('DB_URL', sqlite_url(db_path))
        monkeypatch.setenv('DB_SCRIPT_SETUP', str(TABLES_SQL))

        assert app.main() == 0

    def test_failed_exits_one(self, monkeypatch):
        monkeypatch.setenv('DB_URL', 'derby:socdata')

        assert app.main() == 1

    def test_stats_failure_exits_one_and_closes(self, legacy_db_path, monkeypatch):
        monkeypatch.setenv('DB_URL', sqlite_url(legacy_db_path))
        closed = []
        original_cleanup = Database.cleanup

        def fail_stats(self):
            raise QueryError('users table unreadable')

        def record_cleanup(self, for_shutdown=False):
            closed.append(for_shutdown)
            original_cleanup(self, for_shutdown)

        monkeypatch.setattr(Database, 'get_stats', fail_stats)
        monkeypatch.setattr(Database, 'cleanup', record_cleanup)

        assert app.main() == 1
        assert closed == [True]
