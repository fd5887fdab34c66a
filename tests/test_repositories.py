"""
Tests for the account, login, game and robot parameter operations
"""
from datetime import datetime

import pytest

from conftest import ROBOTPARAMS_TABLE, query_sql, run_sql, sqlite_url
from modules.database import (
    Database, DatabaseConfig, GameResult, QueryError, RobotParameters, SeatResult, ValidationError
)

WHEN = datetime(2024, 5, 1, 20, 30, 0)


@pytest.fixture
def alice_db(latest_db):
    latest_db.create_account('Alice', 'alice.example.net', 'secret', 'alice@example.net', WHEN)
    return latest_db


class TestUsers:

    def test_authenticate_matches_case_insensitively(self, alice_db):
        assert alice_db.authenticate('alice', 'secret') == 'Alice'

    def test_authenticate_wrong_password(self, alice_db):
        assert alice_db.authenticate('alice', 'wrong') is None

    def test_authenticate_unknown_user_with_empty_password(self, alice_db):
        assert alice_db.authenticate('bob', '') == 'bob'
        assert alice_db.authenticate('bob', 'anything') is None

    def test_authenticate_without_database(self, legacy_config):
        db = Database(legacy_config)

        assert db.authenticate('bob', '') == 'bob'
        assert db.authenticate('bob', 'pw') is None

    def test_legacy_schema_lookup_is_case_sensitive(self, legacy_db):
        legacy_db.create_account('Alice', 'host', 'secret', None, WHEN)

        assert legacy_db.lookup_user('Alice') == 'Alice'
        assert legacy_db.lookup_user('alice') is None
        assert legacy_db.authenticate('Alice', 'secret') == 'Alice'

    def test_lookup_user(self, alice_db):
        assert alice_db.lookup_user('ALICE') == 'Alice'
        assert alice_db.lookup_user('carol') is None

    def test_lookup_user_requires_name(self, alice_db):
        with pytest.raises(ValidationError):
            alice_db.lookup_user(None)

    def test_create_account_stores_lowercase_name(self, alice_db, db_path):
        rows = query_sql(db_path, "SELECT nickname, nickname_lc, host, email FROM users")

        assert rows == [('Alice', 'alice', 'alice.example.net', 'alice@example.net')]

    def test_create_account_case_collision_is_a_query_error(self, alice_db):
        with pytest.raises(QueryError):
            alice_db.create_account('ALICE', 'elsewhere', 'pw', None, WHEN)

    def test_create_account_without_database(self, legacy_config):
        assert Database(legacy_config).create_account('x', 'h', 'pw', None, WHEN) is False

    def test_get_user_from_host(self, alice_db):
        assert alice_db.users.get_user_from_host('alice.example.net') == 'Alice'
        assert alice_db.users.get_user_from_host('unknown.example.net') is None

    def test_update_password(self, alice_db):
        assert alice_db.users.update_password('ALICE', 'newsecret') is True

        assert alice_db.authenticate('alice', 'newsecret') == 'Alice'
        assert alice_db.authenticate('alice', 'secret') is None

    @pytest.mark.parametrize('password', ['', 'x' * 21, None])
    def test_update_password_rejects_bad_length(self, alice_db, password):
        with pytest.raises(ValidationError):
            alice_db.users.update_password('Alice', password)

    def test_update_password_accepts_twenty_characters(self, alice_db):
        assert alice_db.users.update_password('Alice', 'x' * 20) is True

    def test_update_last_login(self, alice_db, db_path):
        later = datetime(2024, 6, 2, 9, 0, 0)

        assert alice_db.users.update_last_login('Alice', later) is True
        assert query_sql(db_path, "SELECT lastlogin FROM users")[0][0].startswith('2024-06-02')

    def test_count_users(self, alice_db):
        alice_db.create_account('bob', 'h', 'pw', None, WHEN)

        assert alice_db.count_users() == 2

    def test_count_users_without_database(self, legacy_config):
        assert Database(legacy_config).count_users() == -1

    def test_duplicate_case_insensitive_names(self, legacy_db, legacy_db_path):
        run_sql(
            legacy_db_path,
            "INSERT INTO users(nickname, host, password) VALUES (?, 'h', 'pw')",
            params=[('jtest2',), ('JTest2',), ('alice',)],
        )
        all_names = set()

        duplicates = legacy_db.users.find_duplicate_case_insensitive_names(all_names)

        assert duplicates == {'jtest2': ['jtest2', 'JTest2']}
        assert all_names == {'jtest2', 'JTest2', 'alice'}

    def test_no_duplicates(self, alice_db):
        assert alice_db.find_duplicate_case_insensitive_names() == {}


class TestLogins:

    def test_record_login(self, alice_db, db_path):
        assert alice_db.record_login('Alice', '10.0.0.5', WHEN) is True

        assert query_sql(db_path, "SELECT nickname, host FROM logins") == [('Alice', '10.0.0.5')]


class TestGames:

    def test_save_four_player_game(self, latest_db, db_path):
        game = GameResult('quick', [
            SeatResult('Alice', 10), SeatResult('robot 1', 6, is_robot=True), None, SeatResult('bob', 4),
        ], winner=0, start_time=WHEN)

        assert latest_db.save_game_result(game) is True

        rows = query_sql(db_path, "SELECT gamename, player1, player2, player3, player4, "
                                  "score1, score2, score3, score4 FROM games")
        assert rows == [('quick', 'Alice', 'robot 1', None, 'bob', 10, 6, 0, 4)]

    def test_save_six_player_game_is_folded(self, latest_db, db_path):
        game = GameResult('big', [
            SeatResult('a', 4), None, SeatResult('b', 3), SeatResult('c', 5), SeatResult('d', 10), None,
        ], winner=4, start_time=WHEN)

        latest_db.save_game_result(game)

        assert query_sql(db_path, "SELECT player1, player2, player3, player4 FROM games") == \
            [('a', 'd', 'b', 'c')]

    def test_game_saving_disabled(self, latest_config, db_path):
        latest_config.save_games = False
        db = Database(latest_config)
        db.initialize()
        try:
            game = GameResult('off', [SeatResult('a', 10)] * 4, winner=0)

            assert db.save_game_result(game) is False
            assert query_sql(db_path, "SELECT COUNT(*) FROM games") == [(0,)]
        finally:
            db.cleanup(for_shutdown=True)


class TestRobotParams:

    def test_missing_table_reads_as_no_parameters(self, legacy_db):
        assert legacy_db.retrieve_robot_params('robot 1') is None

    def test_retrieve_robot_params(self, legacy_db_path):
        run_sql(
            legacy_db_path,
            ROBOTPARAMS_TABLE,
            "INSERT INTO robotparams(robotname, maxgamelength, maxeta, etabonusfactor, adversarialfactor, "
            "leaderadversarialfactor, devcardmultiplier, threatmultiplier, strategytype, tradeflag) "
            "VALUES ('robot 1', 120, 99, 0.8, 1.5, 3.0, 2.0, 1.1, 0, 1)",
        )
        db = Database(DatabaseConfig(url=sqlite_url(legacy_db_path)))
        db.initialize()
        try:
            params = db.retrieve_robot_params('robot 1')

            assert params == RobotParameters(120, 99, 0.8, 1.5, 3.0, 2.0, 1.1, 0, 1)
            assert db.retrieve_robot_params('robot 2') is None
        finally:
            db.cleanup(for_shutdown=True)
