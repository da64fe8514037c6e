"""Tests for SQL splitting and ignorable-error classification."""

import pytest

from sovereign_liberator.services.error_classifier import (
    ClassificationRule,
    IgnorableErrorClassifier,
    RuleKind,
)
from sovereign_liberator.services.sql_splitter import (
    is_executable_statement,
    split_sql_statements,
)


class TestSplitSqlStatements:
    """Tests for top-level statement splitting."""

    def test_simple_statements(self):
        sql = "CREATE TABLE t (id int); CREATE TABLE u (id int);"
        assert split_sql_statements(sql) == ["CREATE TABLE t (id int)", "CREATE TABLE u (id int)"]

    def test_trailing_statement_without_semicolon(self):
        assert split_sql_statements("SELECT 1; SELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_dollar_quoted_body_is_not_split(self):
        sql = (
            "CREATE FUNCTION f() RETURNS void AS $$\n"
            "BEGIN\n  PERFORM 1; PERFORM 2;\nEND;\n$$ LANGUAGE plpgsql;\n"
            "SELECT 1;"
        )
        statements = split_sql_statements(sql)
        assert len(statements) == 2
        assert "PERFORM 1; PERFORM 2;" in statements[0]

    def test_tagged_dollar_quote(self):
        sql = "DO $body$ BEGIN RAISE NOTICE 'a;b'; END $body$; SELECT 2;"
        assert split_sql_statements(sql) == [
            "DO $body$ BEGIN RAISE NOTICE 'a;b'; END $body$",
            "SELECT 2",
        ]

    def test_quoted_semicolon_and_doubled_quote(self):
        sql = "INSERT INTO t VALUES ('it''s; fine'); SELECT 1;"
        assert split_sql_statements(sql) == ["INSERT INTO t VALUES ('it''s; fine')", "SELECT 1"]

    def test_comments_hide_semicolons(self):
        sql = "-- setup; nothing here\nSELECT 1; /* a; b */ SELECT 2;"
        statements = split_sql_statements(sql)
        assert len(statements) == 2
        assert statements[1] == "/* a; b */ SELECT 2"

    def test_rejoin_is_equivalent(self):
        sql = "CREATE TABLE a (x text DEFAULT ';');\nCREATE INDEX i ON a (x);\n"
        rejoined = ";".join(split_sql_statements(sql)) + ";"
        assert split_sql_statements(rejoined) == split_sql_statements(sql)

    @pytest.mark.parametrize(
        ("statement", "expected"),
        [
            ("-- only a comment", False),
            ("/* block */\n  ", False),
            ("-- header\nCREATE TABLE t (id int)", True),
            ("SELECT 1", True),
        ],
    )
    def test_is_executable_statement(self, statement, expected):
        assert is_executable_statement(statement) is expected


class TestIgnorableErrorClassifier:
    """Tests for the strategy-based classifier."""

    @pytest.mark.parametrize(
        "error",
        [
            'relation "profiles" already exists',
            'type "app_role" already exists',
            '{"code":"42P07","message":"duplicate table"}',
            "ERROR: duplicate key value violates unique constraint",
            'policy "Users read own" for table "profiles" already exists',
        ],
    )
    def test_ignorable(self, error):
        assert IgnorableErrorClassifier().is_ignorable(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            'syntax error at or near "boom"',
            '{"code":"42601"}',
            "permission denied for schema auth",
            "value 142P071 out of range",
        ],
    )
    def test_fatal(self, error):
        assert IgnorableErrorClassifier().is_ignorable(error) is False

    def test_with_rules_extends_vocabulary(self):
        base = IgnorableErrorClassifier(rules=())
        assert not base.is_ignorable("Table 'x' already present")

        extended = base.with_rules(ClassificationRule(RuleKind.REGEX, r"table '.*' already present"))
        assert extended.is_ignorable("Table 'x' already present")
        assert base.rules == ()
