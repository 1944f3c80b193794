"""Tests for the database backends and URL selection."""
import json

import httpx
import pytest

from plateada_server.db.connection import (
    DatabaseError,
    IntegrityError,
    SQLiteDatabase,
    TursoDatabase,
    create_database,
)


class FakeTurso:
    """Records pipeline requests and answers them like the Turso HTTP API."""

    def __init__(self, fail_on=None, unreachable_on=None):
        self.requests = []
        self.fail_on = fail_on
        self.unreachable_on = unreachable_on

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        sqls = [item.get("stmt", {}).get("sql", "") for item in body["requests"]]
        if self.unreachable_on and self.unreachable_on in sqls:
            return httpx.Response(503, text="unavailable")

        results = []
        for item in body["requests"]:
            if item["type"] == "close":
                results.append({"type": "ok", "response": {"type": "close"}})
                continue
            sql = item["stmt"]["sql"]
            if self.fail_on and self.fail_on in sql:
                results.append({"type": "error", "error": {"message": "UNIQUE constraint failed: users.email"}})
            elif sql.startswith("SELECT"):
                results.append({"type": "ok", "response": {"type": "execute", "result": {
                    "cols": [{"name": "id"}, {"name": "credits"}, {"name": "rating"}, {"name": "contact"}],
                    "rows": [[
                        {"type": "text", "value": "u1"},
                        {"type": "integer", "value": "3"},
                        {"type": "float", "value": 4.5},
                        {"type": "null"},
                    ]],
                    "affected_row_count": 0,
                }}})
            else:
                results.append({"type": "ok", "response": {"type": "execute", "result": {
                    "cols": [], "rows": [], "affected_row_count": 1,
                }}})

        return httpx.Response(200, json={"baton": "baton-1", "results": results})


def turso(handler) -> TursoDatabase:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return TursoDatabase("libsql://plateada-test.turso.io", "tok", client=client)


def test_create_database_by_url(tmp_path):
    assert isinstance(create_database(f"sqlite:///{tmp_path / 'x.db'}"), SQLiteDatabase)
    assert create_database("libsql://db.turso.io", "tok").base_url == "https://db.turso.io"
    with pytest.raises(ValueError):
        create_database("postgres://localhost/plateada")


def test_turso_transaction_uses_baton_and_decodes_rows():
    fake = FakeTurso()
    db = turso(fake)

    with db.transaction() as tx:
        rows = tx.execute("SELECT id, credits, rating, contact FROM users WHERE id = ?", ["u1"])
        tx.execute("UPDATE users SET credits = credits + ? WHERE id = ?", [1, "u1"])
        assert tx.changes == 1

    assert rows == [{"id": "u1", "credits": 3, "rating": 4.5, "contact": None}]

    sent = [body["requests"][0] for body in fake.requests]
    assert sent[0]["stmt"]["sql"] == "BEGIN IMMEDIATE"
    assert sent[1]["stmt"]["args"] == [{"type": "text", "value": "u1"}]
    assert sent[2]["stmt"]["args"] == [{"type": "integer", "value": "1"}, {"type": "text", "value": "u1"}]
    assert sent[3]["stmt"]["sql"] == "COMMIT"
    assert sent[4] == {"type": "close"}

    assert "baton" not in fake.requests[0]
    assert all(body["baton"] == "baton-1" for body in fake.requests[1:])


def test_turso_constraint_maps_to_integrity_error_and_rolls_back():
    fake = FakeTurso(fail_on="INSERT")
    db = turso(fake)

    with pytest.raises(IntegrityError):
        with db.transaction() as tx:
            tx.execute("INSERT INTO users (id) VALUES (?)", [None])

    sqls = [body["requests"][0].get("stmt", {}).get("sql") for body in fake.requests]
    assert sqls[-2] == "ROLLBACK"
    assert "COMMIT" not in sqls


def test_turso_failed_rollback_keeps_original_error(caplog):
    fake = FakeTurso(unreachable_on="ROLLBACK")
    db = turso(fake)

    with pytest.raises(LookupError, match="no such expert"):
        with db.transaction() as tx:
            tx.execute("UPDATE users SET credits = 0 WHERE id = ?", ["u1"])
            raise LookupError("no such expert")

    assert "Rollback failed" in caplog.text
    assert fake.requests[-1]["requests"] == [{"type": "close"}]


def test_turso_http_failure_is_database_error():
    db = turso(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(DatabaseError):
        with db.transaction():
            pass


def test_sqlite_rolls_back_on_error(tmp_path):
    db = SQLiteDatabase(str(tmp_path / "x.db"))
    with db.transaction() as tx:
        tx.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT UNIQUE)")

    with pytest.raises(IntegrityError):
        with db.transaction() as tx:
            tx.execute("INSERT INTO t (name) VALUES (?)", ["a"])
            tx.execute("INSERT INTO t (name) VALUES (?)", ["a"])

    with db.transaction() as tx:
        assert tx.execute("SELECT COUNT(*) AS n FROM t") == [{"n": 0}]


def test_sqlite_reports_changes(tmp_path):
    db = SQLiteDatabase(str(tmp_path / "x.db"))
    with db.transaction() as tx:
        tx.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, n INTEGER)")
        tx.execute("INSERT INTO t (n) VALUES (1), (2)")
        tx.execute("UPDATE t SET n = n + 1 WHERE n > ?", [5])
        assert tx.changes == 0
        tx.execute("UPDATE t SET n = n + 1")
        assert tx.changes == 2

    with pytest.raises(DatabaseError):
        with db.transaction() as tx:
            tx.execute("SELECT * FROM missing_table")
