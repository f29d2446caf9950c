import sqlite3
from pathlib import Path

import pytest

from openrq.errors import ConfigurationError, QueryError, SchemaError
from openrq.storage.datacontext import DataContext, project_name_for
from openrq.storage.sqlite import schema as _schema
from openrq.storage.sqlite import utils

EXPECTED_SCHEMA = {
    "Info": {
        "columns": ["id", "version", "name", "created"],
        "foreign_keys": [],
    },
    "Solutions": {
        "columns": ["id", "uid", "parent", "label", "description", "link"],
        "foreign_keys": [("label", "Labels", "id"), ("parent", "Requirements", "id")],
    },
    "Projects": {
        "columns": ["id", "name", "created"],
        "foreign_keys": [],
    },
    "ItemVersions": {
        "columns": ["id", "version", "item", "itemV", "type"],
        "foreign_keys": [("version", "Projects", "id")],
    },
    "Requirements": {
        "columns": ["id", "uid", "parent", "label", "description", "rationale", "fitCriterion"],
        "foreign_keys": [("label", "Labels", "id"), ("parent", "Solutions", "id")],
    },
    "LabelItems": {
        "columns": ["id", "label", "item", "type"],
        "foreign_keys": [("label", "Labels", "id")],
    },
    "Media": {
        "columns": ["id", "parent", "format", "data"],
        "foreign_keys": [("parent", "Solutions", "id")],
    },
    "Labels": {
        "columns": ["id", "tag", "color"],
        "foreign_keys": [],
    },
}


def _open(tmp_path: Path, name: str = "demo.orq") -> DataContext:
    return DataContext(tmp_path / name)


def test_new_file_gets_full_schema(tmp_path):
    ctx = _open(tmp_path)
    try:
        assert ctx.created
        assert ctx.path.exists()
        assert _schema.describe_schema(ctx.conn) == EXPECTED_SCHEMA
        assert _schema.get_user_version(ctx.conn) == _schema.SCHEMA_VERSION
    finally:
        ctx.close()


def test_new_file_has_single_info_row_named_after_file(tmp_path):
    with _open(tmp_path) as ctx:
        rows = ctx.query("select id, version, name from Info").unwrap()
        assert len(rows) == 1
        assert rows[0]["name"] == "demo"
        assert rows[0]["version"] == 1
        assert ctx.info().unwrap()["name"] == "demo"


def test_reopen_does_not_recreate(tmp_path):
    with _open(tmp_path) as ctx:
        ctx.execute("insert into Projects (name) values (?)", ("v1",)).unwrap()

    with _open(tmp_path) as ctx:
        assert not ctx.created
        assert ctx.query_one("select count(*) from Info").unwrap()[0] == 1
        assert ctx.query_one("select name from Projects").unwrap()["name"] == "v1"


def test_close_is_idempotent(tmp_path):
    ctx = _open(tmp_path)
    assert ctx.is_open()
    ctx.close()
    ctx.close()
    assert not ctx.is_open()
    assert "closed" in repr(ctx)


def test_statements_on_closed_context_fail(tmp_path):
    ctx = _open(tmp_path)
    ctx.close()

    outcome = ctx.execute("insert into Labels (tag) values ('x')")
    assert not outcome.ok
    assert isinstance(outcome.error, QueryError)
    assert "closed" in str(outcome.error)
    assert not ctx.query("select 1").ok
    with pytest.raises(QueryError):
        with ctx.transaction():
            pass


def test_failed_statement_returns_failure(tmp_path):
    with _open(tmp_path) as ctx:
        outcome = ctx.execute("insert into NoSuchTable values (1)")
        assert not outcome.ok
        assert not outcome
        assert "NoSuchTable" in str(outcome.error)
        with pytest.raises(QueryError):
            outcome.unwrap()

        # the connection stays usable
        assert ctx.query("select count(*) from Labels").ok


def test_execute_reports_lastrowid_and_rowcount(tmp_path):
    with _open(tmp_path) as ctx:
        first = ctx.execute("insert into Labels (tag, color) values (?, ?)", ("a", 1)).unwrap()
        second = ctx.execute("insert into Labels (tag, color) values (?, ?)", ("b", 2)).unwrap()
        assert second.lastrowid == first.lastrowid + 1
        assert first.rowcount == 1

        updated = ctx.execute("update Labels set color = 0").unwrap()
        assert updated.rowcount == 2


def test_transaction_rolls_back_on_error(tmp_path):
    with _open(tmp_path) as ctx:
        with pytest.raises(RuntimeError):
            with ctx.transaction():
                ctx.execute("insert into Labels (tag) values ('lost')").unwrap()
                raise RuntimeError("boom")
        assert ctx.query_one("select count(*) from Labels").unwrap()[0] == 0

        with ctx.transaction():
            ctx.execute("insert into Labels (tag) values ('kept')").unwrap()
            with ctx.transaction():
                ctx.execute("insert into Labels (tag) values ('nested')").unwrap()
        assert ctx.query_one("select count(*) from Labels").unwrap()[0] == 2


def test_foreign_keys_enforced_by_default(tmp_path):
    with _open(tmp_path) as ctx:
        outcome = ctx.execute("insert into Media (parent, data) values (?, ?)", (99, b"x"))
        assert not outcome.ok
        assert "FOREIGN KEY" in str(outcome.error)


def test_foreign_keys_can_be_disabled(tmp_path):
    ctx = DataContext(tmp_path / "loose.orq", pragmas={"foreign_keys": False})
    try:
        assert ctx.execute("insert into Media (parent, data) values (?, ?)", (99, b"x")).ok
    finally:
        ctx.close()


def test_missing_driver_raises_configuration_error(tmp_path, monkeypatch):
    monkeypatch.setattr(utils.sqlite3, "sqlite_version_info", (3, 0, 0))
    assert not utils.driver_available()
    with pytest.raises(ConfigurationError):
        _open(tmp_path)
    assert not (tmp_path / "demo.orq").exists()


def test_failed_table_creation_names_table_and_removes_file(tmp_path, monkeypatch):
    broken = tuple(
        (name, "create table Projects (id integer primary key,") if name == "Projects" else (name, ddl)
        for name, ddl in _schema.TABLES
    )
    monkeypatch.setattr(_schema, "TABLES", broken)

    with pytest.raises(SchemaError) as excinfo:
        _open(tmp_path)
    assert excinfo.value.table == "Projects"
    assert not (tmp_path / "demo.orq").exists()


def test_existing_file_missing_tables_raises(tmp_path):
    path = tmp_path / "partial.orq"
    conn = sqlite3.connect(path)
    conn.execute("create table Info (id integer primary key, name text)")
    conn.commit()
    conn.close()

    with pytest.raises(SchemaError) as excinfo:
        DataContext(path)
    assert excinfo.value.table == "Solutions"
    assert path.exists()


def test_empty_existing_file_is_initialised(tmp_path):
    path = tmp_path / "blank.orq"
    path.touch()

    with DataContext(path) as ctx:
        assert ctx.created
        assert _schema.missing_tables(ctx.conn) == []
        assert ctx.info().unwrap()["name"] == "blank"


def test_non_database_file_raises_schema_error(tmp_path):
    path = tmp_path / "garbage.orq"
    path.write_bytes(b"this is not a database file\n" * 64)

    with pytest.raises(SchemaError):
        DataContext(path)
    assert path.exists()


def test_creates_missing_parent_directories(tmp_path):
    with DataContext(tmp_path / "a" / "b" / "deep.orq") as ctx:
        assert ctx.created
        assert ctx.path.parent.is_dir()


@pytest.mark.parametrize(
    "path, expected",
    [
        ("demo.orq", "demo"),
        ("/some/dir/archive.tar.orq", "archive.tar"),
        ("noext", "noext"),
    ],
)
def test_project_name_for(path, expected):
    assert project_name_for(path) == expected


@pytest.mark.parametrize("name", ["plan#2.orq", "what?.orq", "100%25.orq"])
def test_reopen_path_with_uri_characters(tmp_path, name):
    with DataContext(tmp_path / name) as ctx:
        assert ctx.created
        ctx.execute("insert into Labels (tag) values ('kept')").unwrap()

    assert [entry.name for entry in tmp_path.iterdir()] == [name]

    with DataContext(tmp_path / name) as ctx:
        assert not ctx.created
        assert ctx.query_one("select tag from Labels").unwrap()["tag"] == "kept"


class _CommitFails:
    """Connection wrapper whose COMMIT reports a locked database."""

    def __init__(self, conn):
        self._conn = conn

    @property
    def in_transaction(self):
        return self._conn.in_transaction

    def execute(self, sql, *args):
        if sql == "COMMIT":
            raise sqlite3.OperationalError("database is locked")
        return self._conn.execute(sql, *args)


def test_failed_commit_rolls_back(tmp_path):
    conn = utils.open_db(str(tmp_path / "plain.db"))
    try:
        conn.execute("create table t (x integer)")
        wrapped = _CommitFails(conn)
        with pytest.raises(sqlite3.OperationalError):
            with utils.transaction(wrapped):
                wrapped.execute("insert into t values (1)")

        assert not conn.in_transaction
        assert conn.execute("select count(*) from t").fetchone()[0] == 0

        with utils.transaction(conn):
            conn.execute("insert into t values (2)")
        assert not conn.in_transaction
        assert conn.execute("select count(*) from t").fetchone()[0] == 1
    finally:
        conn.close()
