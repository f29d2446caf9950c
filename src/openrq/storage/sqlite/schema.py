"""
Schema definition and creation helpers for ``.orq`` project files.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from openrq.errors import SchemaError
from openrq.storage.sqlite.utils import transaction

__all__ = [
    "SCHEMA_VERSION",
    "TABLES",
    "TABLE_NAMES",
    "create_schema",
    "insert_info",
    "read_info",
    "missing_tables",
    "has_tables",
    "describe_schema",
    "get_user_version",
    "set_user_version",
]

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Foreign key targets are resolved at use time, so Solutions may reference
# Requirements before that table exists.
TABLES: tuple[tuple[str, str], ...] = (
    (
        "Info",
        """
        create table Info (
            id integer primary key,
            version integer default 1,
            name text,
            created integer default current_timestamp
        )
        """,
    ),
    (
        "Solutions",
        """
        create table Solutions (
            id integer primary key,
            uid integer,
            parent integer,
            label integer,
            description text,
            link text,
            foreign key(parent) references Requirements(id),
            foreign key(label) references Labels(id)
        )
        """,
    ),
    (
        "Projects",
        """
        create table Projects (
            id integer primary key,
            name text,
            created integer default current_timestamp
        )
        """,
    ),
    (
        "ItemVersions",
        """
        create table ItemVersions (
            id integer primary key,
            version integer,
            item integer,
            itemV integer default 1,
            type integer,
            foreign key(version) references Projects(id)
        )
        """,
    ),
    (
        "Requirements",
        """
        create table Requirements (
            id integer primary key,
            uid integer,
            parent integer,
            label integer,
            description text,
            rationale text,
            fitCriterion text,
            foreign key(parent) references Solutions(id),
            foreign key(label) references Labels(id)
        )
        """,
    ),
    (
        "LabelItems",
        """
        create table LabelItems (
            id integer primary key,
            label integer,
            item integer,
            type integer,
            foreign key(label) references Labels(id)
        )
        """,
    ),
    (
        "Media",
        """
        create table Media (
            id integer primary key,
            parent int not null,
            format text default 'webp',
            data blob,
            foreign key(parent) references Solutions(id)
        )
        """,
    ),
    (
        "Labels",
        """
        create table Labels (
            id integer primary key,
            tag text,
            color integer
        )
        """,
    ),
)

TABLE_NAMES: tuple[str, ...] = tuple(name for name, _ in TABLES)


def create_schema(conn: sqlite3.Connection, project_name: str) -> None:
    """Create every table and the Info row inside one transaction.

    The first failing statement aborts creation; nothing is left behind
    because the whole transaction is rolled back. Raises :class:`SchemaError`
    naming the table (or ``Info`` for the seed row).
    """

    with transaction(conn):
        for name, ddl in TABLES:
            try:
                conn.execute(ddl)
            except sqlite3.Error as exc:
                log.error("Failed to create %s table: %s", name, exc)
                raise SchemaError(f"failed to create {name} table: {exc}", table=name) from exc
            log.debug("Created table %s", name)
        try:
            insert_info(conn, project_name)
        except sqlite3.Error as exc:
            log.error("Failed to insert into Info table: %s", exc)
            raise SchemaError(f"failed to insert into Info table: {exc}", table="Info") from exc
        set_user_version(conn, SCHEMA_VERSION)


def insert_info(conn: sqlite3.Connection, project_name: str) -> int:
    """Insert the singleton Info row and return its id."""

    cur = conn.execute("insert into Info (name) values (?)", (project_name,))
    return int(cur.lastrowid)


def read_info(conn: sqlite3.Connection) -> dict[str, Any] | None:
    """Return the Info row as a dict, or ``None`` when the table is empty."""

    row = conn.execute(
        "select id, version, name, created from Info order by id limit 1"
    ).fetchone()
    if row is None:
        return None
    return {"id": row[0], "version": row[1], "name": row[2], "created": row[3]}


def missing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the schema tables absent from ``conn``."""

    present = {
        row[0]
        for row in conn.execute("select name from sqlite_master where type = 'table'")
    }
    return [name for name in TABLE_NAMES if name not in present]


def has_tables(conn: sqlite3.Connection) -> bool:
    """Return whether the database holds any table at all."""

    row = conn.execute("select count(*) from sqlite_master where type = 'table'").fetchone()
    return bool(row and row[0])


def describe_schema(conn: sqlite3.Connection) -> dict[str, dict[str, Any]]:
    """Return columns and foreign keys for each schema table present."""

    result: dict[str, dict[str, Any]] = {}
    for name in TABLE_NAMES:
        columns = [row[1] for row in conn.execute(f"PRAGMA table_info({name})")]
        if not columns:
            continue
        foreign_keys = sorted(
            (row[3], row[2], row[4]) for row in conn.execute(f"PRAGMA foreign_key_list({name})")
        )
        result[name] = {"columns": columns, "foreign_keys": foreign_keys}
    return result


def get_user_version(conn: sqlite3.Connection) -> int:
    """Return the PRAGMA user_version value."""

    cur = conn.execute("PRAGMA user_version")
    row = cur.fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def set_user_version(conn: sqlite3.Connection, version: int) -> None:
    """Update the PRAGMA user_version value."""

    conn.execute(f"PRAGMA user_version = {int(version)}")
