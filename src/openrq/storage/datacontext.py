"""
Storage engine for ``.orq`` project files.

A :class:`DataContext` owns exactly one SQLite connection bound to one file.
Opening a path that does not exist yet creates the file, the full schema and
the Info row; opening an existing project file only connects to it.

All statement helpers return an :class:`~openrq.errors.Outcome` instead of
raising, so callers decide whether to retry, log or abort the user action.
There is no internal locking: a context belongs to the thread that opened it.
"""

from __future__ import annotations

import contextlib
import logging
import os
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NamedTuple

from openrq.app.flags import is_enabled, store_pragmas
from openrq.errors import Outcome, QueryError, SchemaError
from openrq.storage.sqlite import schema as _schema
from openrq.storage.sqlite.utils import open_db, require_driver, transaction

__all__ = ["DataContext", "Executed", "project_name_for"]

log = logging.getLogger(__name__)

Params = Sequence[Any] | Mapping[str, Any]


class Executed(NamedTuple):
    """Result of a data-modifying statement."""

    rowcount: int
    lastrowid: int | None


def project_name_for(path: str | os.PathLike[str]) -> str:
    """Return the file's base name with its last extension stripped."""

    name = Path(path).name
    if "." in name:
        name = name[: name.rindex(".")]
    return name


def _remove_file_and_sidecars(path: Path) -> None:
    for suffix in ("", "-journal", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(str(path) + suffix)


class DataContext:
    """Owner of one embedded-database connection."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        pragmas: Mapping[str, object] | None = None,
    ) -> None:
        self.path = Path(path)
        self.conn: sqlite3.Connection | None = None
        self.created = False
        self._connect(pragmas if pragmas is not None else store_pragmas())

    @classmethod
    def open(cls, path: str | os.PathLike[str], **kwargs: Any) -> DataContext:
        """Open (or create) the store at ``path``."""

        return cls(path, **kwargs)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    def _connect(self, pragmas: Mapping[str, object]) -> None:
        require_driver()

        existed = self.path.exists()
        if not existed:
            self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = open_db(
                self.path.as_posix(), pragmas=pragmas, trace_sql=is_enabled("debug_sql")
            )
        except sqlite3.DatabaseError as exc:
            raise SchemaError(f"{self.path} is not a project database: {exc}") from exc
        try:
            if existed:
                missing = _schema.missing_tables(conn)
                if missing and not _schema.has_tables(conn):
                    # A bare database; initialise it now.
                    log.info("Initialising empty database %s", self.path)
                    _schema.create_schema(conn, project_name_for(self.path))
                    self.created = True
                elif missing:
                    raise SchemaError(
                        f"{self.path} is missing tables: {', '.join(missing)}",
                        table=missing[0],
                    )
            else:
                log.info("Creating project file %s", self.path)
                _schema.create_schema(conn, project_name_for(self.path))
                self.created = True
        except SchemaError:
            conn.close()
            if not existed:
                _remove_file_and_sidecars(self.path)
            raise
        except sqlite3.DatabaseError as exc:
            conn.close()
            raise SchemaError(f"{self.path} is not a project database: {exc}") from exc

        self.conn = conn

    def is_open(self) -> bool:
        """Return whether the connection is alive."""

        if self.conn is None:
            return False
        try:
            self.conn.execute("select 1")
        except sqlite3.ProgrammingError:
            return False
        return True

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""

        if self.conn is None:
            return
        try:
            self.conn.close()
        finally:
            self.conn = None
            log.debug("Closed project file %s", self.path)

    def __enter__(self) -> DataContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.conn is not None else "closed"
        return f"<DataContext {self.path} ({state})>"

    # ------------------------------------------------------------------ #
    # Statements                                                         #
    # ------------------------------------------------------------------ #
    def _closed_failure(self, sql: str) -> Outcome:
        return Outcome.failure(QueryError("database is closed", sql=sql))

    def execute(self, sql: str, params: Params = ()) -> Outcome[Executed]:
        """Run a parameterized data-modifying statement."""

        if self.conn is None:
            return self._closed_failure(sql)
        try:
            cur = self.conn.execute(sql, params)
        except sqlite3.Error as exc:
            log.error("Statement failed: %s [%s]", exc, " ".join(sql.split()))
            return Outcome.failure(QueryError(str(exc), sql=sql))
        return Outcome.success(Executed(cur.rowcount, cur.lastrowid))

    def query(self, sql: str, params: Params = ()) -> Outcome[list[sqlite3.Row]]:
        """Run a parameterized query and return every row."""

        if self.conn is None:
            return self._closed_failure(sql)
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            log.error("Query failed: %s [%s]", exc, " ".join(sql.split()))
            return Outcome.failure(QueryError(str(exc), sql=sql))
        return Outcome.success(rows)

    def query_one(self, sql: str, params: Params = ()) -> Outcome[sqlite3.Row | None]:
        """Run a parameterized query and return its first row (or ``None``)."""

        outcome = self.query(sql, params)
        if not outcome.ok:
            return outcome
        rows = outcome.value or []
        return Outcome.success(rows[0] if rows else None)

    @contextmanager
    def transaction(self) -> Iterator[DataContext]:
        """Group statements; commits on success and rolls back on error."""

        if self.conn is None:
            raise QueryError("database is closed")
        try:
            with transaction(self.conn):
                yield self
        except sqlite3.Error as exc:
            log.error("Transaction failed: %s", exc)
            raise QueryError(str(exc), step="transaction") from exc

    def info(self) -> Outcome[dict[str, Any] | None]:
        """Return the Info row as a dict."""

        if self.conn is None:
            return self._closed_failure("select ... from Info")
        try:
            return Outcome.success(_schema.read_info(self.conn))
        except sqlite3.Error as exc:
            log.error("Reading Info failed: %s", exc)
            return Outcome.failure(QueryError(str(exc), step="read Info"))
