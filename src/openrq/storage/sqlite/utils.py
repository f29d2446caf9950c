"""
Utility helpers for SQLite-backed project storage.

Connection helpers, pragmas and the transaction context manager.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, cast

from openrq.errors import ConfigurationError

__all__ = [
    "driver_available",
    "require_driver",
    "open_db",
    "set_pragmas",
    "transaction",
]

log = logging.getLogger(__name__)

# Foreign key enforcement first shipped in SQLite 3.6.19.
MIN_SQLITE_VERSION = (3, 6, 19)


# ---- Driver -----------------------------------------------------------------


def driver_available() -> bool:
    """Return whether the ``sqlite3`` driver can be used."""

    version = getattr(sqlite3, "sqlite_version_info", None)
    return version is not None and tuple(version) >= MIN_SQLITE_VERSION


def require_driver() -> None:
    """Raise :class:`ConfigurationError` when the SQLite driver is missing."""

    if not driver_available():
        raise ConfigurationError(
            f"SQLite driver is not available (need {'.'.join(map(str, MIN_SQLITE_VERSION))} or newer, "
            f"found {getattr(sqlite3, 'sqlite_version', 'none')})"
        )


# ---- Connections ------------------------------------------------------------


def open_db(
    path: str,
    *,
    mode: str = "rwc",
    pragmas: Mapping[str, object] | None = None,
    trace_sql: bool = False,
) -> sqlite3.Connection:
    """
    Open a SQLite database in autocommit mode with ``sqlite3.Row`` rows.

    mode: "ro" (read-only), "rw", "rwc" (create if needed). Default: "rwc".
    Transactions are explicit; see :func:`transaction`.
    """
    require_driver()
    if path == ":memory:":
        conn = sqlite3.connect(":memory:", isolation_level=None)
    else:
        # as_uri percent-encodes "#", "?" and "%" so they stay part of the name
        uri = f"{Path(path).resolve().as_uri()}?mode={mode}"
        conn = sqlite3.connect(uri, uri=True, isolation_level=None)
    conn.row_factory = sqlite3.Row
    if trace_sql:
        conn.set_trace_callback(lambda statement: log.debug("sql: %s", statement))
    if pragmas:
        try:
            set_pragmas(conn, pragmas)
        except Exception:
            conn.close()
            raise
    return conn


def _to_int(value: object) -> int:
    """Best-effort conversion to ``int`` for pragmatic pragmas."""

    return int(cast(Any, value))


def set_pragmas(conn: sqlite3.Connection, opts: Mapping[str, object]) -> None:
    """Apply selected pragmas.

    Only keys present in ``opts`` are applied. Supported keys include
    ``foreign_keys``, ``journal_mode``, ``synchronous`` and ``busy_timeout_ms``.
    """

    norm = {str(key).lower(): value for key, value in opts.items()}
    for key, value in norm.items():
        if key == "foreign_keys":
            conn.execute(f"PRAGMA foreign_keys={'ON' if value else 'OFF'}")
        elif key == "journal_mode":
            conn.execute(f"PRAGMA journal_mode={value}")
        elif key == "synchronous":
            conn.execute(f"PRAGMA synchronous={value}")
        elif key == "busy_timeout_ms":
            conn.execute(f"PRAGMA busy_timeout={_to_int(value)}")


# ---- Transactions ----------------------------------------------------------


@contextmanager
def transaction(
    conn: sqlite3.Connection,
    *,
    begin: str = "BEGIN IMMEDIATE",
) -> Iterator[sqlite3.Connection]:
    """
    Transaction wrapper that commits on success and rolls back on error.

    Joins an already open transaction instead of nesting; only the outermost
    caller commits or rolls back.
    """

    if conn.in_transaction:
        yield conn
        return
    conn.execute(begin)
    try:
        yield conn
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
