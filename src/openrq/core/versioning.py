"""
Version-aware item updates.

Each project version may hold at most one *pending* row per item. Updating an
item under a version that already has a pending row amends that row in place;
otherwise a new row is written to the item's table and linked to the version
through ``ItemVersions``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from openrq.core.items import Item, ItemType
from openrq.errors import IntegrityError, Outcome, QueryError, StoreError

if TYPE_CHECKING:
    from openrq.storage.datacontext import DataContext, Executed

__all__ = ["update_item", "pending_version", "item_history", "next_item_version"]

log = logging.getLogger(__name__)


def _run(ctx: DataContext, step: str, sql: str, params: Any = ()) -> Executed:
    outcome = ctx.execute(sql, params)
    if not outcome.ok:
        raise QueryError(str(outcome.error), step=step, sql=sql)
    return outcome.value


def _fetch(ctx: DataContext, step: str, sql: str, params: Any = ()) -> list[sqlite3.Row]:
    outcome = ctx.query(sql, params)
    if not outcome.ok:
        raise QueryError(str(outcome.error), step=step, sql=sql)
    return outcome.value or []


def pending_version(
    ctx: DataContext, item: Item, project_version: int
) -> Outcome[sqlite3.Row | None]:
    """Return the pending ItemVersions row of ``item`` under ``project_version``."""

    if item.id is None:
        return Outcome.success(None)
    return ctx.query_one(
        """
        select id, version, item, itemV, type
          from ItemVersions
         where version = ? and item = ? and type = ?
        """,
        (project_version, item.id, int(item.item_type)),
    )


def next_item_version(ctx: DataContext, item_type: ItemType, uid: int | None) -> Outcome[int]:
    """Return the ``itemV`` a newly forked row of ``uid`` should get."""

    if uid is None:
        return Outcome.success(1)
    outcome = ctx.query_one(
        f"""
        select max(v.itemV)
          from ItemVersions v
          join {item_type.table} t on t.id = v.item
         where v.type = ? and t.uid = ?
        """,
        (int(item_type), uid),
    )
    if not outcome.ok:
        return outcome
    row = outcome.value
    latest = row[0] if row is not None else None
    return Outcome.success(1 if latest is None else int(latest) + 1)


def _amend(ctx: DataContext, item: Item) -> int:
    table = item.item_type.table
    params = item.mutable_params()
    assignments = ", ".join(f"{column} = :{column}" for column in params)
    executed = _run(
        ctx,
        f"update {table} row",
        f"update {table} set {assignments} where id = :id",
        {**params, "id": item.id},
    )
    if executed.rowcount == 0:
        raise IntegrityError(
            f"pending version references {table} row {item.id}, which does not exist"
        )
    log.debug("Amended pending %s row %s", table, item.id)
    return int(item.id)


def _fork(ctx: DataContext, item: Item, project_version: int) -> int:
    table = item.item_type.table
    params = item.insert_params()
    columns = ", ".join(params)
    placeholders = ", ".join(f":{column}" for column in params)
    executed = _run(
        ctx,
        f"insert {table} row",
        f"insert into {table} ({columns}) values ({placeholders})",
        params,
    )
    if executed.lastrowid is None:
        raise QueryError("no row id returned", step=f"insert {table} row")
    new_id = int(executed.lastrowid)

    item_v = next_item_version(ctx, item.item_type, item.uid)
    if not item_v.ok:
        raise QueryError(str(item_v.error), step="compute itemV")
    # The new row itself is not linked yet, so max(itemV) only sees history.
    _run(
        ctx,
        "insert ItemVersions row",
        "insert into ItemVersions (version, item, itemV, type) values (?, ?, ?, ?)",
        (project_version, new_id, item_v.value, int(item.item_type)),
    )
    log.debug(
        "Created %s row %s (uid=%s, itemV=%s) under version %s",
        table,
        new_id,
        item.uid,
        item_v.value,
        project_version,
    )
    return new_id


def update_item(ctx: DataContext, item: Item, project_version: int) -> Outcome[int]:
    """Store ``item``'s current values under ``project_version``.

    Returns the id of the row holding the values: ``item.id`` when a pending
    version was amended, or the id of the newly inserted row. ``item`` itself
    is left untouched.
    """

    try:
        with ctx.transaction():
            pending = pending_version(ctx, item, project_version)
            if not pending.ok:
                raise QueryError(str(pending.error), step="query pending version")
            if pending.value is not None:
                row_id = _amend(ctx, item)
            else:
                row_id = _fork(ctx, item, project_version)
    except StoreError as exc:
        log.warning(
            "update of %s %s under version %s failed: %s",
            item.item_type.name.lower(),
            item.id,
            project_version,
            exc,
        )
        return Outcome.failure(exc)
    return Outcome.success(row_id)


def item_history(ctx: DataContext, item_type: ItemType, uid: int) -> Outcome[list[sqlite3.Row]]:
    """Return every stored version of ``uid``, oldest first."""

    return ctx.query(
        f"""
        select v.id as version_row, v.version, p.name as version_name, v.itemV,
               t.*
          from ItemVersions v
          join {item_type.table} t on t.id = v.item
          left join Projects p on p.id = v.version
         where v.type = ? and t.uid = ?
         order by v.itemV, v.id
        """,
        (int(item_type), uid),
    )
