"""Structural validation of an open project store."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from openrq.core.items import ItemType

log = logging.getLogger(__name__)

__all__ = [
    "duplicate_uid_issues",
    "dangling_parent_issues",
    "dangling_label_issues",
    "label_item_issues",
    "pending_version_issues",
    "quick_validate_project",
]


def duplicate_uid_issues(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Flag uids shared by more than one conceptual item.

    Rows of the same table sharing a uid are versions of one item; a uid that
    appears in both tables is a collision.
    """

    rows = conn.execute(
        """
        select r.uid
          from Requirements r
          join Solutions s on s.uid = r.uid
         where r.uid is not null
         group by r.uid
        """
    ).fetchall()
    return [
        {
            "kind": "duplicate_uid",
            "uid": int(row[0]),
            "detail": "uid used by both a requirement and a solution",
        }
        for row in rows
    ]


def dangling_parent_issues(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Flag items whose parent row is missing or of the wrong table."""

    issues: list[dict[str, Any]] = []
    for item_type in ItemType:
        table = item_type.table
        parent_table = item_type.parent_type.table
        rows = conn.execute(
            f"""
            select c.id, c.parent
              from {table} c
              left join {parent_table} p on p.id = c.parent
             where c.parent is not null and p.id is null
             order by c.id
            """
        ).fetchall()
        for row in rows:
            issues.append(
                {
                    "kind": "dangling_parent",
                    "table": table,
                    "id": int(row[0]),
                    "parent": int(row[1]),
                    "detail": f"parent {row[1]} missing from {parent_table}",
                }
            )
    return issues


def dangling_label_issues(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Flag items and LabelItems entries referencing a missing label."""

    issues: list[dict[str, Any]] = []
    for table in (ItemType.REQUIREMENT.table, ItemType.SOLUTION.table, "LabelItems"):
        rows = conn.execute(
            f"""
            select t.id, t.label
              from {table} t
              left join Labels l on l.id = t.label
             where t.label is not null and l.id is null
             order by t.id
            """
        ).fetchall()
        for row in rows:
            issues.append(
                {
                    "kind": "dangling_label",
                    "table": table,
                    "id": int(row[0]),
                    "label": int(row[1]),
                    "detail": f"label {row[1]} missing from Labels",
                }
            )
    return issues


def label_item_issues(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Flag LabelItems entries whose item row is missing."""

    issues: list[dict[str, Any]] = []
    for item_type in ItemType:
        rows = conn.execute(
            f"""
            select li.id, li.item
              from LabelItems li
              left join {item_type.table} t on t.id = li.item
             where li.type = ? and t.id is null
             order by li.id
            """,
            (int(item_type),),
        ).fetchall()
        for row in rows:
            issues.append(
                {
                    "kind": "dangling_label_item",
                    "id": int(row[0]),
                    "item": int(row[1]),
                    "detail": f"item {row[1]} missing from {item_type.table}",
                }
            )
    return issues


def pending_version_issues(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Flag more than one ItemVersions row per (version, item, type)."""

    rows = conn.execute(
        """
        select version, item, type, count(*)
          from ItemVersions
         group by version, item, type
        having count(*) > 1
        """
    ).fetchall()
    return [
        {
            "kind": "duplicate_pending_version",
            "version": row[0],
            "item": row[1],
            "type": row[2],
            "detail": f"{row[3]} version rows for one item",
        }
        for row in rows
    ]


def quick_validate_project(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """
    Run every structural check and return the list of issues found.

    An empty list means the store satisfies its invariants.
    """

    issues: list[dict[str, Any]] = []
    status = conn.execute("PRAGMA integrity_check").fetchone()
    if status is None or str(status[0]).lower() != "ok":
        issues.append(
            {
                "kind": "integrity_check",
                "detail": str(status[0]) if status is not None else "no result",
            }
        )
    issues.extend(duplicate_uid_issues(conn))
    issues.extend(dangling_parent_issues(conn))
    issues.extend(dangling_label_issues(conn))
    issues.extend(label_item_issues(conn))
    issues.extend(pending_version_issues(conn))
    if issues:
        log.warning("Validation found %d issue(s)", len(issues))
    return issues
