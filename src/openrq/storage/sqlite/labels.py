"""Label persistence helpers (``Labels`` and ``LabelItems`` tables)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from openrq.core.items import ItemType
from openrq.core.records import Label, LabelItem, record_from_row
from openrq.errors import DecodeError, IntegrityError, Outcome

if TYPE_CHECKING:
    from openrq.storage.datacontext import DataContext

__all__ = [
    "add_label",
    "get_label",
    "list_labels",
    "label_item",
    "item_labels",
    "label_items",
]

log = logging.getLogger(__name__)


def add_label(ctx: DataContext, tag: str, color: int = 0) -> Outcome[int]:
    """Insert a label and return its id; a bad color fails with ``DecodeError``."""

    try:
        label = Label(tag=tag, color=color)
    except ValidationError as exc:
        log.warning("Rejected label %r: %s", tag, exc)
        return Outcome.failure(DecodeError(f"Invalid label {tag!r}: {exc}"))
    outcome = ctx.execute(
        "insert into Labels (tag, color) values (?, ?)", (label.tag, label.color)
    )
    if not outcome.ok:
        return outcome
    return Outcome.success(int(outcome.value.lastrowid))


def get_label(ctx: DataContext, label_id: int) -> Outcome[Label]:
    outcome = ctx.query_one("select id, tag, color from Labels where id = ?", (label_id,))
    if not outcome.ok:
        return outcome
    if outcome.value is None:
        return Outcome.failure(IntegrityError(f"label {label_id} does not exist"))
    try:
        return Outcome.success(record_from_row(Label, outcome.value))
    except DecodeError as exc:
        return Outcome.failure(exc)


def list_labels(ctx: DataContext) -> Outcome[list[Label]]:
    """Return every label; undecodable rows are logged and skipped."""

    outcome = ctx.query("select id, tag, color from Labels order by id")
    if not outcome.ok:
        return outcome
    labels: list[Label] = []
    for row in outcome.value:
        try:
            labels.append(record_from_row(Label, row))
        except DecodeError as exc:
            log.warning("Skipping label row %s: %s", row["id"], exc)
    return Outcome.success(labels)


def label_item(
    ctx: DataContext, label_id: int, item_id: int, item_type: ItemType
) -> Outcome[int]:
    """Attach ``label_id`` to an item; the item row must exist."""

    exists = ctx.query_one(f"select 1 from {item_type.table} where id = ?", (item_id,))
    if not exists.ok:
        return exists
    if exists.value is None:
        return Outcome.failure(
            IntegrityError(f"{item_type.table} row {item_id} does not exist")
        )
    already = ctx.query_one(
        "select id from LabelItems where label = ? and item = ? and type = ?",
        (label_id, item_id, int(item_type)),
    )
    if not already.ok:
        return already
    if already.value is not None:
        return Outcome.success(int(already.value["id"]))
    outcome = ctx.execute(
        "insert into LabelItems (label, item, type) values (?, ?, ?)",
        (label_id, item_id, int(item_type)),
    )
    if not outcome.ok:
        return outcome
    return Outcome.success(int(outcome.value.lastrowid))


def item_labels(ctx: DataContext, item_id: int, item_type: ItemType) -> Outcome[list[Label]]:
    """Return labels attached to an item through ``LabelItems``."""

    outcome = ctx.query(
        """
        select l.id, l.tag, l.color
          from LabelItems li
          join Labels l on l.id = li.label
         where li.item = ? and li.type = ?
         order by l.id
        """,
        (item_id, int(item_type)),
    )
    if not outcome.ok:
        return outcome
    try:
        return Outcome.success([record_from_row(Label, row) for row in outcome.value])
    except DecodeError as exc:
        return Outcome.failure(exc)


def label_items(ctx: DataContext, label_id: int) -> Outcome[list[LabelItem]]:
    """Return every ``LabelItems`` entry for ``label_id``."""

    outcome = ctx.query(
        "select id, label, item, type from LabelItems where label = ? order by id", (label_id,)
    )
    if not outcome.ok:
        return outcome
    try:
        return Outcome.success([record_from_row(LabelItem, row) for row in outcome.value])
    except DecodeError as exc:
        return Outcome.failure(exc)
