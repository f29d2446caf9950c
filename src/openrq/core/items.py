"""In-memory representation of requirements and solutions."""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar

from openrq.errors import DecodeError

__all__ = [
    "ItemType",
    "Item",
    "Requirement",
    "Solution",
    "item_class",
    "item_from_row",
]


class ItemType(IntEnum):
    """Discriminator stored in the ``type`` columns."""

    REQUIREMENT = 0
    SOLUTION = 1

    @property
    def table(self) -> str:
        if self is ItemType.REQUIREMENT:
            return "Requirements"
        if self is ItemType.SOLUTION:
            return "Solutions"
        raise ValueError(f"Unknown item type: {self!r}")

    @property
    def parent_type(self) -> ItemType:
        """Requirements hang below solutions and vice versa."""

        if self is ItemType.REQUIREMENT:
            return ItemType.SOLUTION
        return ItemType.REQUIREMENT


_INT_COLUMNS = frozenset({"id", "uid", "parent", "label"})


@dataclass
class Item:
    """Fields shared by every item; concrete variants add their own."""

    item_type: ClassVar[ItemType]
    # (column, attribute) pairs in table order
    _columns: ClassVar[tuple[tuple[str, str], ...]]
    # attributes updated when amending a pending version
    _mutable: ClassVar[tuple[str, ...]]

    id: int | None = None
    uid: int | None = None
    parent: int | None = None
    label: int | None = None

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        """Return the table's column names in DDL order."""

        return tuple(column for column, _ in cls._columns)

    @classmethod
    def mutable_columns(cls) -> tuple[str, ...]:
        return tuple(column for column, attr in cls._columns if attr in cls._mutable)

    @classmethod
    def from_row(cls, row: Any) -> Item:
        """Build an item from a stored row.

        Accepts ``sqlite3.Row`` objects and mappings (read by column name) or
        plain sequences (read positionally, in table order).
        """

        columns = cls.columns()
        if isinstance(row, (sqlite3.Row, Mapping)):
            keys = set(row.keys())
            missing = [column for column in columns if column not in keys]
            if missing:
                raise DecodeError(
                    f"{cls.item_type.table} row is missing columns: {', '.join(missing)}"
                )
            raw = {column: row[column] for column in columns}
        elif isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
            if len(row) != len(columns):
                raise DecodeError(
                    f"{cls.item_type.table} row has {len(row)} columns, expected {len(columns)}"
                )
            raw = dict(zip(columns, row))
        else:
            raise DecodeError(f"Cannot decode {type(row).__name__} as {cls.__name__}")

        values: dict[str, Any] = {}
        for column, attr in cls._columns:
            value = raw[column]
            if value is not None:
                if column in _INT_COLUMNS:
                    if isinstance(value, bool) or not isinstance(value, int):
                        raise DecodeError(
                            f"{cls.item_type.table}.{column} must be an integer, got {value!r}"
                        )
                elif not isinstance(value, str):
                    raise DecodeError(
                        f"{cls.item_type.table}.{column} must be text, got {type(value).__name__}"
                    )
            values[attr] = value
        return cls(**values)

    def to_params(self) -> dict[str, Any]:
        """Return bound parameters for every column."""

        return {column: getattr(self, attr) for column, attr in self._columns}

    def insert_params(self) -> dict[str, Any]:
        """Return bound parameters for every column except the row id."""

        params = self.to_params()
        params.pop("id")
        return params

    def mutable_params(self) -> dict[str, Any]:
        """Return bound parameters for the fields a pending version may amend."""

        return {
            column: getattr(self, attr) for column, attr in self._columns if attr in self._mutable
        }

    @property
    def has_parent(self) -> bool:
        return self.parent is not None


@dataclass
class Requirement(Item):
    item_type: ClassVar[ItemType] = ItemType.REQUIREMENT
    _columns: ClassVar[tuple[tuple[str, str], ...]] = (
        ("id", "id"),
        ("uid", "uid"),
        ("parent", "parent"),
        ("label", "label"),
        ("description", "description"),
        ("rationale", "rationale"),
        ("fitCriterion", "fit_criterion"),
    )
    _mutable: ClassVar[tuple[str, ...]] = ("description", "rationale", "fit_criterion")

    description: str | None = None
    rationale: str | None = None
    fit_criterion: str | None = None


@dataclass
class Solution(Item):
    item_type: ClassVar[ItemType] = ItemType.SOLUTION
    _columns: ClassVar[tuple[tuple[str, str], ...]] = (
        ("id", "id"),
        ("uid", "uid"),
        ("parent", "parent"),
        ("label", "label"),
        ("description", "description"),
        ("link", "link"),
    )
    _mutable: ClassVar[tuple[str, ...]] = ("description", "link")

    description: str | None = None
    link: str | None = None


def item_class(item_type: ItemType | int) -> type[Item]:
    """Return the variant class for ``item_type``."""

    tag = ItemType(item_type)
    if tag is ItemType.REQUIREMENT:
        return Requirement
    if tag is ItemType.SOLUTION:
        return Solution
    raise ValueError(f"Unknown item type: {item_type!r}")


def item_from_row(item_type: ItemType | int, row: Any) -> Item:
    """Decode ``row`` as the variant named by ``item_type``."""

    try:
        cls = item_class(item_type)
    except ValueError as exc:
        raise DecodeError(str(exc)) from exc
    return cls.from_row(row)

