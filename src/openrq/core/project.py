from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from openrq.core import versioning
from openrq.core.items import Item, ItemType, Requirement, Solution, item_class, item_from_row
from openrq.core.records import Info, Label, MediaRecord, ProjectVersion, record_from_row
from openrq.errors import DecodeError, IntegrityError, QueryError
from openrq.storage import validation
from openrq.storage.datacontext import DataContext
from openrq.storage.sqlite import labels as _labels
from openrq.storage.sqlite import media as _media
from openrq.storage.uid import generate_uid

__all__ = [
    "PROJECT_SUFFIX",
    "ITEM_FRAME_COLUMNS",
    "Project",
    "project_path",
    "open_project",
]

log = logging.getLogger(__name__)

PROJECT_SUFFIX = ".orq"

ITEM_FRAME_COLUMNS = [
    "type",
    "id",
    "uid",
    "parent",
    "label",
    "description",
    "rationale",
    "fitCriterion",
    "link",
]


def project_path(path: str | os.PathLike[str]) -> Path:
    """Return ``path`` with the ``.orq`` extension appended when missing."""

    text = os.fspath(path)
    if not text.endswith(PROJECT_SUFFIX):
        text += PROJECT_SUFFIX
    return Path(text)


class Project:
    """An opened ``.orq`` project.

    The project owns its :class:`DataContext`; closing the project releases
    the connection and every handle obtained from it becomes invalid. Items
    returned here are plain values: parents and labels are row ids resolved
    through the store, never live references.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        pragmas: Mapping[str, object] | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.path = project_path(path)
        self.data = DataContext(self.path, pragmas=pragmas)
        self._rng = rng if rng is not None else np.random.default_rng()
        try:
            self._ensure_version()
        except Exception:
            self.data.close()
            raise

    @classmethod
    def open(cls, path: str | os.PathLike[str], **kwargs: Any) -> Project:
        return cls(path, **kwargs)

    def _ensure_version(self) -> None:
        row = self.data.query_one("select count(*) from Projects").unwrap()
        if row is not None and row[0] > 0:
            return
        self.add_version(self.name)
        log.info("Created initial version for project %s", self.name)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    @property
    def created(self) -> bool:
        """Whether opening this project created the file."""

        return self.data.created

    def info(self) -> Info:
        row = self.data.query_one(
            "select id, version, name, created from Info order by id limit 1"
        ).unwrap()
        if row is None:
            raise IntegrityError(f"{self.path} has no Info row")
        return record_from_row(Info, row)

    @property
    def name(self) -> str:
        return self.info().name or ""

    def is_open(self) -> bool:
        return self.data.is_open()

    def close(self) -> None:
        self.data.close()

    def __enter__(self) -> Project:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Project {self.path}>"

    # ------------------------------------------------------------------ #
    # Versions                                                           #
    # ------------------------------------------------------------------ #
    def add_version(self, name: str | None = None) -> int:
        """Start a new project version and return its id."""

        executed = self.data.execute("insert into Projects (name) values (?)", (name,)).unwrap()
        return int(executed.lastrowid)

    def versions(self) -> list[ProjectVersion]:
        rows = self.data.query("select id, name, created from Projects order by id").unwrap()
        return [record_from_row(ProjectVersion, row) for row in rows]

    def versions_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [version.model_dump() for version in self.versions()],
            columns=["id", "name", "created"],
        )

    def latest_version(self) -> int:
        row = self.data.query_one("select max(id) from Projects").unwrap()
        if row is None or row[0] is None:
            raise IntegrityError(f"{self.path} has no project versions")
        return int(row[0])

    # ------------------------------------------------------------------ #
    # Items                                                              #
    # ------------------------------------------------------------------ #
    def new_uid(self) -> int:
        return generate_uid(self.data, self._rng).unwrap()

    def update_item(self, item: Item, version: int | None = None) -> Item:
        """Store ``item`` under ``version`` (latest by default).

        Returns a copy of ``item`` whose ``id`` is the row now holding its
        values; ``item`` is not modified.
        """

        project_version = version if version is not None else self.latest_version()
        row_id = versioning.update_item(self.data, item, project_version).unwrap()
        return replace(item, id=row_id)

    def add_requirement(
        self,
        description: str | None = None,
        rationale: str | None = None,
        fit_criterion: str | None = None,
        *,
        parent: int | None = None,
        label: int | None = None,
        version: int | None = None,
    ) -> Requirement:
        """Create a requirement with a fresh uid."""

        item = Requirement(
            uid=self.new_uid(),
            parent=parent,
            label=label,
            description=description,
            rationale=rationale,
            fit_criterion=fit_criterion,
        )
        return self.update_item(item, version)  # type: ignore[return-value]

    def add_solution(
        self,
        description: str | None = None,
        link: str | None = None,
        *,
        parent: int | None = None,
        label: int | None = None,
        version: int | None = None,
    ) -> Solution:
        """Create a solution with a fresh uid."""

        item = Solution(
            uid=self.new_uid(),
            parent=parent,
            label=label,
            description=description,
            link=link,
        )
        return self.update_item(item, version)  # type: ignore[return-value]

    def get_item(self, item_type: ItemType, item_id: int) -> Item:
        cls = item_class(item_type)
        row = self.data.query_one(
            f"select {', '.join(cls.columns())} from {cls.item_type.table} where id = ?",
            (item_id,),
        ).unwrap()
        if row is None:
            raise IntegrityError(f"{cls.item_type.table} row {item_id} does not exist")
        return cls.from_row(row)

    def _decode_rows(self, item_type: ItemType, rows: list) -> list[Item]:
        items: list[Item] = []
        for row in rows:
            try:
                items.append(item_from_row(item_type, row))
            except DecodeError as exc:
                log.warning("Skipping undecodable %s row: %s", item_type.table, exc)
        return items

    def items(
        self, item_type: ItemType | None = None, *, version: int | None = None
    ) -> list[Item]:
        """Return stored items, optionally limited to one type or one version."""

        types = list(ItemType) if item_type is None else [ItemType(item_type)]
        result: list[Item] = []
        for tag in types:
            cls = item_class(tag)
            columns = ", ".join(f"t.{column}" for column in cls.columns())
            if version is None:
                rows = self.data.query(
                    f"select {columns} from {tag.table} t order by t.id"
                ).unwrap()
            else:
                rows = self.data.query(
                    f"""
                    select {columns}
                      from {tag.table} t
                      join ItemVersions v on v.item = t.id and v.type = ?
                     where v.version = ?
                     order by t.id
                    """,
                    (int(tag), version),
                ).unwrap()
            result.extend(self._decode_rows(tag, rows))
        return result

    def items_dataframe(self, *, version: int | None = None) -> pd.DataFrame:
        """Return items as a DataFrame with one row per stored item row."""

        records = []
        for item in self.items(version=version):
            record = {"type": item.item_type.name.lower()}
            record.update(item.to_params())
            records.append(record)
        frame = pd.DataFrame(records, columns=ITEM_FRAME_COLUMNS)
        for column in ("id", "uid", "parent", "label"):
            frame[column] = frame[column].astype("Int64")
        return frame

    def history(self, item: Item) -> pd.DataFrame:
        """Return the stored versions of ``item``'s uid, oldest first."""

        if item.uid is None:
            return pd.DataFrame()
        rows = versioning.item_history(self.data, item.item_type, item.uid).unwrap()
        return pd.DataFrame([dict(row) for row in rows])

    # ------------------------------------------------------------------ #
    # Links                                                              #
    # ------------------------------------------------------------------ #
    def set_parent(self, child: Item, parent: Item | None) -> Item:
        """Link ``child`` below ``parent`` (or detach it with ``None``)."""

        if child.id is None:
            raise IntegrityError("cannot link an item that has not been stored")
        parent_id: int | None = None
        if parent is not None:
            if parent.item_type is not child.item_type.parent_type:
                raise IntegrityError(
                    f"a {child.item_type.name.lower()} cannot have a "
                    f"{parent.item_type.name.lower()} parent"
                )
            if parent.id is None:
                raise IntegrityError("parent item has not been stored")
            self.get_item(parent.item_type, parent.id)
            parent_id = parent.id
        executed = self.data.execute(
            f"update {child.item_type.table} set parent = ? where id = ?",
            (parent_id, child.id),
        ).unwrap()
        if executed.rowcount == 0:
            raise IntegrityError(f"{child.item_type.table} row {child.id} does not exist")
        return replace(child, parent=parent_id)

    def children(self, item: Item) -> list[Item]:
        if item.id is None:
            return []
        child_type = item.item_type.parent_type
        cls = item_class(child_type)
        rows = self.data.query(
            f"select {', '.join(cls.columns())} from {child_type.table} "
            "where parent = ? order by id",
            (item.id,),
        ).unwrap()
        return self._decode_rows(child_type, rows)

    def roots(self, *, version: int | None = None) -> list[Item]:
        """Return items without a parent."""

        return [item for item in self.items(version=version) if item.parent is None]

    # ------------------------------------------------------------------ #
    # Labels                                                             #
    # ------------------------------------------------------------------ #
    def add_label(self, tag: str, color: int = 0) -> int:
        return _labels.add_label(self.data, tag, color).unwrap()

    def labels(self) -> list[Label]:
        return _labels.list_labels(self.data).unwrap()

    def label_item(self, item: Item, label_id: int) -> int:
        if item.id is None:
            raise IntegrityError("cannot label an item that has not been stored")
        return _labels.label_item(self.data, label_id, item.id, item.item_type).unwrap()

    def item_labels(self, item: Item) -> list[Label]:
        if item.id is None:
            return []
        return _labels.item_labels(self.data, item.id, item.item_type).unwrap()

    # ------------------------------------------------------------------ #
    # Media                                                              #
    # ------------------------------------------------------------------ #
    def add_media(
        self,
        solution: Item,
        data: bytes,
        *,
        fmt: str = _media.DEFAULT_MEDIA_FORMAT,
        convert: bool = True,
    ) -> int:
        if solution.item_type is not ItemType.SOLUTION:
            raise IntegrityError("media can only be attached to solutions")
        return _media.add_media(
            self.data, solution.id, data, fmt=fmt, convert=convert
        ).unwrap()

    def media(self, solution: Item) -> list[MediaRecord]:
        if solution.item_type is not ItemType.SOLUTION or solution.id is None:
            return []
        return _media.list_media(self.data, solution.id).unwrap()

    # ------------------------------------------------------------------ #
    # Validation                                                         #
    # ------------------------------------------------------------------ #
    def validate(self) -> list[dict[str, Any]]:
        """Return invariant violations found in the store."""

        if self.data.conn is None:
            raise QueryError("database is closed")
        return validation.quick_validate_project(self.data.conn)


def open_project(path: str | os.PathLike[str], **kwargs: Any) -> Project:
    """Open (or create) the project at ``path``."""

    return Project.open(path, **kwargs)
