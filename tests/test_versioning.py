from dataclasses import replace

import pytest

from openrq.core.items import ItemType, Requirement, Solution
from openrq.core.versioning import item_history, next_item_version, pending_version, update_item
from openrq.errors import IntegrityError, QueryError
from openrq.storage.datacontext import DataContext


def _make_store(tmp_path):
    ctx = DataContext(tmp_path / "demo.orq")
    ctx.execute("insert into Projects (id, name) values (1, 'v1')").unwrap()
    ctx.execute("insert into Solutions (id, uid, description) values (7, 999, 'S')").unwrap()
    return ctx


def _version_rows(ctx):
    return [
        tuple(row)
        for row in ctx.query("select version, item, itemV, type from ItemVersions order by id").unwrap()
    ]


def test_insert_then_amend_pending_version(tmp_path):
    ctx = _make_store(tmp_path)
    try:
        item = Requirement(uid=123, parent=7, description="D")
        new_id = update_item(ctx, item, 1).unwrap()

        assert _version_rows(ctx) == [(1, new_id, 1, int(ItemType.REQUIREMENT))]
        stored = ctx.query_one("select * from Requirements where id = ?", (new_id,)).unwrap()
        assert stored["uid"] == 123
        assert stored["parent"] == 7
        assert stored["description"] == "D"

        amended = replace(item, id=new_id, description="D2")
        assert update_item(ctx, amended, 1).unwrap() == new_id

        assert len(_version_rows(ctx)) == 1
        assert ctx.query_one("select count(*) from Requirements").unwrap()[0] == 1
        stored = ctx.query_one("select description from Requirements where id = ?", (new_id,)).unwrap()
        assert stored["description"] == "D2"
    finally:
        ctx.close()


def test_update_does_not_mutate_caller_item(tmp_path):
    with _make_store(tmp_path) as ctx:
        item = Solution(uid=1, description="x")
        update_item(ctx, item, 1).unwrap()
        assert item.id is None


def test_amend_only_touches_target_row(tmp_path):
    with _make_store(tmp_path) as ctx:
        first = update_item(ctx, Requirement(uid=1, description="one"), 1).unwrap()
        second = update_item(ctx, Requirement(uid=2, description="two"), 1).unwrap()

        update_item(ctx, Requirement(id=first, uid=1, description="uno"), 1).unwrap()

        rows = ctx.query("select id, description from Requirements order by id").unwrap()
        assert [tuple(row) for row in rows] == [(first, "uno"), (second, "two")]


def test_new_project_version_forks_item(tmp_path):
    with _make_store(tmp_path) as ctx:
        ctx.execute("insert into Projects (id, name) values (2, 'v2')").unwrap()
        item = Solution(uid=42, description="first")
        first = update_item(ctx, item, 1).unwrap()

        second = update_item(ctx, replace(item, id=first, description="second"), 2).unwrap()

        assert second != first
        rows = _version_rows(ctx)
        assert rows == [
            (1, first, 1, int(ItemType.SOLUTION)),
            (2, second, 2, int(ItemType.SOLUTION)),
        ]
        old = ctx.query_one("select description, uid from Solutions where id = ?", (first,)).unwrap()
        assert tuple(old) == ("first", 42)
        assert next_item_version(ctx, ItemType.SOLUTION, 42).unwrap() == 3
        assert next_item_version(ctx, ItemType.SOLUTION, 4242).unwrap() == 1


def test_pending_lookup_distinguishes_item_types(tmp_path):
    with _make_store(tmp_path) as ctx:
        req_id = update_item(ctx, Requirement(uid=10), 1).unwrap()
        # A solution row with the same id has no pending version of its own.
        ctx.execute("insert into Solutions (id, uid) values (?, ?)", (req_id, 11)).unwrap()
        assert pending_version(ctx, Solution(id=req_id, uid=11), 1).unwrap() is None
        assert pending_version(ctx, Requirement(id=req_id, uid=10), 1).unwrap() is not None
        assert pending_version(ctx, Requirement(uid=10), 1).unwrap() is None


def test_pending_row_for_missing_item_is_integrity_error(tmp_path):
    with _make_store(tmp_path) as ctx:
        ctx.execute(
            "insert into ItemVersions (version, item, itemV, type) values (1, 500, 1, 0)"
        ).unwrap()
        outcome = update_item(ctx, Requirement(id=500, uid=1, description="x"), 1)
        assert not outcome.ok
        assert isinstance(outcome.error, IntegrityError)


def test_unknown_version_rolls_back_item_row(tmp_path):
    with _make_store(tmp_path) as ctx:
        outcome = update_item(ctx, Requirement(uid=5, description="orphan"), 99)

        assert not outcome.ok
        assert isinstance(outcome.error, QueryError)
        assert outcome.error.step == "insert ItemVersions row"
        assert ctx.query_one("select count(*) from Requirements").unwrap()[0] == 0
        assert _version_rows(ctx) == []


def test_update_on_closed_store_fails(tmp_path):
    ctx = _make_store(tmp_path)
    ctx.close()
    outcome = update_item(ctx, Requirement(uid=1), 1)
    assert not outcome.ok
    assert isinstance(outcome.error, QueryError)


def test_item_history_lists_versions_in_order(tmp_path):
    with _make_store(tmp_path) as ctx:
        ctx.execute("insert into Projects (id, name) values (2, 'v2')").unwrap()
        item = Requirement(uid=77, description="a")
        first = update_item(ctx, item, 1).unwrap()
        update_item(ctx, replace(item, id=first, description="b"), 2).unwrap()

        rows = item_history(ctx, ItemType.REQUIREMENT, 77).unwrap()
        assert [row["description"] for row in rows] == ["a", "b"]
        assert [row["version_name"] for row in rows] == ["v1", "v2"]
        assert [row["itemV"] for row in rows] == [1, 2]
