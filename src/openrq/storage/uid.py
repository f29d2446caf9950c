"""Generation of globally unique item uids."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from openrq.errors import Outcome

if TYPE_CHECKING:
    from openrq.storage.datacontext import DataContext

__all__ = ["generate_uid", "uid_exists", "random_uid"]

log = logging.getLogger(__name__)

_INT64 = np.iinfo(np.int64)

UID_EXISTS_SQL = """
    select count(*) from (
        select uid from Requirements
        union
        select uid from Solutions
    ) where uid = ?
"""


def random_uid(rng: np.random.Generator) -> int:
    """Draw a uniformly distributed signed 64-bit integer."""

    return int(rng.integers(_INT64.min, _INT64.max, dtype=np.int64, endpoint=True))


def uid_exists(ctx: DataContext, uid: int) -> Outcome[bool]:
    """Return whether ``uid`` is taken by any requirement or solution."""

    outcome = ctx.query_one(UID_EXISTS_SQL, (uid,))
    if not outcome.ok:
        return outcome
    row = outcome.value
    return Outcome.success(bool(row is not None and row[0] > 0))


def generate_uid(ctx: DataContext, rng: np.random.Generator | None = None) -> Outcome[int]:
    """Return a uid not used by any existing requirement or solution.

    Draws until a free value is found; with 2**64 candidates a retry is
    practically never needed. Not safe against a second concurrent writer.
    """

    generator = rng if rng is not None else np.random.default_rng()
    while True:
        candidate = random_uid(generator)
        taken = uid_exists(ctx, candidate)
        if not taken.ok:
            return taken
        if not taken.value:
            return Outcome.success(candidate)
        log.debug("uid collision on %d, drawing again", candidate)
