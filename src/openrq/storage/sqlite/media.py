"""Media attachment helpers for solutions (``Media`` table)."""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

from PIL import Image, UnidentifiedImageError

from openrq.core.records import MediaRecord, record_from_row
from openrq.errors import DecodeError, IntegrityError, Outcome

if TYPE_CHECKING:
    from openrq.storage.datacontext import DataContext

__all__ = [
    "DEFAULT_MEDIA_FORMAT",
    "encode_image",
    "add_media",
    "get_media",
    "list_media",
]

log = logging.getLogger(__name__)

DEFAULT_MEDIA_FORMAT = "webp"


def encode_image(data: bytes, fmt: str = DEFAULT_MEDIA_FORMAT, *, quality: int = 90) -> bytes:
    """Re-encode image ``data`` as ``fmt``; returns ``data`` unchanged if it already is.

    Raises :class:`DecodeError` when ``data`` is not a readable image.
    """

    target = fmt.upper()
    try:
        with Image.open(io.BytesIO(data)) as img:
            if (img.format or "").upper() == target:
                return data
            img.load()
            if target in {"WEBP", "PNG"} and img.mode not in {"RGB", "RGBA"}:
                img = img.convert("RGBA")
            elif target in {"JPEG", "JPG"} and img.mode != "RGB":
                img = img.convert("RGB")
            out = io.BytesIO()
            save_kwargs = {"quality": quality} if target in {"WEBP", "JPEG", "JPG"} else {}
            img.save(out, format="JPEG" if target == "JPG" else target, **save_kwargs)
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError(f"media payload is not a readable image: {exc}") from exc
    return out.getvalue()


def add_media(
    ctx: DataContext,
    parent: int | None,
    data: bytes,
    *,
    fmt: str = DEFAULT_MEDIA_FORMAT,
    convert: bool = True,
) -> Outcome[int]:
    """Attach ``data`` to solution ``parent`` and return the media id.

    With ``convert`` the payload is re-encoded with Pillow into ``fmt``;
    otherwise it is stored verbatim under the given format name.
    """

    if parent is None:
        return Outcome.failure(IntegrityError("media requires a parent solution"))
    exists = ctx.query_one("select 1 from Solutions where id = ?", (parent,))
    if not exists.ok:
        return exists
    if exists.value is None:
        return Outcome.failure(IntegrityError(f"Solutions row {parent} does not exist"))

    payload = data
    if convert:
        try:
            payload = encode_image(data, fmt)
        except DecodeError as exc:
            log.warning("Rejected media for solution %s: %s", parent, exc)
            return Outcome.failure(exc)

    outcome = ctx.execute(
        "insert into Media (parent, format, data) values (?, ?, ?)",
        (parent, fmt.lower(), payload),
    )
    if not outcome.ok:
        return outcome
    log.debug("Stored %d bytes of %s media for solution %s", len(payload), fmt, parent)
    return Outcome.success(int(outcome.value.lastrowid))


def get_media(ctx: DataContext, media_id: int) -> Outcome[MediaRecord]:
    outcome = ctx.query_one(
        "select id, parent, format, data from Media where id = ?", (media_id,)
    )
    if not outcome.ok:
        return outcome
    if outcome.value is None:
        return Outcome.failure(IntegrityError(f"media {media_id} does not exist"))
    try:
        return Outcome.success(record_from_row(MediaRecord, outcome.value))
    except DecodeError as exc:
        return Outcome.failure(exc)


def list_media(ctx: DataContext, parent: int) -> Outcome[list[MediaRecord]]:
    """Return media attached to solution ``parent``, oldest first."""

    outcome = ctx.query(
        "select id, parent, format, data from Media where parent = ? order by id", (parent,)
    )
    if not outcome.ok:
        return outcome
    try:
        return Outcome.success([record_from_row(MediaRecord, row) for row in outcome.value])
    except DecodeError as exc:
        return Outcome.failure(exc)
