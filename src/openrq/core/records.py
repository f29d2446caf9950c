from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from openrq.errors import DecodeError

__all__ = [
    "Info",
    "ProjectVersion",
    "Label",
    "LabelItem",
    "MediaRecord",
    "record_from_row",
]

MAX_PACKED_COLOR = 0xFFFFFFFF


class Info(BaseModel):
    id: int
    version: int = 1
    name: str | None = None
    created: int | str | None = None


class ProjectVersion(BaseModel):
    id: int
    name: str | None = None
    created: int | str | None = None


class Label(BaseModel):
    id: int | None = None
    tag: str = ""
    color: int = 0

    @field_validator("color")
    def _color_packed(cls, value: int) -> int:
        if value < 0 or value > MAX_PACKED_COLOR:
            raise ValueError("color must be a packed 0xAARRGGBB value")
        return value

    @property
    def rgb(self) -> tuple[int, int, int]:
        return ((self.color >> 16) & 0xFF, (self.color >> 8) & 0xFF, self.color & 0xFF)


class LabelItem(BaseModel):
    id: int | None = None
    label: int
    item: int
    type: int


class MediaRecord(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64")

    id: int | None = None
    parent: int
    format: str = "webp"
    data: bytes | None = Field(default=None, repr=False)


def record_from_row(model: type[BaseModel], row: Any) -> Any:
    """Validate ``row`` (``sqlite3.Row`` or mapping) into ``model``."""

    try:
        payload = {key: row[key] for key in row.keys()}
    except (AttributeError, TypeError) as exc:
        raise DecodeError(f"Cannot decode {type(row).__name__} as {model.__name__}") from exc
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise DecodeError(f"Invalid {model.__name__} row: {exc}") from exc
