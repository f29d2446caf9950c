"""Public package interface for the OpenRQ project store."""

from openrq.core.items import Item, ItemType, Requirement, Solution
from openrq.core.project import PROJECT_SUFFIX, Project, open_project
from openrq.core.versioning import update_item
from openrq.errors import (
    ConfigurationError,
    DecodeError,
    IntegrityError,
    Outcome,
    QueryError,
    SchemaError,
    StoreError,
)
from openrq.storage.datacontext import DataContext
from openrq.storage.uid import generate_uid

__version__ = "0.1.0"

__all__ = [
    "Item",
    "ItemType",
    "Requirement",
    "Solution",
    "PROJECT_SUFFIX",
    "Project",
    "open_project",
    "update_item",
    "DataContext",
    "generate_uid",
    "Outcome",
    "StoreError",
    "ConfigurationError",
    "SchemaError",
    "QueryError",
    "DecodeError",
    "IntegrityError",
]
