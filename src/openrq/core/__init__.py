"""Domain models and core data structures for OpenRQ."""

from openrq.core.items import Item, ItemType, Requirement, Solution, item_class, item_from_row
from openrq.core.project import PROJECT_SUFFIX, Project, open_project, project_path
from openrq.core.versioning import item_history, pending_version, update_item

__all__ = [
    "Item",
    "ItemType",
    "Requirement",
    "Solution",
    "item_class",
    "item_from_row",
    "PROJECT_SUFFIX",
    "Project",
    "open_project",
    "project_path",
    "item_history",
    "pending_version",
    "update_item",
]
