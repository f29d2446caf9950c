"""Storage engine, uid generation and validation for project files."""

from openrq.storage.datacontext import DataContext, Executed, project_name_for
from openrq.storage.uid import generate_uid, uid_exists

__all__ = ["DataContext", "Executed", "project_name_for", "generate_uid", "uid_exists"]
