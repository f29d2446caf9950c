"""SQLite helpers for ``.orq`` project files."""

__all__: list[str] = []
