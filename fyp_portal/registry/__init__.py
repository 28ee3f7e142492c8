"""
Registry module - persistent project storage.
"""

from .project_registry import (
    DEFAULT_DB_PATH,
    SCHEMA_VERSION,
    ProjectRegistry,
    ProjectStore,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "SCHEMA_VERSION",
    "ProjectRegistry",
    "ProjectStore",
]
