"""
API routers package.
"""

from . import dedup

__all__ = ["dedup"]
