"""
API dependencies package.
"""

from .components import get_embedder, get_policy, get_registry

__all__ = ["get_embedder", "get_policy", "get_registry"]
