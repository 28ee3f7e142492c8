"""
Component dependencies.

The application lifespan builds the embedding service, project registry and
policy once and stores them on app.state; endpoints receive them here.
"""

from fastapi import Request

from fyp_portal.dedup.embedder import EmbeddingService
from fyp_portal.dedup.policy import DedupPolicy
from fyp_portal.registry.project_registry import ProjectRegistry


def get_embedder(request: Request) -> EmbeddingService:
    return request.app.state.embedder


def get_registry(request: Request) -> ProjectRegistry:
    return request.app.state.registry


def get_policy(request: Request) -> DedupPolicy:
    return request.app.state.policy
