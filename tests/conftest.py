"""
Pytest configuration and shared fixtures.
"""

import logging

import numpy as np
import pytest

from fyp_portal.dedup.embedder import BackendStrategy, EmbeddingBackend, EmbeddingService
from fyp_portal.infra.logging_config import LOGGER_NAME
from fyp_portal.registry.project_registry import ProjectRegistry


class BagOfWordsBackend(EmbeddingBackend):
    """
    Deterministic stand-in for the embedding model.

    Every distinct token gets its own axis, so cosine similarity is the
    normalized token-count overlap of the two texts.
    """

    name = "fake"

    def __init__(self, dimension: int = 384):
        self.dimension = dimension
        self.vocabulary = {}
        self.calls = []

    def encode(self, text: str) -> np.ndarray:
        self.calls.append(text)
        vector = np.zeros(self.dimension, dtype=np.float32)
        for token in text.split():
            index = self.vocabulary.setdefault(token, len(self.vocabulary) % self.dimension)
            vector[index] += 1.0
        return vector


class FailingBackend(EmbeddingBackend):
    """Backend whose encode always raises."""

    name = "failing"

    def encode(self, text: str) -> np.ndarray:
        raise RuntimeError("device lost")


def make_embedder(backend: EmbeddingBackend) -> EmbeddingService:
    return EmbeddingService(
        model_name="test-model",
        strategies=[BackendStrategy("fake", lambda _model: backend)],
    )


def make_unavailable_embedder() -> EmbeddingService:
    def fail(_model):
        raise RuntimeError("weights not found")

    return EmbeddingService(
        model_name="test-model",
        strategies=[BackendStrategy("cuda", fail), BackendStrategy("cpu", fail)],
    )


@pytest.fixture
def fake_backend():
    return BagOfWordsBackend()


@pytest.fixture
def embedder(fake_backend):
    return make_embedder(fake_backend)


@pytest.fixture
def unavailable_embedder():
    return make_unavailable_embedder()


@pytest.fixture
def registry(tmp_path):
    reg = ProjectRegistry(db_path=str(tmp_path / "projects.db"))
    yield reg
    reg.close()


@pytest.fixture(autouse=True)
def reset_package_logger():
    """
    Restore the package logger after each test.

    setup_logging() disables propagation and binds handlers to the
    streams of the test that called it.
    """
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
