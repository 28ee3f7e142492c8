"""
Text embedding generation.

The embedding service is constructed once by the application (API lifespan
or CLI) and passed to the scan functions. It loads the model lazily on first
use, trying an ordered list of backend strategies (accelerated device first,
CPU second) and keeping whichever loads.

Backends:
- TransformersBackend: Hugging Face model on a torch device, mean pooling
- OllamaBackend: local Ollama server via its embedding API
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Sequence

import httpx
import numpy as np

from .errors import ModelUnavailable
from .vectors import l2_normalize

logger = logging.getLogger("fyp_portal")

# Default embedding model (384-dim, mean pooled)
DEFAULT_EMBED_MODEL = os.getenv("EMBED_MODEL", "mixedbread-ai/mxbai-embed-xsmall-v1")

# Backend strategies, tried in order
DEFAULT_BACKENDS = os.getenv("EMBED_BACKENDS", "cuda,cpu")

# Default Ollama settings
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_EMBED_ENDPOINT = "/api/embed"
OLLAMA_EMBED_MODEL = os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text")

MAX_TOKENS = 512


class EmbeddingBackend(ABC):
    """A loaded model that turns text into a dense vector."""

    name: str = "backend"

    @abstractmethod
    def encode(self, text: str) -> np.ndarray:
        """Return the embedding of a single text."""

    def close(self) -> None:
        """Release resources held by the backend."""


class TransformersBackend(EmbeddingBackend):
    """
    Hugging Face feature-extraction model on a torch device.

    Token embeddings are mean pooled under the attention mask and
    L2-normalized, so cosine similarity equals the dot product.
    """

    def __init__(self, model_name: str, device: str = "cpu", max_length: int = MAX_TOKENS):
        """
        Load tokenizer and model onto the device.

        Args:
            model_name: Hugging Face model id
            device: "cuda", "mps" or "cpu"
            max_length: Truncation length in tokens

        Raises:
            RuntimeError: If the requested accelerator is not present
        """
        import torch
        from transformers import AutoModel, AutoTokenizer

        if device == "cuda" and not torch.cuda.is_available():
            raise RuntimeError("CUDA is not available")
        if device == "mps" and not torch.backends.mps.is_available():
            raise RuntimeError("MPS is not available")

        self._torch = torch
        self.model_name = model_name
        self.max_length = max_length
        self.device = torch.device(device)
        self.name = f"transformers:{device}"

        self.tokenizer = AutoTokenizer.from_pretrained(model_name)
        self.model = AutoModel.from_pretrained(model_name)
        self.model.to(self.device)
        self.model.eval()

    def _mean_pooling(self, model_output, attention_mask):
        """Average token embeddings, ignoring padding."""
        token_embeddings = model_output.last_hidden_state
        mask = attention_mask.unsqueeze(-1).expand(token_embeddings.size()).float()
        summed = self._torch.sum(token_embeddings * mask, dim=1)
        counts = self._torch.clamp(mask.sum(dim=1), min=1e-9)
        return summed / counts

    def encode(self, text: str) -> np.ndarray:
        torch = self._torch
        inputs = self.tokenizer(
            text,
            padding=True,
            truncation=True,
            max_length=self.max_length,
            return_tensors="pt",
        )
        inputs = {k: v.to(self.device) for k, v in inputs.items()}

        with torch.no_grad():
            output = self.model(**inputs)

        pooled = self._mean_pooling(output, inputs["attention_mask"])
        pooled = torch.nn.functional.normalize(pooled, p=2, dim=1)
        return pooled[0].cpu().numpy().astype(np.float32)


class OllamaBackend(EmbeddingBackend):
    """
    Embedding generator using a local Ollama model.

    Supports any Ollama model that can generate embeddings.
    """

    name = "ollama"

    def __init__(
        self,
        model: str = OLLAMA_EMBED_MODEL,
        base_url: str = OLLAMA_BASE_URL,
        timeout: float = 120,
        client: Optional[httpx.Client] = None,
    ):
        """
        Connect to Ollama and verify the model is pulled.

        Args:
            model: Ollama model name for embeddings
            base_url: Ollama API base URL
            timeout: Request timeout in seconds
            client: Pre-built HTTP client (tests)

        Raises:
            RuntimeError: If Ollama is unreachable or the model is missing
        """
        self.model = model
        self.base_url = base_url
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

        if not self.is_available():
            self._client.close()
            raise RuntimeError(f"Ollama model not available: {model} at {base_url}")

    def is_available(self) -> bool:
        """Check if Ollama is reachable and the model is loaded."""
        try:
            response = self._client.get("/api/tags", timeout=5)
            response.raise_for_status()
            models = [m.get("name", "") for m in response.json().get("models", [])]
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"[Embedder] Ollama availability check failed: {e}")
            return False
        return self.model in models or any(self.model in m for m in models)

    def encode(self, text: str) -> np.ndarray:
        response = self._client.post(
            OLLAMA_EMBED_ENDPOINT,
            json={"model": self.model, "input": text.strip()},
        )
        response.raise_for_status()
        result = response.json()

        # Ollama returns 'embeddings' (array of arrays); older servers use 'embedding'
        embeddings = result.get("embeddings") or []
        if not embeddings and result.get("embedding"):
            embeddings = [result["embedding"]]

        if not embeddings:
            raise ValueError(f"No embedding in Ollama response: {list(result.keys())}")

        return l2_normalize(embeddings[0])

    def close(self) -> None:
        self._client.close()


@dataclass(frozen=True)
class BackendStrategy:
    """A named way of loading the model, tried in order by the service."""
    name: str
    loader: Callable[[str], EmbeddingBackend]


def _load_ollama(_model_name: str) -> EmbeddingBackend:
    # Ollama serves its own model names; the Hugging Face id does not apply.
    return OllamaBackend()


def build_strategies(names: Optional[Sequence[str]] = None) -> List[BackendStrategy]:
    """
    Build backend strategies from names.

    Args:
        names: Strategy names in priority order ("cuda", "mps", "cpu",
            "ollama"). Defaults to EMBED_BACKENDS.

    Returns:
        Ordered list of strategies

    Raises:
        ValueError: On an unknown backend name
    """
    if names is None:
        names = [n.strip() for n in DEFAULT_BACKENDS.split(",") if n.strip()]

    strategies: List[BackendStrategy] = []
    for name in names:
        key = name.lower()
        if key in ("cuda", "mps", "cpu"):
            strategies.append(BackendStrategy(key, partial(TransformersBackend, device=key)))
        elif key == "ollama":
            strategies.append(BackendStrategy(key, _load_ollama))
        else:
            raise ValueError(f"Unknown embedding backend: {name}")
    return strategies


class EmbeddingService:
    """
    Long-lived owner of the shared embedding model.

    The first call to get_or_init() loads the model; concurrent first callers
    wait on the same load instead of starting their own. A failed load is not
    cached, so a later call tries again.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_EMBED_MODEL,
        strategies: Optional[Sequence[BackendStrategy]] = None,
    ):
        self.model_name = model_name
        self.strategies: List[BackendStrategy] = (
            list(strategies) if strategies is not None else build_strategies()
        )
        self._lock = threading.Lock()
        self._backend: Optional[EmbeddingBackend] = None
        self._init_future: Optional[Future] = None
        self._active_backend: Optional[str] = None
        self._dimension: Optional[int] = None

    @property
    def active_backend(self) -> Optional[str]:
        """Name of the strategy that loaded the model, None before first use."""
        return self._active_backend

    @property
    def dimension(self) -> Optional[int]:
        """Embedding dimension (detected from first successful embedding)."""
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        return self._backend is not None

    def get_or_init(self) -> EmbeddingBackend:
        """
        Return the loaded backend, loading it on first use.

        Raises:
            ModelUnavailable: If no strategy can load the model
        """
        backend = self._backend
        if backend is not None:
            return backend

        with self._lock:
            if self._backend is not None:
                return self._backend
            future = self._init_future
            owner = future is None
            if owner:
                future = Future()
                self._init_future = future

        if not owner:
            return future.result()

        try:
            backend = self._initialize()
        except ModelUnavailable as e:
            with self._lock:
                self._init_future = None
            future.set_exception(e)
            raise

        with self._lock:
            self._backend = backend
            self._init_future = None
        future.set_result(backend)
        return backend

    def _initialize(self) -> EmbeddingBackend:
        attempts: List[str] = []

        for index, strategy in enumerate(self.strategies):
            try:
                backend = strategy.loader(self.model_name)
            except Exception as e:
                attempts.append(f"{strategy.name}: {e}")
                logger.warning(f"[Embedder] Backend '{strategy.name}' unavailable: {e}")
                continue

            if index > 0:
                logger.info(f"[Embedder] Falling back to backend '{strategy.name}'")
            logger.info(f"[Embedder] Model loaded: model={self.model_name}, backend={strategy.name}")
            self._active_backend = strategy.name
            return backend

        logger.error(f"[Embedder] No backend could load {self.model_name}")
        raise ModelUnavailable(self.model_name, attempts)

    def reset(self) -> None:
        """Close and drop the loaded backend; the next call loads it again."""
        with self._lock:
            backend = self._backend
            self._backend = None
            self._active_backend = None

        if backend is not None:
            backend.close()

    def close(self) -> None:
        """Release the loaded backend on shutdown."""
        self.reset()
        logger.debug("[Embedder] Closed")

    def embed(self, text: str) -> np.ndarray:
        """
        Get the L2-normalized embedding for text.

        An encoding failure re-initializes the backend and retries once.

        Args:
            text: Text to embed

        Returns:
            Embedding vector (float32)

        Raises:
            ModelUnavailable: If loading fails, or encoding fails after the retry
        """
        backend = self.get_or_init()

        try:
            vector = backend.encode(text)
        except Exception as e:
            logger.warning(
                f"[Embedder] Encoding failed on '{self._active_backend}': {e} - re-initializing"
            )
            self.reset()
            backend = self.get_or_init()
            try:
                vector = backend.encode(text)
            except Exception as retry_error:
                logger.error(f"[Embedder] Encoding failed after retry: {retry_error}")
                raise ModelUnavailable(
                    self.model_name, [f"{self._active_backend}: {retry_error}"]
                ) from retry_error

        vector = l2_normalize(vector)
        self._dimension = int(vector.shape[0])
        logger.debug(f"[Embedder] Generated embedding: dim={self._dimension}")
        return vector

    def get_status(self) -> dict:
        return {
            "model": self.model_name,
            "strategies": [s.name for s in self.strategies],
            "active_backend": self._active_backend,
            "loaded": self.is_loaded,
            "dimension": self._dimension,
        }
