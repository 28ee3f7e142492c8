"""
Tests for the embedding service and its backends.

No real model is loaded; backends are replaced by deterministic fakes and
the Ollama API by an httpx mock transport.
"""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import httpx
import numpy as np
import pytest

from fyp_portal.dedup.embedder import (
    BackendStrategy,
    EmbeddingBackend,
    EmbeddingService,
    OllamaBackend,
    TransformersBackend,
    build_strategies,
)
from fyp_portal.dedup.errors import ModelUnavailable

from tests.conftest import BagOfWordsBackend, FailingBackend


class CountingLoader:
    """Loader that records calls and optionally fails or blocks."""

    def __init__(self, backend=None, error=None, delay=0.0):
        self.backend = backend
        self.error = error
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, model_name):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.backend


class FlakyBackend(EmbeddingBackend):
    """Fails the first encode, succeeds afterwards."""

    name = "flaky"

    def __init__(self):
        self.failures_left = 1

    def encode(self, text):
        if self.failures_left:
            self.failures_left -= 1
            raise RuntimeError("transient device error")
        return np.array([3.0, 4.0], dtype=np.float32)


class TestLazyInitialization:
    """Tests for lazy loading and backend fallback."""

    def test_model_not_loaded_on_construction(self):
        loader = CountingLoader(backend=BagOfWordsBackend())
        service = EmbeddingService("m", [BackendStrategy("cpu", loader)])

        assert loader.calls == 0
        assert service.is_loaded is False
        assert service.active_backend is None

    def test_loaded_once_across_calls(self):
        loader = CountingLoader(backend=BagOfWordsBackend())
        service = EmbeddingService("m", [BackendStrategy("cpu", loader)])

        service.embed("first text")
        service.embed("second text")

        assert loader.calls == 1
        assert service.is_loaded is True
        assert service.active_backend == "cpu"

    def test_falls_back_to_second_strategy(self):
        accelerated = CountingLoader(error=RuntimeError("CUDA is not available"))
        default = CountingLoader(backend=BagOfWordsBackend())
        service = EmbeddingService("m", [
            BackendStrategy("cuda", accelerated),
            BackendStrategy("cpu", default),
        ])

        service.get_or_init()

        assert accelerated.calls == 1
        assert default.calls == 1
        assert service.active_backend == "cpu"

    def test_prefers_first_strategy(self):
        accelerated = CountingLoader(backend=BagOfWordsBackend())
        default = CountingLoader(backend=BagOfWordsBackend())
        service = EmbeddingService("m", [
            BackendStrategy("cuda", accelerated),
            BackendStrategy("cpu", default),
        ])

        service.get_or_init()

        assert service.active_backend == "cuda"
        assert default.calls == 0

    def test_all_strategies_fail(self):
        service = EmbeddingService("test-model", [
            BackendStrategy("cuda", CountingLoader(error=RuntimeError("no gpu"))),
            BackendStrategy("cpu", CountingLoader(error=OSError("weights missing"))),
        ])

        with pytest.raises(ModelUnavailable) as exc_info:
            service.embed("text")

        assert exc_info.value.model_name == "test-model"
        assert len(exc_info.value.attempts) == 2
        assert "no gpu" in exc_info.value.attempts[0]
        assert service.is_loaded is False

    def test_no_strategies(self):
        service = EmbeddingService("m", [])
        with pytest.raises(ModelUnavailable):
            service.get_or_init()

    def test_failed_init_is_retried_on_next_call(self):
        loader = CountingLoader(error=RuntimeError("offline"))
        service = EmbeddingService("m", [BackendStrategy("cpu", loader)])

        with pytest.raises(ModelUnavailable):
            service.get_or_init()

        loader.error = None
        loader.backend = BagOfWordsBackend()
        backend = service.get_or_init()

        assert backend is loader.backend
        assert loader.calls == 2


class TestSingleFlight:
    """Concurrent first callers share one initialization."""

    def test_concurrent_callers_share_one_load(self):
        backend = BagOfWordsBackend()
        loader = CountingLoader(backend=backend, delay=0.2)
        service = EmbeddingService("m", [BackendStrategy("cpu", loader)])

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: service.get_or_init(), range(8)))

        assert loader.calls == 1
        assert all(r is backend for r in results)

    def test_concurrent_callers_all_see_failure(self):
        loader = CountingLoader(error=RuntimeError("offline"), delay=0.2)
        service = EmbeddingService("m", [BackendStrategy("cpu", loader)])

        def attempt(_):
            try:
                service.get_or_init()
            except ModelUnavailable:
                return "unavailable"
            return "loaded"

        with ThreadPoolExecutor(max_workers=4) as pool:
            outcomes = list(pool.map(attempt, range(4)))

        assert outcomes == ["unavailable"] * 4
        assert service.is_loaded is False


class TestEmbed:
    """Tests for EmbeddingService.embed."""

    def test_returns_unit_vector(self):
        service = EmbeddingService("m", [BackendStrategy("cpu", lambda _m: BagOfWordsBackend())])

        vector = service.embed("crop yield crop")

        assert vector.dtype == np.float32
        assert float(np.linalg.norm(vector)) == pytest.approx(1.0, abs=1e-6)
        assert service.dimension == 384

    def test_retries_once_after_encode_failure(self):
        flaky = FlakyBackend()
        loader = CountingLoader(backend=flaky)
        service = EmbeddingService("m", [BackendStrategy("cpu", loader)])

        vector = service.embed("text")

        assert np.allclose(vector, [0.6, 0.8])
        # Re-initialized after the failed encode
        assert loader.calls == 2
        assert service.dimension == 2

    def test_second_failure_raises_model_unavailable(self):
        loader = CountingLoader(backend=FailingBackend())
        service = EmbeddingService("test-model", [BackendStrategy("cpu", loader)])

        with pytest.raises(ModelUnavailable) as exc_info:
            service.embed("text")

        assert "device lost" in str(exc_info.value)
        assert loader.calls == 2

    def test_reset_forces_reload(self):
        loader = CountingLoader(backend=BagOfWordsBackend())
        service = EmbeddingService("m", [BackendStrategy("cpu", loader)])

        service.get_or_init()
        service.reset()

        assert service.is_loaded is False
        service.get_or_init()
        assert loader.calls == 2

    def test_get_status(self):
        service = EmbeddingService("test-model", [
            BackendStrategy("cuda", CountingLoader(error=RuntimeError("no gpu"))),
            BackendStrategy("cpu", CountingLoader(backend=BagOfWordsBackend())),
        ])

        before = service.get_status()
        service.embed("hello")
        after = service.get_status()

        assert before == {
            "model": "test-model",
            "strategies": ["cuda", "cpu"],
            "active_backend": None,
            "loaded": False,
            "dimension": None,
        }
        assert after["active_backend"] == "cpu"
        assert after["loaded"] is True
        assert after["dimension"] == 384


class TestBuildStrategies:
    """Tests for build_strategies."""

    def test_named_strategies_in_order(self):
        strategies = build_strategies(["cuda", "CPU", "ollama"])
        assert [s.name for s in strategies] == ["cuda", "cpu", "ollama"]

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown embedding backend"):
            build_strategies(["tpu"])

    def test_default_order_from_config(self):
        names = [s.name for s in build_strategies()]
        assert len(names) >= 1


class TestTransformersBackend:
    """TransformersBackend device checks (requires torch)."""

    def test_missing_cuda_raises_before_loading(self, monkeypatch):
        torch = pytest.importorskip("torch")
        pytest.importorskip("transformers")
        monkeypatch.setattr(torch.cuda, "is_available", lambda: False)

        with pytest.raises(RuntimeError, match="CUDA is not available"):
            TransformersBackend("any-model", device="cuda")


class TestOllamaBackend:
    """Tests for OllamaBackend against a mocked HTTP API."""

    @staticmethod
    def make_client(embed_payload, models=("nomic-embed-text:latest",)):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": [{"name": m} for m in models]})
            if request.url.path == "/api/embed":
                return httpx.Response(200, json=embed_payload)
            return httpx.Response(404)

        client = httpx.Client(
            base_url="http://ollama.test", transport=httpx.MockTransport(handler)
        )
        return client, requests

    def test_encode_normalizes(self):
        client, requests = self.make_client({"embeddings": [[3.0, 4.0]]})
        backend = OllamaBackend(model="nomic-embed-text", client=client)

        vector = backend.encode("  some text  ")

        assert np.allclose(vector, [0.6, 0.8])
        assert requests[-1].url.path == "/api/embed"
        assert json.loads(requests[-1].content)["input"] == "some text"

    def test_legacy_embedding_field(self):
        client, _ = self.make_client({"embedding": [0.0, 2.0]})
        backend = OllamaBackend(model="nomic-embed-text", client=client)

        assert np.allclose(backend.encode("text"), [0.0, 1.0])

    def test_missing_embedding_raises(self):
        client, _ = self.make_client({"error": "nope"})
        backend = OllamaBackend(model="nomic-embed-text", client=client)

        with pytest.raises(ValueError, match="No embedding"):
            backend.encode("text")

    def test_model_not_pulled(self):
        client, _ = self.make_client({"embeddings": [[1.0]]}, models=("llama3:latest",))

        with pytest.raises(RuntimeError, match="not available"):
            OllamaBackend(model="nomic-embed-text", client=client)

    def test_unreachable_server(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(base_url="http://ollama.test", transport=httpx.MockTransport(handler))

        with pytest.raises(RuntimeError):
            OllamaBackend(model="nomic-embed-text", client=client)

    def test_service_falls_back_to_ollama(self):
        client, _ = self.make_client({"embeddings": [[1.0, 0.0]]})
        service = EmbeddingService("m", [
            BackendStrategy("cpu", CountingLoader(error=OSError("no weights"))),
            BackendStrategy("ollama", lambda _m: OllamaBackend(client=client)),
        ])

        vector = service.embed("text")

        assert service.active_backend == "ollama"
        assert np.allclose(vector, [1.0, 0.0])


class ClosableBackend(BagOfWordsBackend):
    """Bag-of-words backend that records close()."""

    def __init__(self):
        super().__init__()
        self.closed = False

    def close(self):
        self.closed = True


class TestBackendCleanup:
    """Dropped backends release their resources."""

    @staticmethod
    def failing_ollama_loader(clients):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": [{"name": "nomic-embed-text:latest"}]})
            return httpx.Response(500, json={"error": "model crashed"})

        def load(_model_name):
            client = httpx.Client(
                base_url="http://ollama.test", transport=httpx.MockTransport(handler)
            )
            clients.append(client)
            return OllamaBackend(model="nomic-embed-text", client=client)

        return load

    def test_reset_closes_backend(self):
        backend = ClosableBackend()
        service = EmbeddingService("m", [BackendStrategy("cpu", lambda _m: backend)])

        service.get_or_init()
        service.reset()

        assert backend.closed is True

    def test_retry_closes_dropped_ollama_client(self):
        clients = []
        service = EmbeddingService(
            "m", [BackendStrategy("ollama", self.failing_ollama_loader(clients))]
        )

        with pytest.raises(ModelUnavailable):
            service.embed("text")

        assert len(clients) == 2
        assert clients[0].is_closed is True
        # The re-initialized backend stays loaded until the service is closed
        assert clients[1].is_closed is False

        service.close()

        assert all(client.is_closed for client in clients)
        assert service.is_loaded is False

    def test_unavailable_ollama_closes_its_client(self):
        client, _ = TestOllamaBackend.make_client(
            {"embeddings": [[1.0]]}, models=("llama3:latest",)
        )

        with pytest.raises(RuntimeError):
            OllamaBackend(model="nomic-embed-text", client=client)

        assert client.is_closed is True

    def test_close_before_first_use(self):
        service = EmbeddingService("m", [BackendStrategy("cpu", lambda _m: ClosableBackend())])

        service.close()

        assert service.is_loaded is False
