"""
FastAPI application entry point.

Duplicate detection API for the project submission portal.

The lifespan is the composition root: it builds the embedding service,
opens the project registry and loads the policy once, and the routers
receive them through dependencies.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from fyp_portal import __version__
from fyp_portal.dedup.embedder import EmbeddingService
from fyp_portal.dedup.policy import DedupPolicy
from fyp_portal.registry.project_registry import ProjectRegistry

from .routers import dedup

load_dotenv()

logger = logging.getLogger(__name__)

# Tag metadata for Swagger UI
tags_metadata = [
    {
        "name": "dedup",
        "description": "Duplicate detection - batch scans, corpus checks and the two-tier submission check",
    },
]


def create_app(
    embedder: Optional[EmbeddingService] = None,
    registry: Optional[ProjectRegistry] = None,
    policy: Optional[DedupPolicy] = None,
) -> FastAPI:
    """
    Build the application.

    Components passed in are used as-is and not closed on shutdown;
    missing ones are created at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_embedder = embedder is None
        owns_registry = registry is None

        app.state.embedder = embedder or EmbeddingService()
        app.state.registry = registry or ProjectRegistry()
        app.state.policy = policy or DedupPolicy.from_env()
        logger.info(
            f"[API] Started: model={app.state.embedder.model_name}, "
            f"projects={app.state.registry.count()}"
        )

        yield

        if owns_embedder:
            app.state.embedder.close()
        if owns_registry:
            app.state.registry.close()
        logger.info("[API] Shutdown complete")

    app = FastAPI(
        title="FYP Portal Duplicate Detection API",
        lifespan=lifespan,
        description="""
## FYP Portal Duplicate Detection API

Flags project submissions that are textually or semantically similar to
existing ones.

### Features
- **Batch scan**: pairwise embedding similarity across a list of papers
- **Corpus check**: a draft against every stored project
- **Quick check**: Jaccard token overlap, cheap enough for every keystroke
- **Evaluate**: quick check escalating to the semantic check, with a blocking decision

### Usage
```bash
uvicorn fyp_portal.api.main:app --host 127.0.0.1 --port 8000

curl -X POST http://localhost:8000/dedup/evaluate \\
  -H "Content-Type: application/json" \\
  -d '{"title": "Machine Learning for Crop Yield Prediction", "abstract": "..."}'
```
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=tags_metadata,
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    app.include_router(dedup.router, prefix="/dedup", tags=["dedup"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
