"""HTTP REST server for tokenvault."""

import logging
import time
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from tokenvault import __version__
from tokenvault.config import load_config
from tokenvault.engine import Engine
from tokenvault.errors import CollisionError, LibraryLoadError, ValidationError
from tokenvault.registry import RegexLibrary, load_library

logger = logging.getLogger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "tokenvault_requests_total",
    "Total requests",
    ["endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "tokenvault_request_duration_seconds",
    "Request duration in seconds",
    ["endpoint"],
)
TOKENS_ASSIGNED = Counter(
    "tokenvault_tokens_assigned_total",
    "Total distinct values tokenized",
    ["prefix"],
)
UNRESOLVED_TOKENS = Counter(
    "tokenvault_unresolved_tokens_total",
    "Total token occurrences missing from the supplied mapping",
)


# Request/Response models
class TokenizeRequest(BaseModel):
    """Request model for /tokenize and /preview endpoints."""

    text: str
    prefixes: Optional[list[str]] = None
    mapping: dict[str, str] = Field(default_factory=dict)


class ScanRequest(BaseModel):
    """Request model for /scan endpoint."""

    text: str
    prefixes: Optional[list[str]] = None


class RehydrateRequest(BaseModel):
    """Request model for /rehydrate endpoint."""

    text: str
    mapping: dict[str, str]


class TokenizeResponse(BaseModel):
    """Response model for /tokenize and /preview endpoints."""

    text: str
    match_count: int
    replacement_count: int
    mapping: dict[str, str]
    preview: bool


class ScanResponse(BaseModel):
    """Response model for /scan endpoint."""

    hits: list[dict[str, Any]]
    count: int
    prefixes_searched: list[str]


class RehydrateResponse(BaseModel):
    """Response model for /rehydrate endpoint."""

    text: str
    replacement_count: int
    unresolved_count: int
    unresolved_tokens: list[str]


class PatternInfo(BaseModel):
    """Single library entry."""

    prefix: str
    pattern: str
    description: str


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str
    version: str
    patterns_loaded: int
    prefixes: list[str]


class ReloadResponse(BaseModel):
    """Response model for /reload endpoint."""

    status: str
    version: int
    patterns_loaded: int
    message: str


class TokenVaultServer:
    """Server wrapper for managing state.

    Only the regex library is held; mappings travel with each request.
    """

    def __init__(self, config: Optional[dict[str, Any]] = None) -> None:
        """Initialize server with configuration."""
        config = config or {}
        # Accept settings already normalized by load_config
        self.config = config if "library_path" in config else load_config(config)
        self.library: Optional[RegexLibrary] = None
        self.engine: Optional[Engine] = None
        self._generation = 0
        self._load_library()

    def _load_library(self) -> None:
        """Load regex library from configuration."""
        path = self.config.get("library_path")

        logger.info(f"Loading regex library from: {path or 'package default'}")
        self.library = load_library(path)
        self.engine = Engine(self.library, hash_algorithm=self.config["hash_algorithm"])
        self._generation += 1
        logger.info(f"Loaded {len(self.library)} patterns")

    def reload_library(self) -> dict[str, Any]:
        """Reload the regex library from file."""
        old_generation = self._generation
        try:
            self._load_library()
        except LibraryLoadError as e:
            logger.error(f"Failed to reload library: {e}")
            raise HTTPException(status_code=500, detail=f"Reload failed: {e}")
        return {
            "status": "ok",
            "version": self._generation,
            "patterns_loaded": len(self.library) if self.library else 0,
            "message": f"Reloaded successfully (v{old_generation} -> v{self._generation})",
        }


def create_app(config: Optional[dict[str, Any]] = None) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        config: Normalized settings (see tokenvault.config.load_config) or raw config dict

    Returns:
        FastAPI application instance
    """
    app = FastAPI(
        title="tokenvault",
        description="Deterministic tokenization and rehydration service",
        version=__version__,
    )

    server = TokenVaultServer(config)

    def engine() -> Engine:
        if server.engine is None:
            raise HTTPException(status_code=500, detail="Engine not initialized")
        return server.engine

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next: Any) -> Response:
        """Record metrics for each request."""
        start_time = time.time()
        endpoint = request.url.path

        response = await call_next(request)

        duration = time.time() - start_time
        REQUEST_COUNT.labels(endpoint=endpoint, status=response.status_code).inc()
        REQUEST_DURATION.labels(endpoint=endpoint).observe(duration)

        return response

    def _tokenize(request: TokenizeRequest, preview: bool) -> TokenizeResponse:
        try:
            if preview:
                result = engine().preview(
                    request.text, prefixes=request.prefixes, mapping=request.mapping
                )
            else:
                result = engine().tokenize(
                    request.text, prefixes=request.prefixes, mapping=request.mapping
                )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except CollisionError as e:
            raise HTTPException(status_code=409, detail=str(e))

        if not preview:
            for entry in result.entries:
                TOKENS_ASSIGNED.labels(prefix=entry.prefix).inc()

        return TokenizeResponse(
            text=result.tokenized_text,
            match_count=result.match_count,
            replacement_count=result.replacement_count,
            mapping=result.mapping,
            preview=result.preview,
        )

    @app.post("/tokenize", response_model=TokenizeResponse)
    async def tokenize(request: TokenizeRequest) -> TokenizeResponse:
        """Tokenize text; the response mapping holds the new entries."""
        return _tokenize(request, preview=False)

    @app.post("/preview", response_model=TokenizeResponse)
    async def preview(request: TokenizeRequest) -> TokenizeResponse:
        """Compute token assignments without changing the text."""
        return _tokenize(request, preview=True)

    @app.post("/scan", response_model=ScanResponse)
    async def scan(request: ScanRequest) -> ScanResponse:
        """Find matches in text."""
        try:
            result = engine().scan(request.text, prefixes=request.prefixes)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        hits = [
            {"prefix": m.prefix, "span": [m.start, m.end], "match": m.original}
            for m in result.matches
        ]
        return ScanResponse(
            hits=hits,
            count=result.match_count,
            prefixes_searched=result.prefixes_searched,
        )

    @app.post("/rehydrate", response_model=RehydrateResponse)
    async def rehydrate(request: RehydrateRequest) -> RehydrateResponse:
        """Restore original values using the supplied mapping."""
        result = engine().rehydrate(request.text, request.mapping)
        if result.unresolved_count:
            UNRESOLVED_TOKENS.inc(result.unresolved_count)
        return RehydrateResponse(
            text=result.rehydrated_text,
            replacement_count=result.replacement_count,
            unresolved_count=result.unresolved_count,
            unresolved_tokens=result.unresolved_tokens,
        )

    @app.get("/patterns", response_model=list[PatternInfo])
    async def patterns() -> list[PatternInfo]:
        """List library patterns."""
        return [
            PatternInfo(prefix=d.prefix, pattern=d.pattern, description=d.description)
            for d in engine().library.definitions
        ]

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        if server.library is None:
            raise HTTPException(status_code=503, detail="Library not initialized")

        return HealthResponse(
            status="healthy",
            version=__version__,
            patterns_loaded=len(server.library),
            prefixes=server.library.prefixes,
        )

    @app.post("/reload", response_model=ReloadResponse)
    async def reload() -> ReloadResponse:
        """Reload the regex library from file."""
        return ReloadResponse(**server.reload_library())

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
