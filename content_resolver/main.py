"""FastAPI application entrypoint.

Provides the ``/resolve/{contentId...}`` endpoint (content resolution,
stats and CORS preflight), a ``/health`` endpoint, request-ID and access
log middleware, the bundled placeholder image under ``/images``, and the
lifespan that runs the cache janitor.

Run with ``uvicorn content_resolver.main:app``.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from content_resolver.caching.janitor import CacheJanitor
from content_resolver.core.config import STATIC_IMAGES_DIR, Settings
from content_resolver.core.errors import ContentIdError, StructuredErrorResponse
from content_resolver.gateway_registry import GatewayRegistry
from content_resolver.models.schemas import HealthResponse
from content_resolver.observability.access_log import AccessLogMiddleware
from content_resolver.resolver import CORS_HEADERS, ContentResolver
from content_resolver.security.content_id import normalize_content_id

logger = logging.getLogger(__name__)

_TRUTHY: frozenset[str] = frozenset({"1", "true", "yes"})


def create_app(settings: Settings | None = None, resolver: ContentResolver | None = None) -> FastAPI:
    """Build the application with its own resolver, cache and janitor.

    Args:
        settings: Application settings (read from the environment if omitted).
        resolver: Pre-built resolver, e.g. with an injected fetcher in tests.
    """
    settings = settings or Settings()
    logging.getLogger("content_resolver").setLevel(settings.LOG_LEVEL.upper())

    if resolver is None:
        registry = GatewayRegistry.load(settings.GATEWAYS_CONFIG_PATH, extra_denylist=settings.DENYLIST)
        resolver = ContentResolver(settings, registry)
    janitor = CacheJanitor(resolver.cache, interval_seconds=settings.CACHE_SWEEP_INTERVAL_SECONDS)
    start_time = time.monotonic()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        janitor.start()
        try:
            yield
        finally:
            await janitor.stop()
            await resolver.close()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.resolver = resolver
    app.state.janitor = janitor

    # ── Middleware chain ────────────────────────────────────────────────
    # Starlette add_middleware prepends, so LAST added = OUTERMOST.
    # Order: RequestID → AccessLog → [handler]

    if settings.ACCESS_LOG_ENABLED:
        app.add_middleware(AccessLogMiddleware, log_path=settings.ACCESS_LOG_PATH)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next) -> Response:
        """Assign or preserve a unique request ID on every request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # ── Routes ──────────────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Return service health with name, version, status, and uptime."""
        return HealthResponse(
            service=settings.SERVICE_NAME,
            version=settings.SERVICE_VERSION,
            status="healthy",
            uptime_seconds=round(time.monotonic() - start_time, 2),
            gateways=resolver.registry.gateway_count,
            cache_entries=resolver.cache.size,
        )

    @app.get("/resolve/{content_path:path}")
    async def resolve_content(content_path: str, request: Request) -> Response:
        """Resolve a content identifier through the configured gateways."""
        try:
            content_id = normalize_content_id(content_path)
        except ContentIdError as exc:
            body = StructuredErrorResponse.from_exception(exc, getattr(request.state, "request_id", ""))
            return JSONResponse(status_code=400, content=body.model_dump(), headers=CORS_HEADERS)

        try:
            return await resolver.resolve(content_id, base_url=str(request.base_url))
        except Exception as exc:
            logger.exception("Unhandled error resolving %s", content_id)
            resolver.usage.record_failed()
            return resolver.synthesizer.synthesize(
                content_id,
                [],
                exc,
                base_url=str(request.base_url),
            )

    @app.options("/resolve/{content_path:path}")
    async def resolve_options(content_path: str, request: Request) -> Response:
        """Stats snapshot with ``?stats=true``; otherwise a CORS preflight reply."""
        if request.query_params.get("stats", "").lower() in _TRUTHY:
            return resolver.stats_response()
        return resolver.preflight_response()

    # Placeholder image target of image fallbacks
    app.mount("/images", StaticFiles(directory=STATIC_IMAGES_DIR), name="images")

    return app


app = create_app()
