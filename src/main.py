"""Main entry point for the Scrape Worker service."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config import get_settings
from src.crawlers.errors import ScrapeError
from src.crawlers.recipe_scraper import RecipeScraper
from src.crawlers.render_fallback import CloudflareRenderer
from src.lib.auth import SupabaseAuthenticator
from src.lib.json_logger import setup_logging
from src.lib.rate_limiter import SlidingWindowRateLimiter
from src.monitoring.scrape_metrics import ScrapeMetrics
from src.routes import health, scrape
from src.routes.metrics import router as metrics_router

logger = logging.getLogger(__name__)

# Configure logging based on settings
settings = get_settings()
setup_logging(log_format=settings.log_format, level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the scrape pipeline and own the rate limiter's sweep task."""
    settings = get_settings()

    renderer = CloudflareRenderer.from_settings(settings)
    authenticator = SupabaseAuthenticator.from_settings(settings)
    if not authenticator.is_configured:
        logger.warning("Supabase auth is not configured; every scrape will be rejected")

    app.state.renderer = renderer
    app.state.authenticator = authenticator
    app.state.scraper = RecipeScraper.from_settings(settings, renderer=renderer)
    app.state.metrics = ScrapeMetrics()
    app.state.rate_limiter = SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
        sweep_interval_seconds=settings.rate_limit_sweep_seconds,
    )

    async with app.state.rate_limiter:
        logger.info("Rate limiter sweep started")
        yield
    logger.info("Rate limiter sweep stopped")


async def scrape_error_handler(request: Request, exc: ScrapeError) -> JSONResponse:
    """Render any ScrapeError as ``{"error": message}`` and count it."""
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.record(exc.kind.value)
    return JSONResponse(
        {"error": exc.message},
        status_code=exc.status_code,
        headers=exc.headers or None,
    )


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="Scrape Worker",
        description="Fetches caller-supplied recipe URLs safely and extracts structured recipes",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware - origins from environment variable
    cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ScrapeError, scrape_error_handler)

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(scrape.router, prefix="/scrape", tags=["Scrape"])
    app.include_router(metrics_router, tags=["Metrics"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Scrape Worker",
            "version": "0.1.0",
            "status": "running"
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug
    )
