"""
Main FastAPI application for oceanwatch.

The lifespan wires the storage, the shared yoweb client, the market poller
and the scrape scheduler, and tears them down in reverse order.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from prometheus_client import make_asgi_app
from sqlalchemy.orm import sessionmaker

from oceanwatch.core.config import Settings, settings as default_settings
from oceanwatch.core.database import create_db_engine, create_session_factory, init_db
from oceanwatch.core.logging import configure_logging, get_logger
from oceanwatch.core.scheduler import ScrapeScheduler
from oceanwatch.services.market.poller import MarketOrderPoller
from oceanwatch.services.scraper.client import YowebClient
from oceanwatch.api.routes import scrape_jobs

logger = get_logger(__name__)


def create_app(
    config: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    client: Optional[YowebClient] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings to use (defaults to the environment's)
        session_factory: Pre-built session factory (tests pass an in-memory one)
        client: Pre-built yoweb client
        start_scheduler: Whether the lifespan starts the timers
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        # Startup
        logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")

        problems = config.validate_required_settings()
        for problem in problems:
            logger.warning(f"Configuration problem: {problem}")
        if problems and config.is_production():
            raise RuntimeError(f"Invalid configuration: {'; '.join(problems)}")

        factory = session_factory
        engine = None
        if factory is None:
            engine = create_db_engine(config.DATABASE_URL, echo=config.SQL_ECHO)
            init_db(engine)
            factory = create_session_factory(engine)

        yoweb = client or YowebClient()
        poller = MarketOrderPoller(factory, yoweb, config.OCEANS) if config.MARKET_POLL_ENABLED else None
        scheduler = ScrapeScheduler(factory, yoweb, config=config, poller=poller)

        app.state.session_factory = factory
        app.state.client = yoweb
        app.state.scheduler = scheduler

        if start_scheduler:
            await scheduler.start()
        logger.info("Application started")

        yield

        # Shutdown
        await scheduler.stop()
        if client is None:
            await yoweb.aclose()
        if engine is not None:
            engine.dispose()
        logger.info("Shutting down application")

    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        description="Puzzle Pirates ocean scraper: islands, crews, flags and market orders",
        lifespan=lifespan
    )

    # Prometheus metrics
    app.mount("/metrics", make_asgi_app())

    app.include_router(scrape_jobs.router, prefix="/api/v1")

    @app.get("/health")
    async def health() -> dict:
        """Liveness check with scheduler state."""
        scheduler = getattr(app.state, "scheduler", None)
        return {
            'status': 'healthy',
            'version': config.APP_VERSION,
            'scheduler_running': bool(scheduler and scheduler.running),
        }

    return app


def _build_default_app() -> FastAPI:
    configure_logging(level=default_settings.LOG_LEVEL, json_output=default_settings.LOG_JSON)
    return create_app()


app = _build_default_app()
