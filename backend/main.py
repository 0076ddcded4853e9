"""
Valuation API
FastAPI application exposing the wallet valuation engine.

Run:
    uvicorn main:app --app-dir backend
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from api.valuation_router import router as valuation_router
from infrastructure.config import EngineConfig, get_config
from infrastructure.errors import ErrorTracker, register_exception_handlers
from sentry_config import init_sentry
from services.valuation_engine import ValuationEngine, build_engine

load_dotenv()

logger = logging.getLogger("Main")


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def create_app(
    config: Optional[EngineConfig] = None,
    engine: Optional[ValuationEngine] = None,
) -> FastAPI:
    """
    Build the app. Tests pass a prebuilt engine; otherwise one is wired
    from the environment when the app starts.
    """
    config = config or (engine.config if engine else get_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.engine = engine or build_engine(config)
        app.state.engine.start()
        logger.info(f"🚀 Valuation API started ({config.environment.value})")
        yield
        await app.state.engine.stop()
        logger.info("Valuation API stopped")

    app = FastAPI(title="Wallet Valuation Engine", lifespan=lifespan)
    app.state.error_tracker = ErrorTracker()
    register_exception_handlers(app)
    app.include_router(valuation_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "chain": config.chain.name}

    return app


def _app_from_env() -> FastAPI:
    config = get_config()
    configure_logging(config.monitoring.log_level)
    init_sentry(
        config.monitoring.sentry_dsn,
        environment=config.environment.value,
        release=os.getenv("COMMIT_SHA", "local"),
    )
    return create_app(config)


app = _app_from_env()
