"""PitchEdge FastAPI application.

Football prediction engine and bankroll staking service.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pitchedge.api.routes import betting, engine, health
from pitchedge.config import get_settings

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "starting_pitchedge",
        version="0.1.0",
        sportmonks_configured=settings.sportmonks_configured,
    )
    yield
    logger.info("shutting_down_pitchedge")


app = FastAPI(
    title="PitchEdge",
    description="Football prediction engine with risk-managed bankroll staking",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(engine.router)
app.include_router(betting.router)


@app.exception_handler(500)
async def server_error_handler(request: Request, exc):
    """Log unhandled errors and hide their details from clients."""
    logger.error("server_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
