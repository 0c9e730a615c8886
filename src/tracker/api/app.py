"""FastAPI application factory for the portfolio tracker API."""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tracker.api.routes import assets, balances, config, deposits, reference, transactions
from tracker.exceptions import (
    ComputationError,
    InvalidInputError,
    NotFoundError,
    TrackerError,
    UpstreamError,
)
from tracker.logging import get_logger

logger = get_logger(__name__)

_STATUS_BY_ERROR: list[tuple[type[TrackerError], int]] = [
    (NotFoundError, 404),
    (InvalidInputError, 400),  # includes AlreadyClosedError
    (ComputationError, 422),
    (UpstreamError, 502),
]


def status_for(error: TrackerError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


async def _tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("request_failed", path=request.url.path, error=str(exc), status=status)
    else:
        logger.info("request_rejected", path=request.url.path, error=str(exc), status=status)
    return JSONResponse(status_code=status, content={"error": str(exc)})


def create_app(lifespan: Any = None) -> FastAPI:
    """Create the API application.

    Args:
        lifespan: Optional async context manager for startup/shutdown. main.py
                  uses it to wire the services onto ``app.state``.
    """
    app = FastAPI(title="Portfolio Tracker", lifespan=lifespan)
    app.add_exception_handler(TrackerError, _tracker_error_handler)

    app.include_router(assets.router, prefix="/api")
    app.include_router(transactions.router, prefix="/api")
    app.include_router(config.router, prefix="/api")
    app.include_router(balances.router, prefix="/api")
    app.include_router(deposits.router, prefix="/api")
    app.include_router(reference.router, prefix="/api")

    return app
