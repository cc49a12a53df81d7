"""Middleware registration."""

from fastapi import FastAPI

from focusgarden.config import Settings
from focusgarden.middleware.cors import setup_cors
from focusgarden.middleware.error_handler import setup_error_handlers
from focusgarden.middleware.logging import setup_logging
from focusgarden.middleware.rate_limit import RateLimitMiddleware
from focusgarden.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Wire logging, error handlers and the middleware stack.

    Outermost first: CORS, request id (and access log), rate limit.
    Starlette wraps in reverse-add order, so they are added innermost first.
    ``FG_RATE_LIMIT_REQUESTS=0`` turns rate limiting off.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    if settings.rate_limit_requests > 0:
        app.add_middleware(
            RateLimitMiddleware,
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
