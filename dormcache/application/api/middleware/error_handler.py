"""
Error Handling Middleware

Last line of defense: anything a route handler, another middleware or an
exception handler did not deal with is logged with full context and turned
into a JSON 500. Stack traces reach the client only in development.
"""

import traceback
from collections.abc import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from dormcache.core.logging.logger import get_logger
from dormcache.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch-all formatter for unhandled exceptions."""

    def __init__(self, app, include_traceback: bool = False):
        """
        Args:
            app: The ASGI application
            include_traceback: Include stack traces in error responses
                (development only)
        """
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except Exception as e:
            method = request.method
            path = request.url.path
            error_type = type(e).__name__
            error_message = str(e)

            logger.error(
                f"Unhandled exception in request: {method} {path}",
                method=method,
                path=path,
                error_type=error_type,
                error_message=error_message,
                exc_info=True,
            )

            get_metrics_collector().record_error(error_type, "unhandled_exception")

            error_response = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred while processing your request",
                "error_type": error_type,
            }
            if self.include_traceback:
                error_response["traceback"] = traceback.format_exc()
                error_response["detail"] = error_message

            return JSONResponse(status_code=500, content=error_response)
