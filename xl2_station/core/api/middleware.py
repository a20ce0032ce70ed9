"""
API Middleware - unified JSON error responses for the observer server.
"""

from typing import Callable, Optional

from aiohttp import web

from ..errors import StationError
from ..logging_utils import get_module_logger

logger = get_module_logger("APIMiddleware")


def create_error_response(
    code: str, message: str, status: int = 400, details: Optional[dict] = None
) -> web.Response:
    """Create standardized error response."""
    error = {"error": {"code": code, "message": message}, "status": status}
    if details:
        error["error"]["details"] = details
    return web.json_response(error, status=status)


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """
    Catch and format all errors as JSON responses:
    {
        "error": {"code": "ERROR_CODE", "message": "Human-readable message"},
        "status": 500
    }
    """
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return create_error_response(
            e.reason.upper().replace(" ", "_") if e.reason else "HTTP_ERROR",
            e.text or str(e),
            status=e.status,
        )
    except StationError as e:
        logger.warning("Request %s failed: %s", request.path, e)
        return create_error_response(type(e).__name__.upper(), str(e), status=409)
    except Exception as e:
        logger.error("Unexpected error handling %s: %s", request.path, e, exc_info=True)
        return create_error_response(
            "INTERNAL_ERROR",
            "An unexpected error occurred",
            status=500,
            details={"type": type(e).__name__, "message": str(e)},
        )
