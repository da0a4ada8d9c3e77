"""Exception-to-response mapping for the marketplace API.

Business errors surface their stable message and code. Anything unexpected is
logged with its traceback and answered with a generic 500 body.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError

from marketplace.exceptions import InternalError, MarketplaceError

logger = structlog.get_logger(__name__)


def _json(status_code: int, body: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.code, exc_info=exc)
    return _json(exc.status_code, exc.to_dict())


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _json(400, {"error": "validation_error", "message": "Invalid request", "details": exc.messages})


async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return _json(404, {"error": "not_found", "message": "Resource not found"})


async def invalid_operation_handler(request: Request, exc: InvalidOperationError) -> JSONResponse:
    return _json(409, {"error": "invalid_operation", "message": str(exc)})


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", path=request.url.path, method=request.method, exc_info=exc)
    return _json(500, InternalError().to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
    app.add_exception_handler(InvalidOperationError, invalid_operation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
