"""API error responses in the {"error": {"code", "message"}} shape."""

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from voice_expense.errors.taxonomy import ErrorCode, create_error
from voice_expense.models.task import ErrorResponse

logger = structlog.get_logger(__name__)


class ApiError(Exception):
    """Raised by route handlers; rendered as an ErrorResponse."""

    def __init__(self, status_code: int, code: ErrorCode, message: Optional[str] = None):
        self.status_code = status_code
        self.error = create_error(code, message)
        super().__init__(self.error.message)


def error_response(status_code: int, code: ErrorCode, message: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=create_error(code, message))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.error.code, exc.error.message)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
    return error_response(400, ErrorCode.INVALID_REQUEST)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_api_error", path=request.url.path)
    return error_response(500, ErrorCode.INTERNAL_SERVER_ERROR)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
