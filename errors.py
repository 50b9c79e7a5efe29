"""
Error taxonomy and the handlers that turn errors into JSON bodies.
"""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from logger import practice_logger


class PracticeError(Exception):
    """Base class for errors that map onto an HTTP status."""
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class NotFoundError(PracticeError):
    status_code = 404


class InvalidInputError(PracticeError):
    status_code = 400


class AuthError(PracticeError):
    status_code = 401


class ConflictError(PracticeError):
    status_code = 409


class ServiceUnavailableError(PracticeError):
    status_code = 503


async def practice_error_handler(request: Request, exc: PracticeError):
    if exc.status_code >= 500:
        practice_logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        # Starlette's default for unmatched paths
        return JSONResponse(status_code=404, content={"error": "Route not found"})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


async def unexpected_error_handler(request: Request, exc: Exception):
    practice_logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Something went wrong!"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PracticeError, practice_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
