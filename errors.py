import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class FoodDropError(Exception):
    """Base for every error surfaced to the user with its raw message."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(FoodDropError):
    status_code = 400

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, status_code)
        self.errors = errors or [message]


class AuthError(FoodDropError):
    status_code = 401


class StateError(FoodDropError):
    status_code = 409


class NotFoundError(FoodDropError):
    status_code = 404


class RemoteError(FoodDropError):
    status_code = 502


class UploadError(FoodDropError):
    status_code = 502


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(FoodDropError)
    async def fooddrop_error_handler(request: Request, exc: FoodDropError):
        if exc.status_code >= 500:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse({"detail": exc.message}, status_code=exc.status_code)
