"""
Maps domain errors to HTTP responses.

Expected outcomes become 4xx responses without being logged as faults; only
fatal conditions are logged at ERROR and reported as 503.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from shortlink_app.exceptions import (
    CodeSpaceExhausted, CodeTaken, LinkNotFound, NotFoundOrExpired, NotOwner,
    PasswordNotFound, ScheduleNotFound, ShortlinkError, Unauthorized, ValidationFailed,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    NotFoundOrExpired: status.HTTP_404_NOT_FOUND,
    LinkNotFound: status.HTTP_404_NOT_FOUND,
    ScheduleNotFound: status.HTTP_404_NOT_FOUND,
    PasswordNotFound: status.HTTP_404_NOT_FOUND,
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    NotOwner: status.HTTP_403_FORBIDDEN,
    CodeTaken: status.HTTP_409_CONFLICT,
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
}

SERVICE_UNAVAILABLE = "Service temporarily unavailable"


async def shortlink_error_handler(request: Request, exc: ShortlinkError) -> JSONResponse:
    if isinstance(exc, CodeSpaceExhausted):
        logger.error("Short code generation exhausted: %s", exc.message)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": SERVICE_UNAVAILABLE},
        )

    status_code = STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


async def datastore_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Datastore unavailable", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": SERVICE_UNAVAILABLE},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShortlinkError, shortlink_error_handler)
    app.add_exception_handler(OperationalError, datastore_error_handler)
