"""Maps the core's error taxonomy onto distinct HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rideshare.domain.errors import (
    AuthorizationError,
    CapacityError,
    DuplicateBookingError,
    InvalidStateTransition,
    NotFoundError,
    RideshareError,
    RideUnavailableError,
    StorageContentionError,
    ValidationError,
)

STATUS_CODES: dict[type[RideshareError], int] = {
    ValidationError: 422,
    AuthorizationError: 403,
    NotFoundError: 404,
    RideUnavailableError: 409,
    CapacityError: 409,
    DuplicateBookingError: 409,
    InvalidStateTransition: 409,
    StorageContentionError: 503,
}


async def rideshare_error_handler(request: Request, exc: RideshareError) -> JSONResponse:
    status_code = next(
        (code for kind, code in STATUS_CODES.items() if isinstance(exc, kind)), 400
    )
    body: dict = {"detail": str(exc), "code": exc.code}
    headers = None
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    elif isinstance(exc, CapacityError):
        body["seats_remaining"] = exc.remaining
    elif isinstance(exc, StorageContentionError):
        headers = {"Retry-After": "1"}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RideshareError, rideshare_error_handler)
