"""Domain errors raised by the booking core.

Each error carries the HTTP status it maps to; ``register_exception_handlers``
turns them into JSON responses so services never import FastAPI.
"""
import logging
from typing import List

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class BookingCoreError(Exception):
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def extra(self) -> dict:
        return {}


class BookingValidationError(BookingCoreError):
    status_code = 400


class NotFoundError(BookingCoreError):
    status_code = 404


class ShowNotFoundError(NotFoundError):
    def __init__(self, show_id):
        self.show_id = show_id
        super().__init__(f"Show {show_id} not found")


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class SeatConflictError(BookingCoreError):
    status_code = 409

    def __init__(self, conflicting_seats: List[str]):
        self.conflicting_seats = list(conflicting_seats)
        super().__init__(
            "Selected seats are not available: " + ", ".join(self.conflicting_seats)
        )

    def extra(self) -> dict:
        return {"conflicting_seats": self.conflicting_seats}


class StaleSeatMapError(BookingCoreError):
    """The seat map changed between read and guarded write."""

    status_code = 503

    def __init__(self, show_id, expected_version: int):
        self.show_id = show_id
        self.expected_version = expected_version
        super().__init__(
            f"Seat map of show {show_id} changed since version {expected_version}"
        )


class SeatMapBusyError(BookingCoreError):
    status_code = 503

    def __init__(self, show_id):
        self.show_id = show_id
        super().__init__("Seat selection is busy for this show, please retry")


class PaymentUpstreamError(BookingCoreError):
    status_code = 502

    def __init__(self, message: str = "Payment provider is unavailable, please retry"):
        super().__init__(message)


class WebhookSignatureError(BookingCoreError):
    status_code = 400


async def booking_core_error_handler(request: Request, exc: BookingCoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Booking core error on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, **exc.extra()},
    )


async def storage_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Storage unavailable on %s: %s", request.url.path, exc.orig)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, please retry"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingCoreError, booking_core_error_handler)
    app.add_exception_handler(OperationalError, storage_error_handler)
