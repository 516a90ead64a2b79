"""
Reservation engine errors.

Raised synchronously by the CRUD layer and surfaced to the caller unmodified.
The HTTP layer converts them with `to_http_exception()` through the handler
registered in `register_error_handlers`.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse


class ReservationError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.code = self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class NotFound(ReservationError):
    """Referenced resource or reservation does not exist or is soft-deleted."""

    status_code = status.HTTP_404_NOT_FOUND


class ResourceUnavailable(ReservationError):
    """Resource exists but is not in a bookable state."""

    status_code = status.HTTP_409_CONFLICT


class AssignmentMismatch(ReservationError):
    """Resource is pinned to a different branch than the one requested."""

    status_code = status.HTTP_409_CONFLICT


class InvalidInterval(ReservationError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "end_datetime must be after start_datetime"):
        super().__init__(message)


class SlotConflict(ReservationError):
    """An existing blocking reservation intersects the requested window."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflicting_id: UUID | None = None) -> None:
        self.conflicting_id = conflicting_id
        details = {"conflicting_id": str(conflicting_id)} if conflicting_id else None
        super().__init__(message, details)


class ValidationError(ReservationError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, errors: list[tuple[str, str]]) -> None:
        self.errors = errors
        message = "; ".join(f"{field}: {msg}" for field, msg in errors)
        super().__init__(
            message,
            {"errors": [{"field": field, "message": msg} for field, msg in errors]},
        )

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([(field, message)])


class InvalidTransition(ReservationError):
    """The requested status change is not a forward move from the current state."""

    status_code = status.HTTP_409_CONFLICT


class AlreadyCancelled(InvalidTransition):
    pass


async def _handle_reservation_error(
    request: Request, exc: ReservationError
) -> JSONResponse:
    http_exc = exc.to_http_exception()
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReservationError, _handle_reservation_error)  # type: ignore[arg-type]
