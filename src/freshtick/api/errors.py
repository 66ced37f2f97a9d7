"""Translate domain errors into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException, status

from ..errors import (
    DuplicateRecord,
    InvalidSchedule,
    MalformedGeometry,
    NotServiceable,
    PreconditionViolation,
    RecordNotFound,
)


def to_http_error(exc: Exception) -> HTTPException:
    match exc:
        case RecordNotFound():
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        case PreconditionViolation():
            return HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"kind": exc.kind, "message": str(exc)},
            )
        case DuplicateRecord():
            return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        case NotServiceable():
            return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        case MalformedGeometry() | InvalidSchedule():
            return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        case ValueError():
            return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        case _:
            return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
