"""Translate assessment errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from classroom.common.exceptions import (
    AccessDenied,
    AssessmentError,
    NotFoundError,
    PayloadValidationError,
    PolicyViolation,
    ResponseLocked,
    ReviewConflict,
    UnknownAssessmentType,
)


def to_http_exception(exc: AssessmentError) -> HTTPException:
    if isinstance(exc, PolicyViolation):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"reason": exc.status.value})
    if isinstance(exc, PayloadValidationError):
        detail = {"message": exc.message, "errors": exc.errors} if exc.errors else exc.message
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(exc, UnknownAssessmentType):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message)
    if isinstance(exc, (ReviewConflict, ResponseLocked)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, AccessDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


__all__ = ["to_http_exception"]
