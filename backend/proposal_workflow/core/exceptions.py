import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

logger = logging.getLogger(__name__)


class AppException(HTTPException):
    def __init__(self, code: str, message: str, status_code: int = 400, details: dict = None):
        self.error_code = code
        self.error_message = message
        self.error_details = details
        super().__init__(
            status_code=status_code,
            detail={
                "error": {
                    "code": code,
                    "message": message,
                    "details": details,
                }
            },
        )

    def __str__(self) -> str:
        return self.error_message


class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: str = None):
        details = {"entity": entity}
        if entity_id is not None:
            details["id"] = str(entity_id)
        super().__init__(
            code="NOT_FOUND",
            message=f"{entity} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
        )


class InvalidTransitionError(AppException):
    def __init__(self, current: str, target: str):
        super().__init__(
            code="INVALID_TRANSITION",
            message=f"Cannot change status from {current} to {target}",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"current": current, "target": target},
        )


class ConflictError(AppException):
    def __init__(self, message: str = "The record was changed by someone else", details: dict = None):
        super().__init__(
            code="CONFLICT",
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class ForbiddenError(AppException):
    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class UnauthorizedError(AppException):
    def __init__(self, message: str = "Please sign in"):
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class ValidationError(AppException):
    def __init__(self, message: str, field: str = None):
        details = {"field": field} if field else None
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class TransientIOError(AppException):
    """Storage or network hiccup; the caller may retry."""

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(
            code="TRANSIENT_IO",
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class PersistentIOError(AppException):
    """Storage rejected the write (constraint violation); retrying will not help."""

    def __init__(self, message: str = "Storage rejected the operation"):
        super().__init__(
            code="PERSISTENT_IO",
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )


def translate_db_error(exc: Exception) -> AppException:
    """Map a SQLAlchemy error onto the transient/persistent split.

    The driver error is logged here and never copied into the client message.
    """
    logger.exception(f"Storage error: {type(exc).__name__}", exc_info=exc)
    if isinstance(exc, IntegrityError):
        return PersistentIOError("Storage rejected the operation (constraint violation)")
    if isinstance(exc, OperationalError) or (
        isinstance(exc, DBAPIError) and exc.connection_invalidated
    ):
        return TransientIOError()
    return PersistentIOError()
