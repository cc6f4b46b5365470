from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "app_error"
    retryable = False

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    code = "not_found"


class ForbiddenError(AppError):
    code = "forbidden"


class ConflictError(AppError):
    code = "conflict"


class ValidationError(AppError):
    code = "validation_error"


class TransientError(AppError):
    """Store or broker unavailable. The caller may retry."""

    code = "transient"
    retryable = True


# Not found


class UserNotFoundError(NotFoundError):
    code = "user_not_found"


class InvalidTargetError(NotFoundError):
    code = "invalid_target"


class RequestNotFoundError(NotFoundError):
    code = "request_not_found"


class ConnectionNotFoundError(NotFoundError):
    code = "connection_not_found"


# Authorization


class UnauthorizedError(ForbiddenError):
    code = "unauthorized"


class NotJoinedError(ForbiddenError):
    code = "not_joined"


# State conflicts


class AlreadyConnectedError(ConflictError):
    code = "already_connected"


class DuplicateRequestError(ConflictError):
    code = "duplicate_request"


class RequestNotPendingError(ConflictError):
    code = "request_not_pending"


class ConflictAlreadyConnectedError(ConflictError):
    code = "conflict_already_connected"


class ConnectionNotActiveError(ConflictError):
    code = "connection_not_active"


class UsernameTakenError(ConflictError):
    code = "username_taken"


# Validation


class EmptyContentError(ValidationError):
    code = "empty_content"


class ContentTooLongError(ValidationError):
    code = "content_too_long"


class SelfTargetError(ValidationError):
    code = "self_target"


class InvalidUsernameError(ValidationError):
    code = "invalid_username"


class InvalidPaginationError(ValidationError):
    code = "invalid_pagination"


# Transport


class StoreUnavailableError(TransientError):
    code = "store_unavailable"
